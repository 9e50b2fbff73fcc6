#deploy_engine\container.py

"""Dependency injection container - wires all services together."""

from functools import lru_cache
from typing import Optional

from cloud_provider.client import CloudProviderClient
from cloud_provider.config import ProviderSettings
from deploy_engine.core.events import EventEmitter, LoggingEventEmitter, MultiEventEmitter
from deploy_engine.core.provider import CloudProvider
from deploy_engine.core.repository import StateRepository
from deploy_engine.executor.config import EngineSettings
from deploy_engine.executor.engine import ProvisioningEngine
from deploy_engine.infrastructure.sql.config import StateStoreSettings
from deploy_engine.infrastructure.sql.database import create_db_engine, get_session_factory, init_db
from deploy_engine.infrastructure.sql.repository import SqlStateRepository
from deploy_engine.service import DeploymentService


# ============================================
# REPOSITORIES
# ============================================

def build_state_repository(settings: Optional[StateStoreSettings] = None) -> SqlStateRepository:
    db_engine = create_db_engine(settings or StateStoreSettings())
    init_db(db_engine)
    return SqlStateRepository(get_session_factory(db_engine))


# ============================================
# EVENTS
# ============================================

def build_emitters() -> EventEmitter:
    return MultiEventEmitter([
        LoggingEventEmitter()
    ])


# ============================================
# SERVICES
# ============================================

def build_service(
    *,
    repository: Optional[StateRepository] = None,
    provider: Optional[CloudProvider] = None,
    engine_settings: Optional[EngineSettings] = None,
    emitter: Optional[EventEmitter] = None,
) -> DeploymentService:
    """Build a DeploymentService; missing collaborators come from settings."""
    repository = repository or build_state_repository()
    provider = provider or CloudProviderClient.from_settings(ProviderSettings())
    config = (engine_settings or EngineSettings()).to_config()

    engine = ProvisioningEngine(
        provider,
        config,
        emitter=emitter or build_emitters(),
    )
    return DeploymentService(repository, engine)


@lru_cache(maxsize=1)
def get_deployment_service() -> DeploymentService:
    """Process-wide service used by the HTTP API."""
    return build_service()
