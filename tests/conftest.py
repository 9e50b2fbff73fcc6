#tests\conftest.py

"""Pytest configuration and fixtures."""

import itertools
import threading
from typing import Any, Dict, List, Tuple

import pytest

from deploy_engine.core.errors import PermanentProviderError
from deploy_engine.core.events import PrintEventEmitter
from deploy_engine.core.models import ProviderStatus, ResourceType
from deploy_engine.core.provider import CloudProvider
from deploy_engine.core.state import DeploymentState
from deploy_engine.descriptors.store import DescriptorStore
from deploy_engine.executor.config import EngineConfig
from deploy_engine.executor.engine import ProvisioningEngine
from deploy_engine.infrastructure.memory.repository import InMemoryStateRepository
from deploy_engine.infrastructure.sql.config import StateStoreSettings
from deploy_engine.infrastructure.sql.database import create_db_engine, get_session_factory, init_db
from deploy_engine.infrastructure.sql.repository import SqlStateRepository
from deploy_engine.reconciler.reconciler import StateReconciler
from deploy_engine.resolver.resolver import DependencyResolver
from deploy_engine.service import DeploymentService


# ============================================
# Fake cloud provider
# ============================================

class FakeCloudProvider(CloudProvider):
    """
    Scriptable in-memory provider.

    Resources are identified in scripts by their `name` property, which the
    definition helpers set to the resource id.
    """

    def __init__(self):
        self.resources: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str]] = []
        self._failures: Dict[Tuple[str, str], List[Exception]] = {}
        self._pending_polls: Dict[str, int] = {}
        self._hanging: set = set()
        self._active = 0
        self.max_active = 0
        self._counter = itertools.count(1)
        self._lock = threading.Lock()
        self.on_create = None

    # -------------------------
    # SCRIPTING
    # -------------------------

    def fail(self, op: str, name: str, *errors: Exception) -> None:
        """Raise `errors` one by one on the next `op` calls for `name`."""
        self._failures.setdefault((op, name), []).extend(errors)

    def pending_for(self, name: str, polls: int) -> None:
        """Report PENDING for `polls` status checks before READY."""
        self._pending_polls[name] = polls

    def hang(self, name: str) -> None:
        """Never let `name` become READY."""
        self._hanging.add(name)

    def names(self) -> List[str]:
        return sorted(r["properties"].get("name") for r in self.resources.values())

    def ops(self, op: str) -> List[str]:
        return [name for kind, name in self.calls if kind == op]

    # -------------------------
    # INTERNALS
    # -------------------------

    def _enter(self, op: str, name: str) -> None:
        with self._lock:
            self.calls.append((op, name))
            errors = self._failures.get((op, name))
            if errors:
                raise errors.pop(0)

    def _name_of(self, handle: str) -> str:
        resource = self.resources.get(handle)
        if resource is None:
            raise PermanentProviderError(f"Unknown handle {handle}")
        return resource["properties"].get("name", handle)

    def _status_after_write(self, name: str) -> ProviderStatus:
        if name in self._hanging or self._pending_polls.get(name):
            return ProviderStatus.PENDING
        return ProviderStatus.READY

    # -------------------------
    # CloudProvider
    # -------------------------

    def create(self, resource_type: ResourceType, properties: Dict[str, Any]):
        name = properties.get("name", "")
        with self._lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        try:
            if self.on_create is not None:
                self.on_create(name)
            self._enter("create", name)
            handle = f"{resource_type.value.lower()}-{next(self._counter)}"
            with self._lock:
                self.resources[handle] = {
                    "type": resource_type,
                    "properties": dict(properties),
                }
            return handle, self._status_after_write(name)
        finally:
            with self._lock:
                self._active -= 1

    def update(self, handle: str, properties: Dict[str, Any]):
        name = self._name_of(handle)
        self._enter("update", name)
        with self._lock:
            self.resources[handle]["properties"] = dict(properties)
        return self._status_after_write(name)

    def delete(self, handle: str):
        name = self._name_of(handle)
        self._enter("delete", name)
        with self._lock:
            self.resources.pop(handle, None)
        return ProviderStatus.DELETED

    def get_status(self, handle: str):
        if handle not in self.resources:
            return ProviderStatus.DELETED
        name = self._name_of(handle)
        self._enter("status", name)
        if name in self._hanging:
            return ProviderStatus.PENDING
        with self._lock:
            remaining = self._pending_polls.get(name, 0)
            if remaining > 0:
                self._pending_polls[name] = remaining - 1
                return ProviderStatus.PENDING
        return ProviderStatus.READY


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self):
        self._now = 0.0
        self._lock = threading.Lock()
        self.sleeps: List[float] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self._now += seconds


# ============================================
# Definition helpers
# ============================================

def definition(rid: str, rtype: str, *deps: str, **properties) -> Dict[str, Any]:
    properties.setdefault("name", rid)
    return {
        "id": rid,
        "type": rtype,
        "properties": properties,
        "depends_on": list(deps),
    }


@pytest.fixture
def vpc_definitions():
    """VPC, subnet and security group feeding one instance."""
    return [
        definition("v1", "VPC", cidr="10.0.0.0/16"),
        definition("s1", "Subnet", "v1", cidr="10.0.1.0/24"),
        definition("sg1", "SecurityGroup", "v1", ingress=[{"port": 443, "cidr": "0.0.0.0/0"}]),
        definition("i1", "Instance", "s1", "sg1", instance_type="t3.micro"),
    ]


# ============================================
# Components
# ============================================

@pytest.fixture
def provider():
    return FakeCloudProvider()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def engine_config():
    return EngineConfig(
        max_concurrency=4,
        max_attempts=3,
        backoff_multiplier=0,
        backoff_min_seconds=0,
        backoff_max_seconds=0,
        default_timeout_seconds=10,
        poll_interval_seconds=1,
    )


@pytest.fixture
def emitter():
    return PrintEventEmitter()


@pytest.fixture
def engine(provider, engine_config, emitter, fake_clock):
    return ProvisioningEngine(
        provider,
        engine_config,
        emitter=emitter,
        sleep=fake_clock.sleep,
        clock=fake_clock.now,
    )


@pytest.fixture
def repository():
    return InMemoryStateRepository()


@pytest.fixture
def sql_repository(tmp_path):
    """SQLite-backed repository in a per-test database file."""
    settings = StateStoreSettings(database_url=f"sqlite:///{tmp_path / 'state.db'}")
    db_engine = create_db_engine(settings)
    init_db(db_engine)
    yield SqlStateRepository(get_session_factory(db_engine))
    db_engine.dispose()


@pytest.fixture
def store():
    return DescriptorStore()


@pytest.fixture
def resolver():
    return DependencyResolver()


@pytest.fixture
def reconciler(resolver):
    return StateReconciler(resolver)


@pytest.fixture
def service(repository, engine):
    return DeploymentService(repository, engine)


@pytest.fixture
def make_plan(store, resolver, reconciler, repository):
    """Build a plan for definitions against the repository's current state."""

    def _make(deployment, definitions):
        ordered = resolver.resolve(store.load(definitions))
        return reconciler.diff(ordered, repository.load(deployment), deployment=deployment)

    return _make


@pytest.fixture
def make_state(repository):
    def _make(deployment):
        return DeploymentState(deployment, repository)

    return _make
