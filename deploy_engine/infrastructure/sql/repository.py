#deploy_engine\infrastructure\sql\repository.py

"""SQL state repository implementation using SQLAlchemy."""

import logging
from datetime import timezone
from typing import Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from deploy_engine.core.errors import StateStoreError
from deploy_engine.core.models import JournalEntry, ResourceState
from deploy_engine.core.repository import StateRepository
from deploy_engine.infrastructure.sql.database import session_scope
from deploy_engine.infrastructure.sql.models import JournalEntryORM, ResourceStateORM

logger = logging.getLogger(__name__)


# ============================================
# Mapping Functions
# ============================================

def orm_to_domain(orm: ResourceStateORM) -> ResourceState:
    """Convert ORM model to domain model."""
    updated_at = orm.updated_at
    if updated_at is not None and updated_at.tzinfo is None:
        # SQLite drops the offset; values are always written in UTC
        updated_at = updated_at.replace(tzinfo=timezone.utc)

    return ResourceState(
        resource_id=orm.resource_id,
        resource_type=orm.resource_type,
        handle=orm.handle,
        properties=dict(orm.properties or {}),
        fingerprint=orm.fingerprint,
        depends_on=list(orm.depends_on or []),
        status=orm.status,
        error=orm.error,
        updated_at=updated_at,
    )


def domain_to_orm(deployment: str, state: ResourceState) -> ResourceStateORM:
    """Convert domain model to ORM model."""
    return ResourceStateORM(
        deployment=deployment,
        resource_id=state.resource_id,
        resource_type=state.resource_type,
        handle=state.handle,
        properties=state.properties,
        fingerprint=state.fingerprint,
        depends_on=list(state.depends_on),
        status=state.status,
        error=state.error,
        updated_at=state.updated_at,
    )


def journal_to_domain(orm: JournalEntryORM) -> JournalEntry:
    return JournalEntry(
        seq=orm.seq,
        resource_id=orm.resource_id,
        action=orm.action,
        prior=ResourceState.from_dict(orm.prior) if orm.prior else None,
        applied=ResourceState.from_dict(orm.applied) if orm.applied else None,
        rolled_back=orm.rolled_back,
    )


# ============================================
# Repository Implementation
# ============================================

class SqlStateRepository(StateRepository):
    """SQLAlchemy implementation with an injected session factory."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # -------------------------
    # RESOURCE STATE
    # -------------------------

    def load(self, deployment: str) -> Dict[str, ResourceState]:
        try:
            with session_scope(self._session_factory) as session:
                rows = session.scalars(
                    select(ResourceStateORM).where(ResourceStateORM.deployment == deployment)
                ).all()
                return {row.resource_id: orm_to_domain(row) for row in rows}
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to load state of {deployment}: {e}") from e

    def get(self, deployment: str, resource_id: str) -> Optional[ResourceState]:
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(ResourceStateORM, (deployment, resource_id))
                return orm_to_domain(row) if row else None
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to read {deployment}/{resource_id}: {e}") from e

    def save(self, deployment: str, state: ResourceState) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.merge(domain_to_orm(deployment, state))
            logger.debug(f"[sql] save {deployment}/{state.resource_id} -> {state.status.value}")
        except SQLAlchemyError as e:
            raise StateStoreError(
                f"Failed to save {deployment}/{state.resource_id}: {e}"
            ) from e

    def remove(self, deployment: str, resource_id: str) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.execute(
                    delete(ResourceStateORM).where(
                        ResourceStateORM.deployment == deployment,
                        ResourceStateORM.resource_id == resource_id,
                    )
                )
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to remove {deployment}/{resource_id}: {e}") from e

    def list_deployments(self) -> List[str]:
        try:
            with session_scope(self._session_factory) as session:
                states = session.scalars(select(ResourceStateORM.deployment).distinct()).all()
                journals = session.scalars(select(JournalEntryORM.deployment).distinct()).all()
                return sorted(set(states) | set(journals))
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to list deployments: {e}") from e

    # -------------------------
    # JOURNAL
    # -------------------------

    def append_journal(self, deployment: str, entry: JournalEntry) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.add(
                    JournalEntryORM(
                        deployment=deployment,
                        seq=entry.seq,
                        resource_id=entry.resource_id,
                        action=entry.action,
                        prior=entry.prior.to_dict() if entry.prior else None,
                        applied=entry.applied.to_dict() if entry.applied else None,
                        rolled_back=entry.rolled_back,
                    )
                )
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to journal {deployment}/{entry.resource_id}: {e}") from e

    def load_journal(self, deployment: str) -> List[JournalEntry]:
        try:
            with session_scope(self._session_factory) as session:
                rows = session.scalars(
                    select(JournalEntryORM)
                    .where(JournalEntryORM.deployment == deployment)
                    .order_by(JournalEntryORM.seq)
                ).all()
                return [journal_to_domain(row) for row in rows]
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to load journal of {deployment}: {e}") from e

    def mark_journal_rolled_back(self, deployment: str, seq: int) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.execute(
                    update(JournalEntryORM)
                    .where(
                        JournalEntryORM.deployment == deployment,
                        JournalEntryORM.seq == seq,
                    )
                    .values(rolled_back=True)
                )
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to update journal of {deployment}: {e}") from e

    def clear_journal(self, deployment: str) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.execute(
                    delete(JournalEntryORM).where(JournalEntryORM.deployment == deployment)
                )
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to clear journal of {deployment}: {e}") from e
