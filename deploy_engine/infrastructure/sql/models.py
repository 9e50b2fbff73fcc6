#deploy_engine\infrastructure\sql\models.py
"""SQLAlchemy ORM models for the persisted state layout."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum as SQLEnum, Index, Integer, String, Text

from deploy_engine.core.models import Action, ResourceStatus, ResourceType
from deploy_engine.infrastructure.sql.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceStateORM(Base):
    """
    Resource state table - one row per (deployment, resource).

    Indexes:
    - Composite primary key (deployment, resource_id)
    - Index on (deployment, status) for listing failed / pending resources
    """

    __tablename__ = "resource_states"

    deployment = Column(String(255), primary_key=True)
    resource_id = Column(String(255), primary_key=True)

    resource_type = Column(SQLEnum(ResourceType, name="resource_type"), nullable=False)
    handle = Column(String(512), nullable=True)

    properties = Column(JSON, nullable=False, default=dict)
    fingerprint = Column(String(64), nullable=False, default="")
    depends_on = Column(JSON, nullable=False, default=list)

    status = Column(
        SQLEnum(ResourceStatus, name="resource_status"),
        nullable=False,
        default=ResourceStatus.PENDING,
    )
    error = Column(Text, nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_resource_states_deployment_status", "deployment", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ResourceStateORM(deployment={self.deployment}, "
            f"resource_id={self.resource_id}, "
            f"status={self.status.value})>"
        )


class JournalEntryORM(Base):
    """Journal table - applied steps of the last apply run per deployment."""

    __tablename__ = "journal_entries"

    deployment = Column(String(255), primary_key=True)
    seq = Column(Integer, primary_key=True, autoincrement=False)

    resource_id = Column(String(255), nullable=False)
    action = Column(SQLEnum(Action, name="plan_action"), nullable=False)

    prior = Column(JSON, nullable=True)
    applied = Column(JSON, nullable=True)

    rolled_back = Column(Boolean, nullable=False, default=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return (
            f"<JournalEntryORM(deployment={self.deployment}, seq={self.seq}, "
            f"{self.action.value} {self.resource_id})>"
        )
