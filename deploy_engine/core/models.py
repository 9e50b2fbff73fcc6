"""Core domain models for declarative resource deployments."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ============================================
# ENUMS
# ============================================

class ResourceType(Enum):
    """Recognized infrastructure resource kinds."""
    VPC = "VPC"
    SUBNET = "SUBNET"
    INTERNET_GATEWAY = "INTERNET_GATEWAY"
    ROUTE_TABLE = "ROUTE_TABLE"
    NAT_GATEWAY = "NAT_GATEWAY"
    ELASTIC_IP = "ELASTIC_IP"
    SECURITY_GROUP = "SECURITY_GROUP"
    SECURITY_GROUP_RULE = "SECURITY_GROUP_RULE"
    INSTANCE = "INSTANCE"
    DATABASE = "DATABASE"
    LOAD_BALANCER = "LOAD_BALANCER"
    CERTIFICATE = "CERTIFICATE"
    DNS_RECORD = "DNS_RECORD"
    CONFIGURATION = "CONFIGURATION"

    @classmethod
    def parse(cls, value: str) -> "ResourceType":
        """Match a type name case-insensitively, ignoring '-' / '_' differences."""
        normalized = value.strip().upper().replace("-", "_")
        aliases = {
            "SECURITYGROUP": "SECURITY_GROUP",
            "NATGATEWAY": "NAT_GATEWAY",
            "INTERNETGATEWAY": "INTERNET_GATEWAY",
            "ROUTETABLE": "ROUTE_TABLE",
            "ELASTICIP": "ELASTIC_IP",
            "LOADBALANCER": "LOAD_BALANCER",
            "DNSRECORD": "DNS_RECORD",
            "SECURITYGROUPRULE": "SECURITY_GROUP_RULE",
        }
        normalized = aliases.get(normalized, normalized)
        return cls(normalized)


class Action(Enum):
    """Reconciliation action for a single resource."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    NOOP = "NOOP"


class ResourceStatus(Enum):
    """Persisted status of a resource between runs."""
    PENDING = "PENDING"
    APPLIED = "APPLIED"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"


class StepStatus(Enum):
    """Lifecycle of a plan step within one deployment run."""
    UNPLANNED = "UNPLANNED"
    PLANNED = "PLANNED"
    APPLYING = "APPLYING"
    APPLIED = "APPLIED"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"


class ProviderStatus(Enum):
    """Resource status as reported by the cloud provider."""
    PENDING = "PENDING"
    READY = "READY"
    FAILED = "FAILED"
    DELETED = "DELETED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# DESCRIPTORS
# ============================================

@dataclass(frozen=True)
class ResourceDescriptor:
    """Declarative definition of a single resource. Immutable once loaded."""

    resource_id: str
    resource_type: ResourceType
    properties: Dict[str, Any] = field(default_factory=dict)
    depends_on: Tuple[str, ...] = ()
    fingerprint: str = ""
    timeout_seconds: Optional[float] = None
    # properties as persisted and fingerprinted (setup scripts hashed);
    # None when identical to `properties`
    recorded_properties: Optional[Dict[str, Any]] = None

    def __hash__(self) -> int:
        return hash((self.resource_id, self.fingerprint))

    def state_properties(self) -> Dict[str, Any]:
        if self.recorded_properties is None:
            return dict(self.properties)
        return dict(self.recorded_properties)


# ============================================
# PERSISTED STATE
# ============================================

@dataclass
class ResourceState:
    """Last-known cloud-side representation of a resource."""

    resource_id: str
    resource_type: ResourceType
    handle: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    fingerprint: str = ""
    depends_on: List[str] = field(default_factory=list)
    status: ResourceStatus = ResourceStatus.PENDING
    error: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)

    def exists(self) -> bool:
        """True when the resource exists provider-side."""
        return self.handle is not None

    def copy(self, **changes) -> "ResourceState":
        changes.setdefault("updated_at", utcnow())
        changes.setdefault("properties", dict(self.properties))
        changes.setdefault("depends_on", list(self.depends_on))
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "resource_type": self.resource_type.value,
            "handle": self.handle,
            "properties": self.properties,
            "fingerprint": self.fingerprint,
            "depends_on": list(self.depends_on),
            "status": self.status.value,
            "error": self.error,
            "updated_at": self.updated_at.isoformat(),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ResourceState":
        return ResourceState(
            resource_id=data["resource_id"],
            resource_type=ResourceType(data["resource_type"]),
            handle=data.get("handle"),
            properties=dict(data.get("properties") or {}),
            fingerprint=data.get("fingerprint", ""),
            depends_on=list(data.get("depends_on") or []),
            status=ResourceStatus(data.get("status", ResourceStatus.PENDING.value)),
            error=data.get("error"),
            updated_at=(
                datetime.fromisoformat(data["updated_at"])
                if data.get("updated_at") else utcnow()
            ),
        )

    @staticmethod
    def from_descriptor(
        descriptor: ResourceDescriptor,
        *,
        handle: Optional[str] = None,
        status: ResourceStatus = ResourceStatus.PENDING,
    ) -> "ResourceState":
        return ResourceState(
            resource_id=descriptor.resource_id,
            resource_type=descriptor.resource_type,
            handle=handle,
            properties=descriptor.state_properties(),
            fingerprint=descriptor.fingerprint,
            depends_on=list(descriptor.depends_on),
            status=status,
        )


@dataclass
class JournalEntry:
    """One applied step of the most recent apply run."""

    seq: int
    resource_id: str
    action: Action
    prior: Optional[ResourceState] = None
    applied: Optional[ResourceState] = None
    rolled_back: bool = False


# ============================================
# PLAN
# ============================================

@dataclass
class PlanStep:
    """
    A descriptor paired with its computed action.

    The descriptor, action and prior state are fixed at plan time; the
    remaining fields are outcome annotations written during execution and
    excluded from equality.
    """

    descriptor: ResourceDescriptor
    action: Action
    current: Optional[ResourceState] = None

    status: StepStatus = field(default=StepStatus.PLANNED, compare=False)
    handle: Optional[str] = field(default=None, compare=False)
    error: Optional[str] = field(default=None, compare=False)
    started_at: Optional[datetime] = field(default=None, compare=False)
    finished_at: Optional[datetime] = field(default=None, compare=False)

    @property
    def resource_id(self) -> str:
        return self.descriptor.resource_id

    def __repr__(self) -> str:
        return f"<PlanStep({self.action.value} {self.resource_id}, {self.status.value})>"


@dataclass
class DeploymentPlan:
    """Ordered Create/Update/NoOp steps followed by Delete steps."""

    deployment: str
    steps: List[PlanStep] = field(default_factory=list)

    def forward_steps(self) -> List[PlanStep]:
        return [s for s in self.steps if s.action != Action.DELETE]

    def delete_steps(self) -> List[PlanStep]:
        return [s for s in self.steps if s.action == Action.DELETE]

    def step_for(self, resource_id: str) -> Optional[PlanStep]:
        for step in self.steps:
            if step.resource_id == resource_id:
                return step
        return None

    def counts(self) -> Dict[str, int]:
        counts = {action.value: 0 for action in Action}
        for step in self.steps:
            counts[step.action.value] += 1
        return counts

    def has_changes(self) -> bool:
        return any(s.action != Action.NOOP for s in self.steps)


# ============================================
# REPORTS
# ============================================

@dataclass
class RollbackEntry:
    """Outcome of one compensating action."""
    resource_id: str
    original_action: Action
    compensation: str  # "delete", "revert", "recreate"
    status: StepStatus
    error: Optional[str] = None


@dataclass
class RollbackReport:
    deployment: str
    entries: List[RollbackEntry] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return any(e.status == StepStatus.ROLLBACK_FAILED for e in self.entries)

    def failed_resource_ids(self) -> List[str]:
        return [
            e.resource_id for e in self.entries
            if e.status == StepStatus.ROLLBACK_FAILED
        ]

    def compensated_resource_ids(self) -> List[str]:
        return [e.resource_id for e in self.entries]


@dataclass
class ExecutionReport:
    """Result of applying a deployment plan."""

    deployment: str
    plan: DeploymentPlan
    success: bool = False
    cancelled: bool = False
    applied: List[PlanStep] = field(default_factory=list)
    failed_step: Optional[PlanStep] = None
    error: Optional[str] = None
    rollback: Optional[RollbackReport] = None
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    @property
    def failed_resource_id(self) -> Optional[str]:
        return self.failed_step.resource_id if self.failed_step else None

    @property
    def last_successful_resource_id(self) -> Optional[str]:
        return self.applied[-1].resource_id if self.applied else None

    def summary(self) -> str:
        if self.success:
            return (
                f"Deployment '{self.deployment}' applied "
                f"({len(self.applied)} step(s))"
            )

        last = self.last_successful_resource_id or "none"
        if self.cancelled and not self.failed_step:
            text = f"Deployment '{self.deployment}' cancelled (last successful step: {last})"
        else:
            text = (
                f"Deployment '{self.deployment}' failed at resource "
                f"'{self.failed_resource_id}': {self.error} "
                f"(last successful step: {last})"
            )
        if self.rollback is not None:
            if self.rollback.partial:
                text += "; rollback incomplete for " + ", ".join(
                    self.rollback.failed_resource_ids()
                )
            else:
                text += f"; rolled back {len(self.rollback.entries)} step(s)"
        return text
