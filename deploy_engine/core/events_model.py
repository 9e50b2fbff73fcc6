"""Event models for the deployment engine."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from deploy_engine.core.models import utcnow


@dataclass
class DeploymentEvent:
    """Base deployment event."""

    event_type: str
    deployment: str
    resource_id: Optional[str]
    timestamp: datetime
    metadata: Dict[str, Any]

    @staticmethod
    def step_started(deployment: str, step):
        return DeploymentEvent(
            event_type="step.started",
            deployment=deployment,
            resource_id=step.resource_id,
            timestamp=utcnow(),
            metadata={
                "action": step.action.value,
                "resource_type": step.descriptor.resource_type.value,
            }
        )

    @staticmethod
    def step_skipped(deployment: str, step):
        """NoOp step, nothing sent to the provider."""
        return DeploymentEvent(
            event_type="step.skipped",
            deployment=deployment,
            resource_id=step.resource_id,
            timestamp=utcnow(),
            metadata={"action": step.action.value}
        )

    @staticmethod
    def step_applied(deployment: str, step):
        return DeploymentEvent(
            event_type="step.applied",
            deployment=deployment,
            resource_id=step.resource_id,
            timestamp=utcnow(),
            metadata={
                "action": step.action.value,
                "handle": step.handle,
            }
        )

    @staticmethod
    def step_failed(deployment: str, step, reason: str):
        return DeploymentEvent(
            event_type="step.failed",
            deployment=deployment,
            resource_id=step.resource_id,
            timestamp=utcnow(),
            metadata={
                "action": step.action.value,
                "error_message": reason,
            }
        )

    @staticmethod
    def rollback_started(deployment: str, count: int):
        return DeploymentEvent(
            event_type="rollback.started",
            deployment=deployment,
            resource_id=None,
            timestamp=utcnow(),
            metadata={"steps": count}
        )

    @staticmethod
    def rollback_step(deployment: str, entry):
        return DeploymentEvent(
            event_type="rollback.step",
            deployment=deployment,
            resource_id=entry.resource_id,
            timestamp=utcnow(),
            metadata={
                "compensation": entry.compensation,
                "status": entry.status.value,
                "error_message": entry.error,
            }
        )

    @staticmethod
    def rollback_completed(deployment: str, report):
        return DeploymentEvent(
            event_type="rollback.completed",
            deployment=deployment,
            resource_id=None,
            timestamp=utcnow(),
            metadata={
                "partial": report.partial,
                "failed": report.failed_resource_ids(),
            }
        )

    @staticmethod
    def deployment_finished(report):
        """deployment.completed / deployment.failed / deployment.cancelled."""
        if report.success:
            event_type = "deployment.completed"
        elif report.cancelled:
            event_type = "deployment.cancelled"
        else:
            event_type = "deployment.failed"

        return DeploymentEvent(
            event_type=event_type,
            deployment=report.deployment,
            resource_id=report.failed_resource_id,
            timestamp=utcnow(),
            metadata={
                "applied": [s.resource_id for s in report.applied],
                "error_message": report.error,
            }
        )
