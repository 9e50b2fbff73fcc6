#deploy_engine\core\state_machine.py

from datetime import datetime
from typing import Optional

from deploy_engine.core.errors import InvalidStepTransition
from deploy_engine.core.models import PlanStep, StepStatus, utcnow


ALLOWED_TRANSITIONS = {
    StepStatus.UNPLANNED: {
        StepStatus.PLANNED,
    },
    StepStatus.PLANNED: {
        StepStatus.APPLYING,
        StepStatus.APPLIED,  # NoOp steps
    },
    StepStatus.APPLYING: {
        StepStatus.APPLIED,
        StepStatus.FAILED,
    },
    StepStatus.APPLIED: {
        StepStatus.ROLLED_BACK,
        StepStatus.ROLLBACK_FAILED,
    },
}


class StepStateMachine:
    @staticmethod
    def transition(
        step: PlanStep,
        new_status: StepStatus,
        *,
        error: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PlanStep:
        now = now or utcnow()

        current = step.status

        if current == new_status:
            return step

        allowed = ALLOWED_TRANSITIONS.get(current, set())
        if new_status not in allowed:
            raise InvalidStepTransition(
                f"Cannot transition {step.resource_id} from {current.value} to {new_status.value}"
            )

        # Timestamp semantics
        if new_status == StepStatus.APPLYING:
            step.started_at = now

        elif new_status in (StepStatus.APPLIED, StepStatus.FAILED):
            step.finished_at = now

        if error is not None:
            step.error = error

        step.status = new_status
        return step
