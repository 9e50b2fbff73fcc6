# deploy_engine/executor/rollback.py
"""Rollback coordinator - compensates applied steps in reverse order."""

import logging
from typing import Sequence

from deploy_engine.core.errors import DeploymentError
from deploy_engine.core.events import EventEmitter, NullEventEmitter
from deploy_engine.core.events_model import DeploymentEvent
from deploy_engine.core.models import (
    Action,
    JournalEntry,
    PlanStep,
    ResourceState,
    ResourceStatus,
    RollbackEntry,
    RollbackReport,
    StepStatus,
)
from deploy_engine.core.state import DeploymentState
from deploy_engine.core.state_machine import StepStateMachine
from deploy_engine.descriptors.store import restorable_properties
from deploy_engine.executor.retry import ProviderGateway
from deploy_engine.reconciler.reconciler import descriptor_from_state

logger = logging.getLogger(__name__)

COMPENSATIONS = {
    Action.CREATE: "delete",
    Action.UPDATE: "revert",
    Action.DELETE: "recreate",
}


class RollbackCoordinator:
    """
    Issues compensating actions for applied steps, last applied first.

    The order is the reverse of application order regardless of graph
    shape. A failing compensation is recorded as ROLLBACK_FAILED and
    unwinding continues with the remaining steps.
    """

    def __init__(self, gateway: ProviderGateway, emitter: EventEmitter = None):
        self._gateway = gateway
        self._emitter = emitter or NullEventEmitter()

    def rollback(
        self,
        applied_steps: Sequence[PlanStep],
        state: DeploymentState,
    ) -> RollbackReport:
        deployment = state.deployment
        steps = [s for s in applied_steps if s.action in COMPENSATIONS]
        report = RollbackReport(deployment=deployment)

        logger.info(f"[rollback] {deployment}: compensating {len(steps)} step(s)")
        self._emitter.emit([DeploymentEvent.rollback_started(deployment, len(steps))])

        for step in reversed(steps):
            entry = self._compensate(step, state)
            report.entries.append(entry)
            self._emitter.emit([DeploymentEvent.rollback_step(deployment, entry)])

        self._settle_journal(state, report)

        if report.partial:
            logger.error(
                f"[rollback] {deployment}: ❌ partial rollback, manual intervention "
                f"required for {', '.join(report.failed_resource_ids())}"
            )
        else:
            logger.info(f"[rollback] {deployment}: ✅ rolled back {len(report.entries)} step(s)")

        self._emitter.emit([DeploymentEvent.rollback_completed(deployment, report)])
        return report

    def rollback_journal(self, state: DeploymentState) -> RollbackReport:
        """Compensate the recorded last apply run of a deployment."""
        entries = [e for e in state.journal() if not e.rolled_back]
        return self.rollback([self._step_from_journal(e) for e in entries], state)

    # -------------------------
    # COMPENSATION
    # -------------------------

    def _compensate(self, step: PlanStep, state: DeploymentState) -> RollbackEntry:
        rid = step.resource_id
        compensation = COMPENSATIONS[step.action]
        prior = step.current
        recorded = state.get(rid)
        handle = step.handle or (recorded.handle if recorded else None)

        logger.info(f"[rollback] {rid}: {compensation} (undo {step.action.value})")

        try:
            if step.action == Action.CREATE:
                if handle is not None:
                    self._gateway.delete(rid, handle, timeout=step.descriptor.timeout_seconds)
                state.remove(rid)

            elif step.action == Action.UPDATE:
                self._gateway.update(
                    rid, handle, restorable_properties(prior.properties),
                    timeout=step.descriptor.timeout_seconds,
                )
                state.put(prior.copy(status=ResourceStatus.ROLLED_BACK, error=None))

            elif step.action == Action.DELETE:
                new_handle = self._gateway.create(
                    rid, prior.resource_type, restorable_properties(prior.properties),
                    on_handle=lambda h: state.put(
                        prior.copy(handle=h, status=ResourceStatus.PENDING, error=None)
                    ),
                )
                state.put(
                    prior.copy(handle=new_handle, status=ResourceStatus.ROLLED_BACK, error=None)
                )

        except Exception as e:
            message = str(e) or e.__class__.__name__
            if isinstance(e, DeploymentError):
                logger.error(f"[rollback] {rid}: compensation failed: {message}")
            else:
                logger.error(f"[rollback] {rid}: unexpected compensation error: {message}", exc_info=True)
            self._mark_failed(step, state, message)
            StepStateMachine.transition(step, StepStatus.ROLLBACK_FAILED, error=message)
            return RollbackEntry(
                resource_id=rid,
                original_action=step.action,
                compensation=compensation,
                status=StepStatus.ROLLBACK_FAILED,
                error=message,
            )

        StepStateMachine.transition(step, StepStatus.ROLLED_BACK)
        return RollbackEntry(
            resource_id=rid,
            original_action=step.action,
            compensation=compensation,
            status=StepStatus.ROLLED_BACK,
        )

    def _mark_failed(self, step: PlanStep, state: DeploymentState, error: str) -> None:
        try:
            recorded = state.get(step.resource_id)
            if recorded is None:
                recorded = ResourceState.from_descriptor(step.descriptor, handle=step.handle)
            state.put(recorded.copy(status=ResourceStatus.ROLLBACK_FAILED, error=error))
        except DeploymentError as store_error:
            logger.error(f"[rollback] {step.resource_id}: failed to persist ROLLBACK_FAILED: {store_error}")

    # -------------------------
    # JOURNAL
    # -------------------------

    def _settle_journal(self, state: DeploymentState, report: RollbackReport) -> None:
        if not report.partial:
            state.clear_journal()
            return

        compensated = {
            e.resource_id for e in report.entries
            if e.status == StepStatus.ROLLED_BACK
        }
        for entry in state.journal():
            if not entry.rolled_back and entry.resource_id in compensated:
                state.mark_rolled_back(entry)

    @staticmethod
    def _step_from_journal(entry: JournalEntry) -> PlanStep:
        source = entry.applied or entry.prior
        step = PlanStep(
            descriptor=descriptor_from_state(source),
            action=entry.action,
            current=entry.prior,
            status=StepStatus.APPLIED,
            handle=entry.applied.handle if entry.applied else None,
        )
        return step

