# deploy_engine/executor/engine.py
"""Provisioning engine - executes a deployment plan against the cloud provider."""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Set

from deploy_engine.core.errors import DeploymentError
from deploy_engine.core.events import EventEmitter, NullEventEmitter
from deploy_engine.core.events_model import DeploymentEvent
from deploy_engine.core.models import (
    Action,
    DeploymentPlan,
    ExecutionReport,
    PlanStep,
    ResourceState,
    ResourceStatus,
    StepStatus,
    utcnow,
)
from deploy_engine.core.provider import CloudProvider
from deploy_engine.core.state import DeploymentState
from deploy_engine.core.state_machine import StepStateMachine
from deploy_engine.executor.config import EngineConfig
from deploy_engine.executor.retry import ProviderGateway
from deploy_engine.executor.rollback import RollbackCoordinator
from deploy_engine.executor.slots import SlotManager

logger = logging.getLogger(__name__)


class ProvisioningEngine:
    """
    Applies plans.

    Create/Update steps run as soon as every resource they reference is
    applied, at most `max_concurrency` at a time. Delete steps run one by
    one, in plan order, once all forward steps succeeded. The first failure
    (or a cancellation) stops scheduling; in-flight steps are allowed to
    finish, then every applied step is compensated.
    """

    def __init__(
        self,
        provider: CloudProvider,
        config: Optional[EngineConfig] = None,
        *,
        emitter: Optional[EventEmitter] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or EngineConfig()
        self._emitter = emitter or NullEventEmitter()
        self._gateway = ProviderGateway(provider, self.config, sleep=sleep, clock=clock)
        self.rollback_coordinator = RollbackCoordinator(self._gateway, self._emitter)

        self._cancel_event = threading.Event()
        self._running = threading.Event()
        self._applied_lock = threading.Lock()

    # -------------------------
    # CANCELLATION
    # -------------------------

    def cancel(self) -> None:
        """
        Stop scheduling new steps; in-flight steps finish, then rollback runs.

        Ignored when no apply is running.
        """
        if not self._running.is_set():
            logger.info("[engine] Cancellation ignored, no apply in progress")
            return
        if not self._cancel_event.is_set():
            logger.warning("[engine] 🛑 Cancellation requested")
        self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    # -------------------------
    # APPLY
    # -------------------------

    def apply(self, plan: DeploymentPlan, state: DeploymentState) -> ExecutionReport:
        report = ExecutionReport(deployment=plan.deployment, plan=plan)

        logger.info(
            f"[engine] Applying '{plan.deployment}': {plan.counts()} "
            f"(max concurrency {self.config.max_concurrency})"
        )

        self._cancel_event.clear()
        self._running.set()
        try:
            state.begin_run()

            self._run_forward(plan, state, report)

            if report.failed_step is None and not report.cancelled:
                self._run_deletes(plan, state, report)

            if report.failed_step is not None or report.cancelled:
                report.rollback = self.rollback_coordinator.rollback(report.applied, state)
            else:
                report.success = True
        finally:
            self._running.clear()
            self._cancel_event.clear()

        report.finished_at = utcnow()
        if report.success:
            logger.info(f"[engine] ✅ {report.summary()}")
        else:
            logger.error(f"[engine] ❌ {report.summary()}")

        self._emitter.emit([DeploymentEvent.deployment_finished(report)])
        return report

    # -------------------------
    # FORWARD PHASE (Create / Update / NoOp)
    # -------------------------

    def _run_forward(
        self,
        plan: DeploymentPlan,
        state: DeploymentState,
        report: ExecutionReport,
    ) -> None:
        steps = plan.forward_steps()
        in_plan = {s.resource_id for s in steps}
        done: Set[str] = set()

        for step in steps:
            if step.action == Action.NOOP:
                StepStateMachine.transition(step, StepStatus.APPLIED)
                done.add(step.resource_id)
                self._emitter.emit([DeploymentEvent.step_skipped(plan.deployment, step)])

        pending: List[PlanStep] = [s for s in steps if s.action != Action.NOOP]
        running: Dict[Future, PlanStep] = {}
        slots = SlotManager(self.config.max_concurrency)
        halted = False

        with ThreadPoolExecutor(
            max_workers=self.config.max_concurrency,
            thread_name_prefix="provision",
        ) as pool:
            while True:
                if not halted and self._cancel_event.is_set():
                    halted = True
                    report.cancelled = True
                    logger.warning(
                        f"[engine] Cancelled with {len(pending)} step(s) not started, "
                        f"{len(running)} in flight"
                    )

                if not halted:
                    for step in list(pending):
                        if not self._dependencies_met(step, in_plan, done):
                            continue
                        if slots.try_bind(step.resource_id) is None:
                            break
                        pending.remove(step)
                        StepStateMachine.transition(step, StepStatus.APPLYING)
                        future = pool.submit(self._execute_forward, step, state, report)
                        running[future] = step
                        logger.debug(
                            f"[engine] [{step.resource_id}] scheduled, "
                            f"{slots.free_slots()}/{slots.total_slots()} slot(s) free"
                        )

                if not running:
                    if pending and not halted:
                        # Only reachable when a reference points outside the plan's
                        # forward steps; descriptor validation rules this out.
                        raise DeploymentError(
                            f"Unschedulable steps: {', '.join(s.resource_id for s in pending)}"
                        )
                    break

                finished, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for future in finished:
                    step = running.pop(future)
                    slots.release(step.resource_id)

                    if step.status == StepStatus.APPLIED:
                        done.add(step.resource_id)
                        continue

                    if report.failed_step is None:
                        report.failed_step = step
                        report.error = step.error
                    halted = True

    @staticmethod
    def _dependencies_met(step: PlanStep, in_plan: Set[str], done: Set[str]) -> bool:
        return all(
            ref in done or ref not in in_plan
            for ref in step.descriptor.depends_on
        )

    def _execute_forward(
        self,
        step: PlanStep,
        state: DeploymentState,
        report: ExecutionReport,
    ) -> None:
        """Run one Create/Update step. Never raises; the outcome is recorded on the step."""
        deployment = state.deployment
        descriptor = step.descriptor
        rid = step.resource_id
        prior = step.current

        logger.info(f"[engine] [{rid}] {step.action.value} {descriptor.resource_type.value}")
        self._emitter.emit([DeploymentEvent.step_started(deployment, step)])

        try:
            if step.action == Action.CREATE:
                state.put(ResourceState.from_descriptor(descriptor))

                def remember_handle(handle: str) -> None:
                    step.handle = handle
                    state.put(ResourceState.from_descriptor(descriptor, handle=handle))

                step.handle = self._gateway.create(
                    rid,
                    descriptor.resource_type,
                    descriptor.properties,
                    on_handle=remember_handle,
                    timeout=descriptor.timeout_seconds,
                )

            else:
                state.put(prior.copy(status=ResourceStatus.PENDING, error=None))
                step.handle = prior.handle
                self._gateway.update(
                    rid,
                    prior.handle,
                    descriptor.properties,
                    timeout=descriptor.timeout_seconds,
                )

            applied = ResourceState.from_descriptor(
                descriptor, handle=step.handle, status=ResourceStatus.APPLIED
            )
            state.put(applied)
            self._mark_applied(step, state, report, prior, applied)

        except Exception as e:
            self._mark_failed(step, state, e)

    # -------------------------
    # DELETE PHASE
    # -------------------------

    def _run_deletes(
        self,
        plan: DeploymentPlan,
        state: DeploymentState,
        report: ExecutionReport,
    ) -> None:
        for step in plan.delete_steps():
            if self._cancel_event.is_set():
                report.cancelled = True
                logger.warning("[engine] Cancelled before remaining deletes")
                return

            StepStateMachine.transition(step, StepStatus.APPLYING)
            self._execute_delete(step, state, report)

            if step.status == StepStatus.FAILED:
                report.failed_step = step
                report.error = step.error
                return

    def _execute_delete(
        self,
        step: PlanStep,
        state: DeploymentState,
        report: ExecutionReport,
    ) -> None:
        rid = step.resource_id
        prior = step.current

        logger.info(f"[engine] [{rid}] DELETE {step.descriptor.resource_type.value}")
        self._emitter.emit([DeploymentEvent.step_started(state.deployment, step)])

        try:
            state.put(prior.copy(status=ResourceStatus.PENDING, error=None))
            step.handle = prior.handle
            if prior.handle is not None:
                self._gateway.delete(rid, prior.handle, timeout=step.descriptor.timeout_seconds)
            state.remove(rid)
            self._mark_applied(step, state, report, prior, None)

        except Exception as e:
            self._mark_failed(step, state, e)

    # -------------------------
    # OUTCOMES
    # -------------------------

    def _mark_applied(
        self,
        step: PlanStep,
        state: DeploymentState,
        report: ExecutionReport,
        prior: Optional[ResourceState],
        applied: Optional[ResourceState],
    ) -> None:
        # journal order and report order must agree: both define rollback order
        with self._applied_lock:
            state.record(step.resource_id, step.action, prior, applied)
            report.applied.append(step)
            StepStateMachine.transition(step, StepStatus.APPLIED)

        logger.info(f"[engine] [{step.resource_id}] ✅ {step.action.value} applied")
        self._emitter.emit([DeploymentEvent.step_applied(state.deployment, step)])

    def _mark_failed(self, step: PlanStep, state: DeploymentState, error: Exception) -> None:
        rid = step.resource_id
        message = str(error) or error.__class__.__name__

        if isinstance(error, DeploymentError):
            logger.error(f"[engine] [{rid}] ❌ {step.action.value} failed: {message}")
        else:
            logger.error(f"[engine] [{rid}] ❌ Unexpected error: {message}", exc_info=True)

        try:
            recorded = state.get(rid) or ResourceState.from_descriptor(step.descriptor)
            state.put(recorded.copy(status=ResourceStatus.FAILED, error=message))
        except DeploymentError as store_error:
            logger.error(f"[engine] [{rid}] Failed to persist FAILED status: {store_error}")

        StepStateMachine.transition(step, StepStatus.FAILED, error=message)
        self._emitter.emit([DeploymentEvent.step_failed(state.deployment, step, message)])
