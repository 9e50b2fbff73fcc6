"""Deployment service - plan / apply / destroy / rollback use cases."""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from deploy_engine.core.errors import (
    DeploymentCancelledError,
    DeploymentFailedError,
    PartialRollbackError,
)
from deploy_engine.core.models import (
    DeploymentPlan,
    ExecutionReport,
    ResourceDescriptor,
    ResourceState,
    RollbackReport,
    StepStatus,
    utcnow,
)
from deploy_engine.core.repository import StateRepository
from deploy_engine.core.state import DeploymentState
from deploy_engine.core.state_machine import StepStateMachine
from deploy_engine.descriptors.store import DescriptorStore
from deploy_engine.executor.engine import ProvisioningEngine
from deploy_engine.reconciler.reconciler import StateReconciler
from deploy_engine.resolver.resolver import DependencyResolver

logger = logging.getLogger(__name__)


class DeploymentService:
    """
    Wires Store -> Resolver -> Reconciler -> Engine for one deployment at a time.

    Errors from loading, resolving and diffing propagate unchanged. A failed
    apply is raised as DeploymentFailedError, DeploymentCancelledError or
    PartialRollbackError carrying the execution report.
    """

    def __init__(
        self,
        repository: StateRepository,
        engine: ProvisioningEngine,
        *,
        store: Optional[DescriptorStore] = None,
        resolver: Optional[DependencyResolver] = None,
        reconciler: Optional[StateReconciler] = None,
    ):
        self._repo = repository
        self._engine = engine
        self._store = store or DescriptorStore()
        self._resolver = resolver or DependencyResolver()
        self._reconciler = reconciler or StateReconciler(self._resolver)

    # -------------------------
    # PLAN
    # -------------------------

    def plan(self, deployment: str, definitions: Iterable[Mapping[str, Any]]) -> DeploymentPlan:
        """Compute the plan for definitions without side effects."""
        descriptors = self._store.load(definitions)
        return self.plan_descriptors(deployment, descriptors)

    def plan_descriptors(
        self,
        deployment: str,
        descriptors: Iterable[ResourceDescriptor],
    ) -> DeploymentPlan:
        ordered = self._resolver.resolve(descriptors)
        current = self._repo.load(deployment)
        return self._reconciler.diff(ordered, current, deployment=deployment)

    # -------------------------
    # APPLY / DESTROY
    # -------------------------

    def apply(self, deployment: str, definitions: Iterable[Mapping[str, Any]]) -> ExecutionReport:
        return self.execute(self.plan(deployment, definitions))

    def apply_descriptors(
        self,
        deployment: str,
        descriptors: Iterable[ResourceDescriptor],
    ) -> ExecutionReport:
        return self.execute(self.plan_descriptors(deployment, descriptors))

    def destroy(self, deployment: str) -> ExecutionReport:
        """Delete every recorded resource of a deployment."""
        return self.execute(self.plan_descriptors(deployment, []))

    def execute(self, plan: DeploymentPlan) -> ExecutionReport:
        if not plan.has_changes():
            logger.info(f"[service] '{plan.deployment}' is up to date, nothing to apply")
            for step in plan.steps:
                StepStateMachine.transition(step, StepStatus.APPLIED)
            return ExecutionReport(
                deployment=plan.deployment,
                plan=plan,
                success=True,
                finished_at=utcnow(),
            )

        state = DeploymentState(plan.deployment, self._repo)
        report = self._engine.apply(plan, state)
        self._raise_for(report)
        return report

    def cancel(self) -> None:
        self._engine.cancel()

    # -------------------------
    # ROLLBACK
    # -------------------------

    def rollback(self, deployment: str) -> RollbackReport:
        """Compensate the most recent apply of a deployment."""
        state = DeploymentState(deployment, self._repo)
        report = self._engine.rollback_coordinator.rollback_journal(state)
        if report.partial:
            raise PartialRollbackError(report)
        return report

    # -------------------------
    # QUERIES
    # -------------------------

    def show_state(self, deployment: str) -> Dict[str, ResourceState]:
        return self._repo.load(deployment)

    def list_deployments(self) -> List[str]:
        return self._repo.list_deployments()

    # -------------------------
    # INTERNAL HELPERS
    # -------------------------

    @staticmethod
    def _raise_for(report: ExecutionReport) -> None:
        if report.success:
            return

        if report.rollback is not None and report.rollback.partial:
            raise PartialRollbackError(report.rollback, report)

        if report.cancelled and report.failed_step is None:
            raise DeploymentCancelledError(report)

        raise DeploymentFailedError(report)
