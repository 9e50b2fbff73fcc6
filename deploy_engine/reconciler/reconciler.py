# deploy_engine/reconciler/reconciler.py
"""State reconciler - computes the minimal action set from current to desired."""

import logging
from typing import Mapping, Optional, Sequence

from deploy_engine.core.models import (
    Action,
    DeploymentPlan,
    PlanStep,
    ResourceDescriptor,
    ResourceState,
    ResourceStatus,
)
from deploy_engine.core.validation import validate_against_state
from deploy_engine.resolver.resolver import DependencyResolver

logger = logging.getLogger(__name__)


def classify(descriptor: ResourceDescriptor, state: Optional[ResourceState]) -> Action:
    """
    Action needed to move one resource from its recorded state to its descriptor.

    - CREATE: never recorded, or recorded without a provider handle
    - NOOP: exists, same fingerprint, last apply did not fail
    - UPDATE: exists but differs or last apply failed
    """
    if state is None or not state.exists():
        return Action.CREATE

    if state.fingerprint == descriptor.fingerprint and state.status != ResourceStatus.FAILED:
        return Action.NOOP

    return Action.UPDATE


def descriptor_from_state(state: ResourceState) -> ResourceDescriptor:
    return ResourceDescriptor(
        resource_id=state.resource_id,
        resource_type=state.resource_type,
        properties=dict(state.properties),
        depends_on=tuple(state.depends_on),
        fingerprint=state.fingerprint,
    )


class StateReconciler:
    """
    Diffs desired descriptors against persisted state.

    Pure: computing a plan has no side effects, so diffing the same inputs
    twice yields equal plans.
    """

    def __init__(self, resolver: Optional[DependencyResolver] = None):
        self._resolver = resolver or DependencyResolver()

    def diff(
        self,
        desired: Sequence[ResourceDescriptor],
        current: Mapping[str, ResourceState],
        *,
        deployment: str = "",
    ) -> DeploymentPlan:
        """
        Build a plan.

        Args:
            desired: descriptors in dependency order (resolver output)
            current: id -> last-known ResourceState
            deployment: deployment name recorded on the plan

        Returns:
            DeploymentPlan with Create/Update/NoOp steps in `desired` order,
            followed by Delete steps in reverse dependency order
        """
        validate_against_state(desired, current)

        steps = []
        for descriptor in desired:
            state = current.get(descriptor.resource_id)
            steps.append(
                PlanStep(
                    descriptor=descriptor,
                    action=classify(descriptor, state),
                    current=state,
                )
            )

        desired_ids = {d.resource_id for d in desired}
        orphans = {
            rid: state for rid, state in current.items()
            if rid not in desired_ids
        }
        teardown = self._resolver.reverse_order(
            {rid: state.depends_on for rid, state in orphans.items()}
        )
        for rid in teardown:
            state = orphans[rid]
            steps.append(
                PlanStep(
                    descriptor=descriptor_from_state(state),
                    action=Action.DELETE,
                    current=state,
                )
            )

        plan = DeploymentPlan(deployment=deployment, steps=steps)
        logger.info(f"[reconciler] Plan for '{deployment}': {plan.counts()}")
        return plan
