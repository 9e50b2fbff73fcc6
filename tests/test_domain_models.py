#tests\test_domain_models.py

"""Test domain models and the plan step state machine."""

from datetime import datetime, timezone

import pytest

from deploy_engine.core.errors import CycleError, InvalidStepTransition, PartialRollbackError
from deploy_engine.core.models import (
    Action,
    DeploymentPlan,
    PlanStep,
    ResourceDescriptor,
    ResourceState,
    ResourceStatus,
    ResourceType,
    RollbackEntry,
    RollbackReport,
    StepStatus,
)
from deploy_engine.core.state_machine import StepStateMachine


def make_step(rid="v1", action=Action.CREATE):
    return PlanStep(
        descriptor=ResourceDescriptor(resource_id=rid, resource_type=ResourceType.VPC),
        action=action,
    )


# ============================================
# Resource types
# ============================================

class TestResourceType:
    """Test resource type parsing."""

    @pytest.mark.parametrize("raw", ["vpc", "VPC", " Vpc "])
    def test_case_insensitive(self, raw):
        """Test type names ignore case and whitespace."""
        assert ResourceType.parse(raw) == ResourceType.VPC

    def test_dash_and_alias(self):
        """Test dashed and camel-case aliases."""
        assert ResourceType.parse("load-balancer") == ResourceType.LOAD_BALANCER
        assert ResourceType.parse("LoadBalancer") == ResourceType.LOAD_BALANCER

    def test_unknown(self):
        """Test unknown names raise ValueError."""
        with pytest.raises(ValueError):
            ResourceType.parse("toaster")


# ============================================
# Resource state
# ============================================

class TestResourceState:
    """Test persisted resource state."""

    def test_exists_requires_handle(self):
        """Test a resource exists remotely only with a handle."""
        assert not ResourceState("v1", ResourceType.VPC).exists()
        assert ResourceState("v1", ResourceType.VPC, handle="vpc-1").exists()

    def test_copy_does_not_share_properties(self):
        """Test copies get their own property mapping."""
        state = ResourceState("v1", ResourceType.VPC, properties={"cidr": "10.0.0.0/16"})

        copied = state.copy(status=ResourceStatus.APPLIED)
        copied.properties["cidr"] = "changed"

        assert state.properties["cidr"] == "10.0.0.0/16"
        assert state.status == ResourceStatus.PENDING

    def test_dict_round_trip(self):
        """Test serialization keeps every field."""
        state = ResourceState(
            resource_id="s1",
            resource_type=ResourceType.SUBNET,
            handle="subnet-7",
            properties={"cidr": "10.0.1.0/24"},
            fingerprint="abc",
            depends_on=["v1"],
            status=ResourceStatus.FAILED,
            error="boom",
            updated_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        )

        assert ResourceState.from_dict(state.to_dict()) == state


# ============================================
# Plans and reports
# ============================================

class TestDeploymentPlan:
    """Test plan helpers."""

    def test_counts_and_changes(self):
        """Test action counts and change detection."""
        plan = DeploymentPlan("web", [
            make_step("a", Action.NOOP),
            make_step("b", Action.CREATE),
            make_step("c", Action.DELETE),
        ])

        assert plan.counts() == {"CREATE": 1, "UPDATE": 0, "DELETE": 1, "NOOP": 1}
        assert plan.has_changes()
        assert [s.resource_id for s in plan.forward_steps()] == ["a", "b"]
        assert [s.resource_id for s in plan.delete_steps()] == ["c"]

    def test_noop_plan_has_no_changes(self):
        """Test an all-NoOp plan has no changes."""
        assert not DeploymentPlan("web", [make_step("a", Action.NOOP)]).has_changes()

    def test_outcome_ignored_in_equality(self):
        """Test execution annotations do not affect step equality."""
        first, second = make_step(), make_step()
        second.status = StepStatus.APPLIED
        second.handle = "vpc-1"

        assert first == second


class TestRollbackReport:
    """Test rollback report helpers."""

    def test_partial(self):
        """Test any failed compensation makes the rollback partial."""
        report = RollbackReport("web", [
            RollbackEntry("i1", Action.CREATE, "delete", StepStatus.ROLLED_BACK),
            RollbackEntry("s1", Action.CREATE, "delete", StepStatus.ROLLBACK_FAILED, "boom"),
        ])

        assert report.partial
        assert report.failed_resource_ids() == ["s1"]

        error = PartialRollbackError(report)
        assert "s1" in str(error)
        assert error.resource_id is None

    def test_complete(self):
        """Test a rollback with no failures is complete."""
        report = RollbackReport("web", [
            RollbackEntry("i1", Action.CREATE, "delete", StepStatus.ROLLED_BACK),
        ])

        assert not report.partial


class TestCycleError:
    """Test cycle error formatting."""

    def test_message_closes_cycle(self):
        """Test the message repeats the first id at the end."""
        assert str(CycleError(["a", "b", "c"])).endswith("a -> b -> c -> a")


# ============================================
# State machine
# ============================================

class TestStepStateMachine:
    """Test plan step lifecycle transitions."""

    def test_apply_path(self):
        """Test PLANNED -> APPLYING -> APPLIED sets timestamps."""
        step = make_step()

        StepStateMachine.transition(step, StepStatus.APPLYING)
        assert step.started_at is not None

        StepStateMachine.transition(step, StepStatus.APPLIED)
        assert step.finished_at is not None
        assert step.status == StepStatus.APPLIED

    def test_noop_goes_straight_to_applied(self):
        """Test NoOp steps skip APPLYING."""
        step = make_step(action=Action.NOOP)

        StepStateMachine.transition(step, StepStatus.APPLIED)

        assert step.status == StepStatus.APPLIED

    def test_failure_records_error(self):
        """Test failing a step stores the error."""
        step = make_step()
        StepStateMachine.transition(step, StepStatus.APPLYING)

        StepStateMachine.transition(step, StepStatus.FAILED, error="quota exceeded")

        assert step.error == "quota exceeded"

    def test_rollback_only_from_applied(self):
        """Test only applied steps can be rolled back."""
        step = make_step()

        with pytest.raises(InvalidStepTransition):
            StepStateMachine.transition(step, StepStatus.ROLLED_BACK)

    def test_failed_is_terminal(self):
        """Test failed steps cannot be rolled back or re-applied."""
        step = make_step()
        StepStateMachine.transition(step, StepStatus.APPLYING)
        StepStateMachine.transition(step, StepStatus.FAILED)

        with pytest.raises(InvalidStepTransition):
            StepStateMachine.transition(step, StepStatus.APPLIED)

    def test_same_status_is_noop(self):
        """Test transitioning to the current status is allowed."""
        step = make_step()

        assert StepStateMachine.transition(step, StepStatus.PLANNED) is step
