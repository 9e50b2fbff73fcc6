#tests\test_service.py

"""Integration tests: definitions -> plan -> apply -> state, through DeploymentService."""

import pytest

from deploy_engine.core.errors import (
    CycleError,
    DeploymentCancelledError,
    DeploymentFailedError,
    DescriptorValidationError,
    PartialRollbackError,
    PermanentProviderError,
)
from deploy_engine.core.models import Action, ResourceStatus
from deploy_engine.service import DeploymentService

from conftest import definition


class TestPlanAndApply:
    """Test the end-to-end happy path."""

    def test_plan_has_no_side_effects(self, service, provider, repository, vpc_definitions):
        """Test planning touches neither state nor provider."""
        plan = service.plan("web", vpc_definitions)

        assert plan.counts()["CREATE"] == 4
        assert provider.calls == []
        assert repository.load("web") == {}

    def test_apply_then_replan_is_noop(self, service, vpc_definitions):
        """Test applying then planning again yields only NoOps."""
        report = service.apply("web", vpc_definitions)
        assert report.success

        plan = service.plan("web", vpc_definitions)

        assert not plan.has_changes()
        assert all(s.action == Action.NOOP for s in plan.steps)

    def test_second_apply_is_idempotent(self, service, provider, repository, vpc_definitions):
        """Test re-applying unchanged definitions makes no calls and keeps the journal."""
        service.apply("web", vpc_definitions)
        calls = len(provider.calls)
        journal = repository.load_journal("web")

        report = service.apply("web", vpc_definitions)

        assert report.success
        assert len(provider.calls) == calls
        assert len(repository.load_journal("web")) == len(journal)

    def test_show_state_and_list(self, service, vpc_definitions):
        """Test state and deployment queries after apply."""
        service.apply("web", vpc_definitions)

        states = service.show_state("web")

        assert set(states) == {"v1", "s1", "sg1", "i1"}
        assert all(s.status == ResourceStatus.APPLIED for s in states.values())
        assert service.list_deployments() == ["web"]

    def test_destroy(self, service, provider, repository, vpc_definitions):
        """Test destroy deletes everything, dependents first."""
        service.apply("web", vpc_definitions)

        report = service.destroy("web")

        assert report.success
        assert provider.ops("delete")[0] == "i1"
        assert provider.ops("delete")[-1] == "v1"
        assert provider.names() == []
        assert repository.load("web") == {}


class TestErrors:
    """Test error propagation."""

    def test_validation_error_before_side_effects(self, service, provider):
        """Test invalid definitions fail before any provider call."""
        with pytest.raises(DescriptorValidationError):
            service.apply("web", [definition("s1", "Subnet", "missing")])

        assert provider.calls == []

    def test_cycle_error(self, service, provider):
        """Test cyclic definitions raise CycleError."""
        with pytest.raises(CycleError):
            service.apply("web", [
                definition("a", "VPC", "b"),
                definition("b", "VPC", "a"),
            ])

        assert provider.calls == []

    def test_failed_apply_raises_with_report(self, service, provider, vpc_definitions):
        """Test a failed apply raises DeploymentFailedError carrying the report."""
        provider.fail("create", "i1", PermanentProviderError("quota exceeded"))

        with pytest.raises(DeploymentFailedError) as exc_info:
            service.apply("web", vpc_definitions)

        error = exc_info.value
        assert error.resource_id == "i1"
        assert error.report.rollback is not None
        assert not error.report.rollback.partial
        assert "quota exceeded" in str(error)

    def test_partial_rollback_raises(self, service, provider, vpc_definitions):
        """Test a failed compensation surfaces as PartialRollbackError."""
        provider.fail("create", "i1", PermanentProviderError("quota exceeded"))
        provider.fail("delete", "v1", PermanentProviderError("provider error"))

        with pytest.raises(PartialRollbackError) as exc_info:
            service.apply("web", vpc_definitions)

        assert exc_info.value.rollback_report.failed_resource_ids() == ["v1"]
        assert exc_info.value.report.failed_resource_id == "i1"

    def test_cancelled_apply_raises(self, service, provider, vpc_definitions):
        """Test a cancelled apply raises DeploymentCancelledError."""
        provider.on_create = lambda name: service.cancel()

        with pytest.raises(DeploymentCancelledError) as exc_info:
            service.apply("web", vpc_definitions)

        assert exc_info.value.report.cancelled
        assert provider.names() == []


class TestRollback:
    """Test standalone rollback."""

    def test_rollback_last_apply(self, service, provider, repository, vpc_definitions):
        """Test rollback undoes the most recent apply."""
        service.apply("web", vpc_definitions)

        report = service.rollback("web")

        assert len(report.entries) == 4
        assert provider.names() == []
        assert repository.load("web") == {}
        assert service.rollback("web").entries == []

    def test_rollback_update_restores_previous_version(self, service, provider, repository, vpc_definitions):
        """Test rolling back an update returns to the earlier properties."""
        service.apply("web", vpc_definitions)
        changed = vpc_definitions[:3] + [
            definition("i1", "Instance", "s1", "sg1", instance_type="t3.large"),
        ]
        service.apply("web", changed)

        report = service.rollback("web")

        assert [(e.resource_id, e.compensation) for e in report.entries] == [("i1", "revert")]
        handle = repository.get("web", "i1").handle
        assert provider.resources[handle]["properties"]["instance_type"] == "t3.micro"
        assert service.plan("web", vpc_definitions).has_changes() is False

    def test_partial_standalone_rollback(self, service, provider, vpc_definitions):
        """Test a failing compensation in standalone rollback raises."""
        service.apply("web", vpc_definitions)
        provider.fail("delete", "sg1", PermanentProviderError("in use"))

        with pytest.raises(PartialRollbackError) as exc_info:
            service.rollback("web")

        assert exc_info.value.rollback_report.failed_resource_ids() == ["sg1"]


def test_sql_backed_round_trip(sql_repository, engine, vpc_definitions):
    """Test apply and re-plan against the SQLite repository."""
    service = DeploymentService(sql_repository, engine)

    service.apply("web", vpc_definitions)

    assert not service.plan("web", vpc_definitions).has_changes()
    assert [e.resource_id for e in sql_repository.load_journal("web")][0] == "v1"
