#tests\test_rollback.py

"""Test compensation of applied steps."""

from deploy_engine.core.errors import PermanentProviderError, TransientProviderError
from deploy_engine.core.models import Action, ResourceStatus, StepStatus

from conftest import definition


class TestCompensation:
    """Test each compensating action."""

    def test_created_resources_deleted(self, engine, provider, repository, make_plan, make_state, vpc_definitions):
        """Test Create steps are undone by deleting the resource and its record."""
        provider.fail("create", "i1", PermanentProviderError("quota exceeded"))

        report = engine.apply(make_plan("web", vpc_definitions), make_state("web"))

        assert all(e.compensation == "delete" for e in report.rollback.entries)
        assert all(e.status == StepStatus.ROLLED_BACK for e in report.rollback.entries)
        assert set(repository.load("web")) == {"i1"}
        assert provider.names() == []

    def test_update_reverted(self, engine, provider, repository, make_plan, make_state, vpc_definitions):
        """Test Update steps are undone by restoring prior properties."""
        engine.apply(make_plan("web", vpc_definitions), make_state("web"))
        original = repository.get("web", "s1")
        provider.fail("update", "i1", PermanentProviderError("instance locked"))

        changed = [
            vpc_definitions[0],
            definition("s1", "Subnet", "v1", cidr="10.0.2.0/24"),
            vpc_definitions[2],
            definition("i1", "Instance", "s1", "sg1", instance_type="t3.large"),
        ]
        report = engine.apply(make_plan("web", changed), make_state("web"))

        assert not report.success
        assert [e.compensation for e in report.rollback.entries] == ["revert"]
        assert provider.ops("update") == ["s1", "i1", "s1"]
        assert provider.resources[original.handle]["properties"]["cidr"] == "10.0.1.0/24"

        restored = repository.get("web", "s1")
        assert restored.status == ResourceStatus.ROLLED_BACK
        assert restored.fingerprint == original.fingerprint
        assert restored.handle == original.handle

    def test_delete_recreated(self, engine, provider, repository, make_plan, make_state, vpc_definitions):
        """Test Delete steps are undone by recreating from the prior snapshot."""
        engine.apply(make_plan("web", vpc_definitions), make_state("web"))
        old_handle = repository.get("web", "i1").handle
        provider.fail("delete", "sg1", PermanentProviderError("dependency violation"))

        desired = [vpc_definitions[0], vpc_definitions[1]]
        report = engine.apply(make_plan("web", desired), make_state("web"))

        assert report.failed_resource_id == "sg1"
        assert [(e.resource_id, e.compensation) for e in report.rollback.entries] == [
            ("i1", "recreate"),
        ]

        recreated = repository.get("web", "i1")
        assert recreated.status == ResourceStatus.ROLLED_BACK
        assert recreated.handle != old_handle
        assert recreated.handle in provider.resources
        assert provider.resources[recreated.handle]["properties"]["instance_type"] == "t3.micro"

    def test_compensation_retries_transient_errors(self, engine, provider, make_plan, make_state, vpc_definitions):
        """Test compensating calls use the same retry policy."""
        provider.fail("create", "i1", PermanentProviderError("quota exceeded"))
        provider.fail("delete", "v1", TransientProviderError("throttled"))

        report = engine.apply(make_plan("web", vpc_definitions), make_state("web"))

        assert not report.rollback.partial
        assert provider.ops("delete").count("v1") == 2


class TestPartialRollback:
    """Test failing compensations."""

    def test_failed_compensation_continues(self, engine, provider, repository, make_plan, make_state, vpc_definitions):
        """Test one failing compensation does not stop the others."""
        provider.fail("create", "i1", PermanentProviderError("quota exceeded"))
        provider.fail("delete", "s1", PermanentProviderError("provider error"))

        report = engine.apply(make_plan("web", vpc_definitions), make_state("web"))

        rollback = report.rollback
        assert rollback.partial
        assert rollback.failed_resource_ids() == ["s1"]
        assert rollback.compensated_resource_ids()[-1] == "v1"
        assert provider.names() == ["s1"]

        stuck = repository.get("web", "s1")
        assert stuck.status == ResourceStatus.ROLLBACK_FAILED
        assert "provider error" in stuck.error
        assert report.plan.step_for("s1").status == StepStatus.ROLLBACK_FAILED
        assert "rollback incomplete for s1" in report.summary()

    def test_unexpected_compensation_error_continues(self, engine, provider, repository, make_plan, make_state, vpc_definitions):
        """Test an error outside the engine's taxonomy is recorded and unwinding goes on."""
        provider.fail("create", "i1", PermanentProviderError("quota exceeded"))
        provider.fail("delete", "sg1", RuntimeError("boom"))

        report = engine.apply(make_plan("web", vpc_definitions), make_state("web"))

        rollback = report.rollback
        assert rollback.partial
        assert rollback.failed_resource_ids() == ["sg1"]
        assert rollback.compensated_resource_ids()[-1] == "v1"
        assert "s1" in rollback.compensated_resource_ids()
        assert provider.names() == ["sg1"]

        stuck = repository.get("web", "sg1")
        assert stuck.status == ResourceStatus.ROLLBACK_FAILED
        assert stuck.error == "boom"

    def test_partial_rollback_journal(self, engine, provider, repository, make_plan, make_state, vpc_definitions):
        """Test only the failed compensation stays pending in the journal."""
        provider.fail("create", "i1", PermanentProviderError("quota exceeded"))
        provider.fail("delete", "s1", PermanentProviderError("provider error"))

        engine.apply(make_plan("web", vpc_definitions), make_state("web"))

        pending = [e.resource_id for e in repository.load_journal("web") if not e.rolled_back]
        assert pending == ["s1"]


class TestJournalRollback:
    """Test rolling back a recorded run later."""

    def test_rollback_after_partial(self, engine, provider, repository, make_plan, make_state, vpc_definitions):
        """Test a second rollback finishes what a partial one left behind."""
        provider.fail("create", "i1", PermanentProviderError("quota exceeded"))
        provider.fail("delete", "s1", PermanentProviderError("provider error"))
        engine.apply(make_plan("web", vpc_definitions), make_state("web"))

        report = engine.rollback_coordinator.rollback_journal(make_state("web"))

        assert not report.partial
        assert [(e.resource_id, e.original_action) for e in report.entries] == [
            ("s1", Action.CREATE),
        ]
        assert provider.names() == []
        assert set(repository.load("web")) == {"i1"}
        assert repository.load_journal("web") == []

    def test_rollback_successful_apply(self, engine, provider, repository, make_plan, make_state, vpc_definitions):
        """Test a completed apply can be undone from its journal."""
        engine.apply(make_plan("web", vpc_definitions), make_state("web"))

        report = engine.rollback_coordinator.rollback_journal(make_state("web"))

        assert report.compensated_resource_ids()[0] == "i1"
        assert report.compensated_resource_ids()[-1] == "v1"
        assert provider.names() == []
        assert repository.load("web") == {}

    def test_empty_journal(self, engine, make_state):
        """Test nothing recorded means nothing to do."""
        report = engine.rollback_coordinator.rollback_journal(make_state("web"))

        assert report.entries == []
        assert not report.partial
