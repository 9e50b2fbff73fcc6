# deploy_engine/core/errors.py

from typing import List, Optional, Sequence

# -----------------------------
# Base Errors
# -----------------------------

class DeploymentError(Exception):
    """Base class for all deployment engine errors."""
    pass


# -----------------------------
# Validation / Structural Errors
# -----------------------------

class DescriptorValidationError(DeploymentError):
    """Invalid resource definitions. Raised before any side effect."""

    def __init__(
        self,
        message: str,
        *,
        resource_id: Optional[str] = None,
        problems: Optional[Sequence[str]] = None,
    ):
        self.resource_id = resource_id
        self.problems: List[str] = list(problems or [message])
        super().__init__(message)


class CycleError(DeploymentError):
    """Resource references form a cycle; no valid ordering exists."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(
            "Dependency cycle detected: " + " -> ".join(self.cycle + self.cycle[:1])
        )


class InvalidStepTransition(DeploymentError):
    """Illegal plan step lifecycle transition attempted."""
    pass


# -----------------------------
# Provider Errors
# -----------------------------

class ProviderError(DeploymentError):
    """Cloud provider call failed."""

    transient = False

    def __init__(self, message: str, *, resource_id: Optional[str] = None):
        self.resource_id = resource_id
        super().__init__(message)


class TransientProviderError(ProviderError):
    """Network / throttling / server-side failure. Safe to retry."""

    transient = True


class PermanentProviderError(ProviderError):
    """Provider rejected the request (validation, conflict). Never retried."""
    pass


class StepTimeoutError(ProviderError):
    """Resource did not reach a stable status before its timeout."""
    pass


# -----------------------------
# Execution Outcome Errors
# -----------------------------

class DeploymentFailedError(ProviderError):
    """Apply failed and every applied step was compensated."""

    def __init__(self, report):
        self.report = report
        super().__init__(report.summary(), resource_id=report.failed_resource_id)


class DeploymentCancelledError(DeploymentError):
    """Apply was cancelled; completed steps were compensated."""

    def __init__(self, report):
        self.report = report
        self.resource_id = None
        super().__init__(report.summary())


class PartialRollbackError(DeploymentError):
    """
    At least one compensating action failed.

    Terminal: requires operator intervention, never retried automatically.
    """

    def __init__(self, rollback_report, execution_report=None):
        self.rollback_report = rollback_report
        self.report = execution_report
        self.resource_id = (
            execution_report.failed_resource_id if execution_report else None
        )
        failed = ", ".join(rollback_report.failed_resource_ids())
        super().__init__(
            f"Partial rollback: compensation failed for {failed}; manual intervention required"
        )


# -----------------------------
# Persistence Errors
# -----------------------------

class StateStoreError(DeploymentError):
    pass
