"""
deployctl - command line front-end for the deployment engine.

Each command exits 0 on full success and with a distinct non-zero code per
failure category, so scripts can tell a bad definition file from a
provider outage from a rollback that needs an operator.
"""

import json
import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator, Optional

import typer

from deploy_engine import container
from deploy_engine.core.errors import (
    CycleError,
    DeploymentCancelledError,
    DeploymentError,
    DescriptorValidationError,
    PartialRollbackError,
    ProviderError,
)
from deploy_engine.core.models import Action, DeploymentPlan, ExecutionReport, RollbackReport
from deploy_engine.descriptors.store import DescriptorStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_VALIDATION = 2
EXIT_CYCLE = 3
EXIT_PROVIDER = 4
EXIT_PARTIAL_ROLLBACK = 5
EXIT_CANCELLED = 6

ACTION_MARKERS = {
    Action.CREATE: "+",
    Action.UPDATE: "~",
    Action.DELETE: "-",
    Action.NOOP: "=",
}

app = typer.Typer(
    help="Plan, apply, destroy and roll back declarative infrastructure deployments",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def exit_code_for(error: DeploymentError) -> int:
    if isinstance(error, DescriptorValidationError):
        return EXIT_VALIDATION
    if isinstance(error, CycleError):
        return EXIT_CYCLE
    if isinstance(error, PartialRollbackError):
        return EXIT_PARTIAL_ROLLBACK
    if isinstance(error, DeploymentCancelledError):
        return EXIT_CANCELLED
    if isinstance(error, ProviderError):
        return EXIT_PROVIDER
    return EXIT_ERROR


def _fail(error: DeploymentError) -> None:
    """Report a failure without a traceback and exit with its category code."""
    typer.echo(f"Error: {error}", err=True)

    if isinstance(error, DescriptorValidationError) and len(error.problems) > 1:
        for problem in error.problems:
            typer.echo(f"  - {problem}", err=True)

    report = getattr(error, "report", None)
    if isinstance(report, ExecutionReport):
        typer.echo(f"  failed resource: {report.failed_resource_id or '-'}", err=True)
        typer.echo(
            f"  last successful step: {report.last_successful_resource_id or 'none'}",
            err=True,
        )
    elif getattr(error, "resource_id", None):
        typer.echo(f"  resource: {error.resource_id}", err=True)

    if isinstance(error, PartialRollbackError):
        _echo_rollback(error.rollback_report, err=True)

    raise typer.Exit(code=exit_code_for(error))


@contextmanager
def _cancel_on_signal(service) -> Iterator[None]:
    """Route Ctrl+C / SIGTERM to engine cancellation for the duration of a run."""

    def handler(signum, frame):
        typer.echo("Cancellation requested, waiting for in-flight steps...", err=True)
        service.cancel()

    previous = {
        sig: signal.signal(sig, handler)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


# -------------------------
# RENDERING
# -------------------------

def _echo_plan(plan: DeploymentPlan, output_json: bool = False) -> None:
    if output_json:
        typer.echo(json.dumps({
            "deployment": plan.deployment,
            "steps": [
                {
                    "resource_id": s.resource_id,
                    "type": s.descriptor.resource_type.value,
                    "action": s.action.value,
                }
                for s in plan.steps
            ],
            "counts": plan.counts(),
        }, indent=2))
        return

    typer.echo(f"Plan for '{plan.deployment}':")
    for step in plan.steps:
        marker = ACTION_MARKERS[step.action]
        typer.echo(
            f"  {marker} {step.action.value:<6} {step.descriptor.resource_type.value:<20} "
            f"{step.resource_id}"
        )
    counts = plan.counts()
    typer.echo(
        f"{counts['CREATE']} to create, {counts['UPDATE']} to update, "
        f"{counts['DELETE']} to delete, {counts['NOOP']} unchanged"
    )


def _echo_report(report: ExecutionReport) -> None:
    typer.echo(report.summary())
    for step in report.applied:
        typer.echo(f"  {ACTION_MARKERS[step.action]} {step.resource_id} ({step.handle or '-'})")


def _echo_rollback(report: RollbackReport, err: bool = False) -> None:
    for entry in report.entries:
        suffix = f": {entry.error}" if entry.error else ""
        typer.echo(
            f"  {entry.compensation:<8} {entry.resource_id} -> {entry.status.value}{suffix}",
            err=err,
        )


# -------------------------
# COMMANDS
# -------------------------

DefinitionsArg = Annotated[
    Path,
    typer.Argument(help="JSON file: a list of resources or {\"resources\": [...]}"),
]
DeploymentOpt = Annotated[str, typer.Option("--deployment", "-d", help="Deployment name")]
DeploymentArg = Annotated[str, typer.Argument(help="Deployment name")]
JsonOpt = Annotated[bool, typer.Option("--json", help="Output as JSON")]


@app.command()
def plan(
    definitions: DefinitionsArg,
    deployment: DeploymentOpt,
    output_json: JsonOpt = False,
) -> None:
    """Show the actions an apply would take."""
    try:
        descriptors = DescriptorStore().load_file(definitions)
        service = container.build_service()
        result = service.plan_descriptors(deployment, descriptors)
    except DeploymentError as e:
        _fail(e)
    _echo_plan(result, output_json)


@app.command()
def apply(
    definitions: DefinitionsArg,
    deployment: DeploymentOpt,
) -> None:
    """Create / update / delete resources to match the definitions."""
    try:
        descriptors = DescriptorStore().load_file(definitions)
        service = container.build_service()
        current_plan = service.plan_descriptors(deployment, descriptors)
        _echo_plan(current_plan)
        with _cancel_on_signal(service):
            report = service.execute(current_plan)
    except DeploymentError as e:
        _fail(e)
    _echo_report(report)


@app.command()
def destroy(deployment: DeploymentArg) -> None:
    """Delete every resource recorded for a deployment."""
    try:
        service = container.build_service()
        with _cancel_on_signal(service):
            report = service.destroy(deployment)
    except DeploymentError as e:
        _fail(e)
    _echo_report(report)


@app.command()
def rollback(deployment: DeploymentArg) -> None:
    """Compensate the most recent apply of a deployment."""
    try:
        service = container.build_service()
        report = service.rollback(deployment)
    except DeploymentError as e:
        _fail(e)

    if not report.entries:
        typer.echo(f"Nothing to roll back for '{deployment}'")
        return
    typer.echo(f"Rolled back {len(report.entries)} step(s) of '{deployment}':")
    _echo_rollback(report)


@app.command()
def state(
    deployment: DeploymentArg,
    output_json: JsonOpt = False,
) -> None:
    """Show the persisted state of a deployment."""
    try:
        service = container.build_service()
        states = service.show_state(deployment)
    except DeploymentError as e:
        _fail(e)

    if output_json:
        typer.echo(json.dumps(
            {rid: s.to_dict() for rid, s in sorted(states.items())}, indent=2
        ))
        return

    if not states:
        typer.echo(f"No recorded resources for '{deployment}'")
        return
    for rid, s in sorted(states.items()):
        error = f"  ({s.error})" if s.error else ""
        typer.echo(
            f"{rid:<24} {s.resource_type.value:<20} {s.status.value:<16} "
            f"{s.handle or '-'}{error}"
        )


@app.command("list")
def list_deployments(output_json: JsonOpt = False) -> None:
    """List deployments with recorded state."""
    try:
        names = container.build_service().list_deployments()
    except DeploymentError as e:
        _fail(e)

    if output_json:
        typer.echo(json.dumps(names))
        return
    for name in names:
        typer.echo(name)


def main(argv: Optional[list] = None) -> None:
    """Console script entry point."""
    app(args=argv)


if __name__ == "__main__":
    main()
