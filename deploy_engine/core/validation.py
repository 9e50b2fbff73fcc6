#deploy_engine\core\validation.py
from typing import Dict, Iterable, List, Mapping

from deploy_engine.core.errors import DescriptorValidationError
from deploy_engine.core.models import ResourceDescriptor, ResourceState


def validate_descriptor_set(descriptors: Iterable[ResourceDescriptor]) -> List[str]:
    """
    Check cross-descriptor invariants.

    Returns a list of problems; empty when the set is valid.
    """
    problems: List[str] = []
    by_id: Dict[str, ResourceDescriptor] = {}

    # -------------------------
    # Identity
    # -------------------------
    for descriptor in descriptors:
        if descriptor.resource_id in by_id:
            problems.append(f"{descriptor.resource_id}: duplicate identifier")
            continue
        by_id[descriptor.resource_id] = descriptor

    # -------------------------
    # References
    # -------------------------
    for descriptor in by_id.values():
        for ref in descriptor.depends_on:
            if ref == descriptor.resource_id:
                problems.append(f"{descriptor.resource_id}: references itself")
            elif ref not in by_id:
                problems.append(
                    f"{descriptor.resource_id}: references unknown resource '{ref}'"
                )

    return problems


def validate_against_state(
    descriptors: Iterable[ResourceDescriptor],
    current: Mapping[str, ResourceState],
) -> None:
    """Reject in-place type changes of resources that already exist."""
    problems = []
    for descriptor in descriptors:
        state = current.get(descriptor.resource_id)
        if state is None or not state.exists():
            continue
        if state.resource_type != descriptor.resource_type:
            problems.append(
                f"{descriptor.resource_id}: type change from "
                f"{state.resource_type.value} to {descriptor.resource_type.value} "
                f"is not supported"
            )

    if problems:
        raise DescriptorValidationError(
            "; ".join(problems),
            resource_id=problems[0].split(":", 1)[0] if len(problems) == 1 else None,
            problems=problems,
        )
