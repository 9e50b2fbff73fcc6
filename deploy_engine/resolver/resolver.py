# deploy_engine/resolver/resolver.py
"""Dependency resolver - deterministic topological ordering of resources."""

import heapq
import logging
from typing import Dict, Iterable, List, Mapping, Sequence, Set

from deploy_engine.core.errors import CycleError
from deploy_engine.core.models import ResourceDescriptor

logger = logging.getLogger(__name__)


def topological_order(dependencies: Mapping[str, Iterable[str]]) -> List[str]:
    """
    Kahn's algorithm over an id -> dependency ids mapping.

    Dependencies precede their dependents; ties are broken by identifier
    ascending. References to ids outside the mapping are ignored.

    Raises:
        CycleError: naming the identifiers of one cycle
    """
    deps: Dict[str, Set[str]] = {
        node: {d for d in refs if d in dependencies and d != node}
        for node, refs in dependencies.items()
    }
    self_refs = sorted(n for n, refs in dependencies.items() if n in set(refs))
    if self_refs:
        raise CycleError([self_refs[0]])

    dependents: Dict[str, List[str]] = {node: [] for node in deps}
    for node, refs in deps.items():
        for ref in refs:
            dependents[ref].append(node)

    in_degree = {node: len(refs) for node, refs in deps.items()}
    ready = [node for node, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    order: List[str] = []
    while ready:
        node = heapq.heappop(ready)
        order.append(node)
        for dependent in dependents[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(deps):
        remaining = {node for node, degree in in_degree.items() if degree > 0}
        raise CycleError(_find_cycle(deps, remaining))

    return order


def _find_cycle(deps: Mapping[str, Set[str]], remaining: Set[str]) -> List[str]:
    """
    Walk dependency edges inside the unresolved set until a node repeats.

    Every unresolved node still has an unresolved dependency, so the walk
    always closes a cycle.
    """
    node = min(remaining)
    path: List[str] = []
    seen: Dict[str, int] = {}

    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = min(d for d in deps[node] if d in remaining)

    # path runs dependent -> dependency; report it in creation order
    cycle = list(reversed(path[seen[node]:]))
    start = cycle.index(min(cycle))
    return cycle[start:] + cycle[:start]


class DependencyResolver:
    """Orders descriptors so every resource follows the resources it references."""

    def resolve(self, descriptors: Iterable[ResourceDescriptor]) -> List[ResourceDescriptor]:
        by_id = {d.resource_id: d for d in descriptors}
        order = topological_order({rid: d.depends_on for rid, d in by_id.items()})

        logger.debug(f"[resolver] Order: {' -> '.join(order)}")
        return [by_id[rid] for rid in order]

    @staticmethod
    def reverse_order(dependencies: Mapping[str, Sequence[str]]) -> List[str]:
        """Teardown order: dependents before their dependencies."""
        return list(reversed(topological_order(dependencies)))
