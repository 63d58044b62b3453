"""Allocation constraints — dependency gating and cycle validation.

Dependency rule: a request may only be allocated once every request it
depends on has already been decided in the same pass *and* was fully
APPROVED. PARTIAL, DENIED, DEFERRED or not-yet-decided dependencies all
block it. Because only earlier decisions are consulted, a dependency that is
ranked below its dependant always defers the dependant.

Cycle validation is opt-in: the engine only runs it in strict mode.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from uuid import UUID

from allocentra.models.common import RequestStatus, ResourceCategory
from allocentra.models.cycle import AllocationCycle, AllocationRequest
from allocentra.models.run import AllocationResult


class CycleValidationError(ValueError):
    """Raised in strict mode when a cycle fails validation."""

    def __init__(self, issues: list["CycleIssue"]) -> None:
        self.issues = issues
        detail = "; ".join(issue.message for issue in issues)
        super().__init__(f"Cycle validation failed: {detail}")


@dataclass(frozen=True)
class CycleIssue:
    """A single validation finding."""

    code: str  # UNKNOWN_DEPENDENCY | CIRCULAR_DEPENDENCY | MISSING_POOL
    message: str
    request_ids: list[UUID] = field(default_factory=list)


class ConstraintEngine:
    """Validates and enforces allocation constraints."""

    def dependencies_satisfied(
        self,
        request: AllocationRequest,
        decisions: Mapping[UUID, AllocationResult],
    ) -> bool:
        """True if every dependency was decided earlier and APPROVED."""
        if not request.dependencies:
            return True

        for dependency_id in request.dependencies:
            decision = decisions.get(dependency_id)
            if decision is None or decision.status != RequestStatus.APPROVED:
                return False
        return True

    def validate_cycle(self, cycle: AllocationCycle) -> list[CycleIssue]:
        """Check a cycle before allocation starts.

        Reports dependencies on requests outside the cycle, circular
        dependency chains, and requests with no pool for their category
        (or category + resource type). Returns an empty list when clean.
        """
        issues: list[CycleIssue] = []
        known = {r.request_id for r in cycle.requests}

        for request in cycle.requests:
            missing = [d for d in request.dependencies if d not in known]
            if missing:
                issues.append(CycleIssue(
                    code="UNKNOWN_DEPENDENCY",
                    message=(
                        f"Request '{request.title}' depends on "
                        f"{len(missing)} request(s) outside the cycle"
                    ),
                    request_ids=[request.request_id, *missing],
                ))

        titles = {r.request_id: r.title for r in cycle.requests}
        for chain in _find_dependency_cycles(cycle.requests):
            issues.append(CycleIssue(
                code="CIRCULAR_DEPENDENCY",
                message="Circular dependency: " + " -> ".join(
                    titles[rid] for rid in [*chain, chain[0]]
                ),
                request_ids=chain,
            ))

        budget_keys = {p.category for p in cycle.budget_pools}
        resource_keys = {(p.category, p.resource_type) for p in cycle.resource_pools}
        for request in cycle.requests:
            if request.category == ResourceCategory.MONEY:
                has_pool = request.category in budget_keys
            else:
                has_pool = (request.category, request.resource_type) in resource_keys
            if not has_pool:
                issues.append(CycleIssue(
                    code="MISSING_POOL",
                    message=f"Request '{request.title}' has no matching pool",
                    request_ids=[request.request_id],
                ))

        return issues


def _find_dependency_cycles(requests: list[AllocationRequest]) -> list[list[UUID]]:
    """Return each distinct dependency cycle once, in discovery order."""
    graph = {
        r.request_id: list(r.dependencies)
        for r in requests
    }
    white, grey, black = 0, 1, 2
    colour = {rid: white for rid in graph}
    cycles: list[list[UUID]] = []
    seen: set[frozenset[UUID]] = set()

    for start in graph:
        if colour[start] != white:
            continue
        # Iterative DFS: (node, iterator over its dependencies)
        path: list[UUID] = [start]
        stack = [(start, iter(graph[start]))]
        colour[start] = grey
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                colour[node] = black
                stack.pop()
                path.pop()
                continue
            if child not in graph:
                continue
            if colour[child] == grey:
                chain = path[path.index(child):]
                key = frozenset(chain)
                if key not in seen:
                    seen.add(key)
                    cycles.append(list(chain))
            elif colour[child] == white:
                colour[child] = grey
                path.append(child)
                stack.append((child, iter(graph[child])))

    return cycles
