"""Tests for ConstraintEngine — dependency gating and cycle validation."""

import pytest

from allocentra.engine.constraints import ConstraintEngine, CycleValidationError
from allocentra.models.common import RequestStatus, ResourceCategory
from allocentra.models.run import AllocationResult
from tests.engine.builders import make_cycle, money_request, resource_request


@pytest.fixture
def constraints() -> ConstraintEngine:
    return ConstraintEngine()


def _decision(request, status: RequestStatus) -> AllocationResult:
    return AllocationResult(
        request_id=request.request_id,
        request_title=request.title,
        category=request.category,
        status=status,
        amount_requested=request.amount_requested,
        score=3.0,
        rank=1,
        reason="test",
    )


class TestDependenciesSatisfied:
    """Only earlier APPROVED decisions satisfy a dependency."""

    def test_no_dependencies(self, constraints: ConstraintEngine) -> None:
        assert constraints.dependencies_satisfied(money_request("A", "10"), {})

    def test_approved_dependency(self, constraints: ConstraintEngine) -> None:
        a = money_request("A", "10")
        b = money_request("B", "10", dependencies=[a.request_id])
        decisions = {a.request_id: _decision(a, RequestStatus.APPROVED)}
        assert constraints.dependencies_satisfied(b, decisions)

    @pytest.mark.parametrize(
        "status",
        [RequestStatus.PARTIAL, RequestStatus.DENIED, RequestStatus.DEFERRED],
    )
    def test_non_approved_dependency_blocks(
        self, constraints: ConstraintEngine, status: RequestStatus,
    ) -> None:
        a = money_request("A", "10")
        b = money_request("B", "10", dependencies=[a.request_id])
        decisions = {a.request_id: _decision(a, status)}
        assert not constraints.dependencies_satisfied(b, decisions)

    def test_undecided_dependency_blocks(self, constraints: ConstraintEngine) -> None:
        a = money_request("A", "10")
        b = money_request("B", "10", dependencies=[a.request_id])
        assert not constraints.dependencies_satisfied(b, {})

    def test_all_dependencies_required(self, constraints: ConstraintEngine) -> None:
        a = money_request("A", "10")
        c = money_request("C", "10")
        b = money_request("B", "10", dependencies=[a.request_id, c.request_id])
        decisions = {
            a.request_id: _decision(a, RequestStatus.APPROVED),
            c.request_id: _decision(c, RequestStatus.DENIED),
        }
        assert not constraints.dependencies_satisfied(b, decisions)


class TestValidateCycle:
    """Cycle validation reports unknown deps, circular chains, missing pools."""

    def test_clean_cycle(self, constraints: ConstraintEngine) -> None:
        a = money_request("A", "10")
        b = money_request("B", "10", dependencies=[a.request_id])
        cycle = make_cycle([a, b], budget="100")
        assert constraints.validate_cycle(cycle) == []

    def test_unknown_dependency(self, constraints: ConstraintEngine) -> None:
        outsider = money_request("Outsider", "10")
        a = money_request("A", "10", dependencies=[outsider.request_id])
        issues = constraints.validate_cycle(make_cycle([a], budget="100"))
        assert [i.code for i in issues] == ["UNKNOWN_DEPENDENCY"]
        assert outsider.request_id in issues[0].request_ids

    def test_two_request_cycle(self, constraints: ConstraintEngine) -> None:
        a = money_request("A", "10")
        b = money_request("B", "10", dependencies=[a.request_id])
        a = a.model_copy(update={"dependencies": [b.request_id]})
        issues = constraints.validate_cycle(make_cycle([a, b], budget="100"))
        circular = [i for i in issues if i.code == "CIRCULAR_DEPENDENCY"]
        assert len(circular) == 1
        assert circular[0].message == "Circular dependency: A -> B -> A"
        assert set(circular[0].request_ids) == {a.request_id, b.request_id}

    def test_self_dependency(self, constraints: ConstraintEngine) -> None:
        a = money_request("A", "10")
        a = a.model_copy(update={"dependencies": [a.request_id]})
        issues = constraints.validate_cycle(make_cycle([a], budget="100"))
        assert [i.code for i in issues] == ["CIRCULAR_DEPENDENCY"]

    def test_three_request_cycle_reported_once(self, constraints: ConstraintEngine) -> None:
        a = money_request("A", "10")
        b = money_request("B", "10", dependencies=[a.request_id])
        c = money_request("C", "10", dependencies=[b.request_id])
        a = a.model_copy(update={"dependencies": [c.request_id]})
        issues = constraints.validate_cycle(make_cycle([a, b, c], budget="100"))
        assert [i.code for i in issues] == ["CIRCULAR_DEPENDENCY"]
        assert len(issues[0].request_ids) == 3

    def test_missing_budget_pool(self, constraints: ConstraintEngine) -> None:
        issues = constraints.validate_cycle(make_cycle([money_request("A", "10")]))
        assert [i.code for i in issues] == ["MISSING_POOL"]

    def test_missing_resource_pool_by_type(self, constraints: ConstraintEngine) -> None:
        request = resource_request("Truck", ResourceCategory.VEHICLES, "Truck", "1")
        cycle = make_cycle(
            [request], resources=[(ResourceCategory.VEHICLES, "Forklift", "2")],
        )
        issues = constraints.validate_cycle(cycle)
        assert [i.code for i in issues] == ["MISSING_POOL"]

    def test_validation_error_message(self) -> None:
        a = money_request("A", "10")
        issues = ConstraintEngine().validate_cycle(make_cycle([a]))
        error = CycleValidationError(issues)
        assert isinstance(error, ValueError)
        assert error.issues == issues
        assert "has no matching pool" in str(error)
