"""Tests for AllocationEngine — score, rank, greedy allocation, summary.

Covers the worked scenarios (tie-break with BELOW_MINIMUM_VIABLE, resource
pool exhaustion, late dependency deferral, mid-pass failure) plus the
allocation invariants.
"""

from decimal import Decimal

import pytest

from allocentra.config.settings import Settings
from allocentra.engine.allocation import (
    AllocationEngine,
    allocate_monetary,
    allocate_resource,
    rank_requests,
)
from allocentra.engine.constraints import ConstraintEngine
from allocentra.engine.scoring import ScoringEngine
from allocentra.models.common import (
    ConstraintViolation,
    RequestStatus,
    ResourceCategory,
    RunStatus,
)
from allocentra.models.cycle import AllocationRequest
from allocentra.models.run import PHASE_PROGRESS, RunPhase
from tests.engine.builders import (
    EVALUATION_DATE,
    make_cycle,
    make_run,
    money_request,
    resource_request,
)


@pytest.fixture
def engine() -> AllocationEngine:
    return AllocationEngine()


def _by_title(outcome) -> dict:
    return {r.request_title: r for r in outcome.results}


# ===================================================================
# Worked scenarios
# ===================================================================


class TestScenarios:
    """End-to-end runs over small cycles."""

    def test_equal_scores_keep_order_and_deny_below_minimum(
        self, engine: AllocationEngine,
    ) -> None:
        a = money_request("A", "700", minimum="500")
        b = money_request("B", "600")
        cycle = make_cycle([a, b], budget="1000")

        outcome = engine.execute(cycle, make_run(cycle))

        assert outcome.status == RunStatus.COMPLETED
        first, second = outcome.results
        assert (first.request_title, first.rank) == ("A", 1)
        assert first.status == RequestStatus.APPROVED
        assert first.amount_allocated == Decimal("700")
        assert (second.request_title, second.rank) == ("B", 2)
        assert second.status == RequestStatus.DENIED
        assert second.amount_allocated == Decimal("0")
        assert second.reason == "Below minimum viable allocation"
        assert second.constraint_violations == [ConstraintViolation.BELOW_MINIMUM_VIABLE]

    def test_resource_pool_exhaustion(self, engine: AllocationEngine) -> None:
        requests = [
            resource_request(f"Forklift {i}", ResourceCategory.EQUIPMENT, "forklift", "1",
                             priority=5 - i)
            for i in range(3)
        ]
        cycle = make_cycle(
            requests, resources=[(ResourceCategory.EQUIPMENT, "forklift", "2")],
        )

        outcome = engine.execute(cycle, make_run(cycle))

        statuses = [r.status for r in outcome.results]
        assert statuses == [RequestStatus.APPROVED, RequestStatus.APPROVED, RequestStatus.DENIED]
        last = outcome.results[-1]
        assert last.request_title == "Forklift 2"
        assert last.reason == "Resource pool exhausted"
        assert last.constraint_violations == [ConstraintViolation.RESOURCE_EXHAUSTED]
        assert sum(r.quantity_allocated for r in outcome.results) == Decimal("2")

    def test_dependency_ranked_later_defers_dependant(self, engine: AllocationEngine) -> None:
        a = money_request("A", "100", priority=1)
        b = money_request("B", "100", priority=5, dependencies=[a.request_id])
        cycle = make_cycle([a, b], budget="1000")

        outcome = engine.execute(cycle, make_run(cycle))

        results = _by_title(outcome)
        assert results["B"].rank == 1
        assert results["B"].status == RequestStatus.DEFERRED
        assert results["B"].reason == "Dependencies not met"
        assert results["B"].constraint_violations == [ConstraintViolation.DEPENDENCY_NOT_MET]
        assert results["B"].amount_allocated == Decimal("0")
        assert results["A"].status == RequestStatus.APPROVED

    def test_exception_mid_pass_fails_run_without_results(
        self, engine: AllocationEngine,
    ) -> None:
        good = money_request("Good", "100", priority=5)
        malformed = AllocationRequest.model_construct(
            title="Malformed",
            category=ResourceCategory.MONEY,
            amount_requested=None,
            urgency_deadline=EVALUATION_DATE,
        )
        cycle = make_cycle([good], budget="1000")
        cycle = cycle.model_copy(update={"requests": [good, malformed]})

        outcome = engine.execute(cycle, make_run(cycle))

        assert outcome.status == RunStatus.FAILED
        assert outcome.results == []
        assert outcome.summary is None
        assert "no amount_requested" in outcome.error_message


# ===================================================================
# Partial allocation
# ===================================================================


class TestPartialAllocation:
    """Remaining capacity is granted when it meets the minimum viable amount."""

    def test_partial_then_exhausted(self, engine: AllocationEngine) -> None:
        a = money_request("A", "800", priority=5)
        b = money_request("B", "500", minimum="100", priority=4)
        c = money_request("C", "50", priority=3)
        cycle = make_cycle([a, b, c], budget="1000")

        results = _by_title(engine.execute(cycle, make_run(cycle)))

        assert results["A"].status == RequestStatus.APPROVED
        assert results["B"].status == RequestStatus.PARTIAL
        assert results["B"].amount_allocated == Decimal("200")
        assert results["B"].reason == "Partially funded - budget constraint"
        assert results["B"].constraint_violations == [ConstraintViolation.BUDGET_LIMITED]
        assert results["C"].status == RequestStatus.DENIED
        assert results["C"].reason == "Budget exhausted"
        assert results["C"].constraint_violations == [ConstraintViolation.BUDGET_EXHAUSTED]

    def test_partial_disabled_denies(self, engine: AllocationEngine) -> None:
        a = money_request("A", "800", priority=5)
        b = money_request("B", "500", minimum="100", priority=4)
        cycle = make_cycle([a, b], budget="1000")

        results = _by_title(engine.execute(cycle, make_run(cycle, allow_partial=False)))

        assert results["B"].status == RequestStatus.DENIED
        assert results["B"].reason == "Below minimum viable allocation"

    def test_partial_resource_allocation(self, engine: AllocationEngine) -> None:
        a = resource_request("A", ResourceCategory.PERSONNEL, "Engineer", "3", priority=5)
        b = resource_request("B", ResourceCategory.PERSONNEL, "Engineer", "4", minimum="1",
                             priority=4)
        cycle = make_cycle(
            [a, b], resources=[(ResourceCategory.PERSONNEL, "Engineer", "5")],
        )

        results = _by_title(engine.execute(cycle, make_run(cycle)))

        assert results["B"].status == RequestStatus.PARTIAL
        assert results["B"].quantity_allocated == Decimal("2")
        assert results["B"].reason == "Partially allocated - resource constraint"
        assert results["B"].constraint_violations == [ConstraintViolation.RESOURCE_LIMITED]

    def test_partial_dependency_defers_dependant(self, engine: AllocationEngine) -> None:
        a = money_request("A", "500", minimum="100", priority=5)
        b = money_request("B", "10", priority=1, dependencies=[a.request_id])
        cycle = make_cycle([a, b], budget="300")

        results = _by_title(engine.execute(cycle, make_run(cycle)))

        assert results["A"].status == RequestStatus.PARTIAL
        assert results["B"].status == RequestStatus.DEFERRED


# ===================================================================
# Invariants
# ===================================================================


class TestInvariants:
    """Ranks, capacity and summary hold for any run."""

    @pytest.fixture
    def mixed_cycle(self):
        requests = [
            money_request("M1", "400", minimum="100", priority=5),
            money_request("M2", "300", priority=2),
            money_request("M3", "500", minimum="250", priority=4),
            money_request("M4", "100", priority=3),
            resource_request("V1", ResourceCategory.VEHICLES, "Van", "2", priority=4),
            resource_request("V2", ResourceCategory.VEHICLES, "Van", "3", minimum="1",
                             priority=3),
        ]
        return make_cycle(
            requests, budget="1000", resources=[(ResourceCategory.VEHICLES, "Van", "4")],
        )

    def test_ranks_are_permutation_in_score_order(
        self, engine: AllocationEngine, mixed_cycle,
    ) -> None:
        outcome = engine.execute(mixed_cycle, make_run(mixed_cycle))
        ranks = [r.rank for r in outcome.results]
        assert ranks == list(range(1, len(mixed_cycle.requests) + 1))
        scores = [r.score for r in outcome.results]
        assert scores == sorted(scores, reverse=True)

    def test_allocations_within_capacity(self, engine: AllocationEngine, mixed_cycle) -> None:
        outcome = engine.execute(mixed_cycle, make_run(mixed_cycle))
        money = sum(r.amount_allocated for r in outcome.results
                    if r.category == ResourceCategory.MONEY)
        vans = sum(r.quantity_allocated for r in outcome.results
                   if r.category == ResourceCategory.VEHICLES)
        assert money <= Decimal("1000")
        assert vans <= Decimal("4")

    def test_summary_counts(self, engine: AllocationEngine, mixed_cycle) -> None:
        outcome = engine.execute(mixed_cycle, make_run(mixed_cycle))
        summary = outcome.summary
        assert summary.total_requests == 6
        assert (summary.approved + summary.partial + summary.deferred
                + summary.denied) == 6
        money = sum(r.amount_allocated for r in outcome.results
                    if r.category == ResourceCategory.MONEY)
        assert summary.total_allocated == money
        assert summary.budget_utilization == pytest.approx(float(money / Decimal("1000")), abs=1e-4)

    def test_every_request_scored(self, engine: AllocationEngine, mixed_cycle) -> None:
        outcome = engine.execute(mixed_cycle, make_run(mixed_cycle))
        assert {r.request_id for r in outcome.results} == {
            r.request_id for r in mixed_cycle.requests
        }
        assert all(r.score > 0 for r in outcome.results)

    def test_every_result_explained(self, engine: AllocationEngine, mixed_cycle) -> None:
        outcome = engine.execute(mixed_cycle, make_run(mixed_cycle))
        assert all(r.explanation is not None for r in outcome.results)
        assert outcome.results[-1].explanation.compared_to is None

    def test_pools_sharing_a_key_are_summed(self, engine: AllocationEngine) -> None:
        request = money_request("Big", "500")
        cycle = make_cycle([request], budget="300")
        cycle = cycle.model_copy(update={
            "budget_pools": [*cycle.budget_pools, *make_cycle([], budget="300").budget_pools],
        })
        outcome = engine.execute(cycle, make_run(cycle))
        assert outcome.results[0].status == RequestStatus.APPROVED
        assert outcome.summary.budget_utilization == pytest.approx(500 / 600, abs=1e-4)

    def test_empty_cycle(self, engine: AllocationEngine) -> None:
        cycle = make_cycle([], budget="100")
        outcome = engine.execute(cycle, make_run(cycle))
        assert outcome.status == RunStatus.COMPLETED
        assert outcome.results == []
        assert outcome.summary.total_requests == 0
        assert outcome.summary.budget_utilization == 0.0

    def test_no_money_pool_gives_zero_utilization(self, engine: AllocationEngine) -> None:
        request = resource_request("V", ResourceCategory.VEHICLES, "Van", "1")
        cycle = make_cycle([request], resources=[(ResourceCategory.VEHICLES, "Van", "1")])
        outcome = engine.execute(cycle, make_run(cycle))
        assert outcome.summary.budget_utilization == 0.0
        assert outcome.summary.total_allocated == Decimal("0")


# ===================================================================
# Progress & validation
# ===================================================================


class TestProgressAndValidation:
    """Phase reporting and opt-in strict validation."""

    def test_phases_reported_in_order(self, engine: AllocationEngine) -> None:
        cycle = make_cycle([money_request("A", "10")], budget="100")
        seen: list[tuple[RunPhase, float]] = []

        engine.execute(cycle, make_run(cycle), lambda phase, p: seen.append((phase, p)))

        assert [phase for phase, _ in seen] == list(RunPhase)
        assert [p for _, p in seen] == [PHASE_PROGRESS[phase] for phase in RunPhase]
        assert seen[-1][1] == 1.0

    def test_circular_dependency_defers_when_not_strict(
        self, engine: AllocationEngine,
    ) -> None:
        a = money_request("A", "10")
        b = money_request("B", "10", dependencies=[a.request_id])
        a = a.model_copy(update={"dependencies": [b.request_id]})
        cycle = make_cycle([a, b], budget="100")

        outcome = engine.execute(cycle, make_run(cycle))

        assert outcome.status == RunStatus.COMPLETED
        assert {r.status for r in outcome.results} == {RequestStatus.DEFERRED}

    def test_strict_validation_fails_circular_cycle(self) -> None:
        engine = AllocationEngine(strict_validation=True)
        a = money_request("A", "10")
        b = money_request("B", "10", dependencies=[a.request_id])
        a = a.model_copy(update={"dependencies": [b.request_id]})
        cycle = make_cycle([a, b], budget="100")

        outcome = engine.execute(cycle, make_run(cycle))

        assert outcome.status == RunStatus.FAILED
        assert "Circular dependency" in outcome.error_message
        assert outcome.results == []

    def test_constraint_engine_error_fails_run(self) -> None:
        class ExplodingConstraints(ConstraintEngine):
            def dependencies_satisfied(self, request, decisions):
                if len(decisions) == 1:
                    raise RuntimeError("pool lookup failed")
                return True

        engine = AllocationEngine(constraint_engine=ExplodingConstraints())
        cycle = make_cycle(
            [money_request("A", "10", priority=5), money_request("B", "10")], budget="100",
        )

        outcome = engine.execute(cycle, make_run(cycle))

        assert outcome.status == RunStatus.FAILED
        assert outcome.error_message == "pool lookup failed"
        assert outcome.execution_time_ms is None

    def test_from_settings(self) -> None:
        settings = Settings(STRICT_CYCLE_VALIDATION=True, SCORING_WEIGHT_PRIORITY=0.5)
        engine = AllocationEngine.from_settings(settings)
        cycle = make_cycle([money_request("A", "10")])
        outcome = engine.execute(cycle, make_run(cycle))
        # Strict mode rejects a MONEY request with no budget pool
        assert outcome.status == RunStatus.FAILED
        assert "no matching pool" in outcome.error_message


# ===================================================================
# Building blocks
# ===================================================================


class TestBuildingBlocks:
    """rank_requests, allocate_monetary, allocate_resource in isolation."""

    def test_rank_requests_is_stable(self) -> None:
        requests = [money_request(t, "10") for t in "ABC"]
        scoring = ScoringEngine()
        breakdowns = {r.request_id: scoring.score(r, EVALUATION_DATE) for r in requests}
        assert [r.title for r in rank_requests(requests, breakdowns)] == ["A", "B", "C"]

    def test_allocate_monetary_consumes_budget(self) -> None:
        remaining = {ResourceCategory.MONEY: Decimal("100")}
        decision = allocate_monetary(money_request("A", "40"), remaining, True)
        assert decision["status"] == RequestStatus.APPROVED
        assert remaining[ResourceCategory.MONEY] == Decimal("60")

    def test_allocate_monetary_without_pool(self) -> None:
        decision = allocate_monetary(money_request("A", "40"), {}, True)
        assert decision["status"] == RequestStatus.DENIED
        assert decision["constraint_violations"] == [ConstraintViolation.BUDGET_EXHAUSTED]

    def test_allocate_resource_exact_fit(self) -> None:
        request = resource_request("A", ResourceCategory.HOURS, "Lab", "10")
        key = (ResourceCategory.HOURS, "Lab")
        remaining = {key: Decimal("10")}
        decision = allocate_resource(request, remaining, True)
        assert decision["status"] == RequestStatus.APPROVED
        assert remaining[key] == Decimal("0")

    def test_allocate_resource_below_minimum(self) -> None:
        request = resource_request("A", ResourceCategory.HOURS, "Lab", "10", minimum="5")
        key = (ResourceCategory.HOURS, "Lab")
        remaining = {key: Decimal("3")}
        decision = allocate_resource(request, remaining, True)
        assert decision["status"] == RequestStatus.DENIED
        assert decision["reason"] == "Below minimum viable quantity"
        assert remaining[key] == Decimal("3")
