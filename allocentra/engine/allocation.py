"""Allocation engine — score, rank, allocate greedily, explain.

One run makes a single forward pass over the requests in descending score
order. Pool capacity is tracked in a per-run ledger built from pool totals;
each decision consumes capacity before the next request is considered, so
the pass is strictly sequential. Nothing is written back to the pools.

Failure is all-or-nothing: any exception turns the run FAILED and no
decisions are returned.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from allocentra.config.settings import Settings
from allocentra.engine.constraints import ConstraintEngine, CycleValidationError
from allocentra.engine.explanation import explain
from allocentra.engine.scoring import ScoringEngine, ScoringWeights
from allocentra.models.common import (
    ConstraintViolation,
    RequestStatus,
    ResourceCategory,
    RunStatus,
    utc_now,
)
from allocentra.models.cycle import AllocationCycle, AllocationRequest
from allocentra.models.run import (
    PHASE_PROGRESS,
    AllocationResult,
    AllocationRun,
    RunOutcome,
    RunPhase,
    RunSummary,
    ScoreBreakdown,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")

ResourceKey = tuple[ResourceCategory, str | None]


class ProgressListener(Protocol):
    """Receives phase changes while a run is executing."""

    def __call__(self, phase: RunPhase, progress: float) -> None: ...


class _PoolLedger:
    """Remaining capacity for one run.

    Pools sharing a key collapse into one figure: budget pools by category,
    resource pools by (category, resource_type).
    """

    def __init__(self, cycle: AllocationCycle) -> None:
        self.budget: dict[ResourceCategory, Decimal] = defaultdict(lambda: _ZERO)
        self.resources: dict[ResourceKey, Decimal] = defaultdict(lambda: _ZERO)
        for pool in cycle.budget_pools:
            self.budget[pool.category] += pool.total_amount
        for pool in cycle.resource_pools:
            self.resources[(pool.category, pool.resource_type)] += pool.total_quantity


class AllocationEngine:
    """Distributes pool capacity across a cycle's requests."""

    def __init__(
        self,
        scoring_engine: ScoringEngine | None = None,
        constraint_engine: ConstraintEngine | None = None,
        *,
        strict_validation: bool = False,
    ) -> None:
        self._scoring = scoring_engine or ScoringEngine()
        self._constraints = constraint_engine or ConstraintEngine()
        self._strict_validation = strict_validation

    @classmethod
    def from_settings(cls, settings: Settings) -> AllocationEngine:
        return cls(
            scoring_engine=ScoringEngine(ScoringWeights.from_settings(settings)),
            strict_validation=settings.STRICT_CYCLE_VALIDATION,
        )

    def execute(
        self,
        cycle: AllocationCycle,
        run: AllocationRun,
        progress: ProgressListener | None = None,
    ) -> RunOutcome:
        """Execute one allocation run.

        Args:
            cycle: Snapshot of the cycle with its pools and requests, in
                presentation order (ties in score keep this order).
            run: Run configuration (partial flag, evaluation date).
            progress: Optional listener for phase/progress updates.

        Returns:
            RunOutcome — COMPLETED with ranked, explained results and a
            summary, or FAILED with an error message and no results.
        """
        logger.info(
            "Starting allocation for cycle %s (run %s, %d requests)",
            cycle.name, run.run_id, len(cycle.requests),
        )
        started_at = utc_now()
        t0 = time.perf_counter()
        evaluation_date = run.evaluation_date or date.today()

        try:
            self._report(progress, RunPhase.SCORING)
            if self._strict_validation:
                issues = self._constraints.validate_cycle(cycle)
                if issues:
                    raise CycleValidationError(issues)
            breakdowns = {
                request.request_id: self._scoring.score(request, evaluation_date)
                for request in cycle.requests
            }

            self._report(progress, RunPhase.RANKING)
            ranked = rank_requests(cycle.requests, breakdowns)

            self._report(progress, RunPhase.ALLOCATING)
            results = self._allocate(ranked, breakdowns, cycle, run)

            self._report(progress, RunPhase.EXPLAINING)
            results = explain(results, breakdowns)

            self._report(progress, RunPhase.FINALIZING)
            summary = calculate_summary(results, cycle)

            self._report(progress, RunPhase.DONE)
        except Exception as exc:
            logger.exception("Allocation failed for run %s", run.run_id)
            return RunOutcome(
                run_id=run.run_id,
                status=RunStatus.FAILED,
                started_at=started_at,
                completed_at=utc_now(),
                error_message=str(exc) or type(exc).__name__,
            )

        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        logger.info(
            "Allocation completed: %d approved, %d partial, %d deferred, %d denied",
            summary.approved, summary.partial, summary.deferred, summary.denied,
        )
        return RunOutcome(
            run_id=run.run_id,
            status=RunStatus.COMPLETED,
            started_at=started_at,
            completed_at=utc_now(),
            execution_time_ms=elapsed_ms,
            results=results,
            summary=summary,
        )

    # ------------------------------------------------------------------
    # Greedy pass
    # ------------------------------------------------------------------

    def _allocate(
        self,
        ranked: list[AllocationRequest],
        breakdowns: dict[UUID, ScoreBreakdown],
        cycle: AllocationCycle,
        run: AllocationRun,
    ) -> list[AllocationResult]:
        ledger = _PoolLedger(cycle)
        decisions: dict[UUID, AllocationResult] = {}
        results: list[AllocationResult] = []

        for rank, request in enumerate(ranked, start=1):
            base = {
                "run_id": run.run_id,
                "request_id": request.request_id,
                "request_title": request.title,
                "category": request.category,
                "resource_type": request.resource_type,
                "amount_requested": request.amount_requested,
                "quantity_requested": request.quantity_requested,
                "score": breakdowns[request.request_id].total_score,
                "rank": rank,
            }

            if not self._constraints.dependencies_satisfied(request, decisions):
                result = AllocationResult(
                    **base,
                    status=RequestStatus.DEFERRED,
                    reason="Dependencies not met",
                    constraint_violations=[ConstraintViolation.DEPENDENCY_NOT_MET],
                )
            elif request.category == ResourceCategory.MONEY:
                result = AllocationResult(
                    **base,
                    **allocate_monetary(request, ledger.budget, run.allow_partial_allocations),
                )
            else:
                result = AllocationResult(
                    **base,
                    **allocate_resource(request, ledger.resources, run.allow_partial_allocations),
                )

            logger.debug(
                "Rank %d: %s -> %s (%s)", rank, request.title, result.status, result.reason,
            )
            results.append(result)
            decisions[request.request_id] = result

        return results

    @staticmethod
    def _report(progress: ProgressListener | None, phase: RunPhase) -> None:
        if progress is not None:
            progress(phase, PHASE_PROGRESS[phase])


# ---------------------------------------------------------------------------
# Ranking, pool consumption, summary
# ---------------------------------------------------------------------------


def rank_requests(
    requests: list[AllocationRequest],
    breakdowns: dict[UUID, ScoreBreakdown],
) -> list[AllocationRequest]:
    """Descending score; equal scores keep their presentation order."""
    return sorted(
        requests,
        key=lambda r: breakdowns[r.request_id].total_score,
        reverse=True,
    )


def allocate_monetary(
    request: AllocationRequest,
    remaining_by_category: dict[ResourceCategory, Decimal],
    allow_partial: bool,
) -> dict:
    """Decide a MONEY request and consume budget.

    Returns the decision fields (status, amount_allocated, reason,
    constraint_violations). ``remaining_by_category`` is updated in place.
    """
    if request.amount_requested is None:
        raise ValueError(f"Request {request.request_id} has no amount_requested")

    key = request.category
    remaining = remaining_by_category.get(key, _ZERO)
    requested = request.amount_requested
    minimum = request.minimum_viable_allocation

    if remaining >= requested:
        remaining_by_category[key] = remaining - requested
        return {
            "status": RequestStatus.APPROVED,
            "amount_allocated": requested,
            "reason": "Fully funded",
            "constraint_violations": [],
        }

    if allow_partial and minimum is not None and remaining >= minimum:
        remaining_by_category[key] = _ZERO
        return {
            "status": RequestStatus.PARTIAL,
            "amount_allocated": remaining,
            "reason": "Partially funded - budget constraint",
            "constraint_violations": [ConstraintViolation.BUDGET_LIMITED],
        }

    if remaining == _ZERO:
        reason, violation = "Budget exhausted", ConstraintViolation.BUDGET_EXHAUSTED
    else:
        reason, violation = (
            "Below minimum viable allocation",
            ConstraintViolation.BELOW_MINIMUM_VIABLE,
        )
    return {
        "status": RequestStatus.DENIED,
        "amount_allocated": _ZERO,
        "reason": reason,
        "constraint_violations": [violation],
    }


def allocate_resource(
    request: AllocationRequest,
    remaining_by_key: dict[ResourceKey, Decimal],
    allow_partial: bool,
) -> dict:
    """Decide a non-MONEY request and consume pool quantity.

    Mirrors allocate_monetary with (category, resource_type) keys.
    """
    if request.quantity_requested is None:
        raise ValueError(f"Request {request.request_id} has no quantity_requested")

    key = (request.category, request.resource_type)
    remaining = remaining_by_key.get(key, _ZERO)
    requested = request.quantity_requested
    minimum = request.minimum_viable_quantity

    if remaining >= requested:
        remaining_by_key[key] = remaining - requested
        return {
            "status": RequestStatus.APPROVED,
            "quantity_allocated": requested,
            "reason": "Fully allocated",
            "constraint_violations": [],
        }

    if allow_partial and minimum is not None and remaining >= minimum:
        remaining_by_key[key] = _ZERO
        return {
            "status": RequestStatus.PARTIAL,
            "quantity_allocated": remaining,
            "reason": "Partially allocated - resource constraint",
            "constraint_violations": [ConstraintViolation.RESOURCE_LIMITED],
        }

    if remaining == _ZERO:
        reason, violation = "Resource pool exhausted", ConstraintViolation.RESOURCE_EXHAUSTED
    else:
        reason, violation = (
            "Below minimum viable quantity",
            ConstraintViolation.BELOW_MINIMUM_VIABLE,
        )
    return {
        "status": RequestStatus.DENIED,
        "quantity_allocated": _ZERO,
        "reason": reason,
        "constraint_violations": [violation],
    }


def calculate_summary(
    results: list[AllocationResult],
    cycle: AllocationCycle,
) -> RunSummary:
    """Count decisions by status and total the money granted.

    Quantities are not summed into ``total_allocated``. Budget utilization
    is money granted over the cycle's MONEY pool capacity (0.0 when the
    cycle has none).
    """
    counts = {status: 0 for status in RequestStatus}
    total_allocated = _ZERO
    for result in results:
        counts[result.status] += 1
        if result.category == ResourceCategory.MONEY:
            total_allocated += result.amount_allocated

    capacity = sum(
        (p.total_amount for p in cycle.budget_pools if p.category == ResourceCategory.MONEY),
        _ZERO,
    )
    utilization = float(total_allocated / capacity) if capacity > 0 else 0.0

    return RunSummary(
        total_requests=len(results),
        approved=counts[RequestStatus.APPROVED],
        partial=counts[RequestStatus.PARTIAL],
        deferred=counts[RequestStatus.DEFERRED],
        denied=counts[RequestStatus.DENIED],
        total_allocated=total_allocated,
        budget_utilization=round(utilization, 4),
    )
