"""Run models — AllocationRun (request), AllocationResult and RunOutcome (immutable)."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from pydantic import Field

from allocentra.models.common import (
    AllocentraBase,
    ConstraintViolation,
    RequestStatus,
    ResourceCategory,
    RunStatus,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)


class RunPhase(StrEnum):
    """Phase labels reported while a run is RUNNING."""

    SCORING = "Scoring requests"
    RANKING = "Ranking requests"
    ALLOCATING = "Allocating resources"
    EXPLAINING = "Generating explanations"
    FINALIZING = "Finalizing"
    DONE = "Done"


# Progress fraction reached when each phase starts.
PHASE_PROGRESS: dict[RunPhase, float] = {
    RunPhase.SCORING: 0.10,
    RunPhase.RANKING: 0.20,
    RunPhase.ALLOCATING: 0.30,
    RunPhase.EXPLAINING: 0.80,
    RunPhase.FINALIZING: 0.95,
    RunPhase.DONE: 1.00,
}


class AllocationRun(AllocentraBase):
    """Request to execute the allocation engine against one cycle."""

    run_id: UUIDv7 = Field(default_factory=new_uuid7)
    cycle_id: UUID
    allow_partial_allocations: bool = True
    evaluation_date: date | None = None
    engine_version: str = "1.0.0"
    notes: str | None = None
    created_at: UTCTimestamp = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Score breakdown & explanations
# ---------------------------------------------------------------------------


class FactorScore(AllocentraBase, frozen=True):
    """One scoring factor: raw value, weight and weighted contribution."""

    value: float
    weight: float
    contribution: float
    days_until_deadline: int | None = None
    label: str | None = None


class ScoreBreakdown(AllocentraBase, frozen=True):
    """Composite score with the five contributing factors."""

    total_score: float
    priority: FactorScore
    urgency: FactorScore
    impact: FactorScore
    risk: FactorScore
    strategic: FactorScore

    def factors(self) -> dict[str, FactorScore]:
        return {
            "priority": self.priority,
            "urgency": self.urgency,
            "impact": self.impact,
            "risk": self.risk,
            "strategic": self.strategic,
        }


class ScoreComparison(AllocentraBase, frozen=True):
    """How a decision compares to the next-lower-ranked decision."""

    request_id: UUID
    title: str
    score: float
    score_difference: float


class DecisionExplanation(AllocentraBase, frozen=True):
    """Human-readable account of one allocation decision."""

    status: RequestStatus
    narrative: str
    score_breakdown: ScoreBreakdown
    compared_to: ScoreComparison | None = None


class AllocationResult(AllocentraBase, frozen=True):
    """Per-request outcome of one run."""

    result_id: UUIDv7 = Field(default_factory=new_uuid7)
    run_id: UUID | None = None
    request_id: UUID
    request_title: str
    category: ResourceCategory
    resource_type: str | None = None
    status: RequestStatus
    amount_requested: Decimal | None = None
    amount_allocated: Decimal = Decimal("0")
    quantity_requested: Decimal | None = None
    quantity_allocated: Decimal = Decimal("0")
    score: float
    rank: int = Field(..., ge=1)
    reason: str
    constraint_violations: list[ConstraintViolation] = Field(default_factory=list)
    explanation: DecisionExplanation | None = None


# ---------------------------------------------------------------------------
# Run outcome
# ---------------------------------------------------------------------------


class RunSummary(AllocentraBase, frozen=True):
    """Aggregate counters for a completed run."""

    total_requests: int
    approved: int
    partial: int
    deferred: int
    denied: int
    total_allocated: Decimal
    budget_utilization: float


class RunOutcome(AllocentraBase, frozen=True):
    """Terminal state of a run: COMPLETED with decisions, or FAILED without.

    Decisions are all-or-nothing: a FAILED outcome never carries results.
    """

    run_id: UUID
    status: RunStatus
    started_at: datetime
    completed_at: datetime
    execution_time_ms: int | None = None
    error_message: str | None = None
    results: list[AllocationResult] = Field(default_factory=list)
    summary: RunSummary | None = None
