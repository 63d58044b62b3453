"""Request scoring — weighted composite of five factors.

Score = priority * 0.30 + urgency * 0.25 + impact * 0.25 + risk * 0.15
        + strategic * 0.05

Every factor lies in [1, 5]. Weights are configurable and need not sum to 1.
The breakdown keeps each factor's value, weight and contribution so that
decisions can be explained afterwards.

Deterministic — the evaluation date is the only time input.
"""

from __future__ import annotations

from datetime import date

from pydantic import Field

from allocentra.config.settings import Settings
from allocentra.models.common import AllocentraBase, Impact, Risk
from allocentra.models.cycle import AllocationRequest
from allocentra.models.run import FactorScore, ScoreBreakdown

MIN_FACTOR = 1.0
MAX_FACTOR = 5.0

# Label -> factor value. Tune here, not in the scoring code.
IMPACT_VALUES: dict[Impact, float] = {
    Impact.LOW: 1.0,
    Impact.MEDIUM: 3.0,
    Impact.HIGH: 4.0,
    Impact.CRITICAL: 5.0,
}

RISK_VALUES: dict[Risk, float] = {
    Risk.LOW: 1.0,
    Risk.OPERATIONAL: 3.0,
    Risk.SAFETY: 5.0,
    Risk.LEGAL: 5.0,
}

# Urgency decays one point per 30 days until the floor is reached.
_URGENCY_DAYS_PER_POINT = 30.0
_URGENCY_MAX_DECAY = 4.0


class ScoringWeights(AllocentraBase, frozen=True):
    """Factor weights for the composite score."""

    priority: float = Field(default=0.30, ge=0)
    urgency: float = Field(default=0.25, ge=0)
    impact: float = Field(default=0.25, ge=0)
    risk: float = Field(default=0.15, ge=0)
    strategic: float = Field(default=0.05, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> ScoringWeights:
        return cls(
            priority=settings.SCORING_WEIGHT_PRIORITY,
            urgency=settings.SCORING_WEIGHT_URGENCY,
            impact=settings.SCORING_WEIGHT_IMPACT,
            risk=settings.SCORING_WEIGHT_RISK,
            strategic=settings.SCORING_WEIGHT_STRATEGIC,
        )

    @property
    def total(self) -> float:
        return self.priority + self.urgency + self.impact + self.risk + self.strategic


def _clamp(value: float) -> float:
    return min(MAX_FACTOR, max(MIN_FACTOR, float(value)))


def urgency_score(deadline: date, evaluation_date: date) -> float:
    """Urgency from days until deadline.

    Deadline today or passed -> 5.0; 30 days -> 4.0; 60 -> 3.0; 90 -> 2.0;
    120 or more -> 1.0.
    """
    days = (deadline - evaluation_date).days
    if days <= 0:
        return MAX_FACTOR
    decay = min(_URGENCY_MAX_DECAY, days / _URGENCY_DAYS_PER_POINT)
    return max(MIN_FACTOR, MAX_FACTOR - decay)


class ScoringEngine:
    """Scores requests against a fixed set of factor weights."""

    def __init__(self, weights: ScoringWeights | None = None) -> None:
        self._weights = weights or ScoringWeights()

    @property
    def weights(self) -> ScoringWeights:
        return self._weights

    def weight_bounds(self) -> tuple[float, float]:
        """Lowest and highest attainable total score for these weights."""
        total = self._weights.total
        return total * MIN_FACTOR, total * MAX_FACTOR

    def score(
        self,
        request: AllocationRequest,
        evaluation_date: date | None = None,
    ) -> ScoreBreakdown:
        """Compute the composite score and its per-factor breakdown."""
        evaluation_date = evaluation_date or date.today()
        w = self._weights

        priority = _clamp(request.priority)
        urgency = urgency_score(request.urgency_deadline, evaluation_date)
        impact = IMPACT_VALUES[request.impact]
        risk = RISK_VALUES[request.risk]
        strategic = _clamp(request.strategic)

        total = (
            priority * w.priority
            + urgency * w.urgency
            + impact * w.impact
            + risk * w.risk
            + strategic * w.strategic
        )

        return ScoreBreakdown(
            total_score=total,
            priority=FactorScore(
                value=priority, weight=w.priority, contribution=priority * w.priority,
            ),
            urgency=FactorScore(
                value=urgency,
                weight=w.urgency,
                contribution=urgency * w.urgency,
                days_until_deadline=(request.urgency_deadline - evaluation_date).days,
            ),
            impact=FactorScore(
                value=impact,
                weight=w.impact,
                contribution=impact * w.impact,
                label=request.impact.value,
            ),
            risk=FactorScore(
                value=risk,
                weight=w.risk,
                contribution=risk * w.risk,
                label=request.risk.value,
            ),
            strategic=FactorScore(
                value=strategic, weight=w.strategic, contribution=strategic * w.strategic,
            ),
        )

    def calculate_score(
        self,
        request: AllocationRequest,
        evaluation_date: date | None = None,
    ) -> float:
        """Total score only."""
        return self.score(request, evaluation_date).total_score
