"""Decision explanations — narrative plus score comparison per result."""

from uuid import UUID

from allocentra.models.common import RequestStatus
from allocentra.models.run import (
    AllocationResult,
    DecisionExplanation,
    ScoreBreakdown,
    ScoreComparison,
)


def narrative_for(result: AllocationResult, total: int) -> str:
    """Status-specific sentence for a decision."""
    if result.status == RequestStatus.APPROVED:
        return f"Fully funded. Ranked #{result.rank} out of {total}"
    if result.status == RequestStatus.PARTIAL:
        return "Partially funded due to budget/resource constraints"
    if result.status == RequestStatus.DENIED:
        return f"Not funded. {result.reason}"
    if result.status == RequestStatus.DEFERRED:
        return f"Deferred. {result.reason}"
    return result.reason


def explain(
    results: list[AllocationResult],
    breakdowns: dict[UUID, ScoreBreakdown],
) -> list[AllocationResult]:
    """Attach a DecisionExplanation to each result.

    ``results`` must be in rank order; ``breakdowns`` maps request_id to the
    ScoreBreakdown used when the request was ranked. Each explanation
    compares against the next-lower-ranked result; the last one has none.
    """
    explained: list[AllocationResult] = []
    total = len(results)

    for i, result in enumerate(results):
        breakdown = breakdowns[result.request_id]

        compared_to = None
        if i < total - 1:
            nxt = results[i + 1]
            compared_to = ScoreComparison(
                request_id=nxt.request_id,
                title=nxt.request_title,
                score=nxt.score,
                score_difference=result.score - nxt.score,
            )

        explanation = DecisionExplanation(
            status=result.status,
            narrative=narrative_for(result, total),
            score_breakdown=breakdown,
            compared_to=compared_to,
        )
        explained.append(result.model_copy(update={"explanation": explanation}))

    return explained
