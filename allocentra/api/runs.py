"""FastAPI allocation run endpoints.

POST /v1/runs              — start a run (202, executes in the background)
GET  /v1/runs              — list runs, newest first
GET  /v1/runs/{run_id}     — poll run status / results

Run status tracking (PENDING → RUNNING → COMPLETED/FAILED). While a run is
live in this process its progress comes from the in-memory RunTracker;
otherwise the row answers, which mirrors each phase while RUNNING. Once
terminal the row is authoritative, so repeated polls return the same body.
"""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from allocentra.api.dependencies import (
    get_allocation_engine,
    get_cycle_repo,
    get_result_repo,
    get_run_repo,
)
from allocentra.config.settings import Settings, get_settings
from allocentra.db.session import SessionFactory, get_async_session, get_session_factory
from allocentra.db.tables import AllocationResultRow, AllocationRunRow
from allocentra.engine.allocation import AllocationEngine
from allocentra.engine.tasks import run_allocation
from allocentra.engine.tracker import RunTracker, get_run_tracker
from allocentra.models.common import TERMINAL_RUN_STATUSES, RunStatus
from allocentra.models.run import AllocationRun
from allocentra.repositories.cycles import CycleRepository
from allocentra.repositories.runs import AllocationResultRepository, RunRepository

router = APIRouter(prefix="/v1", tags=["runs"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class StartRunRequest(BaseModel):
    cycle_id: UUID
    allow_partial_allocations: bool | None = None
    notes: str | None = None
    evaluation_date: date | None = None


class StartRunResponse(BaseModel):
    run_id: str
    status: str
    message: str


class RunSummaryResponse(BaseModel):
    total_requests: int
    approved: int
    partial: int
    deferred: int
    denied: int
    total_allocated: float
    budget_utilization: float


class AllocationResultResponse(BaseModel):
    result_id: str
    request_id: str
    request_title: str
    category: str
    resource_type: str | None = None
    status: str
    amount_requested: float | None = None
    amount_allocated: float
    quantity_requested: float | None = None
    quantity_allocated: float
    score: float
    rank: int
    reason: str
    constraint_violations: list[str]
    explanation: dict | None = None


class RunStatusResponse(BaseModel):
    run_id: str
    cycle_id: str
    status: str
    progress: float | None = None
    current_phase: str | None = None
    completed_at: datetime | None = None
    execution_time_ms: int | None = None
    summary: RunSummaryResponse | None = None
    results: list[AllocationResultResponse] | None = None
    error_message: str | None = None


class RunListItem(BaseModel):
    run_id: str
    cycle_id: str
    status: str
    engine_version: str
    created_at: datetime
    completed_at: datetime | None = None


class RunListResponse(BaseModel):
    items: list[RunListItem]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _optional_float(value) -> float | None:
    return float(value) if value is not None else None


def _result_response(row: AllocationResultRow) -> AllocationResultResponse:
    return AllocationResultResponse(
        result_id=str(row.result_id),
        request_id=str(row.request_id),
        request_title=row.request_title,
        category=row.category,
        resource_type=row.resource_type,
        status=row.status,
        amount_requested=_optional_float(row.amount_requested),
        amount_allocated=float(row.amount_allocated),
        quantity_requested=_optional_float(row.quantity_requested),
        quantity_allocated=float(row.quantity_allocated),
        score=row.score,
        rank=row.rank,
        reason=row.reason,
        constraint_violations=list(row.constraint_violations or []),
        explanation=row.explanation,
    )


async def _persisted_status(
    row: AllocationRunRow, result_repo: AllocationResultRepository,
) -> RunStatusResponse:
    response = RunStatusResponse(
        run_id=str(row.run_id), cycle_id=str(row.cycle_id), status=row.status,
    )
    if row.status == RunStatus.COMPLETED:
        response.completed_at = row.completed_at
        response.execution_time_ms = row.execution_time_ms
        response.summary = RunSummaryResponse(
            total_requests=row.total_requests or 0,
            approved=row.approved_count or 0,
            partial=row.partial_count or 0,
            deferred=row.deferred_count or 0,
            denied=row.denied_count or 0,
            total_allocated=float(row.total_allocated or 0),
            budget_utilization=row.budget_utilization or 0.0,
        )
        results = await result_repo.get_by_run(row.run_id)
        response.results = [_result_response(r) for r in results]
    elif row.status == RunStatus.FAILED:
        response.error_message = row.error_message
    else:
        response.progress = row.progress
        response.current_phase = row.current_phase
    return response


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/runs", status_code=202, response_model=StartRunResponse)
async def start_run(
    body: StartRunRequest,
    background_tasks: BackgroundTasks,
    cycle_repo: CycleRepository = Depends(get_cycle_repo),
    run_repo: RunRepository = Depends(get_run_repo),
    tracker: RunTracker = Depends(get_run_tracker),
    engine: AllocationEngine = Depends(get_allocation_engine),
    session: AsyncSession = Depends(get_async_session),
    session_factory: SessionFactory = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> StartRunResponse:
    """Register a run and execute it after the response is sent.

    The PENDING row is committed before scheduling so the task, which
    opens its own session, can see it.
    """
    cycle = await cycle_repo.get(body.cycle_id)
    if cycle is None:
        raise HTTPException(status_code=404, detail=f"Cycle {body.cycle_id} not found.")

    allow_partial = body.allow_partial_allocations
    if allow_partial is None:
        allow_partial = cycle.allow_partial_allocations

    run = AllocationRun(
        cycle_id=body.cycle_id,
        allow_partial_allocations=allow_partial,
        evaluation_date=body.evaluation_date,
        engine_version=settings.ENGINE_VERSION,
        notes=body.notes,
    )
    await run_repo.create(run=run)
    await session.commit()
    tracker.register(run.run_id)

    background_tasks.add_task(
        run_allocation,
        run_id=run.run_id,
        session_factory=session_factory,
        tracker=tracker,
        engine=engine,
    )

    return StartRunResponse(
        run_id=str(run.run_id),
        status=RunStatus.RUNNING.value,
        message="Allocation run started",
    )


@router.get("/runs", response_model=RunListResponse)
async def list_runs(
    cycle_id: UUID | None = None,
    status: RunStatus | None = None,
    run_repo: RunRepository = Depends(get_run_repo),
) -> RunListResponse:
    rows = await run_repo.list_all(
        cycle_id=cycle_id, status=status.value if status else None,
    )
    return RunListResponse(items=[
        RunListItem(
            run_id=str(r.run_id),
            cycle_id=str(r.cycle_id),
            status=r.status,
            engine_version=r.engine_version,
            created_at=r.created_at,
            completed_at=r.completed_at,
        )
        for r in rows
    ])


@router.get(
    "/runs/{run_id}",
    response_model=RunStatusResponse,
    response_model_exclude_none=True,
)
async def get_run(
    run_id: UUID,
    run_repo: RunRepository = Depends(get_run_repo),
    result_repo: AllocationResultRepository = Depends(get_result_repo),
    tracker: RunTracker = Depends(get_run_tracker),
) -> RunStatusResponse:
    # Tracker first: its entry is only dropped once the terminal row is
    # committed, so a missing entry never pairs with a stale RUNNING row.
    live = tracker.get(run_id)
    row = await run_repo.get(run_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found.")

    if live is not None and row.status not in TERMINAL_RUN_STATUSES:
        return RunStatusResponse(
            run_id=str(run_id),
            cycle_id=str(row.cycle_id),
            status=live.status.value,
            progress=live.progress,
            current_phase=live.current_phase,
            error_message=live.error_message,
        )

    return await _persisted_status(row, result_repo)
