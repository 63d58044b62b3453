"""Background execution of allocation runs.

run_allocation is scheduled by POST /v1/runs after the run row is
committed as PENDING. It owns the run until a terminal state is persisted:

1. PENDING → RUNNING in the tracker and the database
2. load the cycle snapshot (pools + requests in presentation order)
3. execute the engine in a worker thread, reporting progress to the tracker
   and mirroring each phase onto the run row
4. persist the outcome; on COMPLETED write scores/statuses back to requests
5. mark the tracker terminal and drop the live entry

Polling reads the tracker while the run is live in this process and the
database otherwise.
"""

import asyncio
from concurrent.futures import Future
from uuid import UUID

import structlog

from allocentra.db.session import SessionFactory
from allocentra.engine.allocation import AllocationEngine
from allocentra.engine.tracker import InvalidRunTransition, RunTracker
from allocentra.models.common import RunStatus
from allocentra.models.run import AllocationRun, RunPhase
from allocentra.repositories.cycles import CycleRepository
from allocentra.repositories.requests import RequestRepository
from allocentra.repositories.runs import RunRepository

logger = structlog.get_logger(__name__)


async def run_allocation(
    *,
    run_id: UUID,
    session_factory: SessionFactory,
    tracker: RunTracker,
    engine: AllocationEngine,
) -> RunStatus:
    """Execute one registered run end to end.

    Returns:
        Final run status (COMPLETED or FAILED).
    """
    log = logger.bind(run_id=str(run_id))
    if tracker.get(run_id) is None:
        tracker.register(run_id)

    try:
        tracker.start(run_id)
        async with session_factory() as session:
            run_repo = RunRepository(session)
            run_row = await run_repo.mark_running(run_id)
            if run_row is None:
                raise LookupError(f"Run {run_id} not found.")
            cycle = await CycleRepository(session).load_snapshot(run_row.cycle_id)
            if cycle is None:
                raise LookupError(f"Cycle {run_row.cycle_id} not found.")
            run = AllocationRun(
                run_id=run_row.run_id,
                cycle_id=run_row.cycle_id,
                allow_partial_allocations=run_row.allow_partial_allocations,
                evaluation_date=run_row.evaluation_date,
                engine_version=run_row.engine_version,
                notes=run_row.notes,
            )
            await session.commit()
    except Exception as exc:
        log.exception("run_start_failed")
        return await _abort(run_id, str(exc), session_factory, tracker)

    log = log.bind(cycle_id=str(cycle.cycle_id))
    log.info("run_executing", requests=len(cycle.requests))

    loop = asyncio.get_running_loop()
    write_lock = asyncio.Lock()
    progress_writes: list[Future] = []
    track = tracker.listener(run_id)

    def on_progress(phase: RunPhase, progress: float) -> None:
        track(phase, progress)
        progress_writes.append(asyncio.run_coroutine_threadsafe(
            _persist_progress(run_id, phase, progress, session_factory, write_lock),
            loop,
        ))

    outcome = await asyncio.to_thread(engine.execute, cycle, run, on_progress)
    await asyncio.gather(*(asyncio.wrap_future(f) for f in progress_writes))

    try:
        async with session_factory() as session:
            await RunRepository(session).record_outcome(outcome)
            if outcome.status == RunStatus.COMPLETED:
                await RequestRepository(session).apply_decisions({
                    result.request_id: (result.score, result.status.value)
                    for result in outcome.results
                })
            await session.commit()
    except Exception as exc:
        log.exception("run_persist_failed")
        return await _abort(
            run_id, f"Failed to persist run outcome: {exc}", session_factory, tracker,
        )

    if outcome.status == RunStatus.COMPLETED:
        tracker.complete(run_id)
    else:
        tracker.fail(run_id, outcome.error_message or "Allocation failed")
    tracker.discard(run_id)

    log.info(
        "run_finished",
        status=outcome.status.value,
        execution_time_ms=outcome.execution_time_ms,
    )
    return outcome.status


async def _abort(
    run_id: UUID, error_message: str, session_factory: SessionFactory,
    tracker: RunTracker,
) -> RunStatus:
    await _persist_failure(run_id, error_message, session_factory)
    try:
        tracker.fail(run_id, error_message)
    except InvalidRunTransition:
        logger.warning("run_tracker_already_terminal", run_id=str(run_id))
    tracker.discard(run_id)
    return RunStatus.FAILED


async def _persist_progress(
    run_id: UUID, phase: RunPhase, progress: float,
    session_factory: SessionFactory, lock: asyncio.Lock,
) -> None:
    async with lock:
        try:
            async with session_factory() as session:
                await RunRepository(session).update_progress(
                    run_id, phase=phase.value, progress=progress,
                )
                await session.commit()
        except Exception:
            logger.exception("run_progress_not_recorded", run_id=str(run_id))


async def _persist_failure(
    run_id: UUID, error_message: str, session_factory: SessionFactory,
) -> None:
    try:
        async with session_factory() as session:
            await RunRepository(session).fail(run_id, error_message)
            await session.commit()
    except Exception:
        logger.exception("run_failure_not_recorded", run_id=str(run_id))
