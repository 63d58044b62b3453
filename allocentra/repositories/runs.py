"""Allocation run and result repositories."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from allocentra.db.tables import AllocationResultRow, AllocationRunRow
from allocentra.models.common import TERMINAL_RUN_STATUSES, RunStatus, utc_now
from allocentra.models.run import AllocationResult, AllocationRun, RunOutcome


class RunRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, run: AllocationRun,
                     status: str = RunStatus.PENDING) -> AllocationRunRow:
        row = AllocationRunRow(
            run_id=run.run_id, cycle_id=run.cycle_id,
            status=status, engine_version=run.engine_version,
            allow_partial_allocations=run.allow_partial_allocations,
            evaluation_date=run.evaluation_date, notes=run.notes,
            progress=0.0, created_at=run.created_at,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, run_id: UUID) -> AllocationRunRow | None:
        return await self._session.get(AllocationRunRow, run_id)

    async def list_all(self, *, cycle_id: UUID | None = None,
                       status: str | None = None) -> list[AllocationRunRow]:
        """Runs newest first, optionally filtered."""
        stmt = select(AllocationRunRow).order_by(
            AllocationRunRow.created_at.desc(), AllocationRunRow.run_id.desc(),
        )
        if cycle_id is not None:
            stmt = stmt.where(AllocationRunRow.cycle_id == cycle_id)
        if status is not None:
            stmt = stmt.where(AllocationRunRow.status == status)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def mark_running(self, run_id: UUID) -> AllocationRunRow | None:
        row = await self.get(run_id)
        if row is not None:
            row.status = RunStatus.RUNNING.value
            row.started_at = utc_now()
            await self._session.flush()
        return row

    async def update_progress(self, run_id: UUID, *, phase: str,
                              progress: float) -> AllocationRunRow | None:
        """Mirror live progress onto a RUNNING row; progress never decreases."""
        row = await self.get(run_id)
        if row is None or row.status != RunStatus.RUNNING:
            return row
        if progress >= (row.progress or 0.0):
            row.progress = progress
            row.current_phase = phase
            await self._session.flush()
        return row

    async def record_outcome(self, outcome: RunOutcome) -> AllocationRunRow | None:
        """Persist a terminal outcome; results are only written for COMPLETED."""
        row = await self.get(outcome.run_id)
        if row is None:
            return None

        row.status = outcome.status.value
        row.started_at = row.started_at or outcome.started_at
        row.completed_at = outcome.completed_at
        row.execution_time_ms = outcome.execution_time_ms
        row.error_message = outcome.error_message

        if outcome.status == RunStatus.COMPLETED:
            row.progress = 1.0
            row.current_phase = None
            if outcome.summary is not None:
                row.total_requests = outcome.summary.total_requests
                row.approved_count = outcome.summary.approved
                row.partial_count = outcome.summary.partial
                row.deferred_count = outcome.summary.deferred
                row.denied_count = outcome.summary.denied
                row.total_allocated = outcome.summary.total_allocated
                row.budget_utilization = outcome.summary.budget_utilization
            await AllocationResultRepository(self._session).create_many(
                outcome.results, run_id=outcome.run_id,
            )

        await self._session.flush()
        return row

    async def fail(self, run_id: UUID, error_message: str) -> AllocationRunRow | None:
        """Mark a run FAILED unless it already reached a terminal state."""
        row = await self.get(run_id)
        if row is not None and row.status not in TERMINAL_RUN_STATUSES:
            row.status = RunStatus.FAILED.value
            row.error_message = error_message
            row.completed_at = utc_now()
            await self._session.flush()
        return row


class AllocationResultRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_many(self, results: list[AllocationResult], *,
                          run_id: UUID) -> list[AllocationResultRow]:
        now = utc_now()
        rows = []
        for result in results:
            row = AllocationResultRow(
                result_id=result.result_id,
                run_id=run_id,
                request_id=result.request_id,
                request_title=result.request_title,
                category=result.category.value,
                resource_type=result.resource_type,
                status=result.status.value,
                amount_requested=result.amount_requested,
                amount_allocated=result.amount_allocated,
                quantity_requested=result.quantity_requested,
                quantity_allocated=result.quantity_allocated,
                score=result.score,
                rank=result.rank,
                reason=result.reason,
                constraint_violations=[v.value for v in result.constraint_violations],
                explanation=(
                    result.explanation.model_dump(mode="json")
                    if result.explanation is not None else None
                ),
                created_at=now,
            )
            self._session.add(row)
            rows.append(row)
        await self._session.flush()
        return rows

    async def get_by_run(self, run_id: UUID) -> list[AllocationResultRow]:
        """Results of a run in rank order."""
        result = await self._session.execute(
            select(AllocationResultRow)
            .where(AllocationResultRow.run_id == run_id)
            .order_by(AllocationResultRow.rank)
        )
        return list(result.scalars().all())
