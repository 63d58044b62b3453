"""Request repository — create, filtered paging, score/status write-back."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from allocentra.db.tables import RequestRow
from allocentra.models.cycle import AllocationRequest


def request_from_row(row: RequestRow) -> AllocationRequest:
    return AllocationRequest(
        request_id=row.request_id,
        cycle_id=row.cycle_id,
        title=row.title,
        description=row.description or "",
        justification=row.justification or "",
        category=row.category,
        amount_requested=row.amount_requested,
        minimum_viable_allocation=row.minimum_viable_allocation,
        resource_type=row.resource_type,
        quantity_requested=row.quantity_requested,
        minimum_viable_quantity=row.minimum_viable_quantity,
        priority=row.priority,
        urgency_deadline=row.urgency_deadline,
        impact=row.impact,
        risk=row.risk,
        strategic=row.strategic,
        dependencies=[UUID(d) for d in row.dependencies or []],
        score=row.score,
        status=row.status,
        created_by=row.created_by,
        start_date=row.start_date,
        end_date=row.end_date,
        created_at=row.created_at,
    )


class RequestRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, request: AllocationRequest, cycle_id: UUID) -> RequestRow:
        row = RequestRow(
            request_id=request.request_id,
            cycle_id=cycle_id,
            title=request.title,
            description=request.description,
            justification=request.justification,
            category=request.category.value,
            amount_requested=request.amount_requested,
            minimum_viable_allocation=request.minimum_viable_allocation,
            resource_type=request.resource_type,
            quantity_requested=request.quantity_requested,
            minimum_viable_quantity=request.minimum_viable_quantity,
            priority=request.priority,
            urgency_deadline=request.urgency_deadline,
            impact=request.impact.value,
            risk=request.risk.value,
            strategic=request.strategic,
            dependencies=[str(d) for d in request.dependencies],
            status=request.status.value,
            score=request.score,
            created_by=request.created_by,
            start_date=request.start_date,
            end_date=request.end_date,
            created_at=request.created_at,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, request_id: UUID) -> RequestRow | None:
        return await self._session.get(RequestRow, request_id)

    async def list_page(self, *, cycle_id: UUID | None = None,
                        status: str | None = None, category: str | None = None,
                        page: int = 0, size: int = 20) -> tuple[list[RequestRow], int]:
        """Return one page of requests and the total matching count."""
        filters = []
        if cycle_id is not None:
            filters.append(RequestRow.cycle_id == cycle_id)
        if status is not None:
            filters.append(RequestRow.status == status)
        if category is not None:
            filters.append(RequestRow.category == category)

        total = await self._session.scalar(
            select(func.count()).select_from(RequestRow).where(*filters)
        )
        result = await self._session.execute(
            select(RequestRow)
            .where(*filters)
            .order_by(RequestRow.created_at, RequestRow.request_id)
            .offset(page * size)
            .limit(size)
        )
        return list(result.scalars().all()), total or 0

    async def apply_decisions(self, decisions: dict[UUID, tuple[float, str]]) -> int:
        """Write (score, status) back per request. Returns rows updated."""
        updated = 0
        for request_id, (score, status) in decisions.items():
            row = await self.get(request_id)
            if row is None:
                continue
            row.score = score
            row.status = status
            updated += 1
        await self._session.flush()
        return updated
