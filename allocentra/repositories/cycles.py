"""Cycle and pool repositories, plus the snapshot loader used by runs."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from allocentra.db.tables import BudgetPoolRow, CycleRow, RequestRow, ResourcePoolRow
from allocentra.models.common import utc_now
from allocentra.models.cycle import AllocationCycle, BudgetPool, ResourcePool
from allocentra.repositories.requests import request_from_row


class CycleRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, cycle_id: UUID, name: str, status: str,
                     description: str = "", start_date=None, end_date=None,
                     allow_partial_allocations: bool = True,
                     created_by: str | None = None) -> CycleRow:
        now = utc_now()
        row = CycleRow(
            cycle_id=cycle_id, name=name, description=description,
            status=status, start_date=start_date, end_date=end_date,
            allow_partial_allocations=allow_partial_allocations,
            created_by=created_by, created_at=now, updated_at=now,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, cycle_id: UUID) -> CycleRow | None:
        return await self._session.get(CycleRow, cycle_id)

    async def get_by_name(self, name: str) -> CycleRow | None:
        result = await self._session.execute(
            select(CycleRow).where(CycleRow.name == name)
        )
        return result.scalars().first()

    async def list_all(self, status: str | None = None) -> list[CycleRow]:
        stmt = select(CycleRow).order_by(CycleRow.created_at.desc())
        if status is not None:
            stmt = stmt.where(CycleRow.status == status)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def update_status(self, cycle_id: UUID, status: str) -> CycleRow | None:
        row = await self.get(cycle_id)
        if row is not None:
            row.status = status
            row.updated_at = utc_now()
            await self._session.flush()
        return row

    async def load_snapshot(self, cycle_id: UUID) -> AllocationCycle | None:
        """Assemble the domain cycle with pools and requests in presentation order."""
        row = await self.get(cycle_id)
        if row is None:
            return None

        pools = PoolRepository(self._session)
        budget_rows = await pools.budget_pools(cycle_id)
        resource_rows = await pools.resource_pools(cycle_id)

        result = await self._session.execute(
            select(RequestRow)
            .where(RequestRow.cycle_id == cycle_id)
            .order_by(RequestRow.created_at, RequestRow.request_id)
        )
        request_rows = list(result.scalars().all())

        return AllocationCycle(
            cycle_id=row.cycle_id,
            name=row.name,
            description=row.description or "",
            status=row.status,
            start_date=row.start_date,
            end_date=row.end_date,
            allow_partial_allocations=row.allow_partial_allocations,
            created_by=row.created_by,
            created_at=row.created_at,
            budget_pools=[
                BudgetPool(
                    pool_id=p.pool_id, category=p.category,
                    total_amount=p.total_amount,
                    allocated_amount=p.allocated_amount,
                    currency=p.currency,
                )
                for p in budget_rows
            ],
            resource_pools=[
                ResourcePool(
                    pool_id=p.pool_id, category=p.category,
                    resource_type=p.resource_type,
                    total_quantity=p.total_quantity,
                    allocated_quantity=p.allocated_quantity,
                    unit=p.unit, available_hours=p.available_hours,
                    exclusive=p.exclusive,
                )
                for p in resource_rows
            ],
            requests=[request_from_row(r) for r in request_rows],
        )


class PoolRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_budget_pool(self, *, cycle_id: UUID, pool: BudgetPool) -> BudgetPoolRow:
        row = BudgetPoolRow(
            pool_id=pool.pool_id, cycle_id=cycle_id,
            category=pool.category.value,
            total_amount=pool.total_amount,
            allocated_amount=pool.allocated_amount,
            currency=pool.currency,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def add_resource_pool(self, *, cycle_id: UUID, pool: ResourcePool) -> ResourcePoolRow:
        row = ResourcePoolRow(
            pool_id=pool.pool_id, cycle_id=cycle_id,
            category=pool.category.value,
            resource_type=pool.resource_type,
            total_quantity=pool.total_quantity,
            allocated_quantity=pool.allocated_quantity,
            unit=pool.unit, available_hours=pool.available_hours,
            exclusive=pool.exclusive,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def budget_pools(self, cycle_id: UUID) -> list[BudgetPoolRow]:
        result = await self._session.execute(
            select(BudgetPoolRow).where(BudgetPoolRow.cycle_id == cycle_id)
        )
        return list(result.scalars().all())

    async def resource_pools(self, cycle_id: UUID) -> list[ResourcePoolRow]:
        result = await self._session.execute(
            select(ResourcePoolRow).where(ResourcePoolRow.cycle_id == cycle_id)
        )
        return list(result.scalars().all())
