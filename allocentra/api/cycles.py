"""FastAPI cycle endpoints.

POST /v1/cycles              — create a cycle with its pools
GET  /v1/cycles              — list cycles (optional status filter)
GET  /v1/cycles/{cycle_id}   — cycle with pools and request count
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from allocentra.api.dependencies import get_cycle_repo, get_pool_repo, get_request_repo
from allocentra.db.tables import CycleRow
from allocentra.models.common import CycleStatus, new_uuid7
from allocentra.models.cycle import BudgetPool, ResourcePool
from allocentra.repositories.cycles import CycleRepository, PoolRepository
from allocentra.repositories.requests import RequestRepository

router = APIRouter(prefix="/v1", tags=["cycles"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class CreateCycleRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    status: CycleStatus = CycleStatus.DRAFT
    start_date: date | None = None
    end_date: date | None = None
    allow_partial_allocations: bool = True
    created_by: str | None = None
    budget_pools: list[BudgetPool] = Field(default_factory=list)
    resource_pools: list[ResourcePool] = Field(default_factory=list)


class BudgetPoolResponse(BaseModel):
    pool_id: str
    category: str
    total_amount: float
    allocated_amount: float
    currency: str


class ResourcePoolResponse(BaseModel):
    pool_id: str
    category: str
    resource_type: str
    total_quantity: float
    allocated_quantity: float
    unit: str


class CycleResponse(BaseModel):
    cycle_id: str
    name: str
    description: str
    status: str
    start_date: date | None = None
    end_date: date | None = None
    allow_partial_allocations: bool
    budget_pools: list[BudgetPoolResponse] = []
    resource_pools: list[ResourcePoolResponse] = []
    request_count: int = 0


class CycleListResponse(BaseModel):
    items: list[CycleResponse]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _to_response(
    row: CycleRow, pool_repo: PoolRepository, request_repo: RequestRepository,
) -> CycleResponse:
    budget_rows = await pool_repo.budget_pools(row.cycle_id)
    resource_rows = await pool_repo.resource_pools(row.cycle_id)
    _, request_count = await request_repo.list_page(cycle_id=row.cycle_id, size=1)
    return CycleResponse(
        cycle_id=str(row.cycle_id),
        name=row.name,
        description=row.description or "",
        status=row.status,
        start_date=row.start_date,
        end_date=row.end_date,
        allow_partial_allocations=row.allow_partial_allocations,
        budget_pools=[
            BudgetPoolResponse(
                pool_id=str(p.pool_id), category=p.category,
                total_amount=float(p.total_amount),
                allocated_amount=float(p.allocated_amount),
                currency=p.currency,
            )
            for p in budget_rows
        ],
        resource_pools=[
            ResourcePoolResponse(
                pool_id=str(p.pool_id), category=p.category,
                resource_type=p.resource_type,
                total_quantity=float(p.total_quantity),
                allocated_quantity=float(p.allocated_quantity),
                unit=p.unit,
            )
            for p in resource_rows
        ],
        request_count=request_count,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/cycles", status_code=201, response_model=CycleResponse)
async def create_cycle(
    body: CreateCycleRequest,
    cycle_repo: CycleRepository = Depends(get_cycle_repo),
    pool_repo: PoolRepository = Depends(get_pool_repo),
    request_repo: RequestRepository = Depends(get_request_repo),
) -> CycleResponse:
    row = await cycle_repo.create(
        cycle_id=new_uuid7(),
        name=body.name,
        description=body.description,
        status=body.status.value,
        start_date=body.start_date,
        end_date=body.end_date,
        allow_partial_allocations=body.allow_partial_allocations,
        created_by=body.created_by,
    )
    for pool in body.budget_pools:
        await pool_repo.add_budget_pool(cycle_id=row.cycle_id, pool=pool)
    for pool in body.resource_pools:
        await pool_repo.add_resource_pool(cycle_id=row.cycle_id, pool=pool)
    return await _to_response(row, pool_repo, request_repo)


@router.get("/cycles", response_model=CycleListResponse)
async def list_cycles(
    status: CycleStatus | None = None,
    cycle_repo: CycleRepository = Depends(get_cycle_repo),
    pool_repo: PoolRepository = Depends(get_pool_repo),
    request_repo: RequestRepository = Depends(get_request_repo),
) -> CycleListResponse:
    rows = await cycle_repo.list_all(status=status.value if status else None)
    return CycleListResponse(
        items=[await _to_response(r, pool_repo, request_repo) for r in rows],
    )


@router.get("/cycles/{cycle_id}", response_model=CycleResponse)
async def get_cycle(
    cycle_id: UUID,
    cycle_repo: CycleRepository = Depends(get_cycle_repo),
    pool_repo: PoolRepository = Depends(get_pool_repo),
    request_repo: RequestRepository = Depends(get_request_repo),
) -> CycleResponse:
    row = await cycle_repo.get(cycle_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Cycle {cycle_id} not found.")
    return await _to_response(row, pool_repo, request_repo)
