"""FastAPI allocation request endpoints.

POST /v1/requests                 — create a request in a cycle
GET  /v1/requests                 — paginated list (cycle/status/category filters)
GET  /v1/requests/{request_id}    — single request
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, ValidationError

from allocentra.api.dependencies import get_cycle_repo, get_request_repo
from allocentra.db.tables import RequestRow
from allocentra.models.common import Impact, RequestStatus, ResourceCategory, Risk
from allocentra.models.cycle import AllocationRequest
from allocentra.repositories.cycles import CycleRepository
from allocentra.repositories.requests import RequestRepository

router = APIRouter(prefix="/v1", tags=["requests"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class CreateRequestRequest(BaseModel):
    cycle_id: UUID
    title: str = Field(..., min_length=1)
    description: str = ""
    justification: str = ""
    category: ResourceCategory
    amount_requested: Decimal | None = Field(default=None, ge=0)
    minimum_viable_allocation: Decimal | None = Field(default=None, ge=0)
    resource_type: str | None = None
    quantity_requested: Decimal | None = Field(default=None, ge=0)
    minimum_viable_quantity: Decimal | None = Field(default=None, ge=0)
    priority: int = Field(default=3, ge=1, le=5)
    urgency_deadline: date
    impact: Impact = Impact.MEDIUM
    risk: Risk = Risk.LOW
    strategic: int = Field(default=3, ge=1, le=5)
    dependencies: list[UUID] = Field(default_factory=list)
    created_by: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class RequestResponse(BaseModel):
    request_id: str
    cycle_id: str
    title: str
    description: str
    category: str
    amount_requested: float | None = None
    minimum_viable_allocation: float | None = None
    resource_type: str | None = None
    quantity_requested: float | None = None
    minimum_viable_quantity: float | None = None
    priority: int
    urgency_deadline: date
    impact: str
    risk: str
    strategic: int
    dependencies: list[str]
    status: str
    score: float | None = None


class RequestPageResponse(BaseModel):
    items: list[RequestResponse]
    total: int
    page: int
    size: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _optional_float(value) -> float | None:
    return float(value) if value is not None else None


def _to_response(row: RequestRow) -> RequestResponse:
    return RequestResponse(
        request_id=str(row.request_id),
        cycle_id=str(row.cycle_id),
        title=row.title,
        description=row.description or "",
        category=row.category,
        amount_requested=_optional_float(row.amount_requested),
        minimum_viable_allocation=_optional_float(row.minimum_viable_allocation),
        resource_type=row.resource_type,
        quantity_requested=_optional_float(row.quantity_requested),
        minimum_viable_quantity=_optional_float(row.minimum_viable_quantity),
        priority=row.priority,
        urgency_deadline=row.urgency_deadline,
        impact=row.impact,
        risk=row.risk,
        strategic=row.strategic,
        dependencies=[str(d) for d in row.dependencies or []],
        status=row.status,
        score=row.score,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/requests", status_code=201, response_model=RequestResponse)
async def create_request(
    body: CreateRequestRequest,
    cycle_repo: CycleRepository = Depends(get_cycle_repo),
    request_repo: RequestRepository = Depends(get_request_repo),
) -> RequestResponse:
    if await cycle_repo.get(body.cycle_id) is None:
        raise HTTPException(status_code=404, detail=f"Cycle {body.cycle_id} not found.")

    try:
        request = AllocationRequest.model_validate(body.model_dump())
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=[
                {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                for e in exc.errors()
            ],
        ) from exc

    row = await request_repo.create(request=request, cycle_id=body.cycle_id)
    return _to_response(row)


@router.get("/requests", response_model=RequestPageResponse)
async def list_requests(
    cycle_id: UUID | None = None,
    status: RequestStatus | None = None,
    category: ResourceCategory | None = None,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=20, ge=1, le=200),
    request_repo: RequestRepository = Depends(get_request_repo),
) -> RequestPageResponse:
    rows, total = await request_repo.list_page(
        cycle_id=cycle_id,
        status=status.value if status else None,
        category=category.value if category else None,
        page=page,
        size=size,
    )
    return RequestPageResponse(
        items=[_to_response(r) for r in rows],
        total=total,
        page=page,
        size=size,
    )


@router.get("/requests/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: UUID,
    request_repo: RequestRepository = Depends(get_request_repo),
) -> RequestResponse:
    row = await request_repo.get(request_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Request {request_id} not found.")
    return _to_response(row)
