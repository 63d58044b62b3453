"""Cycle models — AllocationCycle, BudgetPool, ResourcePool, AllocationRequest.

A cycle is the snapshot the allocation engine works on: its pools bound what
can be granted, its requests compete for them.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import Field, model_validator

from allocentra.models.common import (
    AllocentraBase,
    CycleStatus,
    Impact,
    RequestStatus,
    ResourceCategory,
    Risk,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)


class BudgetPool(AllocentraBase):
    """Monetary capacity for one category."""

    pool_id: UUIDv7 = Field(default_factory=new_uuid7)
    category: ResourceCategory = ResourceCategory.MONEY
    total_amount: Decimal = Field(..., ge=0)
    allocated_amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class ResourcePool(AllocentraBase):
    """Non-monetary capacity keyed by (category, resource_type)."""

    pool_id: UUIDv7 = Field(default_factory=new_uuid7)
    category: ResourceCategory
    resource_type: str = Field(..., min_length=1)
    total_quantity: Decimal = Field(..., ge=0)
    allocated_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    unit: str = "COUNT"
    available_hours: Decimal | None = None
    exclusive: bool = False


class AllocationRequest(AllocentraBase):
    """A single ask for money or a resource quantity within a cycle.

    MONEY requests use ``amount_requested`` / ``minimum_viable_allocation``;
    every other category uses ``resource_type`` with ``quantity_requested`` /
    ``minimum_viable_quantity``.
    """

    request_id: UUIDv7 = Field(default_factory=new_uuid7)
    cycle_id: UUID | None = None
    title: str = Field(..., min_length=1)
    description: str = ""
    justification: str = ""
    category: ResourceCategory

    amount_requested: Decimal | None = Field(default=None, ge=0)
    minimum_viable_allocation: Decimal | None = Field(default=None, ge=0)
    resource_type: str | None = None
    quantity_requested: Decimal | None = Field(default=None, ge=0)
    minimum_viable_quantity: Decimal | None = Field(default=None, ge=0)

    priority: int = 3
    urgency_deadline: date
    impact: Impact = Impact.MEDIUM
    risk: Risk = Risk.LOW
    strategic: int = 3
    dependencies: list[UUID] = Field(default_factory=list)

    score: float | None = None
    status: RequestStatus = RequestStatus.PENDING

    created_by: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    created_at: UTCTimestamp = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _validate_category_fields(self) -> "AllocationRequest":
        if self.category == ResourceCategory.MONEY:
            if self.amount_requested is None:
                raise ValueError("MONEY requests require amount_requested.")
        else:
            if not self.resource_type:
                raise ValueError(
                    f"{self.category} requests require resource_type."
                )
            if self.quantity_requested is None:
                raise ValueError(
                    f"{self.category} requests require quantity_requested."
                )
        return self


class AllocationCycle(AllocentraBase):
    """A bounded allocation period with its pools and competing requests."""

    cycle_id: UUIDv7 = Field(default_factory=new_uuid7)
    name: str = Field(..., min_length=1)
    description: str = ""
    status: CycleStatus = CycleStatus.DRAFT
    start_date: date | None = None
    end_date: date | None = None
    budget_pools: list[BudgetPool] = Field(default_factory=list)
    resource_pools: list[ResourcePool] = Field(default_factory=list)
    requests: list[AllocationRequest] = Field(default_factory=list)
    allow_partial_allocations: bool = True
    created_by: str | None = None
    created_at: UTCTimestamp = Field(default_factory=utc_now)
