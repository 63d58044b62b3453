"""Builders for engine tests — cycles, pools, requests and runs."""

from datetime import date, timedelta
from decimal import Decimal

from allocentra.models.common import Impact, ResourceCategory, Risk
from allocentra.models.cycle import (
    AllocationCycle,
    AllocationRequest,
    BudgetPool,
    ResourcePool,
)
from allocentra.models.run import AllocationRun

EVALUATION_DATE = date(2026, 1, 15)


def money_request(title: str, amount: str, minimum: str | None = None, **overrides) -> AllocationRequest:
    fields = {
        "title": title,
        "category": ResourceCategory.MONEY,
        "amount_requested": Decimal(amount),
        "minimum_viable_allocation": Decimal(minimum) if minimum is not None else None,
        "priority": 3,
        "urgency_deadline": EVALUATION_DATE + timedelta(days=60),
        "impact": Impact.MEDIUM,
        "risk": Risk.LOW,
        "strategic": 3,
    }
    fields.update(overrides)
    return AllocationRequest(**fields)


def resource_request(title: str, category: ResourceCategory, resource_type: str,
                     quantity: str, minimum: str | None = None, **overrides) -> AllocationRequest:
    fields = {
        "title": title,
        "category": category,
        "resource_type": resource_type,
        "quantity_requested": Decimal(quantity),
        "minimum_viable_quantity": Decimal(minimum) if minimum is not None else None,
        "priority": 3,
        "urgency_deadline": EVALUATION_DATE + timedelta(days=60),
        "impact": Impact.MEDIUM,
        "risk": Risk.LOW,
        "strategic": 3,
    }
    fields.update(overrides)
    return AllocationRequest(**fields)


def make_cycle(requests, budget: str | None = None, resources=()) -> AllocationCycle:
    return AllocationCycle(
        name="Test cycle",
        budget_pools=[BudgetPool(total_amount=Decimal(budget))] if budget is not None else [],
        resource_pools=[
            ResourcePool(category=category, resource_type=rtype, total_quantity=Decimal(qty))
            for category, rtype, qty in resources
        ],
        requests=list(requests),
    )


def make_run(cycle: AllocationCycle, allow_partial: bool = True) -> AllocationRun:
    return AllocationRun(
        cycle_id=cycle.cycle_id,
        allow_partial_allocations=allow_partial,
        evaluation_date=EVALUATION_DATE,
    )
