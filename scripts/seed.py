"""Seed script — load a demo allocation cycle into the Allocentra database.

Creates:
1. An ACTIVE demo cycle (FY2027 Operations Demo)
2. A MONEY budget pool and two resource pools (vehicles, personnel)
3. Eight requests across categories, one with a dependency

Idempotent: safe to run multiple times — skips if the demo cycle already exists.

Usage:
    python -m scripts.seed          # against DATABASE_URL from .env
    pytest tests/scripts/test_seed.py  # against aiosqlite in-memory
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession
from uuid_extensions import uuid7

from allocentra.db.tables import CycleRow
from allocentra.models.common import CycleStatus, Impact, ResourceCategory, Risk
from allocentra.models.cycle import AllocationRequest, BudgetPool, ResourcePool
from allocentra.repositories.cycles import CycleRepository, PoolRepository
from allocentra.repositories.requests import RequestRepository

DEMO_CYCLE_NAME = "FY2027 Operations Demo"

DEMO_BUDGET_TOTAL = Decimal("500000")

DEMO_RESOURCE_POOLS = [
    {"category": ResourceCategory.VEHICLES, "resource_type": "Forklift",
     "total_quantity": Decimal("3"), "unit": "COUNT"},
    {"category": ResourceCategory.PERSONNEL, "resource_type": "Field Technician",
     "total_quantity": Decimal("5"), "unit": "FTE"},
]

# (title, category, amount/quantity, minimum viable, priority, days to deadline,
#  impact, risk, strategic, resource_type)
DEMO_REQUESTS = [
    ("Warehouse Fire Suppression Upgrade", ResourceCategory.MONEY,
     Decimal("180000"), Decimal("150000"), 5, 14, Impact.CRITICAL, Risk.SAFETY, 4, None),
    ("Fleet Telematics Rollout", ResourceCategory.MONEY,
     Decimal("120000"), Decimal("60000"), 4, 60, Impact.HIGH, Risk.OPERATIONAL, 5, None),
    ("Compliance Audit Remediation", ResourceCategory.MONEY,
     Decimal("90000"), None, 4, 30, Impact.HIGH, Risk.LEGAL, 3, None),
    ("Office Refurbishment", ResourceCategory.MONEY,
     Decimal("150000"), Decimal("50000"), 2, 150, Impact.LOW, Risk.LOW, 2, None),
    ("Staff Leadership Training", ResourceCategory.MONEY,
     Decimal("40000"), Decimal("20000"), 3, 90, Impact.MEDIUM, Risk.LOW, 4, None),
    ("Loading Dock Forklifts", ResourceCategory.VEHICLES,
     Decimal("2"), Decimal("1"), 4, 21, Impact.HIGH, Risk.OPERATIONAL, 3, "Forklift"),
    ("Cold Storage Forklift", ResourceCategory.VEHICLES,
     Decimal("2"), Decimal("2"), 3, 45, Impact.MEDIUM, Risk.SAFETY, 2, "Forklift"),
    ("Telematics Installation Crew", ResourceCategory.PERSONNEL,
     Decimal("3"), Decimal("2"), 3, 75, Impact.MEDIUM, Risk.LOW, 3, "Field Technician"),
]

# The installation crew only makes sense once telematics is funded
DEMO_DEPENDENCIES = {"Telematics Installation Crew": "Fleet Telematics Rollout"}


async def seed_cycle(session: AsyncSession) -> CycleRow:
    """Create the demo cycle with its pools."""
    cycle_repo = CycleRepository(session)
    pool_repo = PoolRepository(session)

    today = date.today()
    row = await cycle_repo.create(
        cycle_id=uuid7(),
        name=DEMO_CYCLE_NAME,
        description="Sample cycle for local development and demos.",
        status=CycleStatus.ACTIVE.value,
        start_date=today,
        end_date=today + timedelta(days=365),
        created_by="seed",
    )
    await pool_repo.add_budget_pool(
        cycle_id=row.cycle_id,
        pool=BudgetPool(category=ResourceCategory.MONEY, total_amount=DEMO_BUDGET_TOTAL),
    )
    for pool_fields in DEMO_RESOURCE_POOLS:
        await pool_repo.add_resource_pool(cycle_id=row.cycle_id, pool=ResourcePool(**pool_fields))
    return row


async def seed_requests(session: AsyncSession, cycle: CycleRow) -> list[AllocationRequest]:
    """Create the demo requests in presentation order."""
    repo = RequestRepository(session)
    today = date.today()
    by_title: dict[str, AllocationRequest] = {}

    for (title, category, asked, minimum, priority, days, impact, risk,
         strategic, resource_type) in DEMO_REQUESTS:
        depends_on = DEMO_DEPENDENCIES.get(title)
        fields = {
            "cycle_id": cycle.cycle_id,
            "title": title,
            "category": category,
            "priority": priority,
            "urgency_deadline": today + timedelta(days=days),
            "impact": impact,
            "risk": risk,
            "strategic": strategic,
            "dependencies": [by_title[depends_on].request_id] if depends_on else [],
            "created_by": "seed",
        }
        if category == ResourceCategory.MONEY:
            fields.update(amount_requested=asked, minimum_viable_allocation=minimum)
        else:
            fields.update(
                resource_type=resource_type,
                quantity_requested=asked,
                minimum_viable_quantity=minimum,
            )
        request = AllocationRequest(**fields)
        await repo.create(request=request, cycle_id=cycle.cycle_id)
        by_title[title] = request

    return list(by_title.values())


async def seed_demo(session: AsyncSession) -> dict:
    """Idempotent demo seed: cycle + pools + requests.

    Returns dict with keys: created (bool), cycle_id, request_count.
    If the demo cycle already exists, returns created=False and skips.
    """
    existing = await CycleRepository(session).get_by_name(DEMO_CYCLE_NAME)
    if existing is not None:
        return {"created": False, "cycle_id": existing.cycle_id, "request_count": 0}

    cycle = await seed_cycle(session)
    requests = await seed_requests(session, cycle)

    return {
        "created": True,
        "cycle_id": cycle.cycle_id,
        "request_count": len(requests),
    }


async def _run_seed() -> None:
    """Run the seed against the real database (idempotent)."""
    from allocentra.db.session import async_session_factory

    async with async_session_factory() as session:
        result = await seed_demo(session)

        if not result["created"]:
            print(f"Demo cycle already seeded ({DEMO_CYCLE_NAME!r}). Skipping.")
            print(f"  Cycle: {result['cycle_id']}")
            return

        await session.commit()

        print("Seed complete.")
        print(f"  Cycle:     {result['cycle_id']}")
        print(f"  Budget:    {DEMO_BUDGET_TOTAL} USD")
        print(f"  Requests:  {result['request_count']}")


if __name__ == "__main__":
    asyncio.run(_run_seed())
