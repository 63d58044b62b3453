"""SQLAlchemy ORM table models for Allocentra.

All tables defined in a single file. Uses FlexJSON (JSONB on Postgres,
JSON on SQLite) for lists and nested explanation payloads.

Categories:
- OPERATIONAL: Cycle, BudgetPool, ResourcePool, Request, AllocationRun
               (status updates allowed)
- IMMUTABLE: AllocationResult (written once when a run completes)
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from allocentra.db.session import Base

# JSONB on PostgreSQL, plain JSON on SQLite (for tests)
FlexJSON = JSONB().with_variant(JSON(), "sqlite")

# Money and quantities
Amount = Numeric(19, 2, asdecimal=True)


# ---------------------------------------------------------------------------
# Cycles & pools — OPERATIONAL
# ---------------------------------------------------------------------------


class CycleRow(Base):
    __tablename__ = "allocation_cycles"

    cycle_id: Mapped[UUID] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    allow_partial_allocations: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class BudgetPoolRow(Base):
    """Monetary capacity for one category. Totals are never decremented by runs."""

    __tablename__ = "budget_pools"

    pool_id: Mapped[UUID] = mapped_column(primary_key=True)
    cycle_id: Mapped[UUID] = mapped_column(
        ForeignKey("allocation_cycles.cycle_id"), nullable=False, index=True,
    )
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    allocated_amount: Mapped[Decimal] = mapped_column(Amount, default=Decimal("0"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)


class ResourcePoolRow(Base):
    """Non-monetary capacity keyed by (category, resource_type)."""

    __tablename__ = "resource_pools"

    pool_id: Mapped[UUID] = mapped_column(primary_key=True)
    cycle_id: Mapped[UUID] = mapped_column(
        ForeignKey("allocation_cycles.cycle_id"), nullable=False, index=True,
    )
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(255), nullable=False)
    total_quantity: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    allocated_quantity: Mapped[Decimal] = mapped_column(Amount, default=Decimal("0"), nullable=False)
    unit: Mapped[str] = mapped_column(String(50), default="COUNT", nullable=False)
    available_hours: Mapped[Decimal | None] = mapped_column(Amount, nullable=True)
    exclusive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


# ---------------------------------------------------------------------------
# Requests — OPERATIONAL (score/status rewritten by completed runs)
# ---------------------------------------------------------------------------


class RequestRow(Base):
    __tablename__ = "requests"

    request_id: Mapped[UUID] = mapped_column(primary_key=True)
    cycle_id: Mapped[UUID] = mapped_column(
        ForeignKey("allocation_cycles.cycle_id"), nullable=False, index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    justification: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_requested: Mapped[Decimal | None] = mapped_column(Amount, nullable=True)
    minimum_viable_allocation: Mapped[Decimal | None] = mapped_column(Amount, nullable=True)
    resource_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    quantity_requested: Mapped[Decimal | None] = mapped_column(Amount, nullable=True)
    minimum_viable_quantity: Mapped[Decimal | None] = mapped_column(Amount, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    urgency_deadline: Mapped[date] = mapped_column(Date, nullable=False)
    impact: Mapped[str] = mapped_column(String(20), nullable=False)
    risk: Mapped[str] = mapped_column(String(20), nullable=False)
    strategic: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    dependencies = mapped_column(FlexJSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Runs — OPERATIONAL until terminal
# ---------------------------------------------------------------------------


class AllocationRunRow(Base):
    __tablename__ = "allocation_runs"

    run_id: Mapped[UUID] = mapped_column(primary_key=True)
    cycle_id: Mapped[UUID] = mapped_column(
        ForeignKey("allocation_cycles.cycle_id"), nullable=False, index=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    engine_version: Mapped[str] = mapped_column(String(50), nullable=False)
    allow_partial_allocations: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    evaluation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    total_requests: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    partial_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deferred_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    denied_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_allocated: Mapped[Decimal | None] = mapped_column(Amount, nullable=True)
    budget_utilization: Mapped[float | None] = mapped_column(Float, nullable=True)

    execution_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    progress: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    current_phase: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class AllocationResultRow(Base):
    """Immutable per-request decision of one run, with its explanation."""

    __tablename__ = "allocation_results"

    result_id: Mapped[UUID] = mapped_column(primary_key=True)
    run_id: Mapped[UUID] = mapped_column(
        ForeignKey("allocation_runs.run_id"), nullable=False, index=True,
    )
    request_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    request_title: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_requested: Mapped[Decimal | None] = mapped_column(Amount, nullable=True)
    amount_allocated: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    quantity_requested: Mapped[Decimal | None] = mapped_column(Amount, nullable=True)
    quantity_allocated: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(1000), nullable=False)
    constraint_violations = mapped_column(FlexJSON, nullable=False)
    explanation = mapped_column(FlexJSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
