"""Initial schema — cycles, pools, requests, runs, results.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

AMOUNT = sa.Numeric(19, 2)


def upgrade() -> None:
    # -- Cycles & pools --
    op.create_table(
        "allocation_cycles",
        sa.Column("cycle_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, server_default=""),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("start_date", sa.Date, nullable=True),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("allow_partial_allocations", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_allocation_cycles_status", "allocation_cycles", ["status"])

    op.create_table(
        "budget_pools",
        sa.Column("pool_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("cycle_id", UUID(as_uuid=True),
                  sa.ForeignKey("allocation_cycles.cycle_id"), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("total_amount", AMOUNT, nullable=False),
        sa.Column("allocated_amount", AMOUNT, server_default="0", nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
    )
    op.create_index("ix_budget_pools_cycle_id", "budget_pools", ["cycle_id"])

    op.create_table(
        "resource_pools",
        sa.Column("pool_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("cycle_id", UUID(as_uuid=True),
                  sa.ForeignKey("allocation_cycles.cycle_id"), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("resource_type", sa.String(255), nullable=False),
        sa.Column("total_quantity", AMOUNT, nullable=False),
        sa.Column("allocated_quantity", AMOUNT, server_default="0", nullable=False),
        sa.Column("unit", sa.String(50), server_default="COUNT", nullable=False),
        sa.Column("available_hours", AMOUNT, nullable=True),
        sa.Column("exclusive", sa.Boolean, server_default=sa.false(), nullable=False),
    )
    op.create_index("ix_resource_pools_cycle_id", "resource_pools", ["cycle_id"])

    # -- Requests --
    op.create_table(
        "requests",
        sa.Column("request_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("cycle_id", UUID(as_uuid=True),
                  sa.ForeignKey("allocation_cycles.cycle_id"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, server_default=""),
        sa.Column("justification", sa.Text, server_default=""),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("amount_requested", AMOUNT, nullable=True),
        sa.Column("minimum_viable_allocation", AMOUNT, nullable=True),
        sa.Column("resource_type", sa.String(255), nullable=True),
        sa.Column("quantity_requested", AMOUNT, nullable=True),
        sa.Column("minimum_viable_quantity", AMOUNT, nullable=True),
        sa.Column("priority", sa.Integer, server_default="3", nullable=False),
        sa.Column("urgency_deadline", sa.Date, nullable=False),
        sa.Column("impact", sa.String(20), nullable=False),
        sa.Column("risk", sa.String(20), nullable=False),
        sa.Column("strategic", sa.Integer, server_default="3", nullable=False),
        sa.Column("dependencies", JSONB, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("score", sa.Float, nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("start_date", sa.Date, nullable=True),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_requests_cycle_id", "requests", ["cycle_id"])

    # -- Runs --
    op.create_table(
        "allocation_runs",
        sa.Column("run_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("cycle_id", UUID(as_uuid=True),
                  sa.ForeignKey("allocation_cycles.cycle_id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("engine_version", sa.String(50), nullable=False),
        sa.Column("allow_partial_allocations", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("evaluation_date", sa.Date, nullable=True),
        sa.Column("notes", sa.String(1000), nullable=True),
        sa.Column("total_requests", sa.Integer, nullable=True),
        sa.Column("approved_count", sa.Integer, nullable=True),
        sa.Column("partial_count", sa.Integer, nullable=True),
        sa.Column("deferred_count", sa.Integer, nullable=True),
        sa.Column("denied_count", sa.Integer, nullable=True),
        sa.Column("total_allocated", AMOUNT, nullable=True),
        sa.Column("budget_utilization", sa.Float, nullable=True),
        sa.Column("execution_time_ms", sa.Integer, nullable=True),
        sa.Column("progress", sa.Float, server_default="0", nullable=False),
        sa.Column("current_phase", sa.String(100), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_allocation_runs_cycle_id", "allocation_runs", ["cycle_id"])
    op.create_index("ix_allocation_runs_status", "allocation_runs", ["status"])
    op.create_index("ix_allocation_runs_created_at", "allocation_runs", ["created_at"])

    op.create_table(
        "allocation_results",
        sa.Column("result_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("run_id", UUID(as_uuid=True),
                  sa.ForeignKey("allocation_runs.run_id"), nullable=False),
        sa.Column("request_id", UUID(as_uuid=True), nullable=False),
        sa.Column("request_title", sa.String(500), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("resource_type", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("amount_requested", AMOUNT, nullable=True),
        sa.Column("amount_allocated", AMOUNT, nullable=False),
        sa.Column("quantity_requested", AMOUNT, nullable=True),
        sa.Column("quantity_allocated", AMOUNT, nullable=False),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column("rank", sa.Integer, nullable=False),
        sa.Column("reason", sa.String(1000), nullable=False),
        sa.Column("constraint_violations", JSONB, nullable=False),
        sa.Column("explanation", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_allocation_results_run_id", "allocation_results", ["run_id"])
    op.create_index("ix_allocation_results_request_id", "allocation_results", ["request_id"])


def downgrade() -> None:
    op.drop_table("allocation_results")
    op.drop_table("allocation_runs")
    op.drop_table("requests")
    op.drop_table("resource_pools")
    op.drop_table("budget_pools")
    op.drop_table("allocation_cycles")
