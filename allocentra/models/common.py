"""Shared types, enums, and base models used across Allocentra domain models."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


# --- Reusable annotated types ---

UUIDv7 = Annotated[UUID, Field(description="Time-sortable UUID v7.")]
UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]


# --- Shared enums ---


class ResourceCategory(StrEnum):
    """Categories for budget and resource allocation."""

    MONEY = "MONEY"
    PERSONNEL = "PERSONNEL"
    VEHICLES = "VEHICLES"
    EQUIPMENT = "EQUIPMENT"
    HOURS = "HOURS"
    TRAINING = "TRAINING"
    TRAVEL = "TRAVEL"


class Impact(StrEnum):
    """Impact label of a request. Numeric weights live in the scoring tables."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Risk(StrEnum):
    """Risk label of a request. Numeric weights live in the scoring tables."""

    LOW = "LOW"
    OPERATIONAL = "OPERATIONAL"
    SAFETY = "SAFETY"
    LEGAL = "LEGAL"


class RequestStatus(StrEnum):
    """Outcome of a request in a run (PENDING until allocated)."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PARTIAL = "PARTIAL"
    DEFERRED = "DEFERRED"
    DENIED = "DENIED"


class CycleStatus(StrEnum):
    """Lifecycle of an allocation cycle."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"


class RunStatus(StrEnum):
    """Allocation run state machine: PENDING → RUNNING → COMPLETED/FAILED."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_RUN_STATUSES: frozenset[RunStatus] = frozenset({
    RunStatus.COMPLETED,
    RunStatus.FAILED,
})


class ConstraintViolation(StrEnum):
    """Machine-readable tags explaining why a request was not fully funded."""

    DEPENDENCY_NOT_MET = "DEPENDENCY_NOT_MET"
    BUDGET_LIMITED = "BUDGET_LIMITED"
    BUDGET_EXHAUSTED = "BUDGET_EXHAUSTED"
    RESOURCE_LIMITED = "RESOURCE_LIMITED"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    BELOW_MINIMUM_VIABLE = "BELOW_MINIMUM_VIABLE"


# --- Base model ---


class AllocentraBase(BaseModel):
    """Base model with common configuration for all Allocentra Pydantic models."""

    model_config = {
        "populate_by_name": True,
        "ser_json_timedelta": "iso8601",
        "protected_namespaces": (),
    }
