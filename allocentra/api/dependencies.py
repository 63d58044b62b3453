"""FastAPI dependency injection factories for repositories and the engine.

Each repository factory takes AsyncSession via Depends(get_async_session)
and returns a repository instance. API endpoints use these via Depends().
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from allocentra.config.settings import Settings, get_settings
from allocentra.db.session import get_async_session
from allocentra.engine.allocation import AllocationEngine
from allocentra.repositories.cycles import CycleRepository, PoolRepository
from allocentra.repositories.requests import RequestRepository
from allocentra.repositories.runs import AllocationResultRepository, RunRepository

# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


async def get_cycle_repo(
    session: AsyncSession = Depends(get_async_session),
) -> CycleRepository:
    return CycleRepository(session)


async def get_pool_repo(
    session: AsyncSession = Depends(get_async_session),
) -> PoolRepository:
    return PoolRepository(session)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


async def get_request_repo(
    session: AsyncSession = Depends(get_async_session),
) -> RequestRepository:
    return RequestRepository(session)


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


async def get_run_repo(
    session: AsyncSession = Depends(get_async_session),
) -> RunRepository:
    return RunRepository(session)


async def get_result_repo(
    session: AsyncSession = Depends(get_async_session),
) -> AllocationResultRepository:
    return AllocationResultRepository(session)


def get_allocation_engine(
    settings: Settings = Depends(get_settings),
) -> AllocationEngine:
    return AllocationEngine.from_settings(settings)
