# backend/openbudget/routers/sync.py
from __future__ import annotations

import asyncio
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from openbudget.core.security import require_admin
from openbudget.db.session import get_db, get_sessionmaker
from openbudget.schemas.common import fail, meta_now, ok
from openbudget.services.fetcher import BudgetApiClient
from openbudget.services.sync import SyncOrchestrator, SyncRequest
from openbudget.services.sync_log import list_sync_results
from openbudget.services.sync_store import SyncStore

router = APIRouter(prefix="/api/sync", tags=["sync"], dependencies=[Depends(require_admin)])


def get_sync_store() -> SyncStore:
    return SyncStore(get_sessionmaker())


def get_client_factory() -> Callable[[], BudgetApiClient]:
    return BudgetApiClient


async def _run_sync(request: SyncRequest, store: SyncStore, client_factory) -> None:
    async with client_factory() as client:
        await SyncOrchestrator(store, client).run_in_background(request)


async def _run_retry(store: SyncStore, client_factory) -> None:
    async with client_factory() as client:
        await SyncOrchestrator(store, client).retry_failed()


@router.post("/openbudget")
async def trigger_sync(
    payload: SyncRequest,
    background: BackgroundTasks,
    store: SyncStore = Depends(get_sync_store),
    client_factory=Depends(get_client_factory),
):
    """
    Validate, confirm there is something to sync, then run in the background.
    Progress and outcomes are read back from GET /api/sync/results.
    """
    budgets = await asyncio.to_thread(
        store.load_candidates,
        payload.year,
        limit=payload.limit,
        budget_code=payload.budget_code,
        region_code=payload.region_code,
    )
    if not budgets:
        return fail(
            "NO_BUDGETS",
            f"No budgets with a code found for year {payload.year}",
            status_code=400,
            details=payload.model_dump(),
        )

    background.add_task(_run_sync, payload, store, client_factory)
    return ok(
        data={
            "accepted": True,
            "budgets": len(budgets),
            "units": len(budgets) * len(payload.types),
            "request": payload.model_dump(),
        },
        meta=meta_now(year=payload.year, period=payload.period),
        status_code=202,
    )


@router.post("/retry")
async def trigger_retry(
    background: BackgroundTasks,
    store: SyncStore = Depends(get_sync_store),
    client_factory=Depends(get_client_factory),
):
    pending = await asyncio.to_thread(store.failed_units)
    background.add_task(_run_retry, store, client_factory)
    return ok(data={"accepted": True, "pending": len(pending)}, meta=meta_now(), status_code=202)


@router.get("/results")
def sync_results(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    status: Optional[str] = Query(None, pattern="^(success|error)$"),
    endpoint: Optional[str] = Query(None, description="case-insensitive substring"),
    db: Session = Depends(get_db),
):
    data = list_sync_results(db, page=page, limit=limit, status=status, endpoint=endpoint)
    return ok(data=data, meta=meta_now(page=page, limit=limit, status=status, endpoint=endpoint))
