from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Session

from openbudget.models import Budget
from openbudget.services import sync_log
from openbudget.services.normalizer import NormalizedBatch
from openbudget.services.upserter import upsert_structure


@dataclass(frozen=True)
class BudgetRef:
    id: int
    code: str
    year: int


class SyncStore:
    """
    Database side of a sync run.

    Each method opens its own short-lived session from `session_factory`, so a
    connection is only held for the duration of one transaction and never
    across an upstream fetch. Methods are blocking; the orchestrator calls
    them through `asyncio.to_thread`.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def load_candidates(
        self,
        year: int,
        *,
        limit: Optional[int] = None,
        budget_code: Optional[str] = None,
        region_code: Optional[str] = None,
    ) -> List[BudgetRef]:
        q = (
            sa.select(Budget.id, Budget.code, Budget.year)
            .where(Budget.year == int(year), Budget.code.is_not(None))
            .order_by(Budget.code, Budget.id)
        )
        if budget_code:
            q = q.where(Budget.code == budget_code)
        if region_code:
            q = q.where(Budget.region_code == region_code)
        if limit:
            q = q.limit(int(limit))
        with self.session_factory() as db:
            return [BudgetRef(id=r.id, code=r.code, year=r.year) for r in db.execute(q).all()]

    def find_budget(self, budget_code: str, year: int) -> Optional[BudgetRef]:
        q = (
            sa.select(Budget.id, Budget.code, Budget.year)
            .where(Budget.code == budget_code, Budget.year == int(year))
            .order_by(Budget.id)
            .limit(1)
        )
        with self.session_factory() as db:
            r = db.execute(q).first()
        return BudgetRef(id=r.id, code=r.code, year=r.year) if r else None

    def persist_unit(
        self,
        budget: BudgetRef,
        batch: NormalizedBatch,
        *,
        endpoint: str,
        request_params: Dict[str, Any],
        raw_rows: List[Dict[str, Any]],
    ) -> int:
        """Raw capture and structure upsert for one unit, committed together."""
        with self.session_factory() as db:
            with db.begin():
                sync_log.save_api_raw(db, endpoint, request_params, raw_rows)
                db.flush()
                written = upsert_structure(db, batch, budget.id)
        return written

    def log_outcome(
        self,
        endpoint: str,
        status: str,
        total_records: int,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self.session_factory() as db:
            with db.begin():
                sync_log.log_sync(db, endpoint, status, total_records, details)

    def failed_units(self) -> List[str]:
        with self.session_factory() as db:
            return sync_log.failed_endpoints(db)
