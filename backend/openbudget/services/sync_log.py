from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Session

from openbudget.core.constants import CLASSIFICATION_TYPES, PERIODS, SYNC_ERROR
from openbudget.models import ApiRaw, ApiSync
from openbudget.services.upserter import dialect_insert

ENDPOINT_PREFIX = "localBudgetData"


@dataclass(frozen=True)
class EndpointKey:
    classification_type: str   # lower-case request form: program | functional | economic
    budget_code: str
    period: str
    year: int


def endpoint_key(classification_type: str, budget_code: str, period: str, year: int) -> str:
    """localBudgetData_{type}_{budgetCode}_{PERIOD}_{year}"""
    return f"{ENDPOINT_PREFIX}_{classification_type.lower()}_{budget_code}_{period.upper()}_{int(year)}"


def run_key(year: int, period: str) -> str:
    """Outcome row for a whole background run; never picked up by retry."""
    return f"syncRun_{period.upper()}_{int(year)}"


def parse_endpoint_key(endpoint: str) -> Optional[EndpointKey]:
    """Inverse of `endpoint_key`; None for anything that is not a sync unit key."""
    parts = (endpoint or "").split("_")
    if len(parts) != 5 or parts[0] != ENDPOINT_PREFIX:
        return None
    _, ctype, code, period, year = parts
    # exact casing only, so re-deriving the key from the parts lands on the same row
    if ctype not in CLASSIFICATION_TYPES or period not in PERIODS or not code or not year.isdigit():
        return None
    return EndpointKey(ctype, code, period, int(year))


def log_sync(
    db: Session,
    endpoint: str,
    status: str,
    total_records: int,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Upsert the outcome row for `endpoint` (one row per endpoint, latest attempt wins)."""
    insert = dialect_insert(db)
    stmt = insert(ApiSync).values(
        endpoint=endpoint,
        status=status,
        total_records=int(total_records),
        details=details,
        last_synced=sa.func.now(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["endpoint"],
        set_={
            "status": stmt.excluded.status,
            "total_records": stmt.excluded.total_records,
            "details": stmt.excluded.details,
            "last_synced": sa.func.now(),
        },
    )
    db.execute(stmt)


def save_api_raw(db: Session, endpoint: str, params: Dict[str, Any], response: Any) -> None:
    db.add(ApiRaw(endpoint=endpoint, params=params, response=response))


def failed_endpoints(db: Session) -> List[str]:
    q = (
        sa.select(ApiSync.endpoint)
        .where(ApiSync.status == SYNC_ERROR, ApiSync.endpoint.like(f"{ENDPOINT_PREFIX}_%"))
        .order_by(ApiSync.endpoint)
    )
    return list(db.execute(q).scalars().all())


def list_sync_results(
    db: Session,
    *,
    page: int = 1,
    limit: int = 50,
    status: Optional[str] = None,
    endpoint: Optional[str] = None,
) -> Dict[str, Any]:
    """Paginated admin view over api_sync, newest attempt first."""
    page = max(int(page), 1)
    limit = min(max(int(limit), 1), 500)

    filters = []
    if status:
        filters.append(ApiSync.status == status)
    if endpoint:
        filters.append(sa.func.lower(ApiSync.endpoint).like(f"%{endpoint.lower()}%"))

    total = db.execute(sa.select(sa.func.count()).select_from(ApiSync).where(*filters)).scalar_one()
    rows = db.execute(
        sa.select(ApiSync)
        .where(*filters)
        .order_by(ApiSync.last_synced.desc(), ApiSync.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return {
        "results": [
            {
                "endpoint": r.endpoint,
                "status": r.status,
                "total_records": r.total_records,
                "details": r.details,
                "last_synced": r.last_synced.isoformat() if r.last_synced else None,
            }
            for r in rows
        ],
        "total": int(total),
        "page": page,
        "limit": limit,
    }
