from __future__ import annotations

from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Session

from openbudget.models import ForecastCache
from openbudget.services.upserter import dialect_insert


def _alpha_key(alpha: float) -> float:
    # 0.3 from a query string and 0.3 from settings must hit the same row
    return round(float(alpha), 6)


def get_cached(
    db: Session,
    budget_code: str,
    classification_type: str,
    alpha: float,
    window: int,
) -> Optional[Dict[str, Any]]:
    rows = db.execute(
        sa.select(ForecastCache)
        .where(
            ForecastCache.budget_code == budget_code,
            ForecastCache.classification_type == classification_type,
            ForecastCache.alpha == _alpha_key(alpha),
            ForecastCache.window_size == int(window),
        )
        .order_by(ForecastCache.method)
    ).scalars().all()
    if not rows:
        return None
    return {
        # every row of one computation carries the same series
        "series": rows[0].series,
        "methods": {r.method: r.result for r in rows},
    }


def save_cached(
    db: Session,
    budget_code: str,
    classification_type: str,
    alpha: float,
    window: int,
    series: List[Dict[str, Any]],
    methods: Dict[str, Any],
) -> int:
    """One row per method; alpha and window are part of the key."""
    if not methods:
        return 0
    insert = dialect_insert(db)
    rows = [
        {
            "budget_code": budget_code,
            "classification_type": classification_type,
            "method": method,
            "alpha": _alpha_key(alpha),
            "window_size": int(window),
            "series": series,
            "result": result,
        }
        for method, result in methods.items()
    ]
    stmt = insert(ForecastCache).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["budget_code", "classification_type", "method", "alpha", "window_size"],
        set_={
            "series": stmt.excluded.series,
            "result": stmt.excluded.result,
            "updated_at": sa.func.now(),
        },
    )
    db.execute(stmt)
    return len(rows)
