"""
Forecast API (yearly horizon)

GET /api/forecast/{budget_code}/{classification_type}
- One point per year in `series` (actual spend at each year's latest month).
- Four independent methods; a method without enough data is null.
- Served from forecast_cache for the same (alpha, window) unless force=true.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from openbudget.db.session import get_db
from openbudget.schemas.common import fail, meta_now, ok
from openbudget.services.forecast import forecast

router = APIRouter(prefix="/api/forecast", tags=["forecast"])
logger = structlog.get_logger(__name__)


@router.get("/{budget_code}/{classification_type}")
def get_forecast(
    budget_code: str,
    classification_type: str,
    alpha: Optional[float] = Query(None, gt=0, le=1),
    window: Optional[int] = Query(None, ge=1, le=50),
    force: bool = Query(False, description="Bypass the cache and recompute"),
    db: Session = Depends(get_db),
):
    try:
        result = forecast(db, budget_code, classification_type, alpha=alpha, window=window, force=force)
    except ValueError as exc:
        return fail("INVALID_PARAMS", str(exc), status_code=422)
    except Exception as exc:
        logger.exception("forecast.failed", budget_code=budget_code, type=classification_type)
        return fail("FORECAST_FAILED", str(exc), status_code=500)

    return ok(
        data=result,
        meta=meta_now(
            budget_code=budget_code,
            classification_type=result["type"],
            alpha=result["params"]["alpha"],
            window=result["params"]["window"],
            force=force or None,
        ),
    )
