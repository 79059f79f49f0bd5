# backend/openbudget/routers/stats.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from openbudget.db.session import get_db
from openbudget.schemas.common import fail, meta_now, ok
from openbudget.services import structure_stats

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/{budget_code}/{classification_type}/{year}")
def budget_stats(
    budget_code: str,
    classification_type: str,
    year: int = Path(..., ge=2000, le=2100),
    db: Session = Depends(get_db),
):
    try:
        data = structure_stats.budget_stats(db, budget_code, classification_type, year)
    except ValueError as exc:
        return fail("INVALID_PARAMS", str(exc), status_code=422)
    return ok(
        data=data,
        meta=meta_now(budget_code=budget_code, classification_type=data["classification_type"], year=year),
    )


@router.get("/{budget_code}/{classification_type}/{year}/structure")
def budget_code_breakdown(
    budget_code: str,
    classification_type: str,
    year: int = Path(..., ge=2000, le=2100),
    db: Session = Depends(get_db),
):
    try:
        rows = structure_stats.code_breakdown(db, budget_code, classification_type, year)
    except ValueError as exc:
        return fail("INVALID_PARAMS", str(exc), status_code=422)
    return ok(
        data=rows,
        meta=meta_now(budget_code=budget_code, classification_type=classification_type.upper(), year=year),
    )
