from __future__ import annotations

from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Session

from openbudget.core.constants import OTHER_CODE, OTHER_NAME, normalize_classification_type
from openbudget.models import BudgetStructure as BS

TOP_N = 10


def quarter_for_month(month: int) -> int:
    """1-3 -> 1, 4-6 -> 2, 7-9 -> 3, 10-12 -> 4."""
    if not 1 <= int(month) <= 12:
        raise ValueError(f"month out of range: {month}")
    return (int(month) - 1) // 3 + 1


def _quarter_expr(month_col):
    return sa.case(
        (month_col <= 3, 1),
        (month_col <= 6, 2),
        (month_col <= 9, 3),
        else_=4,
    )


def _num(v: Any) -> float:
    return float(v or 0)


def _scope(budget_code: str, classification_type: str, year: Optional[int] = None) -> list:
    ctype = normalize_classification_type(classification_type)
    filters = [
        BS.cod_budget == budget_code,
        sa.func.upper(BS.classification_type) == ctype,
    ]
    if year is not None:
        filters.append(BS.rep_year == int(year))
    return filters


def _sums():
    return (
        sa.func.coalesce(sa.func.sum(BS.approved_amount), 0).label("approved"),
        sa.func.coalesce(sa.func.sum(BS.plan_amount), 0).label("plan"),
        sa.func.coalesce(sa.func.sum(BS.actual_amount), 0).label("actual"),
    )


# ---------------------------------------------------------------------------
# Period aggregates
# ---------------------------------------------------------------------------

def monthly(db: Session, budget_code: str, classification_type: str, year: int) -> List[Dict[str, Any]]:
    q = (
        sa.select(BS.rep_period, BS.rep_month, *_sums())
        .where(*_scope(budget_code, classification_type, year))
        .group_by(BS.rep_period, BS.rep_month)
        .order_by(BS.rep_month, BS.rep_period)
    )
    return [
        {
            "period": r.rep_period,
            "month": r.rep_month,
            "approved": _num(r.approved),
            "plan": _num(r.plan),
            "actual": _num(r.actual),
        }
        for r in db.execute(q).all()
    ]


def quarterly(db: Session, budget_code: str, classification_type: str, year: int) -> List[Dict[str, Any]]:
    """
    Execution figures are cumulative year-to-date, so each quarter is the
    snapshot at its latest month present, summed over codes (never a sum of
    the quarter's months).
    """
    scope = _scope(budget_code, classification_type, year)

    months = (
        sa.select(_quarter_expr(BS.rep_month).label("quarter"), BS.rep_month.label("month"))
        .where(*scope, BS.rep_month.is_not(None))
        .subquery()
    )
    latest = (
        sa.select(months.c.quarter, sa.func.max(months.c.month).label("month"))
        .group_by(months.c.quarter)
        .subquery()
    )
    q = (
        sa.select(latest.c.quarter, latest.c.month, *_sums())
        .join(BS, BS.rep_month == latest.c.month)
        .where(*scope)
        .group_by(latest.c.quarter, latest.c.month)
        .order_by(latest.c.quarter)
    )
    return [
        {
            "quarter": f"Q{int(r.quarter)}",
            "month": int(r.month),
            "approved": _num(r.approved),
            "plan": _num(r.plan),
            "actual": _num(r.actual),
        }
        for r in db.execute(q).all()
    ]


def execution_percent(actual: float, plan: float) -> float:
    if plan > 0:
        return round(actual / plan * 100, 2)
    return 0.0


def yearly(db: Session, budget_code: str, classification_type: str, year: int) -> Dict[str, Any]:
    r = db.execute(
        sa.select(*_sums()).where(*_scope(budget_code, classification_type, year))
    ).one()
    approved, plan, actual = _num(r.approved), _num(r.plan), _num(r.actual)
    return {
        "year": int(year),
        "approved": approved,
        # a zero revised plan means the approved figure stands
        "plan": plan if plan > 0 else approved,
        "actual": actual,
        "execution_percent": execution_percent(actual, plan),
    }


# ---------------------------------------------------------------------------
# Per-code aggregates
# ---------------------------------------------------------------------------

def _snapshot_by_code(db: Session, budget_code: str, classification_type: str, year: int) -> List[Dict[str, Any]]:
    """Each code at its own latest month of the year, largest actual first."""
    scope = _scope(budget_code, classification_type, year)
    latest = (
        sa.select(BS.classification_code.label("code"), sa.func.max(BS.rep_month).label("month"))
        .where(*scope, BS.rep_month.is_not(None))
        .group_by(BS.classification_code)
        .subquery()
    )
    q = (
        sa.select(
            BS.classification_code,
            sa.func.max(BS.classification_name).label("name"),
            sa.func.max(BS.rep_period).label("period"),
            *_sums(),
        )
        .join(latest, sa.and_(BS.classification_code == latest.c.code, BS.rep_month == latest.c.month))
        .where(*scope)
        .group_by(BS.classification_code)
        .order_by(sa.desc("actual"), BS.classification_code)
    )
    return [
        {
            "code": r.classification_code,
            "name": r.name,
            "period": r.period,
            "approved": _num(r.approved),
            "plan": _num(r.plan),
            "actual": _num(r.actual),
        }
        for r in db.execute(q).all()
    ]


def _cumulative_by_code(db: Session, budget_code: str, classification_type: str, year: int) -> List[Dict[str, Any]]:
    q = (
        sa.select(
            BS.classification_code,
            sa.func.max(BS.classification_name).label("name"),
            *_sums(),
        )
        .where(*_scope(budget_code, classification_type, year))
        .group_by(BS.classification_code)
        .order_by(sa.desc("actual"), BS.classification_code)
    )
    return [
        {
            "code": r.classification_code,
            "name": r.name,
            "approved": _num(r.approved),
            "plan": _num(r.plan),
            "actual": _num(r.actual),
        }
        for r in db.execute(q).all()
    ]


def _top(rows: List[Dict[str, Any]], n: int = TOP_N) -> List[Dict[str, Any]]:
    return [{"code": r["code"], "name": r["name"], "actual": r["actual"]} for r in rows[:n]]


def top10_snapshot(db: Session, budget_code: str, classification_type: str, year: int) -> List[Dict[str, Any]]:
    return _top(_snapshot_by_code(db, budget_code, classification_type, year))


def top10_cumulative(db: Session, budget_code: str, classification_type: str, year: int) -> List[Dict[str, Any]]:
    """Headline variant: actual summed over every period of the year."""
    return _top(_cumulative_by_code(db, budget_code, classification_type, year))


def _percent_structure(rows: List[Dict[str, Any]], n: int = TOP_N) -> List[Dict[str, Any]]:
    items = [{"code": r["code"], "name": r["name"], "actual": r["actual"]} for r in rows[:n]]
    rest = sum(r["actual"] for r in rows[n:])
    if rest > 0:
        items.append({"code": OTHER_CODE, "name": OTHER_NAME, "actual": rest})
    # shares of the returned rows only
    total = sum(i["actual"] for i in items)
    for item in items:
        item["percent"] = round(item["actual"] * 100 / total, 2) if total else 0.0
    return items


def structure(db: Session, budget_code: str, classification_type: str, year: int) -> List[Dict[str, Any]]:
    return _percent_structure(_snapshot_by_code(db, budget_code, classification_type, year))


def structure_cumulative(db: Session, budget_code: str, classification_type: str, year: int) -> List[Dict[str, Any]]:
    return _percent_structure(_cumulative_by_code(db, budget_code, classification_type, year))


def code_breakdown(db: Session, budget_code: str, classification_type: str, year: int) -> List[Dict[str, Any]]:
    """Latest row per code; plan falls back to approved when zero."""
    out = []
    for r in _snapshot_by_code(db, budget_code, classification_type, year):
        plan = r["plan"] if r["plan"] > 0 else r["approved"]
        out.append({**r, "plan": plan, "execution_percent": execution_percent(r["actual"], plan)})
    return sorted(out, key=lambda r: r["code"])


# ---------------------------------------------------------------------------
# Across years
# ---------------------------------------------------------------------------

def yearly_snapshot_totals(db: Session, budget_code: str, classification_type: str) -> List[Dict[str, Any]]:
    """One point per year: sum at that year's latest month, ascending by year."""
    scope = _scope(budget_code, classification_type)
    latest = (
        sa.select(BS.rep_year.label("year"), sa.func.max(BS.rep_month).label("month"))
        .where(*scope, BS.rep_year.is_not(None), BS.rep_month.is_not(None))
        .group_by(BS.rep_year)
        .subquery()
    )
    q = (
        sa.select(latest.c.year, *_sums())
        .join(BS, sa.and_(BS.rep_year == latest.c.year, BS.rep_month == latest.c.month))
        .where(*scope)
        .group_by(latest.c.year)
        .order_by(latest.c.year)
    )
    return [
        {
            "year": int(r.year),
            "approved": _num(r.approved),
            "plan": _num(r.plan),
            "actual": _num(r.actual),
        }
        for r in db.execute(q).all()
    ]


def dynamics(db: Session, budget_code: str, classification_type: str) -> List[Dict[str, Any]]:
    return [{"year": p["year"], "actual": p["actual"]} for p in yearly_snapshot_totals(db, budget_code, classification_type)]


def budget_stats(db: Session, budget_code: str, classification_type: str, year: int) -> Dict[str, Any]:
    ctype = normalize_classification_type(classification_type)
    snapshot = _snapshot_by_code(db, budget_code, ctype, year)
    return {
        "budget_code": budget_code,
        "classification_type": ctype,
        "year": int(year),
        "monthly": monthly(db, budget_code, ctype, year),
        "quarterly": quarterly(db, budget_code, ctype, year),
        "yearly": yearly(db, budget_code, ctype, year),
        "top10": _top(snapshot),
        "top10_cumulative": top10_cumulative(db, budget_code, ctype, year),
        "structure": _percent_structure(snapshot),
        "dynamics": dynamics(db, budget_code, ctype),
    }
