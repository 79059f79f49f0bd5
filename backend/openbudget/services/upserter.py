from __future__ import annotations

from contextlib import nullcontext
from typing import Any, Dict, List

import sqlalchemy as sa
from sqlalchemy.orm import Session

from openbudget.models import Budget, BudgetStructure, MonthlyIndicator
from openbudget.services.normalizer import NormalizedBatch

# rows per INSERT statement; keeps bind-parameter counts well under SQLite's limit
CHUNK_SIZE = 500

STRUCTURE_KEY = ["rep_period", "cod_budget", "classification_code", "classification_type"]


def dialect_insert(db: Session):
    dialect = db.bind.dialect.name if db.bind is not None else ""
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Upsert is not supported for dialect {dialect!r}")
    return insert


def _chunks(rows: List[Dict[str, Any]], size: int = CHUNK_SIZE):
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


def _upsert_structure_rows(db: Session, insert, rows: List[Dict[str, Any]]) -> None:
    for chunk in _chunks(rows):
        stmt = insert(BudgetStructure).values(chunk)
        stmt = stmt.on_conflict_do_update(
            index_elements=STRUCTURE_KEY,
            set_={
                "classification_name": stmt.excluded.classification_name,
                "fund_type":           stmt.excluded.fund_type,
                "approved_amount":     stmt.excluded.approved_amount,
                "plan_amount":         stmt.excluded.plan_amount,
                "actual_amount":       stmt.excluded.actual_amount,
                "rep_year":            stmt.excluded.rep_year,
                "rep_month":           stmt.excluded.rep_month,
                "updated_at":          sa.func.now(),
            },
        )
        db.execute(stmt)


def _upsert_monthly_expense(db: Session, insert, budget_id: int, monthly: Dict[int, float]) -> None:
    rows = [
        {"budget_id": budget_id, "month": int(m), "expense": float(v)}
        for m, v in sorted(monthly.items())
    ]
    if not rows:
        return
    stmt = insert(MonthlyIndicator).values(rows)
    # income/balance belong to other loaders
    stmt = stmt.on_conflict_do_update(
        index_elements=["budget_id", "month"],
        set_={"expense": stmt.excluded.expense},
    )
    db.execute(stmt)


def upsert_structure(db: Session, batch: NormalizedBatch, budget_id: int) -> int:
    """
    Write one sync unit: structure rows, derived monthly expense, budget touch.

    Runs in a single transaction. When the session already has one open the
    writes join it and the caller commits or rolls back; otherwise a
    transaction is opened here and committed on success. Errors propagate.
    Returns the number of structure rows written.
    """
    insert = dialect_insert(db)
    rows = [rec.as_row() for rec in batch.records]

    trans_ctx = nullcontext() if db.in_transaction() else db.begin()
    with trans_ctx:
        if rows:
            _upsert_structure_rows(db, insert, rows)
        _upsert_monthly_expense(db, insert, budget_id, batch.monthly_expense)
        db.execute(
            sa.update(Budget)
            .where(Budget.id == budget_id)
            .values(last_update=sa.func.now())
        )
    return len(rows)
