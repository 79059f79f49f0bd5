from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import math
import re

import pandas as pd
import structlog

from openbudget.core.constants import normalize_classification_type

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Field-name variants (logical field -> accepted source keys, first hit wins)
# ---------------------------------------------------------------------------

FIELD_VARIANTS: Dict[str, Tuple[str, ...]] = {
    "rep_period": ("rep_period", "REP_PERIOD"),
    "cod_budget": ("cod_budget", "COD_BUDGET"),
    "fund_type": ("fund_typ", "FUND_TYP"),
    "approved_amount": ("zat_amt", "ZAT_AMT"),
    "plan_amount": ("plans_amt", "PLANS_AMT"),
    "actual_amount": ("fakt_amt", "FAKT_AMT"),
}

CODE_VARIANTS: Dict[str, Tuple[str, ...]] = {
    "PROGRAM": ("cod_cons_mb_pk", "COD_CONS_MB_PK"),
    "ECONOMIC": ("cod_cons_ek", "COD_CONS_EK"),
    "FUNCTIONAL": ("cod_cons_fun", "COD_CONS_FUN", "cod_fun", "COD_FUN"),
}

NAME_VARIANTS: Dict[str, Tuple[str, ...]] = {
    ctype: tuple(f"{k}_name" if k.islower() else f"{k}_NAME" for k in keys)
    for ctype, keys in CODE_VARIANTS.items()
}


def resolve_field(row: Mapping[str, Any], variants: Sequence[str]) -> Any:
    """Return the first present, non-null value among `variants`."""
    for key in variants:
        value = row.get(key)
        if value is None:
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        if isinstance(value, str) and value.strip() == "":
            continue
        return value
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_amount(value: Any) -> float:
    """Missing or non-numeric -> 0.0; comma decimals ('12,5') are accepted."""
    if value is None:
        return 0.0
    if isinstance(value, str):
        value = value.strip().replace(" ", "").replace("\u00a0", "")
        if "," in value and "." not in value:
            value = value.replace(",", ".")
    num = pd.to_numeric(value, errors="coerce")
    if num is None or pd.isna(num):
        return 0.0
    return float(num)


# ---------------------------------------------------------------------------
# Reporting period parsing
# ---------------------------------------------------------------------------

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_MONTH_YEAR = re.compile(r"(\d{2})[.\-/](\d{4})")
_YEAR_MONTH = re.compile(r"(\d{4})[.\-/]?(\d{2})")


def _parse_period(rep_period: Any) -> Tuple[Optional[int], Optional[int]]:
    if rep_period is None:
        return None, None
    s = str(rep_period).strip()
    if not s:
        return None, None

    m = _ISO_DATE.match(s)
    if m:
        try:
            d = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
            return d.year, d.month
        except ValueError:
            pass

    m = _MONTH_YEAR.search(s)
    if m and 1 <= int(m.group(1)) <= 12:
        return int(m.group(2)), int(m.group(1))

    m = _YEAR_MONTH.search(s)
    if m and 1 <= int(m.group(2)) <= 12:
        return int(m.group(1)), int(m.group(2))

    return None, None


def parse_month(rep_period: Any) -> Optional[int]:
    """'03.2024' -> 3, '2024-03-01' -> 3, '202403' -> 3, garbage -> None."""
    return _parse_period(rep_period)[1]


def parse_year(rep_period: Any) -> Optional[int]:
    return _parse_period(rep_period)[0]


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizedRecord:
    rep_period: str
    rep_year: Optional[int]
    rep_month: Optional[int]
    cod_budget: str
    classification_type: str
    classification_code: str
    classification_name: Optional[str]
    fund_type: Optional[str]
    approved_amount: float
    plan_amount: float
    actual_amount: float

    @property
    def natural_key(self) -> Tuple[str, str, str, str]:
        return (self.rep_period, self.cod_budget, self.classification_code, self.classification_type)

    def as_row(self) -> Dict[str, Any]:
        return {
            "rep_period": self.rep_period,
            "rep_year": self.rep_year,
            "rep_month": self.rep_month,
            "cod_budget": self.cod_budget,
            "classification_type": self.classification_type,
            "classification_code": self.classification_code,
            "classification_name": self.classification_name,
            "fund_type": self.fund_type,
            "approved_amount": self.approved_amount,
            "plan_amount": self.plan_amount,
            "actual_amount": self.actual_amount,
        }


@dataclass
class NormalizedBatch:
    classification_type: str
    records: List[NormalizedRecord] = field(default_factory=list)
    monthly_expense: Dict[int, float] = field(default_factory=dict)
    dropped: int = 0
    duplicates: int = 0

    def __len__(self) -> int:
        return len(self.records)


def normalize(raw_rows: Iterable[Mapping[str, Any]], classification_type: str) -> NormalizedBatch:
    """
    Map raw API rows onto canonical structure records.

    Rows without a reporting period, budget code or classification code are
    dropped; repeated natural keys keep the first occurrence. For PROGRAM
    rows the actual amounts are also summed per month for monthly_indicators.
    """
    ctype = normalize_classification_type(classification_type)
    code_keys = CODE_VARIANTS[ctype]
    name_keys = NAME_VARIANTS[ctype]

    batch = NormalizedBatch(classification_type=ctype)
    seen: set[Tuple[str, str, str, str]] = set()

    for row in raw_rows:
        rep = _as_text(resolve_field(row, FIELD_VARIANTS["rep_period"]))
        cb = _as_text(resolve_field(row, FIELD_VARIANTS["cod_budget"]))
        cc = _as_text(resolve_field(row, code_keys))
        if not rep or not cb or not cc:
            batch.dropped += 1
            continue

        key = (rep, cb, cc, ctype)
        if key in seen:
            batch.duplicates += 1
            continue
        seen.add(key)

        year, month = _parse_period(rep)
        rec = NormalizedRecord(
            rep_period=rep,
            rep_year=year,
            rep_month=month,
            cod_budget=cb,
            classification_type=ctype,
            classification_code=cc,
            classification_name=_as_text(resolve_field(row, name_keys)),
            fund_type=_as_text(resolve_field(row, FIELD_VARIANTS["fund_type"])),
            approved_amount=_coerce_amount(resolve_field(row, FIELD_VARIANTS["approved_amount"])),
            plan_amount=_coerce_amount(resolve_field(row, FIELD_VARIANTS["plan_amount"])),
            actual_amount=_coerce_amount(resolve_field(row, FIELD_VARIANTS["actual_amount"])),
        )
        batch.records.append(rec)

        if ctype == "PROGRAM" and month is not None:
            batch.monthly_expense[month] = batch.monthly_expense.get(month, 0.0) + rec.actual_amount

    if batch.dropped or batch.duplicates:
        logger.debug(
            "normalize.filtered",
            type=ctype,
            kept=len(batch.records),
            dropped=batch.dropped,
            duplicates=batch.duplicates,
        )
    return batch
