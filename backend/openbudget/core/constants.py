# backend/openbudget/core/constants.py
"""Closed vocabularies shared by sync, stats and forecast."""

# request-facing (lower-case) -> upstream / stored (upper-case)
CLASSIFICATION_TYPES = {
    "program": "PROGRAM",
    "functional": "FUNCTIONAL",
    "economic": "ECONOMIC",
}

ALL_TYPES = "all"

PERIODS = ("MONTH", "QUARTER")

BUDGET_ITEM = "EXPENSES"

SYNC_SUCCESS = "success"
SYNC_ERROR = "error"

OTHER_CODE = "other"
OTHER_NAME = "Інше"


def normalize_classification_type(value: str) -> str:
    """Map 'program' / 'PROGRAM' / ' Program ' to the stored upper-case form."""
    key = (value or "").strip().lower()
    if key not in CLASSIFICATION_TYPES:
        raise ValueError(
            f"Unknown classification type {value!r}; expected one of {sorted(CLASSIFICATION_TYPES)}"
        )
    return CLASSIFICATION_TYPES[key]


def normalize_period(value: str) -> str:
    period = (value or "").strip().upper()
    if period not in PERIODS:
        raise ValueError(f"Unknown period {value!r}; expected one of {list(PERIODS)}")
    return period
