# backend/openbudget/services/forecast.py

from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
import structlog
from sqlalchemy.orm import Session

from openbudget.config import get_settings
from openbudget.core.constants import normalize_classification_type
from openbudget.services import forecast_cache
from openbudget.services.structure_stats import yearly_snapshot_totals

logger = structlog.get_logger(__name__)


def fetch_yearly_series(db: Session, budget_code: str, classification_type: str) -> pd.Series:
    """Actual spend per year (latest-month snapshot), indexed by year, ascending."""
    points = yearly_snapshot_totals(db, budget_code, classification_type)
    if not points:
        return pd.Series(dtype=float)
    s = pd.Series(
        [p["actual"] for p in points],
        index=pd.Index([p["year"] for p in points], name="year"),
        dtype=float,
    )
    return s.sort_index()


def series_points(series: pd.Series) -> List[Dict[str, Any]]:
    return [{"year": int(y), "value": float(v)} for y, v in series.items()]


# ---------------------------------------------------------------------------
# Methods (pure; each returns None when the series is too short)
# ---------------------------------------------------------------------------

def arithmetic_growth(series: pd.Series) -> Optional[Dict[str, Any]]:
    """Average year-over-year growth rate applied to the last value."""
    if len(series) < 2:
        return None
    prev = series.shift(1).iloc[1:]
    curr = series.iloc[1:]
    valid = prev > 0
    if not valid.any():
        return None
    rates = (curr[valid] - prev[valid]) / prev[valid]
    avg_rate = float(rates.mean())
    last_year = int(series.index[-1])
    last_value = float(series.iloc[-1])
    return {
        "method": "arithmetic_growth",
        "last_year": last_year,
        "avg_rate": avg_rate,
        "forecast_year": last_year + 1,
        "forecast_value": last_value * (1 + avg_rate),
    }


def moving_average(series: pd.Series, window: int = 3) -> Optional[Dict[str, Any]]:
    n = len(series)
    if n == 0:
        return None
    k = min(int(window), n)
    tail = series.iloc[-k:]
    return {
        "method": "moving_average",
        "window": k,
        "years_used": [int(y) for y in tail.index],
        "forecast_year": int(series.index[-1]) + 1,
        "forecast_value": float(tail.mean()),
    }


def exponential_smoothing(series: pd.Series, alpha: float = 0.3) -> Optional[Dict[str, Any]]:
    """F0 = X0, F = alpha*X + (1-alpha)*F; the forecast is the last F."""
    if len(series) == 0:
        return None
    smoothed = series.ewm(alpha=alpha, adjust=False).mean()
    last_year = int(series.index[-1])
    last_smoothed = float(smoothed.iloc[-1])
    return {
        "method": "exponential_smoothing",
        "alpha": float(alpha),
        "last_year": last_year,
        "last_smoothed": last_smoothed,
        "forecast_year": last_year + 1,
        "forecast_value": last_smoothed,
    }


def linear_regression(series: pd.Series) -> Optional[Dict[str, Any]]:
    """OLS on t = 1..n; forecast at t = n + 1, plus the fitted trend for charting."""
    n = len(series)
    if n < 2:
        return None
    t = np.arange(1, n + 1, dtype=float)
    y = series.to_numpy(dtype=float)

    denominator = n * np.sum(t * t) - np.sum(t) ** 2
    if denominator == 0:
        return None
    b = (n * np.sum(t * y) - np.sum(t) * np.sum(y)) / denominator
    a = (np.sum(y) - b * np.sum(t)) / n

    years = [int(yr) for yr in series.index]
    return {
        "method": "linear_regression",
        "a": float(a),
        "b": float(b),
        "forecast_year": years[-1] + 1,
        "forecast_value": float(a + b * (n + 1)),
        "trend": [{"year": yr, "value": float(a + b * (i + 1))} for i, yr in enumerate(years)],
    }


def compute_methods(series: pd.Series, alpha: float, window: int) -> Dict[str, Optional[Dict[str, Any]]]:
    # independent: one method returning None never blocks the others
    return {
        "arithmetic_growth": arithmetic_growth(series),
        "moving_average": moving_average(series, window),
        "exponential": exponential_smoothing(series, alpha),
        "regression": linear_regression(series),
    }


# ---------------------------------------------------------------------------
# Cached entry point
# ---------------------------------------------------------------------------

def forecast(
    db: Session,
    budget_code: str,
    classification_type: str,
    alpha: Optional[float] = None,
    window: Optional[int] = None,
    force: bool = False,
) -> Dict[str, Any]:
    settings = get_settings()
    alpha = settings.FORECAST_DEFAULT_ALPHA if alpha is None else float(alpha)
    window = settings.FORECAST_DEFAULT_WINDOW if window is None else int(window)
    if not 0 < alpha <= 1:
        raise ValueError("alpha must be in (0, 1]")
    if window < 1:
        raise ValueError("window must be >= 1")

    ctype = normalize_classification_type(classification_type)
    base = {
        "budget": budget_code,
        "type": ctype,
        "params": {"alpha": alpha, "window": window},
    }

    if not force:
        cached = forecast_cache.get_cached(db, budget_code, ctype, alpha, window)
        if cached is not None:
            logger.debug("forecast.cache_hit", budget_code=budget_code, type=ctype)
            return {**base, "series": cached["series"], "methods": cached["methods"], "cached": True}

    series = fetch_yearly_series(db, budget_code, ctype)
    if series.empty:
        return {**base, "series": [], "methods": {}, "cached": False}

    points = series_points(series)
    methods = compute_methods(series, alpha, window)

    try:
        forecast_cache.save_cached(db, budget_code, ctype, alpha, window, points, methods)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("forecast.computed", budget_code=budget_code, type=ctype, points=len(points))
    return {**base, "series": points, "methods": methods, "cached": False}
