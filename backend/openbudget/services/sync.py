from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from openbudget.config import get_settings
from openbudget.core.constants import (
    ALL_TYPES,
    CLASSIFICATION_TYPES,
    SYNC_ERROR,
    SYNC_SUCCESS,
    normalize_period,
)
from openbudget.core.exceptions import SyncValidationError, UpstreamError
from openbudget.observability.instrument import log_job
from openbudget.observability.metrics import FETCH_LATENCY, record_sync_unit
from openbudget.services.normalizer import normalize
from openbudget.services.sync_log import endpoint_key, parse_endpoint_key, run_key
from openbudget.services.sync_store import BudgetRef

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Request / result shapes
# ---------------------------------------------------------------------------

class SyncRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    types: List[str] = Field(default_factory=lambda: [ALL_TYPES])
    period: str = "MONTH"
    limit: Optional[int] = Field(None, ge=1)
    budget_code: Optional[str] = None
    region_code: Optional[str] = None

    @field_validator("types", mode="before")
    @classmethod
    def _expand_types(cls, v: Any) -> List[str]:
        if v is None:
            v = [ALL_TYPES]
        if isinstance(v, str):
            v = v.split(",")
        wanted = [str(t).strip().lower() for t in v if str(t).strip()]
        if not wanted:
            raise ValueError("types must not be empty")
        unknown = [t for t in wanted if t != ALL_TYPES and t not in CLASSIFICATION_TYPES]
        if unknown:
            raise ValueError(f"Invalid types: {unknown}; allowed: {sorted(CLASSIFICATION_TYPES)} or 'all'")
        if ALL_TYPES in wanted:
            return list(CLASSIFICATION_TYPES)
        # keep caller order, drop repeats
        return list(dict.fromkeys(wanted))

    @field_validator("period", mode="before")
    @classmethod
    def _check_period(cls, v: Any) -> str:
        return normalize_period(str(v or ""))

    @classmethod
    def build(cls, **kwargs: Any) -> "SyncRequest":
        """Construct from loose input (CLI, scheduler); raises SyncValidationError."""
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            messages = "; ".join(
                f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
            )
            raise SyncValidationError(messages or str(exc))


@dataclass
class SyncSummary:
    success: bool
    message: str
    total_units: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_seconds: float = 0.0


@dataclass
class RetrySummary:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


def _failure_details(exc: Exception) -> Dict[str, Any]:
    if isinstance(exc, UpstreamError):
        return exc.details()
    return {
        "error": str(exc) or type(exc).__name__,
        "error_class": type(exc).__name__,
        "transient": False,
    }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class SyncOrchestrator:
    """
    Drives fetch -> normalize -> upsert for every (budget, classification type).

    `store` is the blocking database side (see SyncStore); `client` is anything
    with an async `fetch(budget_code, year, classification_type, period)`.
    A fixed number of worker tasks pull budgets from one shared iterator, so
    at most `max_concurrency` units are in flight at any moment.
    """

    def __init__(self, store, client, *, max_concurrency: Optional[int] = None):
        self.store = store
        self.client = client
        self.max_concurrency = max(1, int(max_concurrency or get_settings().SYNC_MAX_CONCURRENCY))

    async def sync_unit(self, budget: BudgetRef, classification_type: str, period: str, year: int) -> bool:
        """One unit, never raises for unit-level failures. Returns True on success."""
        ctype = classification_type.lower()
        endpoint = endpoint_key(ctype, budget.code, period, year)
        log = logger.bind(endpoint=endpoint, budget_code=budget.code, type=ctype)

        try:
            started = time.perf_counter()
            result = await self.client.fetch(budget.code, year, ctype, period)
            FETCH_LATENCY.labels(classification_type=ctype).observe(time.perf_counter() - started)

            batch = normalize(result.rows, ctype)
            written = await asyncio.to_thread(
                self.store.persist_unit,
                budget,
                batch,
                endpoint=endpoint,
                request_params=result.request_params,
                raw_rows=result.rows,
            )
        except Exception as exc:
            await self._record_failure(endpoint, budget, ctype, period, year, exc)
            return False

        details = {
            "budgetId": budget.id,
            "budgetCode": budget.code,
            "year": year,
            "period": period,
            "type": ctype,
            "url": result.source_url,
            "params": result.request_params,
            "raw_rows": len(result.rows),
            "dropped": batch.dropped,
            "duplicates": batch.duplicates,
        }
        try:
            await asyncio.to_thread(self.store.log_outcome, endpoint, SYNC_SUCCESS, written, details)
        except Exception as exc:
            log.exception("sync.unit.log_failed")
            # data is committed but unlogged; an error row keeps it visible to retry_failed
            await self._record_failure(endpoint, budget, ctype, period, year, exc)
            return False

        record_sync_unit(ctype, SYNC_SUCCESS, written)
        log.info("sync.unit.success", records=written, raw_rows=len(result.rows))
        return True

    async def _record_failure(
        self,
        endpoint: str,
        budget: BudgetRef,
        ctype: str,
        period: str,
        year: int,
        exc: Exception,
    ) -> None:
        details = _failure_details(exc)
        details.update({
            "budgetId": budget.id,
            "budgetCode": budget.code,
            "year": year,
            "period": period,
            "type": ctype,
        })
        record_sync_unit(ctype, SYNC_ERROR)
        logger.warning(
            "sync.unit.error",
            endpoint=endpoint,
            error=details["error"],
            error_class=details["error_class"],
            transient=details["transient"],
        )
        try:
            await asyncio.to_thread(self.store.log_outcome, endpoint, SYNC_ERROR, 0, details)
        except Exception:
            logger.exception("sync.unit.log_failed", endpoint=endpoint)

    @log_job("openbudget-sync")
    async def run(self, request: SyncRequest) -> SyncSummary:
        started = time.perf_counter()
        budgets: List[BudgetRef] = await asyncio.to_thread(
            self.store.load_candidates,
            request.year,
            limit=request.limit,
            budget_code=request.budget_code,
            region_code=request.region_code,
        )
        if not budgets:
            raise SyncValidationError(f"No budgets with a code found for year {request.year}")

        total_units = len(budgets) * len(request.types)
        logger.info(
            "sync.run.start",
            year=request.year,
            types=request.types,
            period=request.period,
            budgets=len(budgets),
            units=total_units,
            workers=min(self.max_concurrency, len(budgets)),
        )

        cursor = iter(budgets)
        outcome = {"succeeded": 0, "failed": 0}

        async def worker() -> None:
            # next() on the shared iterator never yields to the loop, so each budget is claimed once
            for budget in cursor:
                for ctype in request.types:
                    ok = await self.sync_unit(budget, ctype, request.period, request.year)
                    outcome["succeeded" if ok else "failed"] += 1

        await asyncio.gather(*(worker() for _ in range(min(self.max_concurrency, len(budgets)))))

        duration = round(time.perf_counter() - started, 3)
        summary = SyncSummary(
            success=True,
            message=(
                f"Synced {outcome['succeeded']}/{total_units} units "
                f"for {len(budgets)} budgets ({request.period} {request.year})"
            ),
            total_units=total_units,
            succeeded=outcome["succeeded"],
            failed=outcome["failed"],
            duration_seconds=duration,
        )
        logger.info("sync.run.done", **summary.__dict__)
        return summary

    @log_job("openbudget-retry")
    async def retry_failed(self) -> RetrySummary:
        """Re-drive every unit whose last outcome is `error`, one at a time."""
        summary = RetrySummary()
        endpoints: List[str] = await asyncio.to_thread(self.store.failed_units)

        for endpoint in endpoints:
            key = parse_endpoint_key(endpoint)
            if key is None:
                logger.warning("sync.retry.bad_endpoint", endpoint=endpoint)
                summary.skipped += 1
                continue

            summary.attempted += 1
            budget = await asyncio.to_thread(self.store.find_budget, key.budget_code, key.year)
            if budget is None:
                missing = BudgetRef(id=0, code=key.budget_code, year=key.year)
                await self._record_failure(
                    endpoint, missing, key.classification_type, key.period, key.year,
                    SyncValidationError(f"Budget {key.budget_code} not found for year {key.year}"),
                )
                summary.failed += 1
                continue

            ok = await self.sync_unit(budget, key.classification_type, key.period, key.year)
            if ok:
                summary.succeeded += 1
            else:
                summary.failed += 1

        return summary

    async def run_in_background(self, request: SyncRequest) -> None:
        """
        Entry point for fire-and-forget triggers. The outcome of the run as a
        whole lands in api_sync under `run_key`, next to the per-unit rows.
        """
        endpoint = run_key(request.year, request.period)
        try:
            summary = await self.run(request)
        except Exception as exc:
            status, total, details = SYNC_ERROR, 0, _failure_details(exc)
        else:
            status, total, details = SYNC_SUCCESS, summary.succeeded, dict(summary.__dict__)
        details.update(request.model_dump())
        try:
            await asyncio.to_thread(self.store.log_outcome, endpoint, status, total, details)
        except Exception:
            logger.exception("sync.run.log_failed", endpoint=endpoint)
