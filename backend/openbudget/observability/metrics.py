from __future__ import annotations

from collections import defaultdict, deque
from typing import Deque, Dict, List

import numpy as np
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Histogram,
    CONTENT_TYPE_LATEST,
    generate_latest,
)

router = APIRouter()

REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency",
    ["path", "method"],
)

SYNC_UNITS = Counter(
    "openbudget_sync_units_total",
    "Sync units (budget x classification type) by outcome",
    ["classification_type", "status"],
)
SYNC_RECORDS = Counter(
    "openbudget_sync_records_total",
    "Structure rows written by sync",
    ["classification_type"],
)
FETCH_LATENCY = Histogram(
    "openbudget_fetch_duration_seconds",
    "Upstream localBudgetData fetch latency",
    ["classification_type"],
)

_LATENCY_SAMPLES: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=200))


def record_latency(path: str, duration_ms: float) -> None:
    _LATENCY_SAMPLES[path].append(duration_ms)


def record_sync_unit(classification_type: str, status: str, records: int = 0) -> None:
    ctype = classification_type.lower()
    SYNC_UNITS.labels(classification_type=ctype, status=status).inc()
    if records:
        SYNC_RECORDS.labels(classification_type=ctype).inc(records)


@router.get("/metrics")
async def metrics_endpoint() -> PlainTextResponse:
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/api/health/latency")
async def latency_health() -> dict[str, List[dict[str, float | str]]]:
    """p50/p95 over the last requests seen per route template."""
    rows: List[dict[str, float | str]] = []
    for path, samples in sorted(_LATENCY_SAMPLES.items()):
        if not samples:
            continue
        p50, p95 = np.percentile(np.fromiter(samples, dtype=float), [50, 95])
        rows.append({
            "path": path,
            "p50_ms": round(float(p50), 2),
            "p95_ms": round(float(p95), 2),
            "sample_size": len(samples),
        })
    return {"paths": rows}
