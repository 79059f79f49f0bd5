from __future__ import annotations

import functools
import inspect
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, TypeVar

import structlog

F = TypeVar("F", bound=Callable[..., Any])

logger = structlog.get_logger("job")

# summary attributes worth surfacing on job.completed
_SUMMARY_FIELDS = ("total_units", "succeeded", "failed", "attempted", "skipped")


def _result_fields(res: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in _SUMMARY_FIELDS:
        value = getattr(res, name, None)
        if isinstance(value, (int, float)):
            out[name] = value
    if not out and isinstance(res, (list, tuple, set, dict)):
        out["result_size"] = len(res)
    return out


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


@contextmanager
def _timed(name: str) -> Iterator[Dict[str, Any]]:
    """Log job.start/job.completed around the body; the body stores its return value in the dict."""
    started = time.perf_counter()
    holder: Dict[str, Any] = {}
    logger.info("job.start", job=name)
    try:
        yield holder
    except Exception:
        logger.exception("job.error", job=name, duration_ms=_elapsed_ms(started))
        raise
    logger.info("job.completed", job=name, duration_ms=_elapsed_ms(started), **_result_fields(holder.get("result")))


def log_job(name: str) -> Callable[[F], F]:
    """Wrap a scheduler job (sync or async) with timing and structured start/finish/error logs."""

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def run_async(*args: Any, **kwargs: Any):
                with _timed(name) as holder:
                    holder["result"] = await func(*args, **kwargs)
                return holder["result"]

            return run_async  # type: ignore[return-value]

        @functools.wraps(func)
        def run_sync(*args: Any, **kwargs: Any):
            with _timed(name) as holder:
                holder["result"] = func(*args, **kwargs)
            return holder["result"]

        return run_sync  # type: ignore[return-value]

    return decorator
