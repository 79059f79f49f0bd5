from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List

import structlog

from openbudget.config import get_settings

# Third-party loggers that log every request at INFO; a sync run makes thousands.
_NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default")


def _drop_empty_fields(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # bound fields like budget_code are often None outside a sync unit
    return {key: value for key, value in event_dict.items() if value is not None}


def _processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _drop_empty_fields,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(ensure_ascii=False),
    ]


def configure_logging(level: str | None = None) -> None:
    """Route structlog through stdlib logging and emit one JSON object per line on stdout."""
    log_level = (level or get_settings().LOG_LEVEL or "INFO").upper()

    logging.basicConfig(level=log_level, format="%(message)s", stream=sys.stdout)
    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.configure(
        processors=_processors(),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
