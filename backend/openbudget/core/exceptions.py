# backend/openbudget/core/exceptions.py
from __future__ import annotations

from typing import Any, Dict, Optional


class SyncValidationError(ValueError):
    """Request-level mistake detected before any I/O (bad types/period, no budgets)."""


class UpstreamError(Exception):
    """Base for everything that goes wrong while talking to the OpenBudget API."""

    transient = True

    def __init__(self, message: str, *, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url

    def details(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "error": self.message,
            "error_class": type(self).__name__,
            "transient": self.transient,
        }
        if self.url:
            out["url"] = self.url
        return out


class UpstreamHTTPError(UpstreamError):
    def __init__(self, status_code: int, body: str, *, url: Optional[str] = None):
        self.status_code = status_code
        self.body = (body or "")[:300]
        super().__init__(f"HTTP {status_code}: {self.body}", url=url)

    def details(self) -> Dict[str, Any]:
        out = super().details()
        out["status_code"] = self.status_code
        return out


class UpstreamNetworkError(UpstreamError):
    """Timeout, DNS failure, refused connection."""


class UpstreamMaintenanceError(UpstreamError):
    """The API answered with an HTML page instead of data."""

    def __init__(self, message: str = "503 service under maintenance", *, url: Optional[str] = None):
        super().__init__(message, url=url)


class ResponseFormatError(UpstreamError):
    # Retried like the others, but usually means the upstream contract changed.

    def __init__(self, body_prefix: str, *, url: Optional[str] = None):
        self.body_prefix = (body_prefix or "")[:200]
        super().__init__("Unrecognized response format", url=url)

    def details(self) -> Dict[str, Any]:
        out = super().details()
        out["body_prefix"] = self.body_prefix
        return out
