from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
import csv
import io
import json

import httpx
import structlog

from openbudget.config import get_settings
from openbudget.core.constants import BUDGET_ITEM, normalize_classification_type, normalize_period
from openbudget.core.exceptions import (
    ResponseFormatError,
    SyncValidationError,
    UpstreamHTTPError,
    UpstreamMaintenanceError,
    UpstreamNetworkError,
)

logger = structlog.get_logger(__name__)

ENDPOINT_PATH = "/localBudgetData"


@dataclass
class FetchResult:
    rows: List[Dict[str, Any]]
    request_params: Dict[str, Any]
    source_url: str
    body_format: str = "json"


# ---------------------------------------------------------------------------
# Body sniffing (text -> row dicts)
# ---------------------------------------------------------------------------

def _looks_like_html(text: str) -> bool:
    head = text[:64].lower()
    return head.startswith("<!doctype") or head.startswith("<html")


def _looks_like_csv(text: str) -> bool:
    first = text.split("\n", 1)[0].strip()
    if not first or first[0] in "{[":
        return False
    return ";" in first


def iter_csv_text(text: str) -> Iterable[Dict[str, Any]]:
    """Yield dictionaries from a `;`-delimited export; empty cells become None."""
    reader = csv.DictReader(io.StringIO(text), delimiter=";")
    for row in reader:
        # skip completely blank lines
        if not any((str(v or "").strip() for v in row.values())):
            continue
        yield {
            (k or "").strip(): (v.strip() if isinstance(v, str) and v.strip() != "" else None)
            for k, v in row.items()
            if k is not None
        }


def parse_body(text: str, *, url: Optional[str] = None) -> tuple[List[Dict[str, Any]], str]:
    """
    Decide what the API sent us and turn it into rows.

    Order matters: the maintenance page is HTML, so it is checked before
    anything else; CSV is the usual export; JSON is either `{"data": [...]}`
    or a bare array.
    """
    body = (text or "").lstrip("\ufeff").lstrip()

    if _looks_like_html(body):
        raise UpstreamMaintenanceError(url=url)

    if _looks_like_csv(body):
        return list(iter_csv_text(body)), "csv"

    try:
        obj = json.loads(body)
    except ValueError:
        raise ResponseFormatError(body[:200], url=url)

    if isinstance(obj, dict):
        data = obj.get("data") or []
    elif isinstance(obj, list):
        data = obj
    else:
        raise ResponseFormatError(body[:200], url=url)

    if not isinstance(data, list):
        raise ResponseFormatError(body[:200], url=url)
    return [r for r in data if isinstance(r, dict)], "json"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class BudgetApiClient:
    """
    Thin async client for the public localBudgetData endpoint.

    No retries here; a failed unit is logged by the caller and picked up
    later by the retry driver.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        verify: Optional[bool] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.OPENBUDGET_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.OPENBUDGET_TIMEOUT_SECONDS
        self.verify = settings.OPENBUDGET_VERIFY_SSL if verify is None else verify
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=min(10.0, self.timeout)),
            verify=self.verify,
        )

    async def __aenter__(self) -> "BudgetApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def url(self) -> str:
        return f"{self.base_url}{ENDPOINT_PATH}"

    async def fetch(
        self,
        budget_code: str,
        year: int,
        classification_type: str,
        period: str = "MONTH",
    ) -> FetchResult:
        try:
            ctype = normalize_classification_type(classification_type)
            per = normalize_period(period)
        except ValueError as exc:
            raise SyncValidationError(str(exc))

        params = {
            "budgetCode": budget_code,
            "budgetItem": BUDGET_ITEM,
            "classificationType": ctype,
            "period": per,
            "year": int(year),
        }

        try:
            resp = await self._client.get(self.url, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("fetch.timeout", budget_code=budget_code, type=ctype, error=str(exc))
            raise UpstreamNetworkError(f"Timeout: {exc}", url=self.url)
        except httpx.TransportError as exc:
            logger.warning("fetch.network_error", budget_code=budget_code, type=ctype, error=str(exc))
            raise UpstreamNetworkError(f"{type(exc).__name__}: {exc}", url=self.url)

        source_url = str(resp.request.url)
        text = resp.content.decode("utf-8-sig", errors="replace")

        if not resp.is_success:
            logger.warning(
                "fetch.http_error",
                budget_code=budget_code,
                type=ctype,
                status_code=resp.status_code,
            )
            raise UpstreamHTTPError(resp.status_code, text, url=source_url)

        rows, body_format = parse_body(text, url=source_url)
        logger.debug("fetch.ok", budget_code=budget_code, type=ctype, rows=len(rows), format=body_format)
        return FetchResult(rows=rows, request_params=params, source_url=source_url, body_format=body_format)
