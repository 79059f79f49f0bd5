import json

import httpx
import pytest

from openbudget.core.exceptions import (
    ResponseFormatError,
    SyncValidationError,
    UpstreamHTTPError,
    UpstreamMaintenanceError,
    UpstreamNetworkError,
)
from openbudget.services.fetcher import BudgetApiClient, parse_body

from _helpers import program_csv


def _client(handler) -> BudgetApiClient:
    transport = httpx.MockTransport(handler)
    return BudgetApiClient(
        base_url="https://openbudget.test/api/public",
        client=httpx.AsyncClient(transport=transport),
    )


# --- parse_body ---------------------------------------------------------------

def test_parse_body_csv_with_bom_and_blank_lines():
    text = program_csv("0953000000", [("01.2024", "0210150", "Апарат", 10, 12, 1)]) + "\n\n"
    rows, fmt = parse_body(text)
    assert fmt == "csv"
    assert len(rows) == 1
    assert rows[0]["REP_PERIOD"] == "01.2024"
    assert rows[0]["COD_CONS_MB_PK_NAME"] == "Апарат"


def test_parse_body_csv_empty_cell_becomes_none():
    rows, _ = parse_body("REP_PERIOD;COD_BUDGET;FAKT_AMT\n01.2024;0953000000;\n")
    assert rows == [{"REP_PERIOD": "01.2024", "COD_BUDGET": "0953000000", "FAKT_AMT": None}]


def test_parse_body_json_envelope_and_bare_array():
    rows, fmt = parse_body(json.dumps({"data": [{"REP_PERIOD": "01.2024"}]}))
    assert fmt == "json" and rows == [{"REP_PERIOD": "01.2024"}]

    rows, _ = parse_body(json.dumps([{"REP_PERIOD": "02.2024"}, "junk"]))
    assert rows == [{"REP_PERIOD": "02.2024"}]

    rows, _ = parse_body(json.dumps({"status": "ok"}))
    assert rows == []


@pytest.mark.parametrize("body", ["<!DOCTYPE html><html>Технічні роботи</html>", "  <HTML><body>down</body>"])
def test_parse_body_html_is_maintenance(body):
    with pytest.raises(UpstreamMaintenanceError):
        parse_body(body)


def test_parse_body_garbage_keeps_prefix():
    with pytest.raises(ResponseFormatError) as ei:
        parse_body("totally not data")
    assert ei.value.body_prefix.startswith("totally")
    assert ei.value.details()["error_class"] == "ResponseFormatError"


# --- client -------------------------------------------------------------------

@pytest.mark.anyio
async def test_fetch_sends_expected_query_and_parses_csv():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        seen["path"] = request.url.path
        body = program_csv("0953000000", [("01.2024", "0210150", "Апарат", 10, 12, 1)])
        return httpx.Response(200, content=body.encode("utf-8"))

    async with _client(handler) as client:
        result = await client.fetch("0953000000", 2024, "program", "month")

    assert seen["path"] == "/api/public/localBudgetData"
    assert seen["budgetCode"] == "0953000000"
    assert seen["budgetItem"] == "EXPENSES"
    assert seen["classificationType"] == "PROGRAM"
    assert seen["period"] == "MONTH"
    assert seen["year"] == "2024"
    assert result.body_format == "csv"
    assert len(result.rows) == 1
    assert result.request_params["classificationType"] == "PROGRAM"
    assert "budgetCode=0953000000" in result.source_url


@pytest.mark.anyio
async def test_fetch_non_2xx_raises_http_error_with_truncated_body():
    def handler(request):
        return httpx.Response(502, text="x" * 1000)

    async with _client(handler) as client:
        with pytest.raises(UpstreamHTTPError) as ei:
            await client.fetch("0953000000", 2024, "economic")

    assert ei.value.status_code == 502
    assert len(ei.value.body) == 300
    assert ei.value.transient is True


@pytest.mark.anyio
async def test_fetch_network_failure_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(UpstreamNetworkError) as ei:
            await client.fetch("0953000000", 2024, "functional")
    assert ei.value.details()["transient"] is True


@pytest.mark.anyio
async def test_fetch_timeout_is_network_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(handler) as client:
        with pytest.raises(UpstreamNetworkError):
            await client.fetch("0953000000", 2024, "program")


@pytest.mark.anyio
async def test_fetch_html_maintenance_page():
    def handler(request):
        return httpx.Response(200, text="<!DOCTYPE html><html><body>maintenance</body></html>")

    async with _client(handler) as client:
        with pytest.raises(UpstreamMaintenanceError):
            await client.fetch("0953000000", 2024, "program")


@pytest.mark.anyio
async def test_fetch_rejects_bad_type_and_period_before_io():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"data": []})

    async with _client(handler) as client:
        with pytest.raises(SyncValidationError):
            await client.fetch("0953000000", 2024, "budgetary")
        with pytest.raises(SyncValidationError):
            await client.fetch("0953000000", 2024, "program", "WEEK")
    assert calls == []
