import pytest

from openbudget.services.sync_log import (
    EndpointKey,
    endpoint_key,
    list_sync_results,
    log_sync,
    parse_endpoint_key,
    run_key,
)


def test_endpoint_key_shape():
    assert endpoint_key("PROGRAM", "0953000000", "month", 2024) == "localBudgetData_program_0953000000_MONTH_2024"
    assert run_key(2024, "quarter") == "syncRun_QUARTER_2024"


@pytest.mark.parametrize("ctype", ["program", "functional", "economic"])
@pytest.mark.parametrize("period", ["MONTH", "QUARTER"])
def test_parse_inverts_endpoint_key(ctype, period):
    key = endpoint_key(ctype, "0150000000", period, 2023)
    parsed = parse_endpoint_key(key)
    assert parsed == EndpointKey(ctype, "0150000000", period, 2023)
    assert endpoint_key(parsed.classification_type, parsed.budget_code, parsed.period, parsed.year) == key


@pytest.mark.parametrize(
    "endpoint",
    [
        "",
        "localBudgetData_program_0953000000_MONTH",
        "localBudgetData_program_0953000000_MONTH_2024_extra",
        "otherData_program_0953000000_MONTH_2024",
        "localBudgetData_budgetary_0953000000_MONTH_2024",
        "localBudgetData_PROGRAM_0953000000_MONTH_2024",
        "localBudgetData_program_0953000000_month_2024",
        "localBudgetData_program_0953000000_MONTH_20x4",
        "localBudgetData_program__MONTH_2024",
        "syncRun_MONTH_2024",
    ],
)
def test_parse_rejects_malformed_keys(endpoint):
    assert parse_endpoint_key(endpoint) is None


def test_log_sync_keeps_one_row_per_endpoint(db):
    log_sync(db, "localBudgetData_program_1_MONTH_2024", "error", 0, {"error": "x"})
    log_sync(db, "localBudgetData_program_1_MONTH_2024", "success", 12, {"raw_rows": 12})
    log_sync(db, "localBudgetData_economic_1_MONTH_2024", "success", 3, None)
    db.commit()

    data = list_sync_results(db)
    assert data["total"] == 2
    rows = {r["endpoint"]: r for r in data["results"]}
    assert rows["localBudgetData_program_1_MONTH_2024"]["status"] == "success"
    assert rows["localBudgetData_program_1_MONTH_2024"]["total_records"] == 12
    assert rows["localBudgetData_program_1_MONTH_2024"]["details"] == {"raw_rows": 12}
    assert rows["localBudgetData_economic_1_MONTH_2024"]["last_synced"] is not None


def test_list_sync_results_filters_and_pages(db):
    for i in range(5):
        log_sync(db, f"localBudgetData_program_{i}_MONTH_2024", "success" if i % 2 else "error", i, None)
    db.commit()

    errors = list_sync_results(db, status="error")
    assert errors["total"] == 3
    assert {r["status"] for r in errors["results"]} == {"error"}

    found = list_sync_results(db, endpoint="PROGRAM_3")
    assert [r["endpoint"] for r in found["results"]] == ["localBudgetData_program_3_MONTH_2024"]

    page2 = list_sync_results(db, page=2, limit=2)
    assert page2["total"] == 5
    assert page2["page"] == 2 and page2["limit"] == 2
    assert len(page2["results"]) == 2

    assert list_sync_results(db, limit=10_000)["limit"] == 500
