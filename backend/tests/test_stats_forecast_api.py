from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from openbudget.main import app
from openbudget.models import BudgetStructure

from _helpers import is_enveloped, unwrap

CODE = "0953000000"


@pytest.fixture
def structure_rows(db):
    def add(year, month, code, actual, plan=0.0, approved=0.0):
        db.add(BudgetStructure(
            rep_period=f"{month:02d}.{year}",
            rep_year=year,
            rep_month=month,
            cod_budget=CODE,
            classification_type="PROGRAM",
            classification_code=code,
            classification_name=f"КПКВК {code}",
            approved_amount=approved,
            plan_amount=plan,
            actual_amount=actual,
        ))

    for year, value in ((2021, 100), (2022, 110), (2023, 121)):
        add(year, 12, "0210150", value, plan=150)
    for month, value in ((1, 100), (2, 150), (3, 200)):
        add(2024, month, "0210150", value, plan=1200, approved=1000)
    add(2024, 3, "0217130", 30, approved=60)
    db.commit()


def test_stats_bundle(user_client, structure_rows):
    r = user_client.get(f"/api/stats/{CODE}/program/2024")
    assert r.status_code == 200, r.text
    body = r.json()
    assert is_enveloped(body)
    assert body["meta"]["budget_code"] == CODE
    assert body["meta"]["classification_type"] == "PROGRAM"

    data = unwrap(body)
    assert [m["actual"] for m in data["monthly"]] == [100.0, 150.0, 230.0]
    assert data["quarterly"] == [
        {"quarter": "Q1", "month": 3, "approved": 1060.0, "plan": 1200.0, "actual": 230.0}
    ]
    assert data["yearly"]["actual"] == 480.0
    assert [t["code"] for t in data["top10"]] == ["0210150", "0217130"]
    assert [d["year"] for d in data["dynamics"]] == [2021, 2022, 2023, 2024]


def test_stats_structure_breakdown(user_client, structure_rows):
    r = user_client.get(f"/api/stats/{CODE}/PROGRAM/2024/structure")
    assert r.status_code == 200, r.text
    rows = unwrap(r.json())
    assert [(row["code"], row["plan"], row["execution_percent"]) for row in rows] == [
        ("0210150", 1200.0, 16.67),
        ("0217130", 60.0, 50.0),
    ]


def test_stats_empty_budget_is_zeroes(user_client, db):
    r = user_client.get("/api/stats/0000000000/economic/2024")
    assert r.status_code == 200
    data = unwrap(r.json())
    assert data["monthly"] == []
    assert data["yearly"]["actual"] == 0.0
    assert data["yearly"]["execution_percent"] == 0.0
    assert data["structure"] == []


def test_stats_bad_type_and_year(user_client, db):
    r = user_client.get(f"/api/stats/{CODE}/budgetary/2024")
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "INVALID_PARAMS"

    r = user_client.get(f"/api/stats/{CODE}/program/1990")
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_forecast_endpoint_and_cache_flag(user_client, structure_rows):
    r = user_client.get(f"/api/forecast/{CODE}/program", params={"alpha": 0.3, "window": 3})
    assert r.status_code == 200, r.text
    data = unwrap(r.json())
    assert data["cached"] is False
    assert [p["year"] for p in data["series"]] == [2021, 2022, 2023, 2024]
    assert set(data["methods"]) == {"arithmetic_growth", "moving_average", "exponential", "regression"}
    assert data["methods"]["regression"]["forecast_year"] == 2025
    assert r.json()["meta"]["params"] == {"alpha": 0.3, "window": 3}

    again = unwrap(user_client.get(f"/api/forecast/{CODE}/program", params={"alpha": 0.3, "window": 3}).json())
    assert again["cached"] is True
    assert again["methods"] == data["methods"]

    forced = unwrap(user_client.get(f"/api/forecast/{CODE}/program", params={"force": "true"}).json())
    assert forced["cached"] is False


def test_forecast_validation(user_client, db):
    assert user_client.get(f"/api/forecast/{CODE}/program", params={"alpha": 0}).status_code == 422
    assert user_client.get(f"/api/forecast/{CODE}/program", params={"alpha": 1.2}).status_code == 422
    assert user_client.get(f"/api/forecast/{CODE}/program", params={"window": 0}).status_code == 422
    r = user_client.get(f"/api/forecast/{CODE}/budgetary")
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "INVALID_PARAMS"


def test_read_routes_need_a_valid_token(db):
    with TestClient(app) as anon:
        assert anon.get(f"/api/stats/{CODE}/program/2024").status_code in (401, 403)
        assert anon.get(f"/api/forecast/{CODE}/program").status_code in (401, 403)
    with TestClient(app, headers={"Authorization": "Bearer garbage"}) as bad:
        assert bad.get(f"/api/forecast/{CODE}/program").status_code == 401
