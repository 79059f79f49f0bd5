import pandas as pd
import pytest

from openbudget.services.forecast import (
    arithmetic_growth,
    compute_methods,
    exponential_smoothing,
    linear_regression,
    moving_average,
)


def _series(points):
    return pd.Series([v for _, v in points], index=[y for y, _ in points], dtype=float)


GROWTH = _series([(2021, 100), (2022, 110), (2023, 121)])
LINEAR = _series([(2021, 10), (2022, 20), (2023, 30)])


def test_exponential_smoothing_recurrence():
    res = exponential_smoothing(GROWTH, alpha=0.3)
    assert res["forecast_year"] == 2024
    assert res["forecast_value"] == pytest.approx(108.4)
    assert res["last_smoothed"] == pytest.approx(108.4)
    assert res["alpha"] == 0.3


def test_exponential_alpha_one_tracks_last_value():
    assert exponential_smoothing(GROWTH, alpha=1.0)["forecast_value"] == pytest.approx(121.0)


def test_linear_regression_perfect_trend():
    res = linear_regression(LINEAR)
    assert res["b"] == pytest.approx(10.0)
    assert res["a"] == pytest.approx(0.0, abs=1e-9)
    assert res["forecast_year"] == 2024
    assert res["forecast_value"] == pytest.approx(40.0)
    assert [p["year"] for p in res["trend"]] == [2021, 2022, 2023]
    assert [p["value"] for p in res["trend"]] == pytest.approx([10.0, 20.0, 30.0])


def test_arithmetic_growth_average_rate():
    res = arithmetic_growth(GROWTH)
    assert res["avg_rate"] == pytest.approx(0.1)
    assert res["forecast_year"] == 2024
    assert res["forecast_value"] == pytest.approx(133.1)


def test_arithmetic_growth_skips_non_positive_previous_years():
    res = arithmetic_growth(_series([(2020, 0), (2021, 50), (2022, 100)]))
    assert res["avg_rate"] == pytest.approx(1.0)
    assert res["forecast_value"] == pytest.approx(200.0)

    assert arithmetic_growth(_series([(2020, -5), (2021, 10)])) is None


def test_moving_average_window_clamped_to_length():
    res = moving_average(GROWTH, window=3)
    assert res["forecast_value"] == pytest.approx(331 / 3)
    assert res["years_used"] == [2021, 2022, 2023]

    short = moving_average(GROWTH, window=5)
    assert short["window"] == 3

    last_two = moving_average(GROWTH, window=2)
    assert last_two["forecast_value"] == pytest.approx(115.5)
    assert last_two["years_used"] == [2022, 2023]


def test_single_point_minimums():
    one = _series([(2023, 42)])
    assert arithmetic_growth(one) is None
    assert linear_regression(one) is None
    assert moving_average(one, window=3)["forecast_value"] == 42.0
    assert exponential_smoothing(one, alpha=0.3)["forecast_value"] == 42.0


def test_empty_series_yields_nothing():
    empty = pd.Series(dtype=float)
    assert compute_methods(empty, 0.3, 3) == {
        "arithmetic_growth": None,
        "moving_average": None,
        "exponential": None,
        "regression": None,
    }


def test_compute_methods_runs_each_independently():
    methods = compute_methods(_series([(2023, 42)]), 0.3, 3)
    assert methods["arithmetic_growth"] is None
    assert methods["regression"] is None
    assert methods["moving_average"]["forecast_year"] == 2024
    assert methods["exponential"]["forecast_year"] == 2024
