from datetime import date

import pytest

from swp_planner.calculators import plan as swp_plan


def _monthly(price: float, months: int = 12, year: int = 2023):
    return [{"date": f"{year}-{m:02d}-01", "nav": price} for m in range(1, months + 1)]


def _base_plan():
    return {
        "purchase_date": "2023-01-01",
        "swp_start_date": "2023-02-01",
        "end_date": "2023-12-01",
        "total_investment": 100000.0,
        "withdrawal_amount": 1000.0,
        "frequency": "Monthly",
        "strategy": "PROPORTIONAL",
        "funds": [
            {"id": "A", "name": "Alpha Fund", "weightage": 60, "category": "Liquid Fund"},
            {"id": "B", "name": "Beta Fund", "weightage": 40, "category": "Equity Scheme - Large Cap Fund"},
        ],
        "nav_series": {"A": _monthly(10.0), "B": _monthly(20.0)},
    }


def test_run_plan_summary():
    res = swp_plan.run_plan(_base_plan())
    assert res["total_invested"] == 100000.0
    assert res["total_withdrawn"] == 11000.0
    assert res["final_corpus"] == pytest.approx(89000.0)
    assert res["survival_periods"] == 11
    assert res["depleted_on"] is None
    assert res["max_drawdown"] == pytest.approx(0.11)
    # flat prices: every rupee withdrawn or left was invested, so no return
    assert res["xirr"] == pytest.approx(0.0, abs=1e-6)

    summaries = {s["fund_id"]: s for s in res["fund_summaries"]}
    assert summaries["A"]["units_purchased"] == pytest.approx(6000.0)
    assert summaries["A"]["total_withdrawn"] == 6600.0
    assert summaries["B"]["remaining_units"] == pytest.approx(1780.0)
    assert summaries["B"]["current_value"] == pytest.approx(35600.0)


def test_xirr_uses_withdrawal_dates_when_prices_are_stale():
    plan = _base_plan()
    plan["nav_series"] = {"A": [("2023-01-01", 10.0)], "B": [("2023-01-01", 20.0)]}
    res = swp_plan.run_plan(plan)
    assert {cf.date for cf in res["simulation"].cashflows} == {date(2023, 1, 1)}
    assert res["total_withdrawn"] == 11000.0
    assert res["xirr"] == pytest.approx(0.0, abs=1e-6)


def test_run_plan_tables():
    res = swp_plan.run_plan(_base_plan())
    chart = res["chart_data"]
    assert len(chart) == 12
    assert {"date", "invested", "withdrawn", "portfolio_value", "Alpha Fund", "Beta Fund"} <= set(chart.columns)
    assert chart["withdrawn"].iloc[-1] == 11000.0
    assert chart["portfolio_value"].iloc[0] == 100000.0

    table = res["table"]
    assert len(table) == 22
    first_a = table[(table["date"] == date(2023, 2, 1)) & (table["fund_id"] == "A")].iloc[0]
    assert first_a["withdrawal_amount"] == 600.0
    assert first_a["units_redeemed"] == pytest.approx(60.0)
    assert first_a["units_left"] == pytest.approx(5940.0)


def test_run_plan_risk_bucket_uses_categories():
    plan = _base_plan()
    plan["strategy"] = "RISK_BUCKET"
    res = swp_plan.run_plan(plan)
    summaries = {s["fund_id"]: s for s in res["fund_summaries"]}
    assert summaries["A"]["risk_bucket"] == "LIQUID"
    assert summaries["A"]["total_withdrawn"] == 11000.0
    assert summaries["B"]["total_withdrawn"] == 0.0


def test_run_plan_depletion():
    plan = _base_plan()
    plan.update({
        "total_investment": 3000.0,
        "end_date": "2023-06-01",
        "funds": [{"id": "A", "name": "Alpha Fund", "weightage": 1}],
        "nav_series": {"A": _monthly(10.0)},
    })
    res = swp_plan.run_plan(plan)
    assert res["depleted_on"] == date(2023, 5, 1)
    assert res["survival_periods"] == 3
    assert res["final_corpus"] == 0.0
    assert res["total_withdrawn"] == 3000.0


def test_quarterly_and_custom_frequencies():
    plan = _base_plan()
    plan["frequency"] = "Quarterly"
    assert len(swp_plan.run_plan(plan)["withdrawal_dates"]) == 4
    plan["frequency"] = "Custom"
    plan["custom_frequency_days"] = 100
    assert swp_plan.run_plan(plan)["withdrawal_dates"] == [date(2023, 2, 1), date(2023, 5, 12), date(2023, 8, 20), date(2023, 11, 28)]


@pytest.mark.parametrize("change, message", [
    ({"purchase_date": "2023-03-01"}, "on or after the investment date"),
    ({"swp_start_date": "2024-01-01"}, "End date must be after"),
    ({"withdrawal_amount": 0}, "greater than zero"),
    ({"total_investment": -5}, "total investment"),
    ({"funds": []}, "at least one fund"),
    ({"end_date": None}, "SWP end date"),
    ({"nav_series": {}}, "No NAV data"),
    ({"strategy": "RISK_BUCKET", "fund_risk": {"A": "CRYPTO"}}, "Assign a risk bucket"),
])
def test_run_plan_validation(change, message):
    plan = _base_plan()
    plan.update(change)
    with pytest.raises(ValueError, match=message):
        swp_plan.run_plan(plan)


def test_missing_history_for_one_fund():
    plan = _base_plan()
    plan["nav_series"] = {"A": _monthly(10.0)}
    with pytest.raises(ValueError, match="No NAV history found for B"):
        swp_plan.run_plan(plan)


def test_initial_units_use_first_price_after_purchase():
    series = {"A": [("2023-01-05", 10.0), ("2023-02-01", 12.0)], "B": [("2022-12-30", 25.0)]}
    units, prices = swp_plan.initial_units_for_investment(1000.0, {"A": 1, "B": 1}, series, "2023-01-01")
    assert prices == {"A": 10.0, "B": 25.0}
    assert units["A"] == pytest.approx(50.0)
    assert units["B"] == pytest.approx(20.0)
    with pytest.raises(ValueError):
        swp_plan.initial_units_for_investment(1000.0, {"A": 0}, series, "2023-01-01")
