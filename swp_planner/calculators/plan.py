"""Lump-sum SWP plan runner.

A plan invests a lump sum across funds on a purchase date, then withdraws a
fixed amount on a Monthly, Quarterly or custom-day schedule between the SWP
start and end dates.  :func:`run_plan` validates the plan, buys the initial
units, runs :func:`~swp_planner.calculators.simulation.simulate` and returns a
summary dictionary with tabular output ready for charts.

Plan dictionary
---------------

``purchase_date``, ``swp_start_date``, ``end_date``
    ISO dates (or ``datetime.date``).
``total_investment``, ``withdrawal_amount``
    Positive amounts.
``frequency``
    ``"Monthly"`` (default), ``"Quarterly"`` or ``"Custom"`` with
    ``custom_frequency_days`` (default 30).
``strategy``
    ``"PROPORTIONAL"`` (default), ``"OVERWEIGHT_FIRST"`` or ``"RISK_BUCKET"``.
``funds``
    List of ``{"id", "name", "weightage", "category", "risk_bucket"}``; only
    ``id`` and ``weightage`` are required.
``nav_series``
    Mapping of fund id to its price history.
``risk_order``, ``fund_risk``
    Optional overrides for the risk-bucket strategy.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Tuple

import pandas as pd

from . import risk, schedule
from .allocation import Strategy
from .nav_series import PriceSeriesIndex, build_indexes, to_date
from .precision import round_money
from .returns import xirr
from .simulation import ActionType, SimulationResult, SWPInput, simulate

logger = logging.getLogger(__name__)


def _buy_price(index: PriceSeriesIndex, as_of):
    return index.on_or_before(as_of) or index.first_on_or_after(as_of)


def initial_units_for_investment(total_investment: float, weights: Mapping[str, float],
                                 price_series_by_fund: Mapping, purchase_date) -> Tuple[Dict[str, float], Dict[str, float]]:
    """Split ``total_investment`` by weight and buy units on ``purchase_date``.

    Units are bought at the price on or before the purchase date, or the
    first price after it when the fund has no earlier history.

    Returns
    -------
    tuple
        ``(units, purchase_prices)`` keyed by fund id.
    """
    weight_total = sum(float(w) for w in weights.values())
    if weight_total <= 0:
        raise ValueError("Fund weightages must sum to a positive number.")
    indexes = build_indexes(price_series_by_fund)
    units: Dict[str, float] = {}
    prices: Dict[str, float] = {}
    for fund_id, weight in weights.items():
        index = indexes.get(fund_id)
        if index is None or len(index) == 0:
            raise ValueError(f"No NAV history found for {fund_id}.")
        point = _buy_price(index, purchase_date)
        if point is None or point.price <= 0:
            raise ValueError(f"No NAV available around {to_date(purchase_date)} for {fund_id}.")
        prices[fund_id] = point.price
        units[fund_id] = total_investment * (float(weight) / weight_total) / point.price
    return units, prices


def _validate(plan: Mapping, funds: List[Dict], strategy: Strategy, fund_risk: Mapping[str, str],
              risk_order: List[str]) -> None:
    for key, label in (("purchase_date", "initial investment date"),
                       ("swp_start_date", "SWP start date"),
                       ("end_date", "SWP end date")):
        if not plan.get(key):
            raise ValueError(f"Please select the {label}.")
    purchase = to_date(plan["purchase_date"])
    start = to_date(plan["swp_start_date"])
    end = to_date(plan["end_date"])
    if purchase > start:
        raise ValueError("SWP start date must be on or after the investment date.")
    if start > end:
        raise ValueError("End date must be after the SWP start date.")
    if float(plan.get("total_investment", 0.0)) <= 0:
        raise ValueError("Please enter the total investment amount.")
    if float(plan.get("withdrawal_amount", 0.0)) <= 0:
        raise ValueError("Withdrawal amount must be greater than zero.")
    if not funds:
        raise ValueError("Please select at least one fund.")
    if strategy is Strategy.RISK_BUCKET and any(fund_risk.get(f["id"]) not in risk_order for f in funds):
        raise ValueError("Assign a risk bucket to every fund to use the risk-based strategy.")


def _value_on(index: PriceSeriesIndex, units: float, as_of) -> Tuple[float, object]:
    """Value of ``units`` at the latest price on ``as_of``, else the last known price."""
    if index is None or len(index) == 0:
        return 0.0, None
    point = index.on_or_before(as_of) or index.last()
    return units * point.price, point


def chart_frame(sim: SimulationResult, funds: List[Dict], indexes: Mapping[str, PriceSeriesIndex],
                total_investment: float) -> pd.DataFrame:
    """One row per timeline entry: invested, cumulative withdrawn, portfolio and per-fund value."""
    rows = []
    withdrawn = 0.0
    for entry in sim.timeline:
        if entry.action.type is ActionType.WITHDRAWAL:
            withdrawn = round_money(withdrawn + entry.action.amount)
        row = {
            "date": entry.date,
            "invested": total_investment,
            "withdrawn": withdrawn,
            "portfolio_value": entry.portfolio_value,
        }
        for fund in funds:
            value, _ = _value_on(indexes.get(fund["id"]), entry.units.get(fund["id"], 0.0), entry.date)
            row[fund.get("name", fund["id"])] = round_money(value)
        rows.append(row)
    return pd.DataFrame(rows)


def withdrawal_table(sim: SimulationResult, funds: List[Dict], indexes: Mapping[str, PriceSeriesIndex]) -> pd.DataFrame:
    """One row per withdrawal date and fund."""
    columns = ["date", "fund_id", "fund_name", "nav_date", "nav", "withdrawal_amount",
               "units_redeemed", "units_left", "fund_value", "portfolio_value", "total_withdrawal"]
    rows = []
    for entry in sim.withdrawals:
        sold: Dict[str, List[float]] = {}
        for s in entry.action.per_fund:
            agg = sold.setdefault(s.fund_id, [0.0, 0.0])
            agg[0] += s.amount
            agg[1] += s.units_sold
        last_sale = {s.fund_id: s for s in entry.action.per_fund}
        for fund in funds:
            fund_id = fund["id"]
            units_left = entry.units.get(fund_id, 0.0)
            sale = last_sale.get(fund_id)
            amount, units_redeemed = sold.get(fund_id, (0.0, 0.0))
            if sale is not None:
                nav_date, nav = sale.price_date, sale.price
                fund_value = units_left * nav
            else:
                fund_value, point = _value_on(indexes.get(fund_id), units_left, entry.date)
                nav_date = point.date if point else entry.date
                nav = point.price if point else 0.0
            rows.append({
                "date": entry.date,
                "fund_id": fund_id,
                "fund_name": fund.get("name", fund_id),
                "nav_date": nav_date,
                "nav": nav,
                "withdrawal_amount": round_money(amount),
                "units_redeemed": units_redeemed,
                "units_left": units_left,
                "fund_value": round_money(fund_value),
                "portfolio_value": entry.portfolio_value,
                "total_withdrawal": entry.action.amount,
            })
    return pd.DataFrame(rows, columns=columns)


def run_plan(plan: Mapping) -> dict:
    """Validate and simulate a lump-sum SWP plan.

    Returns
    -------
    dict
        ``total_invested``, ``total_withdrawn``, ``final_corpus``, ``xirr``,
        ``max_drawdown``, ``survival_periods``, ``depleted_on``,
        ``fund_summaries``, ``chart_data`` and ``table`` (DataFrames) and the
        underlying ``simulation`` result.
    """
    funds = [dict(f) for f in plan.get("funds", [])]
    strategy = Strategy.parse(plan.get("strategy", Strategy.PROPORTIONAL))
    fund_risk = risk.assign_risk_buckets(funds, plan.get("fund_risk"))
    risk_order = list(plan.get("risk_order") or risk.default_risk_order())
    _validate(plan, funds, strategy, fund_risk, risk_order)

    purchase_date = to_date(plan["purchase_date"])
    end_date = to_date(plan["end_date"])
    total_investment = float(plan["total_investment"])
    nav_series = plan.get("nav_series", {}) or {}
    if not any(nav_series.get(f["id"]) is not None for f in funds):
        raise ValueError("No NAV data available for the selected funds.")

    dates = schedule.withdrawal_dates(
        plan["swp_start_date"], end_date,
        plan.get("frequency", schedule.Frequency.MONTHLY),
        int(plan.get("custom_frequency_days", 30)),
    )
    if not dates:
        raise ValueError("No withdrawal dates generated for the selected range.")

    weights = {f["id"]: float(f.get("weightage", 0.0)) for f in funds}
    initial_units, purchase_prices = initial_units_for_investment(total_investment, weights, nav_series, purchase_date)
    weight_total = sum(weights.values())
    target_weights = {k: w / weight_total for k, w in weights.items()}

    is_risk = strategy is Strategy.RISK_BUCKET
    sim = simulate(SWPInput(
        start_date=purchase_date,
        withdrawal_amount=float(plan["withdrawal_amount"]),
        withdrawal_dates=dates,
        strategy=strategy,
        target_weights=target_weights,
        initial_units=initial_units,
        price_series_by_fund={f["id"]: nav_series[f["id"]] for f in funds},
        risk_order=risk_order if is_risk else None,
        fund_risk=fund_risk if is_risk else None,
    ))
    indexes = build_indexes({f["id"]: nav_series[f["id"]] for f in funds})

    results_by_fund = {r.fund_id: r for r in sim.fund_results}
    fund_summaries = []
    for fund in funds:
        fund_id = fund["id"]
        fr = results_by_fund[fund_id]
        value, _ = _value_on(indexes.get(fund_id), fr.remaining_units, end_date)
        fund_summaries.append({
            "fund_id": fund_id,
            "fund_name": fund.get("name", fund_id),
            "weightage": weights[fund_id],
            "risk_bucket": fund_risk.get(fund_id),
            "nav_at_purchase": purchase_prices[fund_id],
            "units_purchased": initial_units[fund_id],
            "remaining_units": fr.remaining_units,
            "total_withdrawn": fr.total_withdrawn,
            "current_value": round_money(value),
        })
    final_corpus = round_money(sum(s["current_value"] for s in fund_summaries))

    depleted_on = sim.totals.depleted_on
    flows = [(purchase_date, -total_investment)] + [(e.date, e.action.amount) for e in sim.withdrawals]
    if final_corpus > 0 or depleted_on:
        flows.append((depleted_on or end_date, final_corpus))
    rate = xirr(flows)
    if depleted_on:
        logger.info("Plan depleted on %s after %d withdrawals", depleted_on, sim.totals.periods_run)

    return {
        "total_invested": total_investment,
        "total_withdrawn": round_money(sim.totals.withdrawn),
        "final_corpus": final_corpus,
        "xirr": rate,
        "max_drawdown": sim.totals.max_drawdown,
        "survival_periods": len(sim.withdrawals) if depleted_on else len(dates),
        "depleted_on": depleted_on,
        "withdrawal_dates": dates,
        "fund_summaries": fund_summaries,
        "chart_data": chart_frame(sim, funds, indexes, total_investment),
        "table": withdrawal_table(sim, funds, indexes),
        "simulation": sim,
    }


__all__ = ["initial_units_for_investment", "chart_frame", "withdrawal_table", "run_plan"]
