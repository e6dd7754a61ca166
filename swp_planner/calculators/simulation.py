"""Systematic Withdrawal Plan simulation driver.

:func:`simulate` walks a withdrawal schedule in date order.  On each date it
values the portfolio, hands the requested amount to the configured
allocator, records what was sold and stops as soon as the portfolio is
depleted (nothing left to value, or nothing could be sold).  Drawdown is
computed once at the end over the recorded portfolio values.

The run is a pure function of its input: holdings are cloned, price series
are re-sorted into private indexes and nothing reads the clock.

Example
-------

>>> res = simulate({
...     "start_date": "2024-01-01",
...     "withdrawal_amount": 500.0,
...     "withdrawal_dates": ["2024-02-01", "2024-03-01"],
...     "strategy": "PROPORTIONAL",
...     "target_weights": {"A": 1.0},
...     "initial_units": {"A": 100.0},
...     "price_series_by_fund": {"A": [("2024-01-01", 10.0)]},
... })
>>> res.totals.withdrawn, res.totals.ending_value, res.totals.depleted_on
(1000.0, 0.0, None)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .allocation import ConfigurationError, FundWithdrawal, Strategy, allocate
from .nav_series import build_indexes, to_date
from .precision import NEAR_ZERO, round_money, round_units
from .valuation import portfolio_value, unpriced_funds

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    INIT_STATE = "INIT_STATE"
    WITHDRAWAL = "WITHDRAWAL"


@dataclass
class SWPInput:
    """Everything one simulation needs.

    ``target_weights`` need not sum to 1; allocators normalise them.
    ``risk_order`` and ``fund_risk`` are only read by the risk-bucket strategy.
    """

    start_date: date
    withdrawal_amount: float
    withdrawal_dates: List[date]
    strategy: Strategy
    target_weights: Dict[str, float]
    initial_units: Dict[str, float]
    price_series_by_fund: Dict[str, Any]
    risk_order: Optional[List[str]] = None
    fund_risk: Optional[Dict[str, str]] = None

    def __post_init__(self):
        self.start_date = to_date(self.start_date)
        self.withdrawal_amount = float(self.withdrawal_amount)
        if self.withdrawal_amount <= 0:
            raise ConfigurationError("Withdrawal amount must be greater than zero.")
        self.withdrawal_dates = [to_date(d) for d in self.withdrawal_dates]
        self.strategy = Strategy.parse(self.strategy)
        self.target_weights = {k: float(v) for k, v in (self.target_weights or {}).items()}
        self.initial_units = {k: float(v) for k, v in (self.initial_units or {}).items()}
        self.price_series_by_fund = dict(self.price_series_by_fund or {})
        if self.risk_order is not None:
            self.risk_order = list(self.risk_order)
        if self.fund_risk is not None:
            self.fund_risk = dict(self.fund_risk)
        if self.strategy is Strategy.RISK_BUCKET and (self.risk_order is None or self.fund_risk is None):
            raise ConfigurationError("Risk order and fund risk mapping required for RISK_BUCKET strategy.")

    _FIELDS = (
        ("start_date", "startDate"),
        ("withdrawal_amount", "withdrawalAmount"),
        ("withdrawal_dates", "withdrawalDates"),
        ("strategy", "strategy"),
        ("target_weights", "targetWeights"),
        ("initial_units", "initialUnits"),
        ("price_series_by_fund", "priceSeriesByFund", "nav_series_by_fund", "navSeriesByFund"),
    )

    @classmethod
    def from_dict(cls, plan: Mapping[str, Any]) -> "SWPInput":
        """Build from a plan dictionary (snake_case or camelCase keys)."""
        kwargs = {}
        for names in cls._FIELDS:
            key = next((n for n in names if n in plan), None)
            if key is None:
                raise ConfigurationError(f"Missing required field '{names[0]}'")
            kwargs[names[0]] = plan[key]
        kwargs["risk_order"] = plan.get("risk_order", plan.get("riskOrder"))
        kwargs["fund_risk"] = plan.get("fund_risk", plan.get("fundRisk"))
        return cls(**kwargs)


@dataclass
class TimelineAction:
    type: ActionType
    amount: float = 0.0
    shortfall: float = 0.0
    per_fund: List[FundWithdrawal] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)


@dataclass
class TimelineEntry:
    date: date
    portfolio_value: float
    units: Dict[str, float]
    action: TimelineAction


@dataclass(frozen=True)
class Cashflow:
    date: date
    amount: float


@dataclass(frozen=True)
class ExcludedFund:
    """A fund holding units that had no usable price on ``date``."""

    date: date
    fund_id: str


@dataclass
class FundResult:
    fund_id: str
    total_withdrawn: float
    remaining_units: float
    sales: List[FundWithdrawal]


@dataclass
class Totals:
    withdrawn: float
    starting_value: float
    ending_value: float
    periods_run: int
    depleted_on: Optional[date]
    max_drawdown: float
    peak_value: float
    shortfall_total: float


@dataclass
class SimulationResult:
    timeline: List[TimelineEntry]
    totals: Totals
    fund_results: List[FundResult]
    cashflows: List[Cashflow]
    cashflows_by_fund: Dict[str, List[Cashflow]]
    excluded_funds: List[ExcludedFund]

    @property
    def withdrawals(self) -> List[TimelineEntry]:
        return [e for e in self.timeline if e.action.type is ActionType.WITHDRAWAL]

    @property
    def excluded_fund_ids(self) -> List[str]:
        return sorted({e.fund_id for e in self.excluded_funds})

    def to_dict(self) -> dict:
        return asdict(self)


def compute_max_drawdown(values: Sequence[float]) -> Tuple[float, float]:
    """Largest peak-to-trough decline as a fraction of the running peak.

    Returns ``(max_drawdown, peak_value)`` where ``peak_value`` is the peak the
    worst decline was measured from (the overall high when there is no
    decline).  Samples at or below zero never become a peak.
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0, 0.0
    peaks = np.maximum.accumulate(arr)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(peaks > 0, (peaks - arr) / peaks, 0.0)
    worst = int(np.argmax(drawdowns))
    max_drawdown = float(drawdowns[worst])
    peak_value = float(peaks[worst]) if max_drawdown > 0 else float(peaks[-1])
    return round(max_drawdown, 6), round_money(max(peak_value, 0.0))


def simulate(swp_input) -> SimulationResult:
    """Run one withdrawal plan.  Accepts an :class:`SWPInput` or a plan dict."""
    if isinstance(swp_input, Mapping):
        swp_input = SWPInput.from_dict(swp_input)

    indexes = build_indexes(swp_input.price_series_by_fund)
    units = dict(swp_input.initial_units)
    start = swp_input.start_date
    requested = round_money(swp_input.withdrawal_amount)

    cashflows_by_fund: Dict[str, List[Cashflow]] = {f: [] for f in units}
    sales_by_fund: Dict[str, List[FundWithdrawal]] = {f: [] for f in units}
    withdrawn_by_fund: Dict[str, float] = {f: 0.0 for f in units}
    cashflows: List[Cashflow] = []
    excluded = [ExcludedFund(start, f) for f in unpriced_funds(units, start, indexes)]

    starting_value = round_money(portfolio_value(units, start, indexes))
    timeline = [TimelineEntry(start, starting_value, dict(units), TimelineAction(ActionType.INIT_STATE))]
    values = [starting_value]

    total_withdrawn = 0.0
    total_shortfall = 0.0
    periods = 0
    depleted_on: Optional[date] = None
    last_date = start

    for as_of in sorted(swp_input.withdrawal_dates):
        last_date = as_of
        before = portfolio_value(units, as_of, indexes)
        if before <= NEAR_ZERO:
            depleted_on = as_of
            logger.info("Portfolio depleted on %s before withdrawal", as_of)
            break

        skipped = unpriced_funds(units, as_of, indexes)
        excluded.extend(ExcludedFund(as_of, f) for f in skipped)
        if skipped:
            logger.debug("No usable price on %s for %s; excluded", as_of, ", ".join(skipped))

        result = allocate(
            swp_input.strategy, requested, units, as_of, indexes,
            swp_input.target_weights, swp_input.risk_order, swp_input.fund_risk,
        )
        after = round_money(portfolio_value(units, as_of, indexes))
        withdrawn = round_money(requested - result.shortfall)

        periods += 1
        total_withdrawn = round_money(total_withdrawn + withdrawn)
        total_shortfall = round_money(total_shortfall + result.shortfall)
        if result.shortfall > 0:
            logger.debug("Shortfall of %.2f on %s", result.shortfall, as_of)

        for sale in result.sales:
            cf = Cashflow(sale.price_date, sale.amount)
            cashflows_by_fund.setdefault(sale.fund_id, []).append(cf)
            sales_by_fund.setdefault(sale.fund_id, []).append(sale)
            withdrawn_by_fund[sale.fund_id] = round_money(withdrawn_by_fund.get(sale.fund_id, 0.0) + sale.amount)
            cashflows.append(cf)

        action = TimelineAction(ActionType.WITHDRAWAL, withdrawn, result.shortfall, result.sales, skipped)
        timeline.append(TimelineEntry(as_of, after, dict(units), action))
        values.append(after)

        if withdrawn <= NEAR_ZERO:
            depleted_on = as_of
            logger.info("Portfolio depleted on %s: nothing could be sold", as_of)
            break

    ending_value = round_money(portfolio_value(units, last_date, indexes))
    max_drawdown, peak_value = compute_max_drawdown(values)

    fund_results = [
        FundResult(
            fund_id=f,
            total_withdrawn=round_money(withdrawn_by_fund.get(f, 0.0)),
            remaining_units=round_units(units.get(f, 0.0)),
            sales=sales_by_fund.get(f, []),
        )
        for f in swp_input.initial_units
    ]

    totals = Totals(
        withdrawn=total_withdrawn,
        starting_value=starting_value,
        ending_value=ending_value,
        periods_run=periods,
        depleted_on=depleted_on,
        max_drawdown=max_drawdown,
        peak_value=peak_value,
        shortfall_total=total_shortfall,
    )
    return SimulationResult(
        timeline=timeline,
        totals=totals,
        fund_results=fund_results,
        cashflows=sorted(cashflows, key=lambda cf: cf.date),
        cashflows_by_fund=cashflows_by_fund,
        excluded_funds=excluded,
    )


__all__ = [
    "ActionType",
    "SWPInput",
    "TimelineAction",
    "TimelineEntry",
    "Cashflow",
    "ExcludedFund",
    "FundResult",
    "Totals",
    "SimulationResult",
    "compute_max_drawdown",
    "simulate",
]
