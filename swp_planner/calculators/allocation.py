"""Withdrawal allocation strategies.

Given a requested cash amount, the current unit holdings and a valuation
date, an allocator decides how many units to redeem from which funds.  Three
strategies are available:

* ``PROPORTIONAL`` – split the request by target weight (normalised over the
  funds that still hold units), then top up pro-rata by current value.
* ``OVERWEIGHT_FIRST`` – sell from the funds furthest above their target value
  first, then top up pro-rata by current value.
* ``RISK_BUCKET`` – sweep risk buckets in the given order (safest first) and
  split within a bucket pro-rata by current value.

Every allocator mutates ``holdings`` in place and never sells more than the
request; whatever cannot be funded is returned as ``shortfall``.  Funds whose
price cannot be resolved on the valuation date are left untouched.

Example
-------

>>> from swp_planner.calculators.nav_series import build_indexes
>>> idx = build_indexes({"A": [("2024-01-01", 10.0)], "B": [("2024-01-01", 20.0)]})
>>> units = {"A": 100.0, "B": 100.0}
>>> res = allocate("PROPORTIONAL", 1000.0, units, "2024-01-31", idx, {"A": 0.6, "B": 0.4})
>>> [(s.fund_id, s.amount) for s in res.sales]
[('A', 600.0), ('B', 400.0)]
>>> res.shortfall
0.0
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from .nav_series import PricePoint, PriceSeriesIndex
from .precision import NEAR_ZERO, round_money, round_units
from .valuation import fund_value, usable_price

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised for simulation input that can never produce a result."""


class Strategy(str, Enum):
    PROPORTIONAL = "PROPORTIONAL"
    OVERWEIGHT_FIRST = "OVERWEIGHT_FIRST"
    RISK_BUCKET = "RISK_BUCKET"

    @classmethod
    def parse(cls, value) -> "Strategy":
        """Accept enum members or names such as ``"RISK_BUCKET"``, ``"risk-bucket"``
        and ``"OverweightFirst"``."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ConfigurationError(f"Unsupported strategy {value!r}")
        key = re.sub(r"(?<=[a-z])(?=[A-Z])", "_", value.strip())
        key = re.sub(r"[\s\-]+", "_", key).upper()
        try:
            return cls[key]
        except KeyError:
            raise ConfigurationError(f"Unsupported strategy {value!r}") from None


@dataclass(frozen=True)
class FundWithdrawal:
    fund_id: str
    units_sold: float
    amount: float
    price_date: date
    price: float


@dataclass
class AllocationResult:
    sales: List[FundWithdrawal] = field(default_factory=list)
    shortfall: float = 0.0

    @property
    def amount(self) -> float:
        return round_money(sum(s.amount for s in self.sales))


def sell_up_to(desired: float, value: float, remaining: float, price: float, units_held: float) -> Tuple[float, float]:
    """Clamp a sale to what is wanted, what the fund is worth and what is left.

    Returns ``(units_sold, amount_sold)``; both are zero when nothing can be
    sold.  Units never exceed ``units_held``.
    """
    if price <= 0 or units_held <= 0:
        return 0.0, 0.0
    amount = round_money(min(desired, value, remaining))
    if amount <= 0:
        return 0.0, 0.0
    units = min(round_units(amount / price), units_held)
    if units <= 0:
        return 0.0, 0.0
    return units, amount


def _sell(fund_id: str, desired: float, holdings: MutableMapping[str, float], point: PricePoint,
          remaining: float, sales: List[FundWithdrawal]) -> float:
    held = holdings.get(fund_id, 0.0)
    units, amount = sell_up_to(desired, fund_value(held, point), remaining, point.price, held)
    if units <= 0:
        return remaining
    holdings[fund_id] = round_units(max(0.0, held - units))
    sales.append(FundWithdrawal(fund_id, units, amount, point.date, point.price))
    return round_money(remaining - amount)


def _pro_rata(candidates: Sequence[Tuple[str, float]], remaining: float, holdings: MutableMapping[str, float],
              as_of, indexes: Mapping[str, PriceSeriesIndex], sales: List[FundWithdrawal]) -> float:
    """Split ``remaining`` across ``(fund_id, value)`` pairs in proportion to value.

    Shares are taken from the balance outstanding when the pass starts; the
    last fund picks up rounding pennies.
    """
    total = sum(v for _, v in candidates)
    if total <= 0:
        return remaining
    budget = remaining
    last = len(candidates) - 1
    for i, (fund_id, value) in enumerate(candidates):
        if remaining <= NEAR_ZERO:
            break
        point = usable_price(indexes, fund_id, as_of)
        if point is None:
            continue
        share = remaining if i == last else budget * (value / total)
        remaining = _sell(fund_id, share, holdings, point, remaining, sales)
    return remaining


def _fund_universe(target_weights: Mapping[str, float], holdings: Mapping[str, float]) -> List[str]:
    funds = list(target_weights)
    funds.extend(f for f in holdings if f not in target_weights)
    return funds


def _current_values(funds: Sequence[str], holdings: Mapping[str, float], as_of,
                    indexes: Mapping[str, PriceSeriesIndex]) -> Dict[str, float]:
    return {f: fund_value(holdings.get(f, 0.0), usable_price(indexes, f, as_of)) for f in funds}


def allocate_proportional(requested: float, holdings: MutableMapping[str, float], as_of,
                          indexes: Mapping[str, PriceSeriesIndex], target_weights: Mapping[str, float],
                          risk_order: Optional[Sequence[str]] = None,
                          fund_risk: Optional[Mapping[str, str]] = None) -> AllocationResult:
    requested = round_money(requested)
    remaining = requested
    sales: List[FundWithdrawal] = []

    active = [f for f in _fund_universe(target_weights, holdings) if holdings.get(f, 0.0) > 0]
    weight_sum = sum(float(target_weights.get(f, 0.0)) for f in active)
    if weight_sum > 0:
        weights = {f: float(target_weights.get(f, 0.0)) / weight_sum for f in active}
    else:
        weights = {f: 1.0 / len(active) for f in active}

    used: List[str] = []
    for fund_id in active:
        if remaining <= NEAR_ZERO:
            break
        weight = weights[fund_id]
        if weight <= 0:
            continue
        point = usable_price(indexes, fund_id, as_of)
        if point is None:
            logger.debug("No price for %s on %s; skipped", fund_id, as_of)
            continue
        used.append(fund_id)
        remaining = _sell(fund_id, requested * weight, holdings, point, remaining, sales)

    if remaining > NEAR_ZERO:
        values = _current_values(used or active, holdings, as_of, indexes)
        candidates = [(f, v) for f, v in values.items() if v > 0]
        remaining = _pro_rata(candidates, remaining, holdings, as_of, indexes, sales)

    return AllocationResult(sales, max(0.0, remaining))


def allocate_overweight_first(requested: float, holdings: MutableMapping[str, float], as_of,
                              indexes: Mapping[str, PriceSeriesIndex], target_weights: Mapping[str, float],
                              risk_order: Optional[Sequence[str]] = None,
                              fund_risk: Optional[Mapping[str, str]] = None) -> AllocationResult:
    requested = round_money(requested)
    remaining = requested
    sales: List[FundWithdrawal] = []

    funds = _fund_universe(target_weights, holdings)
    values = _current_values(funds, holdings, as_of, indexes)
    total = sum(values.values())
    weight_sum = sum(float(target_weights.get(f, 0.0)) for f in funds if values[f] > 0)
    overweight = {}
    for fund_id in funds:
        weight = float(target_weights.get(fund_id, 0.0))
        target = total * weight / weight_sum if weight_sum > 0 else 0.0
        overweight[fund_id] = values[fund_id] - target

    # sorted() is stable, so ties keep fund order
    ranked = sorted(funds, key=lambda f: overweight[f], reverse=True)
    for fund_id in ranked:
        if remaining <= NEAR_ZERO:
            break
        if overweight[fund_id] <= 0:
            continue
        point = usable_price(indexes, fund_id, as_of)
        if point is None:
            continue
        remaining = _sell(fund_id, overweight[fund_id], holdings, point, remaining, sales)

    if remaining > NEAR_ZERO:
        values = _current_values(funds, holdings, as_of, indexes)
        candidates = [(f, v) for f, v in values.items() if v > 0]
        remaining = _pro_rata(candidates, remaining, holdings, as_of, indexes, sales)

    return AllocationResult(sales, max(0.0, remaining))


def allocate_risk_bucket(requested: float, holdings: MutableMapping[str, float], as_of,
                         indexes: Mapping[str, PriceSeriesIndex], target_weights: Mapping[str, float],
                         risk_order: Optional[Sequence[str]] = None,
                         fund_risk: Optional[Mapping[str, str]] = None) -> AllocationResult:
    if risk_order is None or fund_risk is None:
        raise ConfigurationError("Risk order and fund risk mapping required for RISK_BUCKET strategy.")
    requested = round_money(requested)
    remaining = requested
    sales: List[FundWithdrawal] = []

    funds = _fund_universe(target_weights, holdings)
    for bucket in risk_order:
        if remaining <= NEAR_ZERO:
            break
        members = [f for f in funds if fund_risk.get(f) == bucket]
        values = _current_values(members, holdings, as_of, indexes)
        candidates = [(f, v) for f, v in values.items() if v > 0]
        if not candidates:
            continue
        remaining = _pro_rata(candidates, remaining, holdings, as_of, indexes, sales)

    return AllocationResult(sales, max(0.0, remaining))


Allocator = Callable[..., AllocationResult]

_ALLOCATORS: Dict[Strategy, Allocator] = {
    Strategy.PROPORTIONAL: allocate_proportional,
    Strategy.OVERWEIGHT_FIRST: allocate_overweight_first,
    Strategy.RISK_BUCKET: allocate_risk_bucket,
}


def allocate(strategy, requested: float, holdings: MutableMapping[str, float], as_of,
             indexes: Mapping[str, PriceSeriesIndex], target_weights: Mapping[str, float],
             risk_order: Optional[Sequence[str]] = None,
             fund_risk: Optional[Mapping[str, str]] = None) -> AllocationResult:
    """Run the allocator registered for ``strategy``."""
    allocator = _ALLOCATORS[Strategy.parse(strategy)]
    return allocator(requested, holdings, as_of, indexes, target_weights, risk_order, fund_risk)


__all__ = [
    "ConfigurationError",
    "Strategy",
    "FundWithdrawal",
    "AllocationResult",
    "sell_up_to",
    "allocate_proportional",
    "allocate_overweight_first",
    "allocate_risk_bucket",
    "allocate",
]
