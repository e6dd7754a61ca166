"""Portfolio valuation from unit holdings.

A fund contributes ``units * price`` where ``price`` is the latest NAV on or
before the valuation date.  Funds with no units, no price series, or no price
yet on that date contribute nothing; a gap in the data is not an error.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from .nav_series import PricePoint, PriceSeriesIndex


def usable_price(indexes: Mapping[str, PriceSeriesIndex], fund_id: str, as_of) -> Optional[PricePoint]:
    """Price point for ``fund_id`` on ``as_of`` if it exists and is positive."""
    index = indexes.get(fund_id)
    if index is None:
        return None
    point = index.on_or_before(as_of)
    if point is None or point.price <= 0:
        return None
    return point


def fund_value(units: float, point: Optional[PricePoint]) -> float:
    if point is None or units <= 0:
        return 0.0
    return units * point.price


def portfolio_value(holdings: Mapping[str, float], as_of, indexes: Mapping[str, PriceSeriesIndex]) -> float:
    """Sum of ``units * price`` over all funds holding a positive balance."""
    total = 0.0
    for fund_id, units in holdings.items():
        if units <= 0:
            continue
        total += fund_value(units, usable_price(indexes, fund_id, as_of))
    return total


def fund_values(holdings: Mapping[str, float], as_of, indexes: Mapping[str, PriceSeriesIndex]) -> Dict[str, float]:
    return {
        fund_id: fund_value(units, usable_price(indexes, fund_id, as_of))
        for fund_id, units in holdings.items()
    }


def unpriced_funds(holdings: Mapping[str, float], as_of, indexes: Mapping[str, PriceSeriesIndex]) -> List[str]:
    """Funds that hold units but cannot be priced on ``as_of``."""
    return [
        fund_id
        for fund_id, units in holdings.items()
        if units > 0 and usable_price(indexes, fund_id, as_of) is None
    ]


__all__ = ["usable_price", "fund_value", "portfolio_value", "fund_values", "unpriced_funds"]
