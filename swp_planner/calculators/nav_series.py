"""Per-fund price (NAV) series and "price on or before" lookup.

A fund's history is a list of :class:`PricePoint` samples.  Callers may hand
over samples in any order, as tuples, as mappings with a ``price`` or ``nav``
key, or as a :class:`pandas.DataFrame`; :func:`ensure_ascending` turns all of
those into a sorted list of ``PricePoint``.

:class:`PriceSeriesIndex` keeps the sorted copy together with a
``datetime64`` array so that a lookup is a single ``numpy.searchsorted``
call (binary search, ``O(log n)``).

Example
-------

>>> idx = PriceSeriesIndex([("2024-02-01", 11.0), ("2024-01-01", 10.0)])
>>> idx.on_or_before("2024-01-15").price
10.0
>>> idx.on_or_before("2023-12-31") is None
True
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class PricePoint:
    date: date
    price: float


def to_date(value) -> date:
    """Coerce ISO strings, datetimes and pandas timestamps to ``datetime.date``."""
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, np.datetime64):
        return pd.Timestamp(value).date()
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise TypeError(f"Cannot interpret {value!r} as a date")


def _to_point(raw) -> PricePoint:
    if isinstance(raw, PricePoint):
        return raw
    if isinstance(raw, Mapping):
        price = raw["price"] if "price" in raw else raw["nav"]
        return PricePoint(to_date(raw["date"]), float(price))
    d, price = raw
    return PricePoint(to_date(d), float(price))


def ensure_ascending(series) -> List[PricePoint]:
    """Return a new list of price points sorted ascending by date.

    The input is never mutated.  Samples sharing a date keep their input
    order, so the last one supplied for a date wins lookups.
    """
    if series is None:
        return []
    if isinstance(series, pd.DataFrame):
        price_col = "price" if "price" in series.columns else "nav"
        rows = zip(series["date"], series[price_col])
        points = [PricePoint(to_date(d), float(p)) for d, p in rows]
    else:
        points = [_to_point(raw) for raw in series]
    return sorted(points, key=lambda p: p.date)


class PriceSeriesIndex:
    """Sorted copy of one fund's price history with binary-search lookup."""

    def __init__(self, series=None):
        self.points: List[PricePoint] = ensure_ascending(series)
        self._dates = np.array(
            [np.datetime64(p.date, "D") for p in self.points], dtype="datetime64[D]"
        )

    def __len__(self) -> int:
        return len(self.points)

    def on_or_before(self, as_of) -> Optional[PricePoint]:
        """Latest point dated on or before ``as_of``; ``None`` if there is none."""
        if not self.points:
            return None
        target = np.datetime64(to_date(as_of), "D")
        pos = int(np.searchsorted(self._dates, target, side="right")) - 1
        if pos < 0:
            return None
        return self.points[pos]

    def first_on_or_after(self, as_of) -> Optional[PricePoint]:
        if not self.points:
            return None
        target = np.datetime64(to_date(as_of), "D")
        pos = int(np.searchsorted(self._dates, target, side="left"))
        if pos >= len(self.points):
            return None
        return self.points[pos]

    def last(self) -> Optional[PricePoint]:
        return self.points[-1] if self.points else None


def price_on_or_before(series, as_of) -> Optional[PricePoint]:
    """Most recent price on or before ``as_of`` for an arbitrary (unsorted) series."""
    if isinstance(series, PriceSeriesIndex):
        return series.on_or_before(as_of)
    return PriceSeriesIndex(series).on_or_before(as_of)


def build_indexes(price_series_by_fund: Optional[Mapping[str, Iterable]]) -> Dict[str, PriceSeriesIndex]:
    """Index every fund's series once per simulation."""
    if not price_series_by_fund:
        return {}
    return {
        fund_id: series if isinstance(series, PriceSeriesIndex) else PriceSeriesIndex(series)
        for fund_id, series in price_series_by_fund.items()
    }


__all__ = [
    "PricePoint",
    "to_date",
    "ensure_ascending",
    "PriceSeriesIndex",
    "price_on_or_before",
    "build_indexes",
]
