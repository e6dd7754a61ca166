"""Money-weighted and compound return helpers.

``xirr`` solves for the annual rate ``r`` that makes the present value of a
set of dated cashflows zero, using Actual/365 year fractions:

    sum(amount_i / (1 + r) ** (days_i / 365)) == 0

Newton's method is tried first from 10 %; if it does not converge the root
is bracketed and bisected.  Rates are returned as fractions (0.12 == 12 %).

Example
-------

>>> from datetime import date
>>> round(xirr([(date(2023, 1, 1), -1000.0), (date(2024, 1, 1), 1100.0)]), 6)
0.1
"""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

from .nav_series import to_date

_TOL = 1e-7
_MAX_ITER = 100
_MIN_RATE = -0.99


def _as_arrays(cashflows: Iterable):
    rows = []
    for cf in cashflows:
        if hasattr(cf, "date") and hasattr(cf, "amount"):
            rows.append((to_date(cf.date), float(cf.amount)))
        else:
            d, amount = cf
            rows.append((to_date(d), float(amount)))
    rows.sort(key=lambda r: r[0])
    t0 = rows[0][0] if rows else None
    years = np.array([(d - t0).days / 365.0 for d, _ in rows], dtype=float)
    amounts = np.array([a for _, a in rows], dtype=float)
    return years, amounts


def xnpv(rate: float, years: np.ndarray, amounts: np.ndarray) -> float:
    return float(np.sum(amounts / (1.0 + rate) ** years))


def _newton(years: np.ndarray, amounts: np.ndarray) -> Optional[float]:
    rate = 0.1
    for _ in range(_MAX_ITER):
        disc = (1.0 + rate) ** years
        npv = float(np.sum(amounts / disc))
        if abs(npv) < _TOL:
            return rate
        deriv = float(np.sum(-years * amounts / (disc * (1.0 + rate))))
        if abs(deriv) < _TOL:
            return None
        rate = max(rate - npv / deriv, _MIN_RATE)
    return None


def _bisect(years: np.ndarray, amounts: np.ndarray) -> Optional[float]:
    low, high = _MIN_RATE, 10.0
    f_low = xnpv(low, years, amounts)
    f_high = xnpv(high, years, amounts)
    tries = 0
    while np.sign(f_low) == np.sign(f_high) and tries < 10:
        high *= 2.0
        f_high = xnpv(high, years, amounts)
        tries += 1
    if np.sign(f_low) == np.sign(f_high):
        return None
    for _ in range(200):
        mid = 0.5 * (low + high)
        f_mid = xnpv(mid, years, amounts)
        if abs(f_mid) < _TOL:
            return mid
        if np.sign(f_mid) == np.sign(f_low):
            low, f_low = mid, f_mid
        else:
            high = mid
    return 0.5 * (low + high)


def xirr(cashflows: Iterable) -> Optional[float]:
    """Annualised IRR of ``(date, amount)`` pairs or ``Cashflow`` objects.

    Returns ``None`` when there are fewer than two flows, when the flows do
    not include both an outflow and an inflow, or when no root exists.
    """
    years, amounts = _as_arrays(cashflows)
    if amounts.size < 2 or not (np.any(amounts > 0) and np.any(amounts < 0)):
        return None
    rate = _newton(years, amounts)
    if rate is None or rate <= _MIN_RATE:
        rate = _bisect(years, amounts)
    return None if rate is None else float(rate)


def cagr(initial_value: float, final_value: float, years: float) -> float:
    if initial_value <= 0 or final_value <= 0 or years <= 0:
        return 0.0
    return (final_value / initial_value) ** (1.0 / years) - 1.0


__all__ = ["xnpv", "xirr", "cagr"]
