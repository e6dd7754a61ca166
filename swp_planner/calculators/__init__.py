"""Helper package that exposes the SWP calculators.

The `calculators` package contains small, focused modules that each implement
one piece of the withdrawal plan logic:

* ``nav_series`` – per-fund price (NAV) series and "price on or before" lookup.
* ``precision`` – rounding rules for units and money.
* ``valuation`` – portfolio valuation from unit holdings.
* ``allocation`` – the three withdrawal allocation strategies.
* ``simulation`` – the withdrawal driver, timeline and drawdown metrics.
* ``schedule`` – withdrawal date generation.
* ``risk`` – risk bucket catalogue and category mapping.
* ``returns`` – XIRR and CAGR.
* ``plan`` – lump-sum SWP plan runner built on top of ``simulation``.

Each module exposes a few public functions with clear parameters and returns.  See
individual docstrings for details.
"""

from . import (  # noqa: F401
    nav_series,
    precision,
    valuation,
    allocation,
    simulation,
    schedule,
    risk,
    returns,
    plan,
)

__all__ = [
    "nav_series",
    "precision",
    "valuation",
    "allocation",
    "simulation",
    "schedule",
    "risk",
    "returns",
    "plan",
]
