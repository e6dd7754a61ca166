"""Rounding rules shared by the SWP calculators.

Units are kept to 6 decimal places and money to 2 decimal places after every
mutation so that drift does not accumulate over hundreds of withdrawal
periods.  Halves round towards positive infinity, matching how fund
statements usually round.

>>> round_money(12.345678)
12.35
>>> round_units(1.23456789)
1.234568
"""

from __future__ import annotations

import math
import sys

# Anything at or below this is treated as zero money.
NEAR_ZERO = 0.005
# Allowed gap between requested and (sold + shortfall) for one withdrawal.
CONSERVATION_TOLERANCE = 0.01

_EPS = sys.float_info.epsilon


def _round_half_up(value: float, digits: int) -> float:
    factor = 10.0 ** digits
    return math.floor((value + _EPS) * factor + 0.5) / factor


def round_money(value: float) -> float:
    """Round a currency amount to 2 decimal places."""
    return _round_half_up(float(value), 2)


def round_units(value: float) -> float:
    """Round a unit quantity to 6 decimal places."""
    return _round_half_up(float(value), 6)


__all__ = ["NEAR_ZERO", "CONSERVATION_TOLERANCE", "round_money", "round_units"]
