"""Withdrawal date schedules.

Monthly and quarterly schedules step whole calendar months from the first
withdrawal date; a start on the 31st falls back to the last day of shorter
months and returns to the 31st when the month allows it.  Custom schedules
step a fixed number of days.

>>> [d.isoformat() for d in withdrawal_dates("2024-01-31", "2024-04-30")]
['2024-01-31', '2024-02-29', '2024-03-31', '2024-04-30']
"""

from __future__ import annotations

from datetime import date, timedelta
from enum import Enum
from typing import List

from dateutil.relativedelta import relativedelta

from .nav_series import to_date


class Frequency(str, Enum):
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    CUSTOM = "Custom"

    @classmethod
    def parse(cls, value) -> "Frequency":
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).strip().lower() in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unsupported withdrawal frequency {value!r}")


_MONTH_STEP = {Frequency.MONTHLY: 1, Frequency.QUARTERLY: 3}


def withdrawal_dates(start, end, frequency=Frequency.MONTHLY, every_days: int = 30) -> List[date]:
    """All withdrawal dates from ``start`` through ``end`` inclusive."""
    start = to_date(start)
    end = to_date(end)
    frequency = Frequency.parse(frequency)
    if frequency is Frequency.CUSTOM and int(every_days) < 1:
        raise ValueError("Custom frequency must be at least one day")

    dates: List[date] = []
    i = 0
    while True:
        if frequency is Frequency.CUSTOM:
            current = start + timedelta(days=i * int(every_days))
        else:
            current = start + relativedelta(months=i * _MONTH_STEP[frequency])
        if current > end:
            break
        dates.append(current)
        i += 1
    return dates


__all__ = ["Frequency", "withdrawal_dates"]
