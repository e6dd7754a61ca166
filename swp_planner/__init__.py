"""Systematic Withdrawal Plan (SWP) simulator.

The ``swp_planner`` package models how units are redeemed across a
multi-fund portfolio when fixed cash withdrawals are taken on a schedule.
Calculators live in :mod:`swp_planner.calculators`; Plotly chart helpers in
:mod:`swp_planner.components`.
"""

from . import calculators  # noqa: F401

__all__ = ["calculators"]
