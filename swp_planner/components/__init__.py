"""Expose component submodules for convenience."""

from .charts import portfolio_value_chart, fund_value_area_chart, withdrawal_bar_chart

__all__ = [
    "portfolio_value_chart",
    "fund_value_area_chart",
    "withdrawal_bar_chart",
]
