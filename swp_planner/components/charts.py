# components/charts.py
# Plotly chart helpers for SWP plan output.
# All functions return a Plotly Figure; rendering is left to the caller.

from typing import Optional, Sequence

import pandas as pd
import plotly.graph_objects as go

import plotly.io as pio
pio.templates.default = "plotly_white"


def _layout(fig: go.Figure, title: str, yaxis_title: str = "Amount") -> go.Figure:
    fig.update_layout(
        title=title,
        template="plotly_white",
        height=380,
        margin=dict(l=10, r=10, t=40, b=10),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
        xaxis_title="Date",
        yaxis_title=yaxis_title,
    )
    return fig


# ---------- Portfolio value vs withdrawn ----------
def portfolio_value_chart(chart_data: pd.DataFrame,
                          title: str = "Portfolio Value vs Withdrawals") -> go.Figure:
    """Lines for portfolio value, cumulative withdrawn and amount invested."""
    fig = go.Figure()
    x = chart_data["date"]
    for col, name in (("portfolio_value", "Portfolio value"),
                      ("withdrawn", "Total withdrawn"),
                      ("invested", "Invested")):
        if col not in chart_data:
            continue
        fig.add_trace(go.Scatter(
            x=x, y=chart_data[col], mode="lines", name=name,
            line=dict(dash="dot") if col == "invested" else None,
            hovertemplate="%{x}<br>%{y:,.0f}<extra></extra>",
        ))
    return _layout(fig, title)


# ---------- Per-fund value (stacked) ----------
def fund_value_area_chart(chart_data: pd.DataFrame,
                          fund_names: Optional[Sequence[str]] = None,
                          title: str = "Fund Values") -> go.Figure:
    """Stacked area of each fund's value; ``fund_names`` defaults to every non-summary column."""
    summary = {"date", "invested", "withdrawn", "portfolio_value"}
    names = list(fund_names) if fund_names is not None else [c for c in chart_data.columns if c not in summary]
    fig = go.Figure()
    for name in names:
        if name not in chart_data:
            continue
        fig.add_trace(go.Scatter(
            x=chart_data["date"], y=chart_data[name], mode="lines", name=str(name),
            stackgroup="one",
            hovertemplate="%{x}<br>%{y:,.0f}<extra></extra>",
        ))
    return _layout(fig, title)


# ---------- Realised withdrawal vs shortfall (stacked bars) ----------
def withdrawal_bar_chart(simulation, title: str = "Withdrawals per Period") -> go.Figure:
    """Stacked bars of the amount realised and the shortfall on each withdrawal date."""
    entries = simulation.withdrawals
    dates = [e.date for e in entries]
    fig = go.Figure()
    fig.add_bar(x=dates, y=[e.action.amount for e in entries], name="Withdrawn")
    fig.add_bar(x=dates, y=[e.action.shortfall for e in entries], name="Shortfall")
    fig.update_layout(barmode="stack")
    return _layout(fig, title)
