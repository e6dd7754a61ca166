"""Risk buckets for the risk-bucket withdrawal strategy.

Funds are grouped into buckets ordered from safest to riskiest.  The default
catalogue (order, display labels and fallback bucket) ships as
``data/risk_buckets.json``; a different file can be passed to each function.

Example
-------

>>> derive_risk_bucket("Debt Scheme - Corporate Bond Fund")
'DEBT'
>>> default_risk_order()[0]
'LIQUID'
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Mapping, Optional

_DEFAULT_RISK_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "risk_buckets.json"

# First match wins, so "Hybrid Scheme - Large & Mid Cap" is HYBRID.
_KEYWORDS = (
    (("liquid", "overnight"), "LIQUID"),
    (("debt", "income", "bond"), "DEBT"),
    (("hybrid", "balanced", "allocation"), "HYBRID"),
    (("mid",), "EQUITY_M"),
    (("small",), "EQUITY_S"),
    (("large",), "EQUITY_L"),
)


def _load_risk_table(path: Optional[Path] = None) -> Dict:
    p = path or _DEFAULT_RISK_TABLE_PATH
    with open(p, "r", encoding="utf-8") as f:
        return json.load(f)


def default_risk_order(path: Optional[Path] = None) -> List[str]:
    """Bucket labels from safest to riskiest."""
    return list(_load_risk_table(path)["order"])


def risk_bucket_labels(path: Optional[Path] = None) -> Dict[str, str]:
    return dict(_load_risk_table(path)["labels"])


def derive_risk_bucket(category: Optional[str], path: Optional[Path] = None) -> str:
    """Map a fund category string to a risk bucket by keyword."""
    if category:
        normalized = category.lower()
        for words, bucket in _KEYWORDS:
            if any(w in normalized for w in words):
                return bucket
    return _load_risk_table(path)["default_bucket"]


def assign_risk_buckets(funds, overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Bucket for every fund dict (``id`` and optional ``category``/``risk_bucket``).

    Explicit ``overrides`` win over a fund's own ``risk_bucket``, which wins
    over the category mapping.
    """
    overrides = overrides or {}
    out = {}
    for fund in funds:
        fund_id = fund["id"]
        out[fund_id] = overrides.get(fund_id) or fund.get("risk_bucket") or derive_risk_bucket(fund.get("category"))
    return out


__all__ = ["default_risk_order", "risk_bucket_labels", "derive_risk_bucket", "assign_risk_buckets"]
