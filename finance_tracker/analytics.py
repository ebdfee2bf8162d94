"""Analytics and trend calculations.

Functions that compute dashboard summaries and budget progress from
transactions, plus the time-range windows shared by pages and reports.
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .data_loader import Transaction

TIME_RANGES: Dict[str, str] = {
    "7d": "Last 7 Days",
    "30d": "Last 30 Days",
    "90d": "Last 90 Days",
    "1y": "Last Year",
    "ytd": "Year to Date",
    "all": "All Time",
}
DEFAULT_TIME_RANGE = "30d"


def month_key(d: dt.date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def range_bounds(range_key: str, today: Optional[dt.date] = None) -> Tuple[Optional[dt.date], dt.date]:
    """Return (start, end) for a time range key; start is None for ``all``."""
    if range_key not in TIME_RANGES:
        raise ValueError(f"Unknown time range: {range_key}")
    today = today or dt.date.today()
    if range_key == "all":
        return None, today
    if range_key == "ytd":
        return dt.date(today.year, 1, 1), today
    days = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}[range_key]
    return today - dt.timedelta(days=days), today


def summarize_income_expense(txns: Iterable[Transaction]) -> Dict[str, float]:
    txns = list(txns)
    income = sum(t.amount for t in txns if t.amount > 0)
    expense = -sum(t.amount for t in txns if t.amount < 0)
    net = income - expense
    return {"income": round(income, 2), "expense": round(expense, 2), "net": round(net, 2)}


def spending_by_category(txns: Iterable[Transaction]) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for t in txns:
        if t.amount < 0:
            totals[t.category or "Uncategorized"] += -t.amount
    return {k: round(v, 2) for k, v in sorted(totals.items(), key=lambda kv: kv[1], reverse=True)}


def monthly_totals(txns: Iterable[Transaction]) -> Dict[str, Dict[str, float]]:
    months: Dict[str, Dict[str, float]] = defaultdict(lambda: {"income": 0.0, "expense": 0.0, "net": 0.0})
    for t in txns:
        m = month_key(t.date)
        if t.amount > 0:
            months[m]["income"] += t.amount
        else:
            months[m]["expense"] += -t.amount
        months[m]["net"] = months[m]["income"] - months[m]["expense"]
    return {m: {k: round(v, 2) for k, v in vals.items()} for m, vals in sorted(months.items())}


def budget_usage(
    txns: Iterable[Transaction],
    allocations: Sequence[Dict],
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
) -> List[Dict]:
    """Compare spend against budget category allocations within a date window.

    ``allocations`` items carry ``name``, ``amount_allocated`` and optionally
    ``category_id``; spend is matched on category id first, then on name.
    """
    by_id: Dict[str, float] = defaultdict(float)
    by_name: Dict[str, float] = defaultdict(float)
    for t in txns:
        if t.amount >= 0:
            continue
        if (start and t.date < start) or (end and t.date > end):
            continue
        if t.category_id:
            by_id[t.category_id] += -t.amount
        if t.category:
            by_name[t.category.lower()] += -t.amount

    usage: List[Dict] = []
    for alloc in allocations:
        limit = float(alloc.get("amount_allocated") or 0.0)
        cat_id = alloc.get("category_id")
        spent = by_id.get(cat_id, 0.0) if cat_id else by_name.get((alloc.get("name") or "").lower(), 0.0)
        spent = round(spent, 2)
        if limit > 0:
            percent_used = round(spent / limit * 100, 2)
        else:
            percent_used = 100.0 if spent > 0 else 0.0
        usage.append(
            {
                "id": alloc.get("id"),
                "name": alloc.get("name"),
                "allocated": round(limit, 2),
                "spent": spent,
                "remaining": round(limit - spent, 2),
                "percent_used": percent_used,
                "over": spent > limit,
            }
        )
    return usage
