"""Subscription cost analysis: duplicate detection and ROI."""

from __future__ import annotations

import datetime as dt
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from .bills import MONTHLY_MULTIPLIERS, next_due_date

BILLING_CYCLES = tuple(MONTHLY_MULTIPLIERS)
STATUSES = ("active", "paused", "cancelled")

STREAMING_HINTS = ("streaming", "entertainment")


def monthly_equivalent(amount: float, cycle: Optional[str]) -> float:
    return float(amount) * MONTHLY_MULTIPLIERS.get((cycle or "monthly").lower(), 1)


def is_active(sub: Dict) -> bool:
    status = sub.get("status")
    return status is None or status == "active"


def find_duplicates(subscriptions: Iterable[Dict]) -> List[Dict]:
    """Group active subscriptions by category and report groups of two or more.

    Potential savings assume the most expensive service in each group is kept
    and every other member is cancelled.
    """
    groups: "OrderedDict[str, List[Dict]]" = OrderedDict()
    for sub in subscriptions:
        if not is_active(sub):
            continue
        key = (sub.get("category") or "uncategorized").strip().lower() or "uncategorized"
        groups.setdefault(key, []).append(sub)

    duplicates: List[Dict] = []
    for category, members in groups.items():
        if len(members) < 2:
            continue
        costs = [monthly_equivalent(m.get("amount") or 0.0, m.get("billing_cycle")) for m in members]
        monthly_total = sum(costs)
        savings = monthly_total - max(costs)

        reasons: List[str] = []
        if any(hint in category for hint in STREAMING_HINTS):
            reasons.append("Multiple streaming services detected")
        providers = [(m.get("provider") or "").strip().lower() for m in members]
        repeated = sorted({p for p in providers if p and providers.count(p) > 1})
        for provider in repeated:
            reasons.append(f"Multiple subscriptions from {provider}")
        if len(members) >= 3:
            reasons.append(f"Multiple services in {category} category")
        if not reasons:
            reasons.append(f"{len(members)} active subscriptions in {category}")

        if repeated:
            recommendation = "Check if these services can be bundled or if one can be eliminated"
        elif any(hint in category for hint in STREAMING_HINTS):
            recommendation = "Consider consolidating to fewer streaming platforms or rotating subscriptions monthly"
        else:
            recommendation = "Review if all these services are necessary or if some have overlapping features"

        duplicates.append(
            {
                "category": category,
                "count": len(members),
                "subscriptions": [
                    {
                        "id": m.get("id"),
                        "name": m.get("name"),
                        "provider": m.get("provider"),
                        "amount": m.get("amount"),
                        "billing_cycle": m.get("billing_cycle"),
                        "monthly_cost": round(cost, 2),
                    }
                    for m, cost in zip(members, costs)
                ],
                "monthly_total": round(monthly_total, 2),
                "potential_savings": round(savings, 2),
                "reasons": reasons,
                "recommendation": recommendation,
            }
        )
    duplicates.sort(key=lambda d: d["potential_savings"], reverse=True)
    return duplicates


def _months_between(start: dt.date, end: dt.date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def calculate_roi(sub: Dict, today: Optional[dt.date] = None) -> Dict:
    today = today or dt.date.today()
    start = sub.get("start_date") or today
    end = sub.get("end_date")
    duration = max(1, _months_between(start, end or today))

    monthly_cost = monthly_equivalent(sub.get("amount") or 0.0, sub.get("billing_cycle"))
    total_cost = monthly_cost * duration
    expected = float(sub.get("expected_roi") or 0.0)
    actual = sub.get("actual_roi")

    roi_percentage = (expected - total_cost) / total_cost * 100 if expected > 0 and total_cost > 0 else 0.0
    roi_ratio = expected / total_cost if expected > 0 and total_cost > 0 else 0.0
    break_even = expected / monthly_cost if expected > 0 and monthly_cost > 0 else None

    if not actual:
        roi_status = "pending"
    elif roi_percentage > 0:
        roi_status = "positive"
    elif roi_percentage < 0:
        roi_status = "negative"
    else:
        roi_status = "neutral"

    return {
        "id": sub.get("id"),
        "name": sub.get("name"),
        "provider": sub.get("provider"),
        "category": sub.get("category") or "general",
        "amount": sub.get("amount"),
        "currency": sub.get("currency") or "USD",
        "billing_cycle": sub.get("billing_cycle"),
        "duration_months": duration,
        "monthly_cost": round(monthly_cost, 2),
        "annual_cost": round(monthly_cost * 12, 2),
        "total_cost": round(total_cost, 2),
        "expected_roi": expected,
        "actual_roi": actual,
        "roi_percentage": round(roi_percentage, 2),
        "roi_ratio": round(roi_ratio, 4),
        "break_even_months": round(break_even, 2) if break_even is not None else None,
        "subscription_status": sub.get("status") or "active",
        "roi_status": roi_status,
    }


def advance_billing_date(current: Optional[dt.date], cycle: Optional[str], paid_on: dt.date) -> dt.date:
    """Next billing date after a completed payment made on ``paid_on``.

    Moves at least one cycle past ``current`` and keeps rolling until the date
    falls after the payment, so a stale schedule catches up in one step.
    """
    cycle = (cycle or "monthly").lower()
    nxt = next_due_date(current or paid_on, cycle)
    while nxt <= paid_on:
        following = next_due_date(nxt, cycle)
        if following == nxt:
            break
        nxt = following
    return nxt


def subscription_totals(subscriptions: Iterable[Dict]) -> Dict[str, float]:
    active = [s for s in subscriptions if is_active(s)]
    monthly = sum(monthly_equivalent(s.get("amount") or 0.0, s.get("billing_cycle")) for s in active)
    return {
        "active_count": len(active),
        "monthly_total": round(monthly, 2),
        "annual_total": round(monthly * 12, 2),
    }
