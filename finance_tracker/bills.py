"""Bill scheduling helpers.

Pure date arithmetic for recurring bills: next due dates, overdue status and
the upcoming-bills window shown on the dashboard.
"""

from __future__ import annotations

import calendar
import datetime as dt
from typing import Dict, Iterable, List, Optional

FREQUENCIES = ("once", "weekly", "bi_weekly", "monthly", "quarterly", "semi_annual", "annual")
STATUSES = ("pending", "paid", "overdue")
PAYMENT_METHODS = ("credit_card", "debit_card", "bank_transfer", "cash", "other")

_DAY_STEPS = {"daily": 1, "weekly": 7, "bi_weekly": 14}
_MONTH_STEPS = {"monthly": 1, "quarterly": 3, "semi_annual": 6, "annual": 12, "yearly": 12}

MONTHLY_MULTIPLIERS: Dict[str, float] = {
    "daily": 30,
    "weekly": 4.33,
    "bi_weekly": 2.17,
    "monthly": 1,
    "quarterly": 1 / 3,
    "semi_annual": 1 / 6,
    "annual": 1 / 12,
    "yearly": 1 / 12,
}

FREQUENCY_LABELS = {
    "once": "One-time",
    "weekly": "Weekly",
    "bi_weekly": "Bi-weekly",
    "monthly": "Monthly",
    "quarterly": "Quarterly",
    "semi_annual": "Semi-annual",
    "annual": "Annual",
}


def add_months(value: dt.date, months: int) -> dt.date:
    """Shift by whole months, clamping the day to the target month's length."""
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return dt.date(year, month, day)


def next_due_date(due: dt.date, frequency: str) -> dt.date:
    if frequency in _DAY_STEPS:
        return due + dt.timedelta(days=_DAY_STEPS[frequency])
    if frequency in _MONTH_STEPS:
        return add_months(due, _MONTH_STEPS[frequency])
    return due


def is_recurring(frequency: Optional[str]) -> bool:
    return bool(frequency) and frequency != "once"


def bill_status(status: str, due_date: Optional[dt.date], today: Optional[dt.date] = None) -> str:
    today = today or dt.date.today()
    if status != "paid" and due_date is not None and due_date < today:
        return "overdue"
    return status


def upcoming_bills(bills: Iterable[Dict], today: Optional[dt.date] = None, days: int = 30) -> List[Dict]:
    """Unpaid bills due within ``days`` of today (overdue ones included), soonest first."""
    today = today or dt.date.today()
    horizon = today + dt.timedelta(days=days)
    upcoming = [
        b for b in bills
        if b.get("status") != "paid" and b.get("due_date") is not None and b["due_date"] <= horizon
    ]
    upcoming.sort(key=lambda b: b["due_date"])
    return [
        {**b, "status": bill_status(b.get("status", "pending"), b["due_date"], today),
         "days_until_due": (b["due_date"] - today).days}
        for b in upcoming
    ]


def monthly_equivalent(amount: float, frequency: str) -> float:
    if frequency == "once":
        return 0.0
    return float(amount) * MONTHLY_MULTIPLIERS.get(frequency, 1)


def bills_summary(bills: Iterable[Dict], today: Optional[dt.date] = None) -> Dict:
    today = today or dt.date.today()
    total_due = monthly_total = 0.0
    paid = overdue = 0
    for b in bills:
        status = bill_status(b.get("status", "pending"), b.get("due_date"), today)
        if status == "paid":
            paid += 1
        else:
            total_due += b["amount"]
        if status == "overdue":
            overdue += 1
        monthly_total += monthly_equivalent(b["amount"], b.get("frequency") or "monthly")
    return {
        "total_due": round(total_due, 2),
        "monthly_total": round(monthly_total, 2),
        "paid_count": paid,
        "overdue_count": overdue,
    }
