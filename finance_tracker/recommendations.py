"""Budget recommendation heuristics.

Turns a user's recent spending history into a suggested monthly budget under
one of four budgeting models:

- ``traditional``: historical spend with a flat 5% reduction
- ``zero-based``: every dollar of the post-savings budget assigned, needs first
- ``50-30-20``: needs share 50% of income, wants 30%, the rest is savings
- ``envelope``: recurring bills kept whole, discretionary envelopes trimmed 10%

All functions are pure and single-pass over the supplied records.
"""

from __future__ import annotations

import datetime as dt
import math
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .analytics import month_key
from .categorizer import is_need_category
from .data_loader import Transaction

MODEL_TYPES = ("traditional", "zero-based", "50-30-20", "envelope")

SAVINGS_RATE_TARGET = 0.2
NEEDS_SHARE = 0.5
WANTS_SHARE = 0.3
TRADITIONAL_FACTOR = 0.95
ENVELOPE_DISCRETIONARY_FACTOR = 0.9
CATEGORY_INCOME_WARNING = 0.3

INCOME_FREQUENCY_FACTORS: Dict[str, float] = {
    "weekly": 4.0,
    "biweekly": 2.0,
    "monthly": 1.0,
    "annually": 1.0 / 12,
}


@dataclass
class SpendingPattern:
    category_id: str
    category_name: str
    average_amount: float
    frequency: float  # transactions per month
    typical_day_of_month: Optional[int] = None

    @property
    def monthly_amount(self) -> float:
        return self.average_amount * self.frequency

    @property
    def is_recurring(self) -> bool:
        return self.typical_day_of_month is not None


@dataclass
class CategoryRecommendation:
    id: str
    name: str
    recommended_amount: float
    confidence_score: float
    reasoning: str


@dataclass
class BudgetRecommendation:
    model_type: str
    total_budget: float
    savings_target: float
    risk_level: str = "medium"
    categories: List[CategoryRecommendation] = field(default_factory=list)
    adjustments: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["total_budget"] = round(self.total_budget, 2)
        data["savings_target"] = round(self.savings_target, 2)
        for cat in data["categories"]:
            cat["recommended_amount"] = round(cat["recommended_amount"], 2)
            cat["confidence_score"] = round(cat["confidence_score"], 2)
        return data


def monthly_income(sources: Iterable[Dict]) -> float:
    """Normalize income sources (``amount``, ``frequency``) to a monthly figure."""
    total = 0.0
    for source in sources:
        factor = INCOME_FREQUENCY_FACTORS.get((source.get("frequency") or "").lower())
        if factor is None:
            continue
        total += float(source.get("amount") or 0.0) * factor
    return round(total, 2)


def analyze_spending(txns: Iterable[Transaction], months: int = 3) -> List[SpendingPattern]:
    """Group expenses by category and derive per-category spending patterns.

    Only expenses (negative amounts) with a category are considered. A typical
    day of month is reported when the most common posting day covers at least
    half of the analysed months.
    """
    if months <= 0:
        raise ValueError("months must be positive")

    names: Dict[str, str] = {}
    amounts: Dict[str, List[float]] = defaultdict(list)
    days: Dict[str, List[int]] = defaultdict(list)
    for t in txns:
        if t.amount >= 0 or not (t.category_id or t.category):
            continue
        key = t.category_id or t.category
        names.setdefault(key, t.category or key)
        amounts[key].append(-t.amount)
        days[key].append(t.date.day)

    patterns: List[SpendingPattern] = []
    for key, values in amounts.items():
        pattern = SpendingPattern(
            category_id=key,
            category_name=names[key],
            average_amount=sum(values) / len(values),
            frequency=len(values) / months,
        )
        if len(values) >= 2:
            # Counter.most_common keeps first-seen order on ties
            typical_day, count = Counter(days[key]).most_common(1)[0]
            if count >= months * 0.5:
                pattern.typical_day_of_month = typical_day
        patterns.append(pattern)
    return patterns


def confidence_score(pattern: SpendingPattern) -> float:
    score = 0.5
    if pattern.is_recurring:
        score += 0.3
    # Almost monthly
    if pattern.frequency >= 0.9:
        score += 0.2
    return min(score, 1.0)


def _reasoning(pattern: SpendingPattern, context: str) -> str:
    monthly = pattern.monthly_amount
    if pattern.is_recurring:
        return (
            f"Regular expense occurring around day {pattern.typical_day_of_month} of each month. "
            f"Historical average: {monthly:.2f}"
        )
    if context == "need":
        return f"Essential expense with monthly average of {monthly:.2f}"
    if context == "want":
        return f"Discretionary expense with monthly average of {monthly:.2f}"
    if context == "zero-based":
        return f"Historical monthly spending: {monthly:.2f}"
    if context == "envelope":
        return f"Suggested envelope amount based on {pattern.frequency:.1f} transactions per month"
    return f"Based on historical average of {monthly:.2f} per month"


def _category(pattern: SpendingPattern, amount: float, context: str) -> CategoryRecommendation:
    return CategoryRecommendation(
        id=pattern.category_id,
        name=pattern.category_name,
        recommended_amount=amount,
        confidence_score=confidence_score(pattern),
        reasoning=_reasoning(pattern, context),
    )


def generate_recommendation(
    patterns: Sequence[SpendingPattern],
    income: float,
    model_type: str = "traditional",
    need_keywords: Optional[Iterable[str]] = None,
) -> BudgetRecommendation:
    if model_type not in MODEL_TYPES:
        raise ValueError(f"Unknown budget model: {model_type}. Choose from {', '.join(MODEL_TYPES)}.")
    if income < 0:
        raise ValueError("Income cannot be negative.")
    need_keywords = list(need_keywords) if need_keywords is not None else None

    def is_need(p: SpendingPattern) -> bool:
        return is_need_category(p.category_name, need_keywords)

    total_spending = sum(p.monthly_amount for p in patterns)
    savings_potential = income - total_spending
    savings_target = max(income * SAVINGS_RATE_TARGET, savings_potential)

    rec = BudgetRecommendation(
        model_type=model_type,
        total_budget=income - savings_target,
        savings_target=savings_target,
    )

    if model_type == "50-30-20":
        needs_budget = income * NEEDS_SHARE
        wants_budget = income * WANTS_SHARE
        needs = [p for p in patterns if is_need(p)]
        wants = [p for p in patterns if not is_need(p)]
        for group, budget, context in ((needs, needs_budget, "need"), (wants, wants_budget, "want")):
            for p in group:
                ratio = p.monthly_amount / total_spending if total_spending > 0 else 0.0
                rec.categories.append(_category(p, budget * ratio, context))
    elif model_type == "zero-based":
        remaining = rec.total_budget
        # sorted() is stable, so needs keep their original relative order
        for p in sorted(patterns, key=lambda p: 0 if is_need(p) else 1):
            allocated = max(0.0, min(p.monthly_amount, remaining))
            remaining -= allocated
            rec.categories.append(_category(p, allocated, "zero-based"))
    elif model_type == "envelope":
        for p in patterns:
            amount = p.monthly_amount if p.is_recurring else p.monthly_amount * ENVELOPE_DISCRETIONARY_FACTOR
            rec.categories.append(_category(p, amount, "envelope"))
    else:
        for p in patterns:
            rec.categories.append(_category(p, p.monthly_amount * TRADITIONAL_FACTOR, "traditional"))

    if savings_potential < 0:
        rec.risk_level = "high"
        rec.adjustments.append("Current spending exceeds income. Consider reducing discretionary expenses.")
    elif savings_potential < income * SAVINGS_RATE_TARGET:
        rec.risk_level = "medium"
        rec.adjustments.append("Savings rate below target. Look for opportunities to optimize spending.")
    else:
        rec.risk_level = "low"

    for p in patterns:
        if p.monthly_amount > income * CATEGORY_INCOME_WARNING:
            rec.adjustments.append(
                f"{p.category_name} spending is over 30% of income. Consider ways to reduce this expense."
            )
    return rec


def _linear_slope(values: Sequence[float]) -> float:
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * y for i, y in enumerate(values))
    sum_xx = sum(i * i for i in range(n))
    denom = n * sum_xx - sum_x * sum_x
    return (n * sum_xy - sum_x * sum_y) / denom if denom else 0.0


def spending_trends(txns: Iterable[Transaction]) -> List[Dict]:
    """Per-category monthly totals with volatility and a regression trend."""
    by_cat: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for t in txns:
        if t.amount < 0:
            by_cat[t.category or "Other"][month_key(t.date)] += -t.amount

    trends: List[Dict] = []
    for category, months in sorted(by_cat.items()):
        values = [months[m] for m in sorted(months)]
        avg = sum(values) / len(values)
        volatility = math.sqrt(sum((v - avg) ** 2 for v in values) / len(values))
        slope = _linear_slope(values)
        if slope > 0.1:
            trend = "increasing"
        elif slope < -0.1:
            trend = "decreasing"
        else:
            trend = "stable"
        trends.append(
            {
                "category": category,
                "monthly": {m: round(months[m], 2) for m in sorted(months)},
                "average": round(avg, 2),
                "volatility": round(volatility, 2),
                "slope": round(slope, 4),
                "trend": trend,
            }
        )
    return trends


def lookback_start(today: dt.date, months: int) -> dt.date:
    """First day included in a ``months``-long analysis window ending today."""
    year = today.year
    month = today.month - months
    while month <= 0:
        month += 12
        year -= 1
    day = min(today.day, _days_in_month(year, month))
    return dt.date(year, month, day)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        return 31
    return (dt.date(year, month + 1, 1) - dt.timedelta(days=1)).day
