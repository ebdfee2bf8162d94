"""Portfolio allocation, rebalancing and tax-placement advice.

Everything here works on a flat list of :class:`~.data_loader.Holding`
records. Percentages are expressed on a 0-100 scale throughout.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .config import DEFAULT_REBALANCE_THRESHOLD, DEFAULT_TAX_RATE
from .data_loader import Holding

ACCOUNT_TYPES = ("taxable", "tax-deferred", "tax-free")

RISK_PROFILES: Dict[str, Dict[str, float]] = {
    "conservative": {
        "Stocks": 15, "Bonds": 35, "Cash": 15, "Alternative": 5,
        "Shares": 10, "Bills": 10, "Crypto": 0, "Real Estate": 10,
    },
    "moderate": {
        "Stocks": 25, "Bonds": 25, "Cash": 10, "Alternative": 5,
        "Shares": 15, "Bills": 5, "Crypto": 5, "Real Estate": 10,
    },
    "growth": {
        "Stocks": 30, "Bonds": 15, "Cash": 5, "Alternative": 5,
        "Shares": 20, "Bills": 5, "Crypto": 10, "Real Estate": 10,
    },
    "aggressive": {
        "Stocks": 35, "Bonds": 5, "Cash": 0, "Alternative": 10,
        "Shares": 20, "Bills": 0, "Crypto": 15, "Real Estate": 15,
    },
}

# Preferred account type per asset class, with the reason shown to the user.
TAX_LOCATION_PREFERENCES: Dict[str, Dict[str, str]] = {
    "US Stocks": {
        "preference": "tax-free",
        "reason": "Growth-oriented stocks with qualified dividends benefit most from tax-free accounts like a Roth IRA",
    },
    "International Stocks": {
        "preference": "taxable",
        "reason": "Foreign tax credit can only be claimed in taxable accounts",
    },
    "Bonds": {
        "preference": "tax-deferred",
        "reason": "Interest is taxed as ordinary income, best held in a traditional IRA/401k",
    },
    "Real Estate": {
        "preference": "tax-deferred",
        "reason": "High income production taxed at ordinary rates",
    },
    "Cash": {
        "preference": "taxable",
        "reason": "Low return means minimal tax impact",
    },
    "Alternatives": {
        "preference": "tax-free",
        "reason": "High growth potential benefits from tax-free treatment",
    },
}

ACCOUNT_TYPE_EFFICIENCY: Dict[str, float] = {
    "taxable": 0.5,
    "tax-deferred": 0.8,
    "tax-free": 1.0,
}

# Similar but not substantially identical funds for harvesting swaps.
HARVEST_ALTERNATIVES: Dict[str, List[str]] = {
    "VTI": ["ITOT", "SCHB", "SPLG"],
    "VXUS": ["IXUS", "SPDW", "SCHF"],
    "BND": ["AGG", "SCHZ", "IUSB"],
    "VNQ": ["SCHH", "IYR", "RWR"],
}

LOWER_COST_ALTERNATIVES: Dict[str, Dict] = {
    "VTI": {"name": "Fidelity ZERO Total Market Index Fund (FZROX)", "fee": 0.0},
    "VXUS": {"name": "Fidelity ZERO International Index Fund (FZILX)", "fee": 0.0},
    "BND": {"name": "Schwab U.S. Aggregate Bond ETF (SCHZ)", "fee": 0.03},
    "VNQ": {"name": "Schwab U.S. REIT ETF (SCHH)", "fee": 0.07},
}

ASSUMED_GROWTH_RATE = 0.07


@dataclass
class AssetClassAllocation:
    name: str
    value: float
    percentage: float
    holdings: List[Holding] = field(default_factory=list)


@dataclass
class RebalancingAction:
    asset_class: str
    current_percent: float
    target_percent: float
    drift: float  # current - target, percentage points
    current_value: float
    target_value: float
    difference: float  # dollars to buy (positive) or sell (negative)
    action: str


def total_value(holdings: Iterable[Holding]) -> float:
    return sum(h.value for h in holdings)


def current_allocation(holdings: Sequence[Holding]) -> List[AssetClassAllocation]:
    total = total_value(holdings)
    groups: "OrderedDict[str, AssetClassAllocation]" = OrderedDict()
    for h in holdings:
        name = h.asset_class or "Unknown"
        group = groups.setdefault(name, AssetClassAllocation(name=name, value=0.0, percentage=0.0))
        group.value += h.value
        group.holdings.append(h)
    for group in groups.values():
        group.percentage = group.value / total * 100 if total > 0 else 0.0
    return list(groups.values())


def allocation_percentages(holdings: Sequence[Holding]) -> Dict[str, float]:
    return {a.name: a.percentage for a in current_allocation(holdings)}


def validate_targets(targets: Dict[str, float]) -> List[str]:
    errors: List[str] = []
    for name, pct in targets.items():
        if not name:
            errors.append("Asset class name is required.")
        if pct < 0 or pct > 100:
            errors.append(f"Target for {name} must be between 0 and 100.")
    if targets and abs(sum(targets.values()) - 100.0) > 0.01:
        errors.append("Target allocations must add up to 100%.")
    return errors


def rebalancing_actions(
    holdings: Sequence[Holding],
    targets: Dict[str, float],
    threshold: float = DEFAULT_REBALANCE_THRESHOLD,
) -> List[RebalancingAction]:
    """Dollar delta and buy/sell/hold label for every held or targeted class.

    ``difference`` is always ``(target% - current%) / 100 * total``; the label
    only flips away from ``hold`` once drift exceeds ``threshold`` points.
    """
    total = total_value(holdings)
    current = allocation_percentages(holdings)
    classes = list(current) + [name for name in targets if name not in current]

    actions: List[RebalancingAction] = []
    for name in classes:
        cur = current.get(name, 0.0)
        tgt = float(targets.get(name, 0.0))
        drift = cur - tgt
        if drift < -threshold:
            action = "buy"
        elif drift > threshold:
            action = "sell"
        else:
            action = "hold"
        actions.append(
            RebalancingAction(
                asset_class=name,
                current_percent=cur,
                target_percent=tgt,
                drift=drift,
                current_value=cur / 100 * total,
                target_value=tgt / 100 * total,
                difference=(tgt - cur) / 100 * total,
                action=action,
            )
        )
    return actions


def rebalancing_summary(
    holdings: Sequence[Holding],
    targets: Dict[str, float],
    threshold: float = DEFAULT_REBALANCE_THRESHOLD,
) -> Dict:
    actions = rebalancing_actions(holdings, targets, threshold)
    total_drift = sum(abs(a.drift) for a in actions)
    return {
        "portfolio_value": round(total_value(holdings), 2),
        "threshold": threshold,
        "total_drift": round(total_drift, 2),
        "needs_rebalancing": total_drift >= threshold,
        "actions": [
            {
                **asdict(a),
                "current_percent": round(a.current_percent, 2),
                "target_percent": round(a.target_percent, 2),
                "drift": round(a.drift, 2),
                "current_value": round(a.current_value, 2),
                "target_value": round(a.target_value, 2),
                "difference": round(a.difference, 2),
            }
            for a in actions
        ],
    }


def tax_location_advice(holdings: Sequence[Holding]) -> List[Dict]:
    advice: List[Dict] = []
    for h in holdings:
        pref = TAX_LOCATION_PREFERENCES.get(h.asset_class)
        if not pref:
            continue
        if (h.account_type or "taxable") != pref["preference"]:
            advice.append(
                {
                    "holding": h.name,
                    "ticker": h.ticker,
                    "asset_class": h.asset_class,
                    "current_account": h.account_type,
                    "recommended_account": pref["preference"],
                    "value": round(h.value, 2),
                    "reason": pref["reason"],
                }
            )
    return advice


def tax_efficiency(holdings: Sequence[Holding]) -> Dict:
    if not holdings:
        return {
            "taxable_value": 0.0,
            "tax_deferred_value": 0.0,
            "tax_free_value": 0.0,
            "score": 0.0,
            "recommendations": [],
        }
    total = total_value(holdings)
    by_type = {t: 0.0 for t in ACCOUNT_TYPES}
    for h in holdings:
        by_type[h.account_type if h.account_type in by_type else "taxable"] += h.value

    score = 0.0
    if total > 0:
        score = sum(
            h.value / total * ACCOUNT_TYPE_EFFICIENCY.get(h.account_type or "taxable", 0.5) for h in holdings
        ) * 100

    recommendations: List[str] = []
    if any(h.asset_class in ("Bonds", "Real Estate") and h.account_type == "taxable" for h in holdings):
        recommendations.append("Consider moving bonds and REITs to tax-deferred accounts")
    growth = [h for h in holdings if h.asset_class in ("US Stocks", "International Stocks")]
    if by_type["tax-free"] > 0 and not any(h.account_type == "tax-free" for h in growth):
        recommendations.append("Consider moving growth stocks to tax-free accounts")

    return {
        "taxable_value": round(by_type["taxable"], 2),
        "tax_deferred_value": round(by_type["tax-deferred"], 2),
        "tax_free_value": round(by_type["tax-free"], 2),
        "score": round(score, 2),
        "recommendations": recommendations,
    }


def tax_loss_harvesting(holdings: Sequence[Holding], tax_rate: float = DEFAULT_TAX_RATE) -> List[Dict]:
    opportunities: List[Dict] = []
    for h in holdings:
        if h.account_type != "taxable" or not h.cost_basis or h.cost_basis <= h.value:
            continue
        loss = h.cost_basis - h.value
        opportunities.append(
            {
                "holding": h.name,
                "ticker": h.ticker,
                "unrealized_loss": round(loss, 2),
                "potential_tax_savings": round(loss * tax_rate, 2),
                "alternatives": HARVEST_ALTERNATIVES.get(h.ticker or "", []),
            }
        )
    opportunities.sort(key=lambda o: o["potential_tax_savings"], reverse=True)
    return opportunities


def fee_comparisons(holdings: Sequence[Holding], years: int = 10) -> List[Dict]:
    comparisons: List[Dict] = []
    for h in holdings:
        alt = LOWER_COST_ALTERNATIVES.get(h.ticker or "")
        if not alt or not h.expense_ratio:
            continue
        current_fee = h.value * h.expense_ratio / 100
        alternative_fee = h.value * alt["fee"] / 100
        current_value = alternative_value = h.value
        for _ in range(years):
            current_value *= (1 + ASSUMED_GROWTH_RATE) * (1 - h.expense_ratio / 100)
            alternative_value *= (1 + ASSUMED_GROWTH_RATE) * (1 - alt["fee"] / 100)
        comparisons.append(
            {
                "holding": h.name,
                "ticker": h.ticker,
                "current_fee": round(current_fee, 2),
                "alternative": alt["name"],
                "alternative_fee": round(alternative_fee, 2),
                "annual_savings": round(current_fee - alternative_fee, 2),
                "ten_year_impact": round(alternative_value - current_value, 2),
            }
        )
    comparisons.sort(key=lambda c: c["ten_year_impact"], reverse=True)
    return comparisons


def performance_summary(holdings: Sequence[Holding]) -> Dict[str, float]:
    total = total_value(holdings)
    cost = sum(h.cost_basis or 0.0 for h in holdings)
    gain = total - cost
    weighted_er = weighted_div = weighted_return = 0.0
    if total > 0:
        weighted_er = sum(h.value / total * (h.expense_ratio or 0.0) for h in holdings)
        weighted_div = sum(h.value / total * (h.annual_dividend or 0.0) for h in holdings)
        weighted_return = sum(h.value / total * (h.annual_return or 0.0) for h in holdings)
    return {
        "total_value": round(total, 2),
        "total_cost": round(cost, 2),
        "total_gain": round(gain, 2),
        "total_gain_percent": round(gain / cost * 100, 2) if cost > 0 else 0.0,
        "weighted_expense_ratio": round(weighted_er, 4),
        "weighted_dividend_yield": round(weighted_div, 4),
        "weighted_annual_return": round(weighted_return, 4),
    }


def dividend_projection(holdings: Sequence[Holding], years: int = 20, reinvest: bool = True) -> List[Dict]:
    payers = [h for h in holdings if h.annual_dividend and h.annual_dividend > 0]
    value = total_value(payers)
    if value <= 0:
        return []
    dividend_yield = sum(h.value * h.annual_dividend / 100 for h in payers) / value

    projections: List[Dict] = []
    cumulative = 0.0
    for year in range(1, years + 1):
        dividend = value * dividend_yield
        cumulative += dividend
        value = value * (1 + ASSUMED_GROWTH_RATE) + (dividend if reinvest else 0.0)
        projections.append(
            {
                "year": year,
                "dividend_amount": round(dividend, 2),
                "cumulative_dividends": round(cumulative, 2),
                "portfolio_value": round(value, 2),
            }
        )
    return projections


def resolve_targets(saved: Optional[Dict[str, float]], default: Dict[str, float]) -> Dict[str, float]:
    return dict(saved) if saved else dict(default)
