"""Configuration utilities for the Personal Finance Tracker.

Provides default categorization rules, budgeting and portfolio defaults, and
helpers to load user-defined configuration (custom keyword rules, budgets,
target allocations) from JSON files.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Default keyword-based categorization rules.
# Keys: Category names. Values: list of lowercase keywords to search in description.
DEFAULT_RULES: Dict[str, List[str]] = {
    "Income": ["payroll", "direct deposit", "salary", "stripe payout", "refund"],
    "Rent": ["apartment", "rent", "landlord"],
    "Groceries": ["whole foods", "trader joe", "kroger", "walmart grocery", "aldi", "heb"],
    "Dining": ["starbucks", "mcdonald", "ubereats", "doordash", "grubhub", "restaurant", "bar"],
    "Transportation": ["uber", "lyft", "shell", "exxon", "chevron", "gas", "metro", "transit"],
    "Utilities": ["comcast", "xfinity", "att", "verizon", "electric", "water", "gas co"],
    "Subscriptions": ["netflix", "spotify", "icloud", "google storage", "prime", "hulu"],
    "Shopping": ["amazon", "target", "walmart", "best buy", "ebay"],
    "Healthcare": ["pharmacy", "cvs", "walgreens", "doctor", "dentist", "copay"],
    "Insurance": ["geico", "state farm", "allstate", "progressive", "insurance"],
    "Entertainment": ["movie", "theater", "concert", "ticketmaster"],
    "Travel": ["airbnb", "hotel", "delta", "united", "southwest", "booking"],
    "Savings": ["transfer to savings", "ally", "capital one 360"],
    "Fees": ["fee", "interest charge", "atm fee"],
    "Other": [],
}

# Category names containing any of these are treated as needs by the 50/30/20
# and zero-based budget models.
DEFAULT_NEED_KEYWORDS: List[str] = [
    "rent",
    "mortgage",
    "utilities",
    "groceries",
    "healthcare",
    "insurance",
    "transportation",
    "debt payments",
]

DEFAULT_TARGET_ALLOCATION: Dict[str, float] = {
    "Stocks": 30.0,
    "Bonds": 20.0,
    "Cash": 5.0,
    "Alternative": 5.0,
    "Shares": 15.0,
    "Bills": 5.0,
    "Crypto": 5.0,
    "Real Estate": 15.0,
}

DEFAULT_REBALANCE_THRESHOLD = 5.0
DEFAULT_TAX_RATE = 0.25


@dataclass
class Budget:
    category: str
    monthly_limit: float


@dataclass
class AppConfig:
    rules: Dict[str, List[str]]
    budgets: List[Budget]
    need_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_NEED_KEYWORDS))
    target_allocation: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_TARGET_ALLOCATION))
    rebalance_threshold: float = DEFAULT_REBALANCE_THRESHOLD
    tax_rate: float = DEFAULT_TAX_RATE

    @staticmethod
    def load(config_path: Optional[str | Path] = None) -> "AppConfig":
        """Load config from JSON if provided, else use defaults.

        JSON format:
        {
          "rules": {"Category": ["keyword1", "keyword2"]},
          "budgets": [{"category": "Groceries", "monthly_limit": 400}],
          "need_keywords": ["rent", "groceries"],
          "target_allocation": {"Stocks": 60, "Bonds": 40},
          "rebalance_threshold": 5,
          "tax_rate": 0.25
        }
        """

        cfg = AppConfig(rules=DEFAULT_RULES, budgets=[])

        if config_path:
            p = Path(config_path)
            if p.exists():
                with p.open("r", encoding="utf-8") as f:
                    raw = json.load(f)
                if isinstance(raw, dict):
                    if isinstance(raw.get("rules"), dict):
                        # Normalize all keywords to lowercase
                        cfg.rules = {
                            str(cat): [str(k).lower() for k in (kw or [])]
                            for cat, kw in raw.get("rules", {}).items()
                        }
                    if isinstance(raw.get("budgets"), list):
                        cfg.budgets = [
                            Budget(category=str(b["category"]), monthly_limit=float(b["monthly_limit"]))
                            for b in raw["budgets"]
                            if "category" in b and "monthly_limit" in b
                        ]
                    if isinstance(raw.get("need_keywords"), list):
                        cfg.need_keywords = [str(k).lower() for k in raw["need_keywords"]]
                    if isinstance(raw.get("target_allocation"), dict):
                        cfg.target_allocation = {
                            str(name): float(pct) for name, pct in raw["target_allocation"].items()
                        }
                    if raw.get("rebalance_threshold") is not None:
                        cfg.rebalance_threshold = float(raw["rebalance_threshold"])
                    if raw.get("tax_rate") is not None:
                        cfg.tax_rate = float(raw["tax_rate"])
            else:
                logging.getLogger(__name__).warning("Config file %s not found, using defaults", p)
        return cfg


def configure_logging(level: Optional[str] = None) -> None:
    """Install the root handler once; later calls only adjust the level."""
    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level_name, format=LOG_FORMAT)
    else:
        root.setLevel(level_name)
