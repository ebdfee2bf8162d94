"""Transaction categorization logic.

Keyword-based matcher with simple heuristics. It assigns a category to each
transaction if not already set. Keywords are matched in the normalized
description (lowercase, punctuation stripped except spaces).

Also classifies budget categories as needs or wants for the 50/30/20 and
zero-based budget models.
"""

from __future__ import annotations

import re
import string
from typing import Dict, Iterable, List, Optional

from .config import DEFAULT_NEED_KEYWORDS
from .data_loader import Transaction


_PUNCT_TABLE = str.maketrans({c: " " for c in string.punctuation})


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower().translate(_PUNCT_TABLE)).strip()


def categorize_transactions(
    txns: List[Transaction],
    rules: Dict[str, List[str]],
    default_category: str = "Other",
) -> None:
    """In-place categorization using keyword rules.

    - rules: {"Category": ["keyword", ...]}
    Order of categories matters only insofar as first match wins when a
    keyword appears in multiple categories.
    """

    # Precompute keyword -> category, keep first occurrence
    kw_to_cat: Dict[str, str] = {}
    for cat, kws in rules.items():
        for kw in kws or []:
            kw = kw.strip().lower()
            if kw and kw not in kw_to_cat:
                kw_to_cat[kw] = cat

    # Whole-word pattern catches short merchant tokens that plain containment misses
    merchant_tokens = [re.escape(k) for k in kw_to_cat.keys() if len(k) > 2]
    merchant_pattern = re.compile(r"\b(" + "|".join(merchant_tokens) + r")\b") if merchant_tokens else None

    for t in txns:
        if t.category:
            continue
        norm = _normalize(t.description)

        chosen: Optional[str] = None
        if merchant_pattern:
            match = merchant_pattern.search(norm)
            if match:
                chosen = kw_to_cat.get(match.group(1))

        if not chosen:
            for kw, cat in kw_to_cat.items():
                if kw in norm:
                    chosen = cat
                    break

        # Income heuristic: positive amounts without explicit match
        if not chosen and t.amount > 0:
            chosen = "Income"

        t.category = chosen or default_category


def is_need_category(category_name: str, need_keywords: Optional[Iterable[str]] = None) -> bool:
    keywords = DEFAULT_NEED_KEYWORDS if need_keywords is None else need_keywords
    name = (category_name or "").lower()
    return any(kw.lower() in name for kw in keywords)
