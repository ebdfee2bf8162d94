"""Data loading helpers.

Supports reading one or more CSV files and normalizing them into common
record types:

    Transaction: date, description, amount (negative = expense), category
    Holding:     name, ticker, asset_class, value, cost_basis, account_type, ...
    SubscriptionRecord: name, provider, category, amount, billing_cycle, status

CSV columns are auto-detected case-insensitively among common variants.
"""

from __future__ import annotations

import csv
import datetime as dt
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, List, Optional


@dataclass
class Transaction:
    date: dt.date
    description: str
    amount: float  # negative = expense, positive = income
    category: Optional[str] = None  # filled later by categorizer
    category_id: Optional[str] = None
    id: Optional[str] = None


@dataclass
class Holding:
    name: str
    asset_class: str
    value: float
    ticker: Optional[str] = None
    cost_basis: Optional[float] = None
    shares: Optional[float] = None
    annual_return: Optional[float] = None
    annual_dividend: Optional[float] = None  # yield, percent
    expense_ratio: Optional[float] = None  # percent
    account_type: str = "taxable"
    id: Optional[str] = None


@dataclass
class SubscriptionRecord:
    name: str
    amount: float
    billing_cycle: str = "monthly"
    category: Optional[str] = None
    provider: Optional[str] = None
    status: Optional[str] = "active"
    currency: str = "USD"
    id: Optional[str] = None


def _parse_date(value: str) -> dt.date:
    value = value.strip()
    # Try multiple common date formats
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d"):
        try:
            return dt.datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    # Fallback to fromisoformat if possible
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Unrecognized date format: {value}") from exc


def _to_float(value: str) -> float:
    v = value.replace(",", "").replace("$", "").strip()
    # Some exports wrap negatives in parentheses, e.g., (12.34)
    if v.startswith("(") and v.endswith(")"):
        v = "-" + v[1:-1]
    try:
        return float(v)
    except ValueError as exc:
        raise ValueError(f"Invalid amount: {value}") from exc


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or not str(value).strip():
        return None
    return _to_float(str(value))


def _find_column(row_keys: Iterable[str], candidates: Iterable[str]) -> Optional[str]:
    low = {k.lower().strip(): k for k in row_keys}
    for cand in candidates:
        if cand.lower() in low:
            return low[cand.lower()]
    return None


_DATE_COLS = ("date", "posted date", "posting date", "transaction date")
_DESC_COLS = ("description", "details", "memo", "name")
_AMT_COLS = ("amount", "amt", "value")
_DEBIT_COLS = ("debit", "withdrawal")
_CREDIT_COLS = ("credit", "deposit")
_CATEGORY_COLS = ("category", "category name")


def load_csv_stream(stream: IO[str], label: str = "<stream>") -> List[Transaction]:
    reader = csv.DictReader(stream)
    fieldnames = reader.fieldnames or []
    date_col = _find_column(fieldnames, _DATE_COLS)
    desc_col = _find_column(fieldnames, _DESC_COLS)
    amt_col = _find_column(fieldnames, _AMT_COLS)
    debit_col = _find_column(fieldnames, _DEBIT_COLS)
    credit_col = _find_column(fieldnames, _CREDIT_COLS)
    category_col = _find_column(fieldnames, _CATEGORY_COLS)

    if not date_col or not desc_col or (not amt_col and not (debit_col or credit_col)):
        raise ValueError(
            f"{label}: Missing required columns. Need date+description and amount OR debit/credit."
        )

    txns: List[Transaction] = []
    for row in reader:
        date = _parse_date(row[date_col])
        description = (row[desc_col] or "").strip()
        amount: float
        if amt_col:
            amount = _to_float(row[amt_col])
        else:
            debit = row.get(debit_col) if debit_col else None
            credit = row.get(credit_col) if credit_col else None
            d = _to_float(debit) if debit not in (None, "") else 0.0
            c = _to_float(credit) if credit not in (None, "") else 0.0
            amount = c - d  # credit positive, debit negative

        category = ((row.get(category_col) or "").strip() or None) if category_col else None
        txns.append(
            Transaction(date=date, description=description, amount=amount, category=category)
        )
    return txns


def load_csv_file(path: str | Path) -> List[Transaction]:
    p = Path(path)
    with p.open("r", encoding="utf-8-sig", newline="") as f:
        return load_csv_stream(f, label=p.name)


def load_csv_files(paths: Iterable[str | Path]) -> List[Transaction]:
    all_txns: List[Transaction] = []
    for p in paths:
        all_txns.extend(load_csv_file(p))
    # Sort by date ascending
    all_txns.sort(key=lambda t: (t.date, t.description, t.amount))
    return all_txns


_TICKER_COLS = ("ticker", "symbol")
_ASSET_CLASS_COLS = ("asset class", "asset_class", "class", "type")
_COST_COLS = ("cost basis", "cost_basis", "cost")
_ACCOUNT_TYPE_COLS = ("account type", "account_type", "tax treatment")
_EXPENSE_RATIO_COLS = ("expense ratio", "expense_ratio")
_DIVIDEND_COLS = ("dividend yield", "annual dividend", "annual_dividend")


def load_holdings_csv(path: str | Path) -> List[Holding]:
    """Load portfolio holdings. Requires name, asset class and value columns."""
    p = Path(path)
    with p.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or []
        name_col = _find_column(fieldnames, ("name", "holding", "description"))
        class_col = _find_column(fieldnames, _ASSET_CLASS_COLS)
        value_col = _find_column(fieldnames, ("value", "market value", "current value"))
        if not name_col or not class_col or not value_col:
            raise ValueError(f"{p.name}: Missing required columns. Need name, asset class and value.")
        ticker_col = _find_column(fieldnames, _TICKER_COLS)
        cost_col = _find_column(fieldnames, _COST_COLS)
        acct_col = _find_column(fieldnames, _ACCOUNT_TYPE_COLS)
        er_col = _find_column(fieldnames, _EXPENSE_RATIO_COLS)
        div_col = _find_column(fieldnames, _DIVIDEND_COLS)

        holdings: List[Holding] = []
        for row in reader:
            holdings.append(
                Holding(
                    name=(row[name_col] or "").strip(),
                    asset_class=(row[class_col] or "").strip() or "Unknown",
                    value=_to_float(row[value_col]),
                    ticker=((row.get(ticker_col) or "").strip().upper() or None) if ticker_col else None,
                    cost_basis=_optional_float(row.get(cost_col)) if cost_col else None,
                    expense_ratio=_optional_float(row.get(er_col)) if er_col else None,
                    annual_dividend=_optional_float(row.get(div_col)) if div_col else None,
                    account_type=((row.get(acct_col) or "").strip().lower() or "taxable") if acct_col else "taxable",
                )
            )
    return holdings


def load_subscriptions_csv(path: str | Path) -> List[SubscriptionRecord]:
    p = Path(path)
    with p.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or []
        name_col = _find_column(fieldnames, ("name", "service"))
        amt_col = _find_column(fieldnames, _AMT_COLS + ("price", "cost"))
        if not name_col or not amt_col:
            raise ValueError(f"{p.name}: Missing required columns. Need name and amount.")
        cycle_col = _find_column(fieldnames, ("billing cycle", "billing_cycle", "frequency", "cycle"))
        cat_col = _find_column(fieldnames, _CATEGORY_COLS)
        prov_col = _find_column(fieldnames, ("provider", "vendor"))
        status_col = _find_column(fieldnames, ("status",))

        subs: List[SubscriptionRecord] = []
        for row in reader:
            subs.append(
                SubscriptionRecord(
                    name=(row[name_col] or "").strip(),
                    amount=_to_float(row[amt_col]),
                    billing_cycle=((row.get(cycle_col) or "").strip().lower() or "monthly") if cycle_col else "monthly",
                    category=((row.get(cat_col) or "").strip() or None) if cat_col else None,
                    provider=((row.get(prov_col) or "").strip() or None) if prov_col else None,
                    status=((row.get(status_col) or "").strip().lower() or "active") if status_col else "active",
                )
            )
    return subs
