"""Request-side operations shared by the HTML pages and the JSON API.

Each function takes the session user's id and only ever touches rows owned by
that user. Validation helpers follow the form-handling convention used by the
pages: problems are appended to an ``errors`` list rather than raised.
"""

from __future__ import annotations

import datetime as dt
import io
import logging
from typing import Dict, IO, Iterable, List, Optional, Tuple

from flask import abort, current_app

from . import analytics as an
from . import portfolio as pf
from .bills import FREQUENCIES, PAYMENT_METHODS, is_recurring, next_due_date
from .categorizer import categorize_transactions
from .config import AppConfig
from .data_loader import load_csv_stream
from .db import commit, get_owned, safe_fetch, scoped
from .models import (
    AssetClass,
    Bill,
    Budget,
    BudgetCategory,
    Category,
    IncomeSource,
    Investment,
    Payment,
    Subscription,
    Transaction,
    WatchlistItem,
    db,
)
from .recommendations import (
    INCOME_FREQUENCY_FACTORS,
    MODEL_TYPES,
    analyze_spending,
    generate_recommendation,
    lookback_start,
    monthly_income,
    spending_trends,
)
from .reports import build_summary
from .subscriptions import BILLING_CYCLES, advance_billing_date, monthly_equivalent
from .subscriptions import STATUSES as SUBSCRIPTION_STATUSES

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("income", "expense")
CATEGORY_KINDS = ("expense", "income")
PAYMENT_STATUSES = ("completed", "pending", "failed")


def app_config() -> AppConfig:
    return current_app.config["APP_CONFIG"]


# -- parsing ---------------------------------------------------------------

def parse_date(value, label: str, errors: List[str], required: bool = True) -> Optional[dt.date]:
    if value in (None, ""):
        if required:
            errors.append(f"{label} is required.")
        return None
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(str(value).strip())
    except ValueError:
        errors.append(f"{label} must be in YYYY-MM-DD format.")
        return None


def parse_amount(
    value,
    label: str,
    errors: List[str],
    required: bool = True,
    minimum: Optional[float] = None,
) -> Optional[float]:
    if value in (None, ""):
        if required:
            errors.append(f"{label} is required.")
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        errors.append(f"{label} must be a valid number.")
        return None
    if minimum is not None and amount < minimum:
        errors.append(f"{label} must be at least {minimum:g}.")
    return amount


def parse_choice(value, label: str, choices: Iterable[str], errors: List[str], default: Optional[str] = None):
    choices = tuple(choices)
    value = str(value).strip() if value not in (None, "") else default
    if value not in choices:
        errors.append(f"{label} must be one of: {', '.join(choices)}.")
        return None
    return value


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _text(data: Dict, key: str) -> str:
    return str(data.get(key) or "").strip()


# -- categories and transactions -------------------------------------------

def list_categories(user_id: str) -> List[Category]:
    return safe_fetch(lambda: scoped(Category, user_id).order_by(Category.name).all(), "categories")


def ensure_category(user_id: str, name: str, kind: str = "expense") -> Category:
    category = scoped(Category, user_id).filter(db.func.lower(Category.name) == name.lower()).first()
    if category is None:
        category = Category(user_id=user_id, name=name, kind=kind)
        db.session.add(category)
        db.session.flush()
    return category


def create_category(user_id: str, data: Dict) -> Tuple[Optional[Category], List[str]]:
    errors: List[str] = []
    name = _text(data, "name")
    if not name:
        errors.append("Category name is required.")
    kind = parse_choice(data.get("kind"), "Kind", CATEGORY_KINDS, errors, default="expense")
    if not errors and scoped(Category, user_id).filter(db.func.lower(Category.name) == name.lower()).first():
        errors.append("That category already exists.")
    if errors:
        return None, errors
    category = Category(user_id=user_id, name=name, kind=kind)
    db.session.add(category)
    commit()
    return category, []


def _resolve_category(user_id: str, data: Dict, kind: str, errors: List[str]) -> Optional[Category]:
    category_id = _text(data, "category_id")
    if category_id:
        category = get_owned(Category, category_id, user_id)
        if category is None:
            errors.append("Unknown category.")
        return category
    name = _text(data, "category")
    if name:
        return ensure_category(user_id, name, "income" if kind == "income" else "expense")
    return None


def query_transactions(
    user_id: str,
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    category_id: Optional[str] = None,
) -> List[Transaction]:
    def fetch():
        query = scoped(Transaction, user_id)
        if start:
            query = query.filter(Transaction.date >= start)
        if end:
            query = query.filter(Transaction.date <= end)
        if category_id:
            query = query.filter(Transaction.category_id == category_id)
        return query.order_by(Transaction.date.desc(), Transaction.created_at.desc()).all()

    return safe_fetch(fetch, "transactions")


def transaction_records(user_id: str, start=None, end=None, categorize: bool = True):
    """Plain transaction records; uncategorised rows get a keyword category for display."""
    records = [t.to_record() for t in query_transactions(user_id, start, end)]
    if categorize:
        categorize_transactions(records, app_config().rules)
    return records


def apply_transaction(user_id: str, data: Dict, txn: Optional[Transaction] = None):
    """Validate ``data`` and create (or update) a transaction.

    ``type`` decides the sign of the stored amount; when omitted it follows
    the sign of ``amount``.
    """
    errors: List[str] = []
    date_value = parse_date(data.get("date"), "Date", errors)
    description = _text(data, "description")
    if not description:
        errors.append("Description is required.")
    amount = parse_amount(data.get("amount"), "Amount", errors)
    if amount == 0:
        errors.append("Amount cannot be zero.")
    kind = _text(data, "type")
    if not kind and amount is not None:
        kind = "income" if amount > 0 else "expense"
    kind = parse_choice(kind, "Type", TRANSACTION_TYPES, errors)
    category = _resolve_category(user_id, data, kind or "expense", errors)
    if errors:
        db.session.rollback()
        return None, errors

    signed = abs(amount) if kind == "income" else -abs(amount)
    if txn is None:
        txn = Transaction(user_id=user_id, source=_text(data, "source") or "manual")
        db.session.add(txn)
    txn.date = date_value
    txn.description = description
    txn.amount = signed
    txn.type = kind
    txn.category = category
    commit()
    return txn, []


def import_transactions(user_id: str, stream: IO[str], label: str) -> int:
    """Load a CSV upload, keyword-categorise it and store every row.

    Raises ``ValueError`` when the file lacks the required columns.
    """
    records = load_csv_stream(stream, label=label)
    categorize_transactions(records, app_config().rules)
    for record in records:
        kind = "income" if record.amount > 0 else "expense"
        category = ensure_category(user_id, record.category, kind) if record.category else None
        db.session.add(
            Transaction(
                user_id=user_id,
                date=record.date,
                description=record.description,
                amount=record.amount,
                type=kind,
                source="upload",
                category=category,
            )
        )
    commit()
    logger.info("Imported %d transactions from %s", len(records), label)
    return len(records)


def import_upload(user_id: str, file_storage) -> Tuple[int, List[str]]:
    if not file_storage or not file_storage.filename:
        return 0, ["Please choose a CSV file to upload."]
    try:
        text = file_storage.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        return 0, ["Unable to decode the uploaded file. Ensure it is UTF-8 encoded."]
    try:
        return import_transactions(user_id, io.StringIO(text), file_storage.filename), []
    except ValueError as exc:
        db.session.rollback()
        return 0, [str(exc)]


# -- income ----------------------------------------------------------------

def list_income_sources(user_id: str) -> List[IncomeSource]:
    return safe_fetch(lambda: scoped(IncomeSource, user_id).order_by(IncomeSource.name).all(), "income sources")


def create_income_source(user_id: str, data: Dict):
    errors: List[str] = []
    name = _text(data, "name")
    if not name:
        errors.append("Name is required.")
    amount = parse_amount(data.get("amount"), "Amount", errors, minimum=0)
    frequency = parse_choice(data.get("frequency"), "Frequency", INCOME_FREQUENCY_FACTORS, errors, "monthly")
    if errors:
        return None, errors
    source = IncomeSource(user_id=user_id, name=name, amount=amount, frequency=frequency)
    db.session.add(source)
    commit()
    return source, []


def user_monthly_income(user_id: str) -> float:
    return monthly_income(s.to_dict() for s in list_income_sources(user_id))


# -- budgets ---------------------------------------------------------------

def list_budgets(user_id: str) -> List[Budget]:
    return safe_fetch(lambda: scoped(Budget, user_id).order_by(Budget.start_date.desc()).all(), "budgets")


def _budget_category_values(user_id: str, item: Dict, errors: List[str], index: int) -> Optional[Dict]:
    name = _text(item, "name")
    category_id = _text(item, "category_id") or None
    if category_id and get_owned(Category, category_id, user_id) is None:
        errors.append(f"Category {index}: unknown category.")
        return None
    if not name and category_id:
        name = get_owned(Category, category_id, user_id).name
    if not name:
        errors.append(f"Category {index}: name is required.")
    amount = parse_amount(item.get("amount_allocated"), f"Category {index} amount", errors, minimum=0)
    if not name or amount is None:
        return None
    return {"name": name, "category_id": category_id, "amount_allocated": amount}


def apply_budget(user_id: str, data: Dict, budget: Optional[Budget] = None):
    errors: List[str] = []
    name = _text(data, "name")
    if not name:
        errors.append("Budget name is required.")
    model = parse_choice(data.get("model"), "Model", MODEL_TYPES, errors, default="traditional")
    start = parse_date(data.get("start_date"), "Start date", errors)
    end = parse_date(data.get("end_date"), "End date", errors)
    if start and end and end < start:
        errors.append("End date must be on or after the start date.")

    categories = []
    raw_categories = data.get("categories")
    if raw_categories is not None:
        if not isinstance(raw_categories, list):
            errors.append("Categories must be a list.")
        else:
            for index, item in enumerate(raw_categories, start=1):
                if not isinstance(item, dict):
                    errors.append(f"Category {index}: must be an object.")
                    continue
                values = _budget_category_values(user_id, item, errors, index)
                if values:
                    categories.append(values)
    if errors:
        return None, errors

    if budget is None:
        budget = Budget(user_id=user_id)
        db.session.add(budget)
    budget.name = name
    budget.description = _text(data, "description") or None
    budget.model = model
    budget.start_date = start
    budget.end_date = end
    if "is_active" in data:
        budget.is_active = parse_bool(data.get("is_active"))
    if raw_categories is not None:
        budget.categories = [BudgetCategory(**values) for values in categories]
    commit()
    return budget, []


def add_budget_category(user_id: str, budget: Budget, data: Dict):
    errors: List[str] = []
    values = _budget_category_values(user_id, data, errors, len(budget.categories) + 1)
    if errors:
        return None, errors
    category = BudgetCategory(budget=budget, **values)
    db.session.add(category)
    commit()
    return category, []


def owned_budget_category(user_id: str, category_id: str) -> BudgetCategory:
    row = (
        BudgetCategory.query.join(Budget)
        .filter(BudgetCategory.id == category_id, Budget.user_id == user_id)
        .first()
    )
    if row is None:
        abort(404)
    return row


def update_budget_category(user_id: str, row: BudgetCategory, data: Dict):
    errors: List[str] = []
    merged = {**row.to_dict(), **data}
    values = _budget_category_values(user_id, merged, errors, 1)
    if errors:
        return None, errors
    for key, value in values.items():
        setattr(row, key, value)
    commit()
    return row, []


def budget_progress(user_id: str, budget: Budget) -> Dict:
    """Budget dict with spent and remaining per category over the budget period."""
    records = transaction_records(user_id, budget.start_date, budget.end_date)
    usage = an.budget_usage(records, [c.to_dict() for c in budget.categories], budget.start_date, budget.end_date)
    data = budget.to_dict(include_categories=False)
    data["categories"] = usage
    data["total_spent"] = round(sum(u["spent"] for u in usage), 2)
    data["total_remaining"] = round(sum(u["remaining"] for u in usage), 2)
    return data


def active_budget(user_id: str, today: Optional[dt.date] = None) -> Optional[Budget]:
    today = today or dt.date.today()
    for budget in list_budgets(user_id):
        if budget.is_active and budget.start_date <= today <= budget.end_date:
            return budget
    return None


def budget_recommendation(
    user_id: str,
    income: Optional[float] = None,
    model_type: str = "traditional",
    months: int = 3,
    today: Optional[dt.date] = None,
) -> Dict:
    """Recommendation from the last ``months`` of categorised expenses.

    Income defaults to the user's income sources normalised to a month.
    Raises ``ValueError`` for an unknown model or bad inputs.
    """
    if months <= 0:
        raise ValueError("months must be positive")
    today = today or dt.date.today()
    if income is None:
        income = user_monthly_income(user_id)
    records = transaction_records(user_id, start=lookback_start(today, months), end=today, categorize=False)
    patterns = analyze_spending(records, months)
    rec = generate_recommendation(patterns, income, model_type, app_config().need_keywords)
    data = rec.to_dict()
    data["income"] = round(income, 2)
    data["months"] = months
    data["trends"] = spending_trends(r for r in records if r.category)
    return data


# -- investments -----------------------------------------------------------

def list_investments(user_id: str) -> List[Investment]:
    return safe_fetch(lambda: scoped(Investment, user_id).order_by(Investment.name).all(), "investments")


def user_holdings(user_id: str):
    return [i.to_record() for i in list_investments(user_id)]


_INVESTMENT_FLOATS = ("cost_basis", "shares", "annual_return", "annual_dividend", "expense_ratio")


def apply_investment(user_id: str, data: Dict, investment: Optional[Investment] = None):
    errors: List[str] = []
    name = _text(data, "name")
    if not name:
        errors.append("Name is required.")
    asset_class = _text(data, "asset_class")
    if not asset_class:
        errors.append("Asset class is required.")
    value = parse_amount(data.get("value"), "Value", errors, minimum=0)
    optional = {key: parse_amount(data.get(key), key.replace("_", " ").capitalize(), errors, required=False)
                for key in _INVESTMENT_FLOATS}
    account_type = parse_choice(data.get("account_type"), "Account type", pf.ACCOUNT_TYPES, errors, "taxable")
    if errors:
        return None, errors

    if investment is None:
        investment = Investment(user_id=user_id)
        db.session.add(investment)
    investment.name = name
    investment.ticker = _text(data, "ticker").upper() or None
    investment.asset_class = asset_class
    investment.value = value
    investment.account_type = account_type
    for key, val in optional.items():
        setattr(investment, key, val)
    commit()
    return investment, []


def user_targets(user_id: str) -> Dict[str, float]:
    rows = safe_fetch(lambda: scoped(AssetClass, user_id).all(), "asset classes")
    saved = {row.name: row.target_allocation for row in rows}
    return pf.resolve_targets(saved, app_config().target_allocation)


def save_targets(user_id: str, targets: Dict) -> Tuple[Dict[str, float], List[str]]:
    errors: List[str] = []
    parsed: Dict[str, float] = {}
    for name, pct in (targets or {}).items():
        value = parse_amount(pct, f"Target for {name}", errors)
        if value is not None:
            parsed[str(name).strip()] = value
    if not parsed and not errors:
        errors.append("At least one target allocation is required.")
    errors.extend(pf.validate_targets(parsed))
    if errors:
        return {}, errors
    scoped(AssetClass, user_id).delete()
    for name, pct in parsed.items():
        db.session.add(AssetClass(user_id=user_id, name=name, target_allocation=pct))
    commit()
    return parsed, []


# -- subscriptions, bills and payments -------------------------------------

def list_subscriptions(user_id: str) -> List[Subscription]:
    return safe_fetch(lambda: scoped(Subscription, user_id).order_by(Subscription.name).all(), "subscriptions")


def apply_subscription(user_id: str, data: Dict, sub: Optional[Subscription] = None):
    errors: List[str] = []
    name = _text(data, "name")
    if not name:
        errors.append("Name is required.")
    amount = parse_amount(data.get("amount"), "Amount", errors, minimum=0)
    cycle = parse_choice(data.get("billing_cycle"), "Billing cycle", BILLING_CYCLES, errors, "monthly")
    status = parse_choice(data.get("status"), "Status", SUBSCRIPTION_STATUSES, errors, "active")
    start = parse_date(data.get("start_date"), "Start date", errors, required=False)
    end = parse_date(data.get("end_date"), "End date", errors, required=False)
    next_billing = parse_date(data.get("next_billing_date"), "Next billing date", errors, required=False)
    expected = parse_amount(data.get("expected_roi"), "Expected ROI", errors, required=False)
    actual = parse_amount(data.get("actual_roi"), "Actual ROI", errors, required=False)
    if start and end and end < start:
        errors.append("End date must be on or after the start date.")
    if errors:
        return None, errors

    if sub is None:
        sub = Subscription(user_id=user_id)
        db.session.add(sub)
    sub.name = name
    sub.provider = _text(data, "provider") or None
    sub.category = _text(data, "category") or None
    sub.amount = amount
    sub.currency = (_text(data, "currency") or "USD").upper()
    sub.billing_cycle = cycle
    sub.status = status
    sub.start_date = start
    sub.end_date = end
    sub.next_billing_date = next_billing or sub.next_billing_date or start
    sub.expected_roi = expected
    sub.actual_roi = actual
    commit()
    return sub, []


def list_bills(user_id: str) -> List[Bill]:
    return safe_fetch(lambda: scoped(Bill, user_id).order_by(Bill.due_date).all(), "bills")


def apply_bill(user_id: str, data: Dict, bill: Optional[Bill] = None):
    errors: List[str] = []
    name = _text(data, "name")
    if not name:
        errors.append("Name is required.")
    amount = parse_amount(data.get("amount"), "Amount", errors, minimum=0)
    due = parse_date(data.get("due_date"), "Due date", errors)
    frequency = parse_choice(data.get("frequency"), "Frequency", FREQUENCIES, errors, "monthly")
    status = parse_choice(data.get("status"), "Status", ("pending", "paid", "overdue"), errors, "pending")
    if errors:
        return None, errors

    if bill is None:
        bill = Bill(user_id=user_id)
        db.session.add(bill)
    bill.name = name
    bill.category = _text(data, "category") or None
    bill.amount = amount
    bill.due_date = due
    bill.frequency = frequency
    bill.status = status
    bill.auto_pay = parse_bool(data.get("auto_pay"))
    bill.notes = _text(data, "notes") or None
    commit()
    return bill, []


def settle_bill(bill: Bill, paid_on: dt.date) -> None:
    """Mark a bill paid; recurring bills roll forward one cycle and reopen."""
    bill.last_paid_date = paid_on
    if is_recurring(bill.frequency):
        bill.due_date = next_due_date(bill.due_date, bill.frequency)
        bill.status = "pending"
    else:
        bill.status = "paid"


def pay_bill(user_id: str, bill: Bill, data: Dict, today: Optional[dt.date] = None):
    today = today or dt.date.today()
    errors: List[str] = []
    method = parse_choice(data.get("payment_method"), "Payment method", PAYMENT_METHODS, errors, "other")
    if errors:
        return None, errors
    payment = Payment(
        user_id=user_id,
        bill=bill,
        amount=bill.amount,
        date=today,
        status="completed",
        payment_method=method,
        note=_text(data, "note") or None,
    )
    db.session.add(payment)
    settle_bill(bill, today)
    commit()
    return payment, []


def list_payments(user_id: str, subscription_id: Optional[str] = None, bill_id: Optional[str] = None):
    def fetch():
        query = scoped(Payment, user_id)
        if subscription_id:
            query = query.filter_by(subscription_id=subscription_id)
        if bill_id:
            query = query.filter_by(bill_id=bill_id)
        return query.order_by(Payment.date.desc()).all()

    return safe_fetch(fetch, "payments")


def record_payment(user_id: str, data: Dict, today: Optional[dt.date] = None):
    """Store a payment against an owned subscription or bill.

    Aborts with 404 when the referenced parent is not the user's. A completed
    payment advances the subscription's next billing date or settles the bill.
    """
    errors: List[str] = []
    subscription_id = _text(data, "subscription_id")
    bill_id = _text(data, "bill_id")
    if not subscription_id and not bill_id:
        errors.append("A subscription_id or bill_id is required.")
    amount = parse_amount(data.get("amount"), "Amount", errors, minimum=0)
    paid_on = parse_date(data.get("date"), "Date", errors, required=False) or today or dt.date.today()
    status = parse_choice(data.get("status"), "Status", PAYMENT_STATUSES, errors, "completed")
    method = None
    if data.get("payment_method"):
        method = parse_choice(data.get("payment_method"), "Payment method", PAYMENT_METHODS, errors)
    if errors:
        return None, errors

    subscription = get_owned(Subscription, subscription_id, user_id) if subscription_id else None
    bill = get_owned(Bill, bill_id, user_id) if bill_id else None
    if (subscription_id and subscription is None) or (bill_id and bill is None):
        abort(404)

    payment = Payment(
        user_id=user_id,
        subscription=subscription,
        bill=bill,
        amount=amount,
        date=paid_on,
        status=status,
        payment_method=method,
        note=_text(data, "note") or None,
    )
    db.session.add(payment)
    if status == "completed":
        if subscription is not None:
            subscription.next_billing_date = advance_billing_date(
                subscription.next_billing_date, subscription.billing_cycle, paid_on
            )
        if bill is not None:
            settle_bill(bill, paid_on)
    commit()
    return payment, []


# -- watchlist -------------------------------------------------------------

def list_watchlist(user_id: str) -> List[WatchlistItem]:
    return safe_fetch(lambda: scoped(WatchlistItem, user_id).order_by(WatchlistItem.ticker).all(), "watchlist")


def apply_watchlist_item(user_id: str, data: Dict, item: Optional[WatchlistItem] = None):
    errors: List[str] = []
    ticker = _text(data, "ticker").upper()
    if not ticker:
        errors.append("Ticker is required.")
    name = _text(data, "name") or ticker
    price = parse_amount(data.get("price"), "Price", errors, required=False, minimum=0)
    target = parse_amount(data.get("target_price"), "Target price", errors, required=False, minimum=0)
    threshold = parse_amount(data.get("alert_threshold"), "Alert threshold", errors, required=False, minimum=0)
    if ticker and (item is None or item.ticker != ticker):
        if scoped(WatchlistItem, user_id).filter_by(ticker=ticker).first():
            errors.append(f"{ticker} is already on your watchlist.")
    if errors:
        return None, errors

    if item is None:
        item = WatchlistItem(user_id=user_id)
        db.session.add(item)
    item.ticker = ticker
    item.name = name
    item.sector = _text(data, "sector") or None
    item.price = price
    item.target_price = target
    item.notes = _text(data, "notes") or None
    item.price_alert_enabled = parse_bool(data.get("price_alert_enabled"))
    item.alert_threshold = threshold
    commit()
    return item, []


# -- summaries and reports -------------------------------------------------

def dashboard_summary(user_id: str, range_key: str = an.DEFAULT_TIME_RANGE, today: Optional[dt.date] = None) -> Dict:
    today = today or dt.date.today()
    start, end = an.range_bounds(range_key, today)
    records = transaction_records(user_id, start, end)
    summary = build_summary(records)
    budget = active_budget(user_id, today)
    if budget is not None:
        summary["budget_usage"] = budget_progress(user_id, budget)["categories"]
        summary["active_budget"] = budget.name
    summary["range"] = range_key
    summary["range_label"] = an.TIME_RANGES[range_key]
    return summary


def report_records(user_id: str, report_type: str, range_key: str, today: Optional[dt.date] = None) -> List[Dict]:
    today = today or dt.date.today()
    start, end = an.range_bounds(range_key, today)

    if report_type in ("overview", "income-expense"):
        rows = []
        for t in query_transactions(user_id, start, end):
            row = t.to_dict()
            row["category"] = row["category"] or "Uncategorized"
            rows.append(row)
        rows.sort(key=lambda r: r["date"])
        return rows

    if report_type == "investments":
        return [i.to_dict() for i in list_investments(user_id)]

    if report_type == "net-worth":
        rows = [
            {"name": i.name, "value": i.value, "type": "asset", "category": i.asset_class, "date": i.updated_at}
            for i in list_investments(user_id)
        ]
        rows.extend(
            {"name": b.name, "value": -b.amount, "type": "liability", "category": b.category or "Bills",
             "date": b.due_date}
            for b in list_bills(user_id)
            if b.status != "paid"
        )
        return rows

    if report_type == "budget":
        rows = []
        for budget in list_budgets(user_id):
            if start and budget.end_date < start:
                continue
            progress = budget_progress(user_id, budget)
            rows.extend(
                {"name": budget.name, "model": budget.model, "category": usage["name"],
                 "allocated": usage["allocated"], "spent": usage["spent"], "remaining": usage["remaining"]}
                for usage in progress["categories"]
            )
        return rows

    if report_type == "subscriptions":
        return [
            {**s.to_dict(), "monthly_cost": round(monthly_equivalent(s.amount, s.billing_cycle), 2)}
            for s in list_subscriptions(user_id)
            if s.status == "active"
        ]

    raise ValueError(f"Unsupported report type: {report_type}")
