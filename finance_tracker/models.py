"""SQLAlchemy models for the Personal Finance Tracker web application.

Every row carries a UUID string key and, apart from ``users`` itself, a
``user_id`` that queries filter on to keep each user's data private.
"""

from __future__ import annotations

import datetime as dt
import uuid

from flask_sqlalchemy import SQLAlchemy

from .data_loader import Holding
from .data_loader import Transaction as TransactionRecord


db = SQLAlchemy()


def _uuid() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value is not None else None


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    categories = db.relationship("Category", back_populates="user", cascade="all, delete-orphan")
    transactions = db.relationship("Transaction", back_populates="user", cascade="all, delete-orphan")
    budgets = db.relationship("Budget", back_populates="user", cascade="all, delete-orphan")

    def to_dict(self):
        return {"id": self.id, "username": self.username, "email": self.email}


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_categories_user_name"),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default="expense")
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="categories")
    transactions = db.relationship("Transaction", back_populates="category")

    def to_dict(self):
        return {"id": self.id, "name": self.name, "kind": self.kind}


class Transaction(db.Model):
    __tablename__ = "transactions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id = db.Column(db.String(36), db.ForeignKey("categories.id", ondelete="SET NULL"))
    date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    source = db.Column(db.String(32), default="manual")
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="transactions")
    category = db.relationship("Category", back_populates="transactions")

    def to_dict(self):
        return {
            "id": self.id,
            "date": _iso(self.date),
            "description": self.description,
            "amount": self.amount,
            "type": self.type,
            "source": self.source,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
        }

    def to_record(self) -> TransactionRecord:
        return TransactionRecord(
            date=self.date,
            description=self.description,
            amount=self.amount,
            category=self.category.name if self.category else None,
            category_id=self.category_id,
            id=self.id,
        )


class IncomeSource(db.Model):
    __tablename__ = "income_sources"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    frequency = db.Column(db.String(16), nullable=False, default="monthly")
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "amount": self.amount, "frequency": self.frequency}


class Budget(db.Model):
    __tablename__ = "budgets"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    model = db.Column(db.String(16), nullable=False, default="traditional")
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)

    user = db.relationship("User", back_populates="budgets")
    categories = db.relationship(
        "BudgetCategory",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetCategory.name",
    )

    @property
    def total_allocated(self) -> float:
        return sum(c.amount_allocated for c in self.categories)

    def to_dict(self, include_categories: bool = True):
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "model": self.model,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "is_active": self.is_active,
            "total_allocated": round(self.total_allocated, 2),
        }
        if include_categories:
            data["categories"] = [c.to_dict() for c in self.categories]
        return data


class BudgetCategory(db.Model):
    __tablename__ = "budget_categories"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    budget_id = db.Column(db.String(36), db.ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False)
    category_id = db.Column(db.String(36), db.ForeignKey("categories.id", ondelete="SET NULL"))
    name = db.Column(db.String(120), nullable=False)
    amount_allocated = db.Column(db.Float, nullable=False, default=0.0)

    budget = db.relationship("Budget", back_populates="categories")

    def to_dict(self):
        return {
            "id": self.id,
            "budget_id": self.budget_id,
            "category_id": self.category_id,
            "name": self.name,
            "amount_allocated": self.amount_allocated,
        }


class AssetClass(db.Model):
    __tablename__ = "asset_classes"
    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_asset_classes_user_name"),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    target_allocation = db.Column(db.Float, nullable=False, default=0.0)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "target_allocation": self.target_allocation}


class Investment(db.Model):
    __tablename__ = "investments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    ticker = db.Column(db.String(16))
    asset_class = db.Column(db.String(120), nullable=False)
    value = db.Column(db.Float, nullable=False, default=0.0)
    cost_basis = db.Column(db.Float)
    shares = db.Column(db.Float)
    annual_return = db.Column(db.Float)
    annual_dividend = db.Column(db.Float)
    expense_ratio = db.Column(db.Float)
    account_type = db.Column(db.String(16), nullable=False, default="taxable")
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)

    @property
    def price(self):
        if self.shares:
            return round(self.value / self.shares, 2)
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "ticker": self.ticker,
            "symbol": self.ticker,
            "asset_class": self.asset_class,
            "value": self.value,
            "cost_basis": self.cost_basis,
            "shares": self.shares,
            "price": self.price,
            "annual_return": self.annual_return,
            "annual_dividend": self.annual_dividend,
            "expense_ratio": self.expense_ratio,
            "account_type": self.account_type,
            "updated_at": _iso(self.updated_at),
        }

    def to_record(self) -> Holding:
        return Holding(
            name=self.name,
            asset_class=self.asset_class,
            value=self.value,
            ticker=self.ticker,
            cost_basis=self.cost_basis,
            shares=self.shares,
            annual_return=self.annual_return,
            annual_dividend=self.annual_dividend,
            expense_ratio=self.expense_ratio,
            account_type=self.account_type or "taxable",
            id=self.id,
        )


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    provider = db.Column(db.String(120))
    category = db.Column(db.String(120))
    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    billing_cycle = db.Column(db.String(16), nullable=False, default="monthly")
    status = db.Column(db.String(16), nullable=False, default="active")
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    next_billing_date = db.Column(db.Date)
    expected_roi = db.Column(db.Float)
    actual_roi = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    payments = db.relationship("Payment", back_populates="subscription", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "category": self.category,
            "amount": self.amount,
            "currency": self.currency,
            "billing_cycle": self.billing_cycle,
            "status": self.status,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "next_billing_date": _iso(self.next_billing_date),
            "expected_roi": self.expected_roi,
            "actual_roi": self.actual_roi,
        }

    def to_record(self):
        """Plain dict with real dates, as the subscription analysis functions expect."""
        data = self.to_dict()
        data.update(start_date=self.start_date, end_date=self.end_date, next_billing_date=self.next_billing_date)
        return data


class Bill(db.Model):
    __tablename__ = "bills"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    category = db.Column(db.String(120))
    amount = db.Column(db.Float, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    frequency = db.Column(db.String(16), nullable=False, default="monthly")
    status = db.Column(db.String(16), nullable=False, default="pending")
    last_paid_date = db.Column(db.Date)
    auto_pay = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    payments = db.relationship("Payment", back_populates="bill", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "amount": self.amount,
            "due_date": _iso(self.due_date),
            "frequency": self.frequency,
            "status": self.status,
            "last_paid_date": _iso(self.last_paid_date),
            "auto_pay": self.auto_pay,
            "notes": self.notes,
        }

    def to_record(self):
        data = self.to_dict()
        data.update(due_date=self.due_date, last_paid_date=self.last_paid_date)
        return data


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    subscription_id = db.Column(db.String(36), db.ForeignKey("subscriptions.id", ondelete="CASCADE"))
    bill_id = db.Column(db.String(36), db.ForeignKey("bills.id", ondelete="CASCADE"))
    amount = db.Column(db.Float, nullable=False)
    date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")
    payment_method = db.Column(db.String(32))
    note = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    subscription = db.relationship("Subscription", back_populates="payments")
    bill = db.relationship("Bill", back_populates="payments")

    def to_dict(self):
        return {
            "id": self.id,
            "subscription_id": self.subscription_id,
            "bill_id": self.bill_id,
            "amount": self.amount,
            "date": _iso(self.date),
            "status": self.status,
            "payment_method": self.payment_method,
            "note": self.note,
        }


class WatchlistItem(db.Model):
    __tablename__ = "watchlist_items"
    __table_args__ = (db.UniqueConstraint("user_id", "ticker", name="uq_watchlist_user_ticker"),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    ticker = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    sector = db.Column(db.String(120))
    price = db.Column(db.Float)
    target_price = db.Column(db.Float)
    notes = db.Column(db.Text)
    price_alert_enabled = db.Column(db.Boolean, nullable=False, default=False)
    alert_threshold = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    @property
    def target_reached(self) -> bool:
        return self.price is not None and self.target_price is not None and self.price >= self.target_price

    def to_dict(self):
        return {
            "id": self.id,
            "ticker": self.ticker,
            "name": self.name,
            "sector": self.sector,
            "price": self.price,
            "target_price": self.target_price,
            "notes": self.notes,
            "price_alert_enabled": self.price_alert_enabled,
            "alert_threshold": self.alert_threshold,
            "target_reached": self.target_reached,
        }
