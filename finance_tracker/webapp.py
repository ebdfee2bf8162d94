"""Flask web interface for the Personal Finance Tracker."""

from __future__ import annotations

import datetime as dt
import logging
import os
from functools import wraps
from pathlib import Path
from typing import Dict, List, Optional

from flask import (
    Flask,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash, generate_password_hash

from . import analytics as an
from . import portfolio as pf
from . import services as svc
from .api import register_api_routes
from .bills import FREQUENCIES, FREQUENCY_LABELS, PAYMENT_METHODS, bills_summary, upcoming_bills
from .config import AppConfig, configure_logging
from .db import database_uri, delete_row, get_owned, init_db
from .models import Bill, Budget, Investment, Subscription, Transaction, User, WatchlistItem, db
from .recommendations import MODEL_TYPES
from .reports import EXPORT_FORMATS, REPORT_COLUMNS, prepare_report_rows
from .subscriptions import BILLING_CYCLES, calculate_roi, find_duplicates, subscription_totals

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent


def login_required(view):
    @wraps(view)
    def wrapped_view(**kwargs):
        if g.user is None:
            return redirect(url_for("login"))
        return view(**kwargs)

    return wrapped_view


def _load_logged_in_user() -> None:
    user_id = session.get("user_id")
    g.user = db.session.get(User, user_id) if user_id is not None else None


def _resolve_range(value: Optional[str]) -> str:
    return value if value in an.TIME_RANGES else an.DEFAULT_TIME_RANGE


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def create_app(config_path: Optional[str] = None, test_config: Optional[Dict] = None) -> Flask:
    app = Flask(__name__, template_folder=str(PACKAGE_ROOT / "templates"))
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("FINANCE_TRACKER_SECRET_KEY", "dev"),
        SQLALCHEMY_DATABASE_URI=database_uri(os.environ.get("FINANCE_TRACKER_DATABASE_URI")),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        FINANCE_TRACKER_CONFIG=config_path or os.environ.get("FINANCE_TRACKER_CONFIG"),
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )
    if test_config:
        app.config.update(test_config)

    configure_logging(app.config["LOG_LEVEL"])
    app.config["APP_CONFIG"] = AppConfig.load(_resolve_config_path(app.config["FINANCE_TRACKER_CONFIG"]))

    db.init_app(app)
    app.before_request(_load_logged_in_user)
    with app.app_context():
        init_db()

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc):
        db.session.rollback()
        logger.exception("Database error on %s %s", request.method, request.path)
        if _wants_json():
            return jsonify({"error": "Database error"}), 500
        flash("Something went wrong while talking to the database. Please try again.", "error")
        return render_template("error.html"), 500

    @app.errorhandler(404)
    def handle_not_found(exc: HTTPException):
        if _wants_json():
            return jsonify({"error": "Not found"}), 404
        return exc

    @app.route("/signup", methods=["GET", "POST"])
    def signup():
        if g.user is not None:
            return redirect(url_for("index"))
        errors: List[str] = []
        form = {"username": "", "email": ""}
        if request.method == "POST":
            username = (request.form.get("username") or "").strip()
            email = (request.form.get("email") or "").strip()
            password = request.form.get("password") or ""
            form["username"] = username
            form["email"] = email
            if not username:
                errors.append("Username is required.")
            if not email:
                errors.append("Email is required.")
            if not password:
                errors.append("Password is required.")
            if not errors:
                user = User(username=username, email=email, password_hash=generate_password_hash(password))
                db.session.add(user)
                try:
                    db.session.commit()
                except IntegrityError:
                    db.session.rollback()
                    errors.append("Username or email already exists.")
                else:
                    logger.info("Created user %s", username)
                    session.clear()
                    session["user_id"] = user.id
                    return redirect(url_for("index"))
        return render_template("auth.html", mode="signup", errors=errors, form=form)

    @app.route("/login", methods=["GET", "POST"])
    def login():
        if g.user is not None:
            return redirect(url_for("index"))
        errors: List[str] = []
        form = {"username": ""}
        if request.method == "POST":
            username = (request.form.get("username") or "").strip()
            password = request.form.get("password") or ""
            form["username"] = username
            user = User.query.filter((User.username == username) | (User.email == username)).first()
            if user is None or not check_password_hash(user.password_hash, password):
                errors.append("Invalid credentials.")
            else:
                session.clear()
                session["user_id"] = user.id
                return redirect(url_for("index"))
        return render_template("auth.html", mode="login", errors=errors, form=form)

    @app.route("/logout", methods=["POST"])
    @login_required
    def logout():
        session.clear()
        return redirect(url_for("login"))

    @app.route("/", methods=["GET", "POST"])
    @login_required
    def index():
        user_id = g.user.id
        range_key = _resolve_range(request.values.get("range"))
        errors: List[str] = []
        manual_form = {"date": dt.date.today().isoformat(), "description": "", "amount": "",
                       "type": "expense", "category": ""}

        if request.method == "POST":
            action = request.form.get("action", "")
            if action == "add_manual":
                manual_form = {key: (request.form.get(key) or "").strip() for key in manual_form}
                _, errors = svc.apply_transaction(user_id, request.form)
            elif action == "delete_transaction":
                txn = get_owned(Transaction, request.form.get("transaction_id") or "", user_id)
                if txn is None:
                    errors.append("Unable to remove the selected transaction.")
                else:
                    delete_row(txn)
            elif action == "upload_csv":
                count, errors = svc.import_upload(user_id, request.files.get("csv_file"))
                if not errors:
                    flash(f"Imported {count} transactions.", "success")
            if not errors:
                return redirect(url_for("index", range=range_key))

        summary = svc.dashboard_summary(user_id, range_key)
        start, end = an.range_bounds(range_key)
        transactions = svc.transaction_records(user_id, start, end)
        bills = upcoming_bills([b.to_record() for b in svc.list_bills(user_id)], days=14)
        return render_template(
            "index.html",
            summary=summary,
            transactions=transactions,
            categories=svc.list_categories(user_id),
            upcoming=bills,
            manual_form=manual_form,
            errors=errors,
            range_key=range_key,
            time_ranges=an.TIME_RANGES,
        )

    @app.route("/budgets", methods=["GET", "POST"])
    @login_required
    def budgets():
        user_id = g.user.id
        errors: List[str] = []
        if request.method == "POST":
            action = request.form.get("action", "")
            if action == "create_budget":
                _, errors = svc.apply_budget(user_id, request.form)
            elif action == "add_category":
                budget = get_owned(Budget, request.form.get("budget_id") or "", user_id)
                if budget is None:
                    errors.append("Unknown budget.")
                else:
                    _, errors = svc.add_budget_category(user_id, budget, request.form)
            elif action == "delete_budget":
                budget = get_owned(Budget, request.form.get("budget_id") or "", user_id)
                if budget is not None:
                    delete_row(budget)
            if not errors:
                return redirect(url_for("budgets"))
        rows = [svc.budget_progress(user_id, b) for b in svc.list_budgets(user_id)]
        return render_template(
            "budgets.html",
            budgets=rows,
            models=MODEL_TYPES,
            categories=svc.list_categories(user_id),
            errors=errors,
        )

    @app.route("/budgets/recommend")
    @login_required
    def recommend_budget():
        user_id = g.user.id
        form = {
            "income": request.args.get("income") or "",
            "model": request.args.get("model") or "traditional",
            "months": request.args.get("months") or "3",
        }
        recommendation = None
        try:
            income = float(form["income"]) if form["income"] else None
            recommendation = svc.budget_recommendation(
                user_id, income=income, model_type=form["model"], months=int(form["months"])
            )
        except ValueError as exc:
            logger.warning("Budget recommendation failed: %s", exc)
            flash(str(exc), "error")
        return render_template(
            "recommend.html",
            form=form,
            models=MODEL_TYPES,
            recommendation=recommendation,
            monthly_income=svc.user_monthly_income(user_id),
        )

    @app.route("/investments", methods=["GET", "POST"])
    @login_required
    def investments():
        user_id = g.user.id
        cfg = svc.app_config()
        errors: List[str] = []
        if request.method == "POST":
            action = request.form.get("action", "")
            if action == "add_investment":
                _, errors = svc.apply_investment(user_id, request.form)
            elif action == "delete_investment":
                row = get_owned(Investment, request.form.get("investment_id") or "", user_id)
                if row is not None:
                    delete_row(row)
            elif action == "apply_profile":
                targets = pf.RISK_PROFILES.get(request.form.get("profile") or "")
                if targets is None:
                    errors.append("Choose a risk profile.")
                else:
                    _, errors = svc.save_targets(user_id, targets)
            if not errors:
                return redirect(url_for("investments"))

        holdings = svc.user_holdings(user_id)
        targets = svc.user_targets(user_id)
        return render_template(
            "investments.html",
            investments=svc.list_investments(user_id),
            allocation=pf.current_allocation(holdings),
            rebalancing=pf.rebalancing_summary(holdings, targets, cfg.rebalance_threshold),
            tax_location=pf.tax_location_advice(holdings),
            tax_efficiency=pf.tax_efficiency(holdings),
            harvesting=pf.tax_loss_harvesting(holdings, cfg.tax_rate),
            performance=pf.performance_summary(holdings),
            account_types=pf.ACCOUNT_TYPES,
            profiles=pf.RISK_PROFILES,
            errors=errors,
        )

    @app.route("/subscriptions", methods=["GET", "POST"])
    @login_required
    def subscriptions():
        user_id = g.user.id
        errors: List[str] = []
        if request.method == "POST":
            action = request.form.get("action", "")
            if action == "add_subscription":
                _, errors = svc.apply_subscription(user_id, request.form)
            elif action == "record_payment":
                _, errors = svc.record_payment(user_id, request.form)
            elif action == "delete_subscription":
                row = get_owned(Subscription, request.form.get("subscription_id") or "", user_id)
                if row is not None:
                    delete_row(row)
            if not errors:
                return redirect(url_for("subscriptions"))

        subs = svc.list_subscriptions(user_id)
        records = [s.to_record() for s in subs]
        return render_template(
            "subscriptions.html",
            subscriptions=subs,
            totals=subscription_totals(records),
            duplicates=find_duplicates(records),
            roi={r["id"]: r for r in (calculate_roi(rec) for rec in records)},
            cycles=BILLING_CYCLES,
            payment_methods=PAYMENT_METHODS,
            errors=errors,
        )

    @app.route("/bills", methods=["GET", "POST"])
    @login_required
    def bills():
        user_id = g.user.id
        errors: List[str] = []
        if request.method == "POST":
            action = request.form.get("action", "")
            bill = get_owned(Bill, request.form.get("bill_id") or "", user_id)
            if action == "add_bill":
                _, errors = svc.apply_bill(user_id, request.form)
            elif action == "pay_bill" and bill is not None:
                _, errors = svc.pay_bill(user_id, bill, request.form)
            elif action == "delete_bill" and bill is not None:
                delete_row(bill)
            if not errors:
                return redirect(url_for("bills"))

        rows = svc.list_bills(user_id)
        records = [b.to_record() for b in rows]
        return render_template(
            "bills.html",
            bills=rows,
            upcoming=upcoming_bills(records),
            summary=bills_summary(records),
            frequencies=FREQUENCIES,
            frequency_labels=FREQUENCY_LABELS,
            payment_methods=PAYMENT_METHODS,
            errors=errors,
        )

    @app.route("/watchlist", methods=["GET", "POST"])
    @login_required
    def watchlist():
        user_id = g.user.id
        errors: List[str] = []
        if request.method == "POST":
            action = request.form.get("action", "")
            if action == "add_item":
                _, errors = svc.apply_watchlist_item(user_id, request.form)
            elif action == "delete_item":
                row = get_owned(WatchlistItem, request.form.get("item_id") or "", user_id)
                if row is not None:
                    delete_row(row)
            if not errors:
                return redirect(url_for("watchlist"))
        return render_template("watchlist.html", items=svc.list_watchlist(user_id), errors=errors)

    @app.route("/reports")
    @login_required
    def reports():
        report_type = request.args.get("type") or "overview"
        if report_type not in REPORT_COLUMNS:
            report_type = "overview"
        range_key = request.args.get("range") or "all"
        if range_key not in an.TIME_RANGES:
            range_key = "all"
        rows = prepare_report_rows(report_type, svc.report_records(g.user.id, report_type, range_key))
        return render_template(
            "reports.html",
            report_type=report_type,
            report_types=list(REPORT_COLUMNS),
            columns=REPORT_COLUMNS[report_type],
            rows=rows,
            range_key=range_key,
            time_ranges=an.TIME_RANGES,
            formats=list(EXPORT_FORMATS),
        )

    register_api_routes(app)
    return app


def _resolve_config_path(config_path: Optional[str]) -> Optional[Path]:
    if not config_path:
        return None
    path = Path(config_path)
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


if __name__ == "__main__":
    create_app().run(debug=True)
