"""JSON API routes. Everything is scoped to the session user."""

from __future__ import annotations

import datetime as dt
import logging
from functools import wraps
from typing import Dict, List

from flask import Response, g, jsonify, request

from . import analytics as an
from . import portfolio as pf
from . import services as svc
from .bills import bills_summary, upcoming_bills
from .db import delete_row, get_owned_or_404
from .models import Bill, Budget, IncomeSource, Investment, Subscription, Transaction, WatchlistItem
from .reports import EXPORT_FORMATS, REPORT_COLUMNS, export_report, report_filename
from .subscriptions import calculate_roi, find_duplicates, subscription_totals

logger = logging.getLogger(__name__)


def api_login_required(view):
    @wraps(view)
    def wrapped_view(**kwargs):
        if g.user is None:
            return jsonify({"error": "Unauthorized"}), 401
        return view(**kwargs)

    return wrapped_view


def _body() -> Dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _respond(row, errors: List[str], status: int = 201):
    if errors:
        return jsonify({"errors": errors}), 400
    return jsonify(row.to_dict()), status


def _bad_request(message: str):
    return jsonify({"error": message}), 400


def _float_arg(name: str, default=None):
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    return float(raw)


def register_api_routes(app) -> None:
    # -- categories / transactions -----------------------------------------

    @app.route("/api/categories", methods=["GET", "POST"])
    @api_login_required
    def api_categories():
        user_id = g.user.id
        if request.method == "POST":
            category, errors = svc.create_category(user_id, _body())
            return _respond(category, errors)
        return jsonify([c.to_dict() for c in svc.list_categories(user_id)])

    @app.route("/api/transactions", methods=["GET", "POST"])
    @api_login_required
    def api_transactions():
        user_id = g.user.id
        if request.method == "POST":
            txn, errors = svc.apply_transaction(user_id, _body())
            return _respond(txn, errors)
        errors: List[str] = []
        start = svc.parse_date(request.args.get("from"), "from", errors, required=False)
        end = svc.parse_date(request.args.get("to"), "to", errors, required=False)
        if errors:
            return jsonify({"errors": errors}), 400
        rows = svc.query_transactions(user_id, start, end, request.args.get("category") or None)
        return jsonify([t.to_dict() for t in rows])

    @app.route("/api/transactions/import", methods=["POST"])
    @api_login_required
    def api_import_transactions():
        count, errors = svc.import_upload(g.user.id, request.files.get("file"))
        if errors:
            return jsonify({"errors": errors}), 400
        return jsonify({"imported": count}), 201

    @app.route("/api/transactions/<txn_id>", methods=["GET", "PUT", "DELETE"])
    @api_login_required
    def api_transaction(txn_id):
        txn = get_owned_or_404(Transaction, txn_id, g.user.id)
        if request.method == "DELETE":
            delete_row(txn)
            return "", 204
        if request.method == "PUT":
            merged = {**txn.to_dict(), **_body()}
            if "category" in _body() and "category_id" not in _body():
                merged.pop("category_id", None)
            txn, errors = svc.apply_transaction(g.user.id, merged, txn)
            return _respond(txn, errors, 200)
        return jsonify(txn.to_dict())

    # -- income -------------------------------------------------------------

    @app.route("/api/income-sources", methods=["GET", "POST"])
    @api_login_required
    def api_income_sources():
        user_id = g.user.id
        if request.method == "POST":
            source, errors = svc.create_income_source(user_id, _body())
            return _respond(source, errors)
        sources = svc.list_income_sources(user_id)
        return jsonify(
            {
                "sources": [s.to_dict() for s in sources],
                "monthly_income": svc.user_monthly_income(user_id),
            }
        )

    @app.route("/api/income-sources/<source_id>", methods=["DELETE"])
    @api_login_required
    def api_income_source(source_id):
        delete_row(get_owned_or_404(IncomeSource, source_id, g.user.id))
        return "", 204

    # -- budgets ------------------------------------------------------------

    @app.route("/api/budgets", methods=["GET", "POST"])
    @api_login_required
    def api_budgets():
        user_id = g.user.id
        if request.method == "POST":
            budget, errors = svc.apply_budget(user_id, _body())
            return _respond(budget, errors)
        return jsonify([b.to_dict() for b in svc.list_budgets(user_id)])

    @app.route("/api/budgets/recommendation")
    @api_login_required
    def api_budget_recommendation():
        try:
            income = _float_arg("income")
            months = int(request.args.get("months") or 3)
            data = svc.budget_recommendation(
                g.user.id,
                income=income,
                model_type=request.args.get("model") or "traditional",
                months=months,
            )
        except ValueError as exc:
            return _bad_request(str(exc))
        return jsonify(data)

    @app.route("/api/budgets/<budget_id>", methods=["GET", "PUT", "DELETE"])
    @api_login_required
    def api_budget(budget_id):
        budget = get_owned_or_404(Budget, budget_id, g.user.id)
        if request.method == "DELETE":
            delete_row(budget)
            return "", 204
        if request.method == "PUT":
            merged = {**budget.to_dict(include_categories=False), **_body()}
            budget, errors = svc.apply_budget(g.user.id, merged, budget)
            if errors:
                return jsonify({"errors": errors}), 400
        return jsonify(svc.budget_progress(g.user.id, budget))

    @app.route("/api/budgets/<budget_id>/categories", methods=["POST"])
    @api_login_required
    def api_budget_categories(budget_id):
        budget = get_owned_or_404(Budget, budget_id, g.user.id)
        category, errors = svc.add_budget_category(g.user.id, budget, _body())
        return _respond(category, errors)

    @app.route("/api/budget-categories/<category_id>", methods=["PUT", "DELETE"])
    @api_login_required
    def api_budget_category(category_id):
        row = svc.owned_budget_category(g.user.id, category_id)
        if request.method == "DELETE":
            delete_row(row)
            return "", 204
        row, errors = svc.update_budget_category(g.user.id, row, _body())
        return _respond(row, errors, 200)

    # -- investments --------------------------------------------------------

    @app.route("/api/investments", methods=["GET", "POST"])
    @api_login_required
    def api_investments():
        user_id = g.user.id
        if request.method == "POST":
            investment, errors = svc.apply_investment(user_id, _body())
            return _respond(investment, errors)
        return jsonify([i.to_dict() for i in svc.list_investments(user_id)])

    @app.route("/api/investments/allocation")
    @api_login_required
    def api_investment_allocation():
        holdings = svc.user_holdings(g.user.id)
        return jsonify(
            {
                "total_value": round(pf.total_value(holdings), 2),
                "allocation": [
                    {"asset_class": a.name, "value": round(a.value, 2), "percentage": round(a.percentage, 2),
                     "holdings": len(a.holdings)}
                    for a in pf.current_allocation(holdings)
                ],
                "targets": svc.user_targets(g.user.id),
            }
        )

    @app.route("/api/investments/targets", methods=["GET", "PUT"])
    @api_login_required
    def api_investment_targets():
        user_id = g.user.id
        profile = request.args.get("profile")
        if profile:
            targets = pf.RISK_PROFILES.get(profile)
            if targets is None:
                return _bad_request(f"Unknown risk profile: {profile}")
            if request.method == "GET":
                return jsonify({"profile": profile, "targets": targets})
        elif request.method == "PUT":
            body = _body()
            targets = body.get("targets", body)
        else:
            return jsonify({"targets": svc.user_targets(user_id)})
        saved, errors = svc.save_targets(user_id, targets)
        if errors:
            return jsonify({"errors": errors}), 400
        return jsonify({"targets": saved})

    @app.route("/api/investments/rebalancing")
    @api_login_required
    def api_investment_rebalancing():
        try:
            threshold = _float_arg("threshold", svc.app_config().rebalance_threshold)
        except ValueError:
            return _bad_request("threshold must be a number")
        holdings = svc.user_holdings(g.user.id)
        return jsonify(pf.rebalancing_summary(holdings, svc.user_targets(g.user.id), threshold))

    @app.route("/api/investments/tax")
    @api_login_required
    def api_investment_tax():
        holdings = svc.user_holdings(g.user.id)
        return jsonify(
            {
                "location": pf.tax_location_advice(holdings),
                "efficiency": pf.tax_efficiency(holdings),
                "loss_harvesting": pf.tax_loss_harvesting(holdings, svc.app_config().tax_rate),
            }
        )

    @app.route("/api/investments/fees")
    @api_login_required
    def api_investment_fees():
        return jsonify(pf.fee_comparisons(svc.user_holdings(g.user.id)))

    @app.route("/api/investments/performance")
    @api_login_required
    def api_investment_performance():
        holdings = svc.user_holdings(g.user.id)
        reinvest = request.args.get("reinvest", "true").lower() != "false"
        try:
            years = int(request.args.get("years") or 20)
        except ValueError:
            return _bad_request("years must be an integer")
        return jsonify(
            {
                "summary": pf.performance_summary(holdings),
                "dividends": pf.dividend_projection(holdings, years, reinvest),
            }
        )

    @app.route("/api/investments/<investment_id>", methods=["GET", "PUT", "DELETE"])
    @api_login_required
    def api_investment(investment_id):
        investment = get_owned_or_404(Investment, investment_id, g.user.id)
        if request.method == "DELETE":
            delete_row(investment)
            return "", 204
        if request.method == "PUT":
            merged = {**investment.to_dict(), **_body()}
            investment, errors = svc.apply_investment(g.user.id, merged, investment)
            return _respond(investment, errors, 200)
        return jsonify(investment.to_dict())

    # -- subscriptions ------------------------------------------------------

    @app.route("/api/subscriptions", methods=["GET", "POST"])
    @api_login_required
    def api_subscriptions():
        user_id = g.user.id
        if request.method == "POST":
            sub, errors = svc.apply_subscription(user_id, _body())
            return _respond(sub, errors)
        subs = svc.list_subscriptions(user_id)
        return jsonify(
            {
                "subscriptions": [s.to_dict() for s in subs],
                "totals": subscription_totals(s.to_record() for s in subs),
            }
        )

    @app.route("/api/subscriptions/duplicates")
    @api_login_required
    def api_subscription_duplicates():
        subs = svc.list_subscriptions(g.user.id)
        return jsonify(find_duplicates(s.to_record() for s in subs))

    @app.route("/api/subscriptions/roi")
    @api_login_required
    def api_subscription_roi():
        subs = svc.list_subscriptions(g.user.id)
        return jsonify([calculate_roi(s.to_record()) for s in subs])

    @app.route("/api/subscriptions/<sub_id>", methods=["GET", "PUT", "DELETE"])
    @api_login_required
    def api_subscription(sub_id):
        sub = get_owned_or_404(Subscription, sub_id, g.user.id)
        if request.method == "DELETE":
            delete_row(sub)
            return "", 204
        if request.method == "PUT":
            merged = {**sub.to_dict(), **_body()}
            sub, errors = svc.apply_subscription(g.user.id, merged, sub)
            return _respond(sub, errors, 200)
        return jsonify(sub.to_dict())

    # -- bills / payments ---------------------------------------------------

    @app.route("/api/bills", methods=["GET", "POST"])
    @api_login_required
    def api_bills():
        user_id = g.user.id
        if request.method == "POST":
            bill, errors = svc.apply_bill(user_id, _body())
            return _respond(bill, errors)
        bills = svc.list_bills(user_id)
        return jsonify(
            {
                "bills": [b.to_dict() for b in bills],
                "summary": bills_summary(b.to_record() for b in bills),
            }
        )

    @app.route("/api/bills/upcoming")
    @api_login_required
    def api_upcoming_bills():
        try:
            days = int(request.args.get("days") or 30)
        except ValueError:
            return _bad_request("days must be an integer")
        rows = upcoming_bills([b.to_record() for b in svc.list_bills(g.user.id)], days=days)
        return jsonify(
            [
                {
                    **row,
                    "due_date": row["due_date"].isoformat(),
                    "last_paid_date": row["last_paid_date"].isoformat() if row["last_paid_date"] else None,
                }
                for row in rows
            ]
        )

    @app.route("/api/bills/<bill_id>", methods=["GET", "PUT", "DELETE"])
    @api_login_required
    def api_bill(bill_id):
        bill = get_owned_or_404(Bill, bill_id, g.user.id)
        if request.method == "DELETE":
            delete_row(bill)
            return "", 204
        if request.method == "PUT":
            merged = {**bill.to_dict(), **_body()}
            bill, errors = svc.apply_bill(g.user.id, merged, bill)
            return _respond(bill, errors, 200)
        return jsonify(bill.to_dict())

    @app.route("/api/bills/<bill_id>/pay", methods=["POST"])
    @api_login_required
    def api_pay_bill(bill_id):
        bill = get_owned_or_404(Bill, bill_id, g.user.id)
        payment, errors = svc.pay_bill(g.user.id, bill, _body())
        if errors:
            return jsonify({"errors": errors}), 400
        return jsonify({"payment": payment.to_dict(), "bill": bill.to_dict()}), 201

    @app.route("/api/payments", methods=["GET", "POST"])
    @api_login_required
    def api_payments():
        user_id = g.user.id
        if request.method == "POST":
            payment, errors = svc.record_payment(user_id, _body())
            return _respond(payment, errors)
        rows = svc.list_payments(
            user_id,
            subscription_id=request.args.get("subscription_id") or None,
            bill_id=request.args.get("bill_id") or None,
        )
        return jsonify([p.to_dict() for p in rows])

    # -- watchlist ----------------------------------------------------------

    @app.route("/api/watchlist", methods=["GET", "POST"])
    @api_login_required
    def api_watchlist():
        user_id = g.user.id
        if request.method == "POST":
            item, errors = svc.apply_watchlist_item(user_id, _body())
            return _respond(item, errors)
        return jsonify([i.to_dict() for i in svc.list_watchlist(user_id)])

    @app.route("/api/watchlist/<item_id>", methods=["PUT", "DELETE"])
    @api_login_required
    def api_watchlist_item(item_id):
        item = get_owned_or_404(WatchlistItem, item_id, g.user.id)
        if request.method == "DELETE":
            delete_row(item)
            return "", 204
        merged = {**item.to_dict(), **_body()}
        item, errors = svc.apply_watchlist_item(g.user.id, merged, item)
        return _respond(item, errors, 200)

    # -- reports / summary --------------------------------------------------

    @app.route("/api/reports/export")
    @api_login_required
    def api_export_report():
        report_type = request.args.get("type") or "overview"
        fmt = (request.args.get("format") or "csv").lower()
        range_key = request.args.get("range") or "all"
        if report_type not in REPORT_COLUMNS:
            return _bad_request(f"Unsupported report type: {report_type}")
        if range_key not in an.TIME_RANGES:
            return _bad_request(f"Unknown time range: {range_key}")
        try:
            records = svc.report_records(g.user.id, report_type, range_key)
            payload = export_report(
                report_type,
                records,
                fmt,
                title=request.args.get("title") or None,
                description=request.args.get("description") or None,
                range_key=range_key,
            )
        except ValueError as exc:
            return _bad_request(str(exc))
        filename = report_filename(report_type, fmt, dt.date.today())
        logger.info("Exported %s report as %s (%d rows)", report_type, fmt, len(records))
        return Response(
            payload,
            mimetype=EXPORT_FORMATS[fmt],
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.route("/api/summary")
    @api_login_required
    def api_summary():
        range_key = request.args.get("range") or an.DEFAULT_TIME_RANGE
        if range_key not in an.TIME_RANGES:
            return _bad_request(f"Unknown time range: {range_key}")
        return jsonify(svc.dashboard_summary(g.user.id, range_key))
