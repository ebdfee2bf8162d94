import datetime as dt
import io
import os
import tempfile
import unittest

from finance_tracker.models import WatchlistItem, db
from finance_tracker.webapp import create_app


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.db_fd, self.db_path = tempfile.mkstemp(suffix=".db")
        self.app = create_app(
            test_config={
                "TESTING": True,
                "SECRET_KEY": "test",
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{self.db_path}",
            }
        )
        self.client = self.app.test_client()
        self._signup(self.client, "alice")

    def tearDown(self):
        with self.app.app_context():
            db.engine.dispose()
        os.close(self.db_fd)
        os.unlink(self.db_path)

    def _signup(self, client, username):
        resp = client.post(
            "/signup",
            data={"username": username, "email": f"{username}@example.com", "password": "secret"},
        )
        self.assertEqual(resp.status_code, 302)
        return resp

    def _post(self, url, payload, client=None):
        return (client or self.client).post(url, json=payload)

    def _create(self, url, payload):
        resp = self._post(url, payload)
        self.assertEqual(resp.status_code, 201, resp.get_json())
        return resp.get_json()


class AuthTests(ApiTestCase):
    def test_api_requires_login(self):
        anon = self.app.test_client()
        resp = anon.get("/api/transactions")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json(), {"error": "Unauthorized"})

    def test_pages_redirect_to_login(self):
        anon = self.app.test_client()
        resp = anon.get("/budgets")
        self.assertEqual(resp.status_code, 302)
        self.assertIn("/login", resp.headers["Location"])

    def test_duplicate_signup_rejected(self):
        anon = self.app.test_client()
        resp = anon.post("/signup", data={"username": "alice", "email": "a2@example.com", "password": "x"})
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b"Username or email already exists.", resp.data)

    def test_login_and_logout(self):
        self.client.post("/logout")
        self.assertEqual(self.client.get("/api/summary").status_code, 401)
        resp = self.client.post("/login", data={"username": "alice@example.com", "password": "wrong"})
        self.assertIn(b"Invalid credentials.", resp.data)
        resp = self.client.post("/login", data={"username": "alice", "password": "secret"})
        self.assertEqual(resp.status_code, 302)
        self.assertEqual(self.client.get("/api/summary").status_code, 200)


class TransactionApiTests(ApiTestCase):
    def test_create_update_delete(self):
        txn = self._create(
            "/api/transactions",
            {"date": "2024-01-05", "description": "Groceries run", "amount": "54.2", "type": "expense",
             "category": "Groceries"},
        )
        self.assertEqual(txn["amount"], -54.2)
        self.assertEqual(txn["category"], "Groceries")

        resp = self.client.put(f"/api/transactions/{txn['id']}", json={"amount": 60})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["amount"], -60)
        self.assertEqual(resp.get_json()["category_id"], txn["category_id"])

        resp = self.client.delete(f"/api/transactions/{txn['id']}")
        self.assertEqual(resp.status_code, 204)
        resp = self.client.get(f"/api/transactions/{txn['id']}")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json(), {"error": "Not found"})

    def test_validation_errors(self):
        resp = self._post("/api/transactions", {"amount": "abc"})
        self.assertEqual(resp.status_code, 400)
        errors = resp.get_json()["errors"]
        self.assertIn("Date is required.", errors)
        self.assertIn("Description is required.", errors)
        self.assertIn("Amount must be a valid number.", errors)

    def test_filters(self):
        self._create("/api/transactions", {"date": "2024-01-05", "description": "A", "amount": -1,
                                           "category": "Dining"})
        other = self._create("/api/transactions", {"date": "2024-02-05", "description": "B", "amount": -2,
                                                   "category": "Rent"})
        rows = self.client.get("/api/transactions?from=2024-02-01&to=2024-02-28").get_json()
        self.assertEqual([r["description"] for r in rows], ["B"])
        rows = self.client.get(f"/api/transactions?category={other['category_id']}").get_json()
        self.assertEqual([r["description"] for r in rows], ["B"])
        self.assertEqual(self.client.get("/api/transactions?from=soon").status_code, 400)

    def test_rows_are_private_to_their_owner(self):
        txn = self._create("/api/transactions", {"date": "2024-01-05", "description": "Mine", "amount": -1})
        bob = self.app.test_client()
        self._signup(bob, "bob")
        self.assertEqual(bob.get(f"/api/transactions/{txn['id']}").status_code, 404)
        self.assertEqual(bob.get("/api/transactions").get_json(), [])

    def test_csv_import_categorises_rows(self):
        csv_bytes = b"date,description,amount\n2024-02-01,STARBUCKS 123,-5.25\n2024-02-02,Payroll ACME,2500\n"
        resp = self.client.post(
            "/api/transactions/import",
            data={"file": (io.BytesIO(csv_bytes), "bank.csv")},
            content_type="multipart/form-data",
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.get_json(), {"imported": 2})
        names = {c["name"] for c in self.client.get("/api/categories").get_json()}
        self.assertEqual(names, {"Dining", "Income"})
        rows = self.client.get("/api/transactions").get_json()
        self.assertTrue(all(r["source"] == "upload" for r in rows))

    def test_csv_import_missing_columns(self):
        resp = self.client.post(
            "/api/transactions/import",
            data={"file": (io.BytesIO(b"foo,bar\n1,2\n"), "bad.csv")},
            content_type="multipart/form-data",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Missing required columns", resp.get_json()["errors"][0])

    def test_categories(self):
        self._create("/api/categories", {"name": "Pets"})
        resp = self._post("/api/categories", {"name": "pets"})
        self.assertEqual(resp.status_code, 400)


class BudgetApiTests(ApiTestCase):
    def test_budget_progress(self):
        self._create("/api/transactions", {"date": "2024-01-05", "description": "Food", "amount": -54.2,
                                           "category": "Groceries"})
        budget = self._create(
            "/api/budgets",
            {"name": "January", "model": "traditional", "start_date": "2024-01-01", "end_date": "2024-01-31",
             "categories": [{"name": "Groceries", "amount_allocated": 200}]},
        )
        self.assertEqual(budget["total_allocated"], 200)

        data = self.client.get(f"/api/budgets/{budget['id']}").get_json()
        self.assertEqual(data["categories"][0]["spent"], 54.2)
        self.assertEqual(data["categories"][0]["remaining"], 145.8)

        added = self._create(f"/api/budgets/{budget['id']}/categories", {"name": "Fun", "amount_allocated": 50})
        resp = self.client.put(f"/api/budget-categories/{added['id']}", json={"amount_allocated": 75})
        self.assertEqual(resp.get_json()["amount_allocated"], 75)
        self.assertEqual(self.client.delete(f"/api/budget-categories/{added['id']}").status_code, 204)

        resp = self.client.put(f"/api/budgets/{budget['id']}", json={"name": "Jan"})
        self.assertEqual(resp.get_json()["name"], "Jan")
        self.assertEqual(len(resp.get_json()["categories"]), 1)

        self.assertEqual(self.client.delete(f"/api/budgets/{budget['id']}").status_code, 204)
        self.assertEqual(self.client.get("/api/budgets").get_json(), [])

    def test_budget_validation(self):
        resp = self._post(
            "/api/budgets",
            {"name": "", "model": "magic", "start_date": "2024-02-01", "end_date": "2024-01-01"},
        )
        self.assertEqual(resp.status_code, 400)
        errors = resp.get_json()["errors"]
        self.assertIn("Budget name is required.", errors)
        self.assertIn("End date must be on or after the start date.", errors)
        self.assertTrue(any(e.startswith("Model must be one of") for e in errors))

    def test_budget_categories_must_be_objects(self):
        resp = self._post(
            "/api/budgets",
            {"name": "Food", "start_date": "2024-01-01", "end_date": "2024-01-31",
             "categories": ["Food", {"name": "Fuel", "amount_allocated": 80}]},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["errors"], ["Category 1: must be an object."])
        self.assertEqual(self.client.get("/api/budgets").get_json(), [])

    def test_recommendation(self):
        recent = (dt.date.today() - dt.timedelta(days=10)).isoformat()
        self._create("/api/transactions", {"date": recent, "description": "Rent", "amount": -1000,
                                           "category": "Rent"})
        self._create("/api/transactions", {"date": recent, "description": "Cinema", "amount": -200,
                                           "category": "Entertainment"})
        data = self.client.get("/api/budgets/recommendation?income=3000&model=50-30-20&months=1").get_json()
        self.assertEqual(data["model_type"], "50-30-20")
        self.assertLessEqual(sum(c["recommended_amount"] for c in data["categories"]), 2400)
        self.assertEqual({c["name"] for c in data["categories"]}, {"Rent", "Entertainment"})
        trends = {t["category"]: t for t in data["trends"]}
        self.assertEqual(set(trends), {"Rent", "Entertainment"})
        self.assertEqual(trends["Rent"]["average"], 1000)
        self.assertEqual(trends["Rent"]["trend"], "stable")

        resp = self.client.get("/api/budgets/recommendation?income=3000&model=unknown")
        self.assertEqual(resp.status_code, 400)

    def test_recommendation_income_defaults_to_sources(self):
        self._create("/api/income-sources", {"name": "Job", "amount": 100, "frequency": "weekly"})
        sources = self.client.get("/api/income-sources").get_json()
        self.assertEqual(sources["monthly_income"], 400)
        data = self.client.get("/api/budgets/recommendation").get_json()
        self.assertEqual(data["income"], 400)
        self.assertEqual(data["risk_level"], "low")


class InvestmentApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self._create("/api/investments", {"name": "Total Market", "ticker": "vti", "asset_class": "Stocks",
                                          "value": 7000, "cost_basis": 8000, "expense_ratio": 0.03})
        self._create("/api/investments", {"name": "Bonds", "ticker": "BND", "asset_class": "Bonds",
                                          "value": 3000, "account_type": "taxable"})

    def test_targets_and_rebalancing(self):
        resp = self.client.put("/api/investments/targets", json={"targets": {"Stocks": 60, "Bonds": 30}})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Target allocations must add up to 100%.", resp.get_json()["errors"])

        resp = self.client.put("/api/investments/targets", json={"targets": {"Stocks": 60, "Bonds": 40}})
        self.assertEqual(resp.status_code, 200)

        data = self.client.get("/api/investments/rebalancing?threshold=5").get_json()
        actions = {a["asset_class"]: a for a in data["actions"]}
        self.assertEqual(actions["Stocks"]["action"], "sell")
        self.assertEqual(actions["Stocks"]["difference"], -1000)
        self.assertEqual(actions["Bonds"]["difference"], 1000)
        self.assertTrue(data["needs_rebalancing"])

    def test_default_and_profile_targets(self):
        targets = self.client.get("/api/investments/targets").get_json()["targets"]
        self.assertEqual(sum(targets.values()), 100)
        resp = self.client.put("/api/investments/targets?profile=moderate")
        self.assertEqual(resp.status_code, 200)
        targets = self.client.get("/api/investments/targets").get_json()["targets"]
        self.assertEqual(targets["Bonds"], 25)
        self.assertEqual(self.client.get("/api/investments/targets?profile=yolo").status_code, 400)

    def test_analysis_endpoints(self):
        allocation = self.client.get("/api/investments/allocation").get_json()
        self.assertEqual(allocation["total_value"], 10000)
        tax = self.client.get("/api/investments/tax").get_json()
        self.assertEqual(tax["loss_harvesting"][0]["unrealized_loss"], 1000)
        self.assertEqual(tax["location"][0]["recommended_account"], "tax-deferred")
        fees = self.client.get("/api/investments/fees").get_json()
        self.assertEqual(fees[0]["ticker"], "VTI")
        performance = self.client.get("/api/investments/performance").get_json()
        self.assertEqual(performance["summary"]["total_value"], 10000)

    def test_update_and_delete(self):
        holding = self.client.get("/api/investments").get_json()[0]
        resp = self.client.put(f"/api/investments/{holding['id']}", json={"value": 1})
        self.assertEqual(resp.get_json()["value"], 1)
        resp = self.client.put(f"/api/investments/{holding['id']}", json={"account_type": "roth"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.client.delete(f"/api/investments/{holding['id']}").status_code, 204)


class SubscriptionBillApiTests(ApiTestCase):
    def test_duplicates_and_roi(self):
        self._create("/api/subscriptions", {"name": "Netflix", "amount": 15.49, "category": "Streaming"})
        self._create("/api/subscriptions", {"name": "Hulu", "amount": 7.99, "category": "streaming"})
        self._create("/api/subscriptions", {"name": "Gym", "amount": 40, "category": "Fitness"})
        groups = self.client.get("/api/subscriptions/duplicates").get_json()
        self.assertEqual(len(groups), 1)
        self.assertEqual(groups[0]["potential_savings"], 7.99)
        roi = self.client.get("/api/subscriptions/roi").get_json()
        self.assertEqual(len(roi), 3)
        listing = self.client.get("/api/subscriptions").get_json()
        self.assertEqual(listing["totals"]["active_count"], 3)

    def test_completed_payment_advances_billing_date(self):
        sub = self._create("/api/subscriptions", {"name": "Netflix", "amount": 15.49,
                                                  "next_billing_date": "2024-03-10"})
        self._create("/api/payments", {"subscription_id": sub["id"], "amount": 15.49, "date": "2024-03-10"})
        self.assertEqual(self.client.get(f"/api/subscriptions/{sub['id']}").get_json()["next_billing_date"],
                         "2024-04-10")

        self._create("/api/payments", {"subscription_id": sub["id"], "amount": 15.49, "status": "pending"})
        self.assertEqual(self.client.get(f"/api/subscriptions/{sub['id']}").get_json()["next_billing_date"],
                         "2024-04-10")
        payments = self.client.get(f"/api/payments?subscription_id={sub['id']}").get_json()
        self.assertEqual(len(payments), 2)

    def test_payment_on_stale_subscription_moves_billing_date_past_payment(self):
        sub = self._create("/api/subscriptions", {"name": "Magazine", "amount": 9, "start_date": "2023-01-10"})
        self.assertEqual(sub["next_billing_date"], "2023-01-10")
        self._create("/api/payments", {"subscription_id": sub["id"], "amount": 9, "date": "2026-10-18"})
        next_billing = self.client.get(f"/api/subscriptions/{sub['id']}").get_json()["next_billing_date"]
        self.assertEqual(next_billing, "2026-11-10")

    def test_payment_for_someone_elses_subscription_is_404(self):
        sub = self._create("/api/subscriptions", {"name": "Netflix", "amount": 15.49})
        bob = self.app.test_client()
        self._signup(bob, "bob")
        resp = self._post("/api/payments", {"subscription_id": sub["id"], "amount": 1}, client=bob)
        self.assertEqual(resp.status_code, 404)
        resp = self._post("/api/payments", {"amount": 1})
        self.assertEqual(resp.status_code, 400)

    def test_paying_bills(self):
        rent = self._create("/api/bills", {"name": "Rent", "amount": 1200, "due_date": "2024-01-31",
                                           "frequency": "monthly"})
        resp = self._post(f"/api/bills/{rent['id']}/pay", {"payment_method": "bank_transfer"})
        self.assertEqual(resp.status_code, 201)
        bill = resp.get_json()["bill"]
        self.assertEqual(bill["due_date"], "2024-02-29")
        self.assertEqual(bill["status"], "pending")
        self.assertEqual(bill["last_paid_date"], dt.date.today().isoformat())

        fee = self._create("/api/bills", {"name": "Permit", "amount": 80, "due_date": "2024-01-10",
                                          "frequency": "once"})
        self._create("/api/payments", {"bill_id": fee["id"], "amount": 80, "date": "2024-01-09"})
        self.assertEqual(self.client.get(f"/api/bills/{fee['id']}").get_json()["status"], "paid")
        self.assertEqual(len(self.client.get(f"/api/payments?bill_id={rent['id']}").get_json()), 1)

    def test_upcoming_bills(self):
        soon = (dt.date.today() + dt.timedelta(days=3)).isoformat()
        later = (dt.date.today() + dt.timedelta(days=90)).isoformat()
        self._create("/api/bills", {"name": "Water", "amount": 40, "due_date": soon})
        self._create("/api/bills", {"name": "Insurance", "amount": 600, "due_date": later, "frequency": "annual"})
        rows = self.client.get("/api/bills/upcoming").get_json()
        self.assertEqual([r["name"] for r in rows], ["Water"])
        self.assertEqual(rows[0]["days_until_due"], 3)
        summary = self.client.get("/api/bills").get_json()["summary"]
        self.assertEqual(summary["total_due"], 640)

    def test_watchlist(self):
        item = self._create("/api/watchlist", {"ticker": "aapl", "name": "Apple", "price": 190,
                                               "target_price": 180})
        self.assertEqual(item["ticker"], "AAPL")
        self.assertTrue(item["target_reached"])
        self.assertEqual(self._post("/api/watchlist", {"ticker": "AAPL"}).status_code, 400)
        resp = self.client.put(f"/api/watchlist/{item['id']}", json={"notes": "hold"})
        self.assertEqual(resp.get_json()["notes"], "hold")
        self.assertEqual(self.client.delete(f"/api/watchlist/{item['id']}").status_code, 204)

    def test_missing_table_is_created_on_demand(self):
        with self.app.app_context():
            WatchlistItem.__table__.drop(db.engine)
        resp = self.client.get("/api/watchlist")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), [])
        self._create("/api/watchlist", {"ticker": "MSFT"})


class ReportApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self._create("/api/transactions", {"date": dt.date.today().isoformat(), "description": "Salary",
                                           "amount": 2500, "type": "income"})
        self._create("/api/transactions", {"date": dt.date.today().isoformat(), "description": "Lunch",
                                           "amount": -12, "category": "Dining"})

    def test_export_formats(self):
        resp = self.client.get("/api/reports/export?type=overview&format=csv&range=30d")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.mimetype, "text/csv")
        self.assertIn("attachment; filename=\"overview-report-", resp.headers["Content-Disposition"])
        self.assertIn(b"Lunch", resp.data)

        resp = self.client.get("/api/reports/export?type=income-expense&format=pdf")
        self.assertTrue(resp.data.startswith(b"%PDF"))
        resp = self.client.get("/api/reports/export?type=subscriptions&format=xlsx")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data.startswith(b"PK"))
        resp = self.client.get("/api/reports/export?type=overview&format=xlsx&title=Q1/Q2")
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get("/api/reports/export?type=budget&format=json")
        self.assertEqual(resp.get_json()["rows"], [])
        resp = self.client.get("/api/reports/export?type=net-worth&format=json")
        self.assertEqual(resp.status_code, 200)

    def test_export_rejects_bad_arguments(self):
        self.assertEqual(self.client.get("/api/reports/export?format=docx").status_code, 400)
        self.assertEqual(self.client.get("/api/reports/export?type=taxes").status_code, 400)
        self.assertEqual(self.client.get("/api/reports/export?range=forever").status_code, 400)

    def test_summary(self):
        data = self.client.get("/api/summary").get_json()
        self.assertEqual(data["totals"], {"income": 2500, "expense": 12, "net": 2488})
        self.assertEqual(data["category_spend"], {"Dining": 12})
        self.assertEqual(data["range_label"], "Last 30 Days")


class PageTests(ApiTestCase):
    def test_pages_render(self):
        for url in ("/", "/budgets", "/budgets/recommend", "/investments", "/subscriptions", "/bills",
                    "/watchlist", "/reports", "/reports?type=investments&range=ytd"):
            resp = self.client.get(url)
            self.assertEqual(resp.status_code, 200, url)

    def test_add_transaction_from_dashboard(self):
        resp = self.client.post(
            "/",
            data={"action": "add_manual", "date": dt.date.today().isoformat(), "description": "Bookstore",
                  "amount": "23.5", "type": "expense", "category": "Books"},
            follow_redirects=True,
        )
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b"Bookstore", resp.data)

    def test_dashboard_validation_message(self):
        resp = self.client.post("/", data={"action": "add_manual", "date": "", "description": "", "amount": "x"})
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b"Amount must be a valid number.", resp.data)

    def test_recommendation_page_shows_error(self):
        resp = self.client.get("/budgets/recommend?income=1000&model=nope")
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b"Unknown budget model", resp.data)

    def test_bill_page_actions(self):
        resp = self.client.post(
            "/bills",
            data={"action": "add_bill", "name": "Phone", "amount": "60", "due_date": "2024-05-01",
                  "frequency": "once"},
            follow_redirects=True,
        )
        self.assertIn(b"Phone", resp.data)
        bill_id = self.client.get("/api/bills").get_json()["bills"][0]["id"]
        self.client.post("/bills", data={"action": "pay_bill", "bill_id": bill_id, "payment_method": "cash"})
        self.assertEqual(self.client.get(f"/api/bills/{bill_id}").get_json()["status"], "paid")


if __name__ == "__main__":
    unittest.main()
