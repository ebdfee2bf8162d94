import datetime as dt
import unittest

from finance_tracker.categorizer import categorize_transactions, is_need_category
from finance_tracker.config import DEFAULT_RULES
from finance_tracker.data_loader import Transaction


def _txn(description, amount=-10.0, category=None):
    return Transaction(date=dt.date(2024, 1, 1), description=description, amount=amount, category=category)


class CategorizerTests(unittest.TestCase):
    def test_keyword_rules(self):
        txns = [_txn("STARBUCKS #1234"), _txn("Netflix.com"), _txn("Landlord payment")]
        categorize_transactions(txns, DEFAULT_RULES)
        self.assertEqual([t.category for t in txns], ["Dining", "Subscriptions", "Rent"])

    def test_existing_category_is_kept(self):
        txn = _txn("Starbucks", category="Treats")
        categorize_transactions([txn], DEFAULT_RULES)
        self.assertEqual(txn.category, "Treats")

    def test_positive_amount_defaults_to_income(self):
        txns = [_txn("Venmo from Sam", amount=25.0), _txn("Unknown shop")]
        categorize_transactions(txns, DEFAULT_RULES)
        self.assertEqual([t.category for t in txns], ["Income", "Other"])

    def test_need_categories(self):
        self.assertTrue(is_need_category("Rent"))
        self.assertTrue(is_need_category("Monthly Groceries"))
        self.assertTrue(is_need_category("Debt Payments"))
        self.assertFalse(is_need_category("Dining"))
        self.assertTrue(is_need_category("Dining", ["dining"]))
        self.assertFalse(is_need_category("Rent", []))


if __name__ == "__main__":
    unittest.main()
