import datetime as dt
import unittest

from finance_tracker.subscriptions import (
    advance_billing_date,
    calculate_roi,
    find_duplicates,
    monthly_equivalent,
    subscription_totals,
)


def _sub(name, amount, category, cycle="monthly", provider=None, status="active", **extra):
    return {"id": name.lower(), "name": name, "amount": amount, "category": category,
            "billing_cycle": cycle, "provider": provider, "status": status, **extra}


class MonthlyEquivalentTests(unittest.TestCase):
    def test_cycles(self):
        self.assertAlmostEqual(monthly_equivalent(120, "annual"), 10)
        self.assertAlmostEqual(monthly_equivalent(120, "yearly"), 10)
        self.assertAlmostEqual(monthly_equivalent(30, "quarterly"), 10)
        self.assertAlmostEqual(monthly_equivalent(10, "weekly"), 43.3)
        self.assertAlmostEqual(monthly_equivalent(1, "daily"), 30)
        self.assertAlmostEqual(monthly_equivalent(9.99, "fortnightly-ish"), 9.99)
        self.assertAlmostEqual(monthly_equivalent(9.99, None), 9.99)


class FindDuplicatesTests(unittest.TestCase):
    def test_groups_with_fewer_than_two_active_members_are_never_reported(self):
        subs = [
            _sub("Netflix", 15.49, "Streaming"),
            _sub("Hulu", 7.99, "Streaming", status="cancelled"),
            _sub("Gym", 40, "Fitness"),
        ]
        self.assertEqual(find_duplicates(subs), [])

    def test_savings_keep_the_most_expensive_member(self):
        subs = [
            _sub("Netflix", 15.0, "Streaming"),
            _sub("Hulu", 8.0, "streaming"),
            _sub("Disney+", 120.0, "Streaming", cycle="annual"),
        ]
        groups = find_duplicates(subs)
        self.assertEqual(len(groups), 1)
        group = groups[0]
        self.assertEqual(group["category"], "streaming")
        self.assertEqual(group["count"], 3)
        self.assertEqual(group["monthly_total"], 33.0)
        self.assertEqual(group["potential_savings"], 18.0)
        self.assertIn("Multiple streaming services detected", group["reasons"])
        self.assertIn("Multiple services in streaming category", group["reasons"])

    def test_repeated_provider_reason(self):
        subs = [
            _sub("Drive", 2.99, "Storage", provider="Google"),
            _sub("YouTube Premium", 13.99, "storage", provider="google"),
        ]
        group = find_duplicates(subs)[0]
        self.assertEqual(group["reasons"], ["Multiple subscriptions from google"])
        self.assertIn("bundled", group["recommendation"])

    def test_missing_category_falls_back_to_uncategorized(self):
        subs = [_sub("A", 5, None), _sub("B", 6, ""), _sub("C", 7, "Music", status=None)]
        groups = find_duplicates(subs)
        self.assertEqual([g["category"] for g in groups], ["uncategorized"])
        self.assertEqual(groups[0]["potential_savings"], 5)

    def test_sorted_by_savings(self):
        subs = [
            _sub("A", 5, "news"), _sub("B", 5, "news"),
            _sub("C", 50, "software"), _sub("D", 40, "software"),
        ]
        self.assertEqual([g["category"] for g in find_duplicates(subs)], ["software", "news"])


class RoiTests(unittest.TestCase):
    def test_roi_against_expected_return(self):
        sub = _sub("Course", 50, "education", start_date=dt.date(2024, 1, 1), expected_roi=900, actual_roi=None)
        roi = calculate_roi(sub, today=dt.date(2024, 7, 1))
        self.assertEqual(roi["duration_months"], 6)
        self.assertEqual(roi["total_cost"], 300)
        self.assertEqual(roi["roi_percentage"], 200)
        self.assertEqual(roi["break_even_months"], 18)
        self.assertEqual(roi["roi_status"], "pending")

    def test_roi_status_once_actual_recorded(self):
        sub = _sub("Tool", 100, "software", start_date=dt.date(2024, 1, 1), expected_roi=50, actual_roi=40)
        roi = calculate_roi(sub, today=dt.date(2024, 1, 20))
        self.assertEqual(roi["duration_months"], 1)
        self.assertEqual(roi["roi_status"], "negative")

    def test_advance_billing_date(self):
        self.assertEqual(advance_billing_date(dt.date(2024, 1, 31), "monthly", dt.date(2024, 1, 31)),
                         dt.date(2024, 2, 29))
        self.assertEqual(advance_billing_date(None, "annual", dt.date(2024, 3, 1)), dt.date(2025, 3, 1))

    def test_advance_billing_date_catches_up_to_payment(self):
        self.assertEqual(advance_billing_date(dt.date(2023, 1, 10), "monthly", dt.date(2026, 10, 18)),
                         dt.date(2026, 11, 10))
        self.assertEqual(advance_billing_date(dt.date(2024, 5, 1), "weekly", dt.date(2024, 4, 20)),
                         dt.date(2024, 5, 8))

    def test_totals_only_count_active(self):
        subs = [_sub("A", 10, "x"), _sub("B", 120, "y", cycle="annual"), _sub("C", 99, "z", status="paused")]
        totals = subscription_totals(subs)
        self.assertEqual(totals["active_count"], 2)
        self.assertEqual(totals["monthly_total"], 20)
        self.assertEqual(totals["annual_total"], 240)


if __name__ == "__main__":
    unittest.main()
