import unittest

from finance_tracker.data_loader import Holding
from finance_tracker.portfolio import (
    RISK_PROFILES,
    current_allocation,
    dividend_projection,
    fee_comparisons,
    performance_summary,
    rebalancing_actions,
    rebalancing_summary,
    resolve_targets,
    tax_efficiency,
    tax_location_advice,
    tax_loss_harvesting,
    validate_targets,
)


class RebalancingTests(unittest.TestCase):
    def setUp(self):
        self.holdings = [
            Holding(name="Total Market", asset_class="Stocks", value=4000, ticker="VTI"),
            Holding(name="S&P 500", asset_class="Stocks", value=2000),
            Holding(name="Aggregate Bond", asset_class="Bonds", value=4000, ticker="BND"),
        ]
        self.targets = {"Stocks": 50, "Bonds": 30, "Cash": 20}

    def test_current_allocation_groups_by_class(self):
        allocation = {a.name: a for a in current_allocation(self.holdings)}
        self.assertAlmostEqual(allocation["Stocks"].value, 6000)
        self.assertAlmostEqual(allocation["Stocks"].percentage, 60)
        self.assertEqual(len(allocation["Stocks"].holdings), 2)

    def test_delta_is_target_minus_current_share_of_total(self):
        actions = rebalancing_actions(self.holdings, self.targets, threshold=5)
        total = 10000
        self.assertEqual({a.asset_class for a in actions}, {"Stocks", "Bonds", "Cash"})
        for a in actions:
            self.assertAlmostEqual(a.difference, (a.target_percent - a.current_percent) / 100 * total)

    def test_action_labels_follow_threshold(self):
        actions = {a.asset_class: a for a in rebalancing_actions(self.holdings, self.targets, threshold=5)}
        self.assertEqual(actions["Stocks"].action, "sell")
        self.assertEqual(actions["Bonds"].action, "sell")
        self.assertEqual(actions["Cash"].action, "buy")
        self.assertAlmostEqual(actions["Cash"].difference, 2000)

    def test_drift_equal_to_threshold_holds(self):
        actions = {a.asset_class: a for a in rebalancing_actions(self.holdings, {"Stocks": 55, "Bonds": 45}, 5)}
        self.assertEqual(actions["Stocks"].action, "hold")
        self.assertEqual(actions["Bonds"].action, "hold")

    def test_summary_reports_total_drift(self):
        summary = rebalancing_summary(self.holdings, self.targets, threshold=5)
        self.assertEqual(summary["total_drift"], 40)
        self.assertTrue(summary["needs_rebalancing"])
        self.assertEqual(summary["portfolio_value"], 10000)

    def test_empty_portfolio_has_zero_deltas(self):
        actions = rebalancing_actions([], self.targets)
        self.assertTrue(all(a.difference == 0 for a in actions))
        self.assertTrue(all(a.action == "buy" for a in actions))


class TargetTests(unittest.TestCase):
    def test_targets_must_sum_to_one_hundred(self):
        self.assertEqual(validate_targets({"Stocks": 60, "Bonds": 40}), [])
        self.assertEqual(validate_targets({"Stocks": 60.005, "Bonds": 40}), [])
        self.assertTrue(validate_targets({"Stocks": 60, "Bonds": 39}))
        self.assertTrue(validate_targets({"Stocks": 110, "Bonds": -10}))

    def test_risk_profiles_are_valid(self):
        self.assertEqual(set(RISK_PROFILES), {"conservative", "moderate", "growth", "aggressive"})
        for targets in RISK_PROFILES.values():
            self.assertEqual(validate_targets(targets), [])

    def test_resolve_targets_falls_back_to_default(self):
        self.assertEqual(resolve_targets({}, {"Cash": 100}), {"Cash": 100})
        self.assertEqual(resolve_targets({"Bonds": 100}, {"Cash": 100}), {"Bonds": 100})


class TaxTests(unittest.TestCase):
    def test_location_advice_flags_misplaced_holdings(self):
        holdings = [
            Holding(name="Bond Fund", asset_class="Bonds", value=5000, account_type="taxable"),
            Holding(name="Bond IRA", asset_class="Bonds", value=5000, account_type="tax-deferred"),
            Holding(name="Mystery", asset_class="Collectibles", value=100),
        ]
        advice = tax_location_advice(holdings)
        self.assertEqual(len(advice), 1)
        self.assertEqual(advice[0]["holding"], "Bond Fund")
        self.assertEqual(advice[0]["recommended_account"], "tax-deferred")

    def test_efficiency_score_is_value_weighted(self):
        holdings = [
            Holding(name="A", asset_class="US Stocks", value=500, account_type="taxable"),
            Holding(name="B", asset_class="US Stocks", value=500, account_type="tax-free"),
        ]
        result = tax_efficiency(holdings)
        self.assertEqual(result["score"], 75)
        self.assertEqual(result["tax_free_value"], 500)
        self.assertEqual(tax_efficiency([])["score"], 0)

    def test_efficiency_recommends_moving_bonds(self):
        holdings = [Holding(name="B", asset_class="Bonds", value=100, account_type="taxable")]
        self.assertIn(
            "Consider moving bonds and REITs to tax-deferred accounts",
            tax_efficiency(holdings)["recommendations"],
        )

    def test_loss_harvesting_only_taxable_losses(self):
        holdings = [
            Holding(name="Small", asset_class="Stocks", value=800, cost_basis=1000, ticker="VTI"),
            Holding(name="Big", asset_class="Bonds", value=1000, cost_basis=2000, ticker="BND"),
            Holding(name="Roth", asset_class="Stocks", value=100, cost_basis=900, account_type="tax-free"),
            Holding(name="Winner", asset_class="Stocks", value=900, cost_basis=100),
        ]
        result = tax_loss_harvesting(holdings, tax_rate=0.25)
        self.assertEqual([r["holding"] for r in result], ["Big", "Small"])
        self.assertEqual(result[0]["potential_tax_savings"], 250)
        self.assertEqual(result[1]["unrealized_loss"], 200)
        self.assertIn("ITOT", result[1]["alternatives"])


class FeeAndPerformanceTests(unittest.TestCase):
    def test_fee_comparison_for_known_tickers(self):
        holdings = [
            Holding(name="VTI", asset_class="Stocks", value=10000, ticker="VTI", expense_ratio=0.03),
            Holding(name="Other", asset_class="Stocks", value=10000, ticker="XYZ", expense_ratio=1.0),
        ]
        result = fee_comparisons(holdings)
        self.assertEqual(len(result), 1)
        self.assertEqual(result[0]["current_fee"], 3)
        self.assertEqual(result[0]["alternative_fee"], 0)
        self.assertGreater(result[0]["ten_year_impact"], 0)

    def test_performance_summary(self):
        holdings = [
            Holding(name="A", asset_class="Stocks", value=1200, cost_basis=1000, expense_ratio=0.1),
            Holding(name="B", asset_class="Bonds", value=800, cost_basis=1000, expense_ratio=0.3),
        ]
        summary = performance_summary(holdings)
        self.assertEqual(summary["total_value"], 2000)
        self.assertEqual(summary["total_gain"], 0)
        self.assertAlmostEqual(summary["weighted_expense_ratio"], 0.18)

    def test_dividend_projection(self):
        holdings = [Holding(name="A", asset_class="Stocks", value=1000, annual_dividend=2.0)]
        rows = dividend_projection(holdings, years=2, reinvest=False)
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]["dividend_amount"], 20)
        self.assertEqual(rows[0]["portfolio_value"], 1070)
        self.assertEqual(dividend_projection([Holding(name="B", asset_class="Cash", value=10)]), [])


if __name__ == "__main__":
    unittest.main()
