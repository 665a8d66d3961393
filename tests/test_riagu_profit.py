import math
import unittest

from gachabox.riagu_profit import (
    STATUS_EVEN,
    STATUS_LOSS,
    STATUS_PROFIT,
    STATUS_UNAVAILABLE,
    calculate_expected_cost_per_draw,
    calculate_inverse_rate_weighted_break_even,
    calculate_profit_amount,
    calculate_revenue_per_draw,
    evaluate_profit_margin,
)


class ProfitMarginTests(unittest.TestCase):
    def test_margin_is_rounded_to_one_decimal(self) -> None:
        evaluation = evaluate_profit_margin(revenue_amount=15, cost_amount=5)
        self.assertEqual(evaluation.status, STATUS_PROFIT)
        self.assertEqual(evaluation.percent, 66.7)
        self.assertFalse(evaluation.is_out_of_stock)

    def test_break_even_is_positive_zero(self) -> None:
        evaluation = evaluate_profit_margin(revenue_amount=10, cost_amount=10)
        self.assertEqual(evaluation.status, STATUS_EVEN)
        self.assertEqual(evaluation.percent, 0)
        self.assertEqual(math.copysign(1, evaluation.percent), 1)

    def test_loss(self) -> None:
        evaluation = evaluate_profit_margin(revenue_amount=10, cost_amount=15)
        self.assertEqual(evaluation.status, STATUS_LOSS)
        self.assertEqual(evaluation.percent, -50)

    def test_out_of_stock_overrides_amounts(self) -> None:
        evaluation = evaluate_profit_margin(revenue_amount=15, cost_amount=5, is_out_of_stock=True)
        self.assertEqual(evaluation.status, STATUS_UNAVAILABLE)
        self.assertIsNone(evaluation.percent)
        self.assertTrue(evaluation.is_out_of_stock)

    def test_missing_or_zero_revenue_is_unavailable(self) -> None:
        for revenue, cost in ((0, 5), (None, 5), (10, None), (float("inf"), 1)):
            evaluation = evaluate_profit_margin(revenue_amount=revenue, cost_amount=cost)
            self.assertEqual(evaluation.status, STATUS_UNAVAILABLE)
            self.assertIsNone(evaluation.percent)


class PerDrawAmountTests(unittest.TestCase):
    def test_revenue_per_draw(self) -> None:
        self.assertEqual(calculate_revenue_per_draw(100, 0.5), 50)
        self.assertIsNone(calculate_revenue_per_draw(0, 0.5))
        self.assertIsNone(calculate_revenue_per_draw(100, -1))
        self.assertIsNone(calculate_revenue_per_draw(None, 0.5))

    def test_expected_cost_per_draw(self) -> None:
        self.assertAlmostEqual(calculate_expected_cost_per_draw(item_rate=0.01, unit_cost=500), 5)
        self.assertIsNone(calculate_expected_cost_per_draw(item_rate=0.01, unit_cost=500, is_out_of_stock=True))
        self.assertIsNone(calculate_expected_cost_per_draw(item_rate=None, unit_cost=500))

    def test_profit_amount(self) -> None:
        self.assertEqual(calculate_profit_amount(50, 5), 45)
        self.assertIsNone(calculate_profit_amount(50, float("nan")))


class BreakEvenTests(unittest.TestCase):
    def test_rarer_items_get_larger_share(self) -> None:
        result = calculate_inverse_rate_weighted_break_even(
            revenue_per_draw=50,
            selected_item_rate=0.01,
            all_riagu_item_rates=[0.01, 0.04],
        )
        self.assertAlmostEqual(result.weight_share, 0.8)
        self.assertAlmostEqual(result.break_even_unit_cost, 4000)

    def test_zero_exponent_splits_evenly(self) -> None:
        result = calculate_inverse_rate_weighted_break_even(
            revenue_per_draw=50,
            selected_item_rate=0.01,
            all_riagu_item_rates=[0.01, 0.04],
            weight_exponent=0,
        )
        self.assertAlmostEqual(result.weight_share, 0.5)
        self.assertAlmostEqual(result.break_even_unit_cost, 2500)

    def test_invalid_inputs_are_unavailable(self) -> None:
        for kwargs in (
            {"revenue_per_draw": 0, "selected_item_rate": 0.01, "all_riagu_item_rates": [0.01]},
            {"revenue_per_draw": 50, "selected_item_rate": None, "all_riagu_item_rates": [0.01]},
            {"revenue_per_draw": 50, "selected_item_rate": 0.01, "all_riagu_item_rates": [None, -1]},
        ):
            result = calculate_inverse_rate_weighted_break_even(**kwargs)
            self.assertIsNone(result.break_even_unit_cost)
            self.assertIsNone(result.weight_share)


if __name__ == "__main__":
    unittest.main()
