import unittest

from gachabox.pools import (
    build_gacha_pools,
    build_item_inventory_count_map,
    format_item_rate_with_precision,
    format_percent,
    infer_rarity_fraction_digits,
    resolve_remaining_stock,
)


CATALOGS = {
    "demo": {
        "order": ["a", "b", "c", "ghost", "norarity"],
        "items": {
            "a": {"itemId": "a", "name": "Alpha", "rarityId": "N", "drawWeight": 3},
            "b": {"itemId": "b", "name": "Beta", "rarityId": "N"},
            "c": {"itemId": "c", "name": "Gamma", "rarityId": "SR", "stockCount": 2, "pickupTarget": True},
            "norarity": {"itemId": "norarity", "name": "Loose"},
            "unlisted": {"itemId": "unlisted", "name": "Hidden", "rarityId": "N"},
        },
    }
}
RARITIES = {
    "demo": {
        "N": {"label": "ノーマル", "emitRate": 80, "color": "#aaaaaa"},
        "SR": {"label": "SR", "emitRate": 20},
    }
}


class BuildGachaPoolsTests(unittest.TestCase):
    def test_item_rates_follow_emit_rate_and_weight(self) -> None:
        pools, items = build_gacha_pools(CATALOGS, RARITIES)
        pool = pools["demo"]
        self.assertEqual([item.item_id for item in pool.items], ["a", "b", "c"])
        self.assertAlmostEqual(items["a"].item_rate, 0.6)
        self.assertAlmostEqual(items["b"].item_rate, 0.2)
        self.assertAlmostEqual(items["c"].item_rate, 0.2)
        self.assertEqual(items["a"].item_rate_display, "60%")
        self.assertEqual(items["a"].rarity_label, "ノーマル")
        self.assertTrue(items["c"].pickup_target)

    def test_rarity_groups_accumulate_weights(self) -> None:
        pools, _ = build_gacha_pools(CATALOGS, RARITIES)
        group = pools["demo"].rarity_groups["N"]
        self.assertEqual(group.item_count, 2)
        self.assertEqual(group.total_weight, 4)
        self.assertEqual(group.emit_rate, 80)
        self.assertEqual(group.color, "#aaaaaa")

    def test_out_of_stock_items_can_be_excluded(self) -> None:
        pools, _ = build_gacha_pools(
            CATALOGS,
            RARITIES,
            inventory_counts={"c": 2},
            include_out_of_stock_items=False,
        )
        self.assertNotIn("SR", pools["demo"].rarity_groups)

        pools, items = build_gacha_pools(CATALOGS, RARITIES, inventory_counts={"c": 2})
        self.assertEqual(items["c"].remaining_stock, 0)
        self.assertIn("SR", pools["demo"].rarity_groups)

    def test_missing_rates_leave_item_rate_unset(self) -> None:
        _, items = build_gacha_pools(CATALOGS, {})
        self.assertIsNone(items["a"].item_rate)
        self.assertEqual(items["a"].item_rate_display, "")


class FormattingTests(unittest.TestCase):
    def test_format_percent(self) -> None:
        self.assertEqual(format_percent(12.5), "12.5")
        self.assertEqual(format_percent(0.0000001), "0.0000001")
        self.assertEqual(format_percent(0), "0")
        self.assertEqual(format_percent(None), "")

    def test_precision_padding(self) -> None:
        self.assertEqual(format_item_rate_with_precision(0.005, 2), "0.50")
        self.assertEqual(format_item_rate_with_precision(0.2, 1), "20.0")
        self.assertEqual(format_item_rate_with_precision(0.12345, 1), "12.345")

    def test_infer_fraction_digits(self) -> None:
        digits = infer_rarity_fraction_digits({"N": {"emitRate": 12.5}, "R": {"emitRate": 5}, "X": {}})
        self.assertEqual(digits, {"N": 1, "R": 0})


class StockTests(unittest.TestCase):
    def test_inventory_counts_are_summed(self) -> None:
        counts = build_item_inventory_count_map(
            {"c": [{"count": 1}, {"count": "x"}, {"count": 1}], "d": [], "e": "bad"}
        )
        self.assertEqual(counts, {"c": 2})

    def test_remaining_stock(self) -> None:
        self.assertIsNone(resolve_remaining_stock("c", None))
        self.assertEqual(resolve_remaining_stock("c", 5, {"c": 2}), 3)
        self.assertEqual(resolve_remaining_stock("c", 1, {"c": 4}), 0)


if __name__ == "__main__":
    unittest.main()
