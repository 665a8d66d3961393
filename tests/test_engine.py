import random
import unittest
from typing import Optional, Sequence

from gachabox.engine import WARNING_STOCK_SHORTAGE, execute_gacha
from gachabox.models import GachaItemDefinition, GachaPoolDefinition
from gachabox.point_calculator import ERROR_NO_PURCHASE_OPTION
from gachabox.pools import build_gacha_pools


def _item(
    item_id: str,
    rarity_id: str,
    emit_rate: float,
    *,
    weight: float = 1.0,
    remaining_stock: Optional[int] = None,
) -> GachaItemDefinition:
    return GachaItemDefinition(
        item_id=item_id,
        name=item_id.title(),
        rarity_id=rarity_id,
        rarity_label=rarity_id.upper(),
        rarity_emit_rate=emit_rate,
        draw_weight=weight,
        stock_count=remaining_stock,
        remaining_stock=remaining_stock,
    )


def _sequence(values: Sequence[float]):
    iterator = iter(values)
    return lambda: next(iterator)


class ExecuteGachaTests(unittest.TestCase):
    def setUp(self) -> None:
        self.pool = GachaPoolDefinition.from_items(
            "demo",
            [
                _item("common", "common", 80),
                _item("rare", "rare", 20),
            ],
        )

    def test_complete_sweep_emits_each_item_per_execution(self) -> None:
        pool = GachaPoolDefinition.from_items(
            "demo",
            [_item("a", "n", 70), _item("b", "n", 70), _item("c", "sr", 30)],
        )
        result = execute_gacha("demo", pool, {"complete": {"price": 100}}, 300, rng=lambda: 0.5)
        self.assertEqual(result.complete_executions, 3)
        self.assertEqual(result.plan.random_pulls, 0)
        self.assertEqual({entry.item_id: entry.count for entry in result.items}, {"a": 3, "b": 3, "c": 3})
        self.assertEqual(result.points_spent, 300)

    def test_frontload_sweeps_once_and_rolls_the_rest(self) -> None:
        pool = GachaPoolDefinition.from_items(
            "demo",
            [_item("a", "n", 60), _item("b", "n", 60), _item("c", "r", 30), _item("d", "sr", 10)],
        )
        result = execute_gacha(
            "demo",
            pool,
            {"complete": {"price": 80, "mode": "frontload"}},
            240,
            rng=random.Random(7).random,
        )
        self.assertEqual(result.total_pulls, 12)
        self.assertEqual(sum(entry.count for entry in result.items), 12)
        for item_id in ("a", "b", "c", "d"):
            self.assertGreaterEqual(result.count_for(item_id), 1)

    def test_rarity_guarantee_is_injected_before_random_pulls(self) -> None:
        settings = {
            "perPull": {"price": 10, "pulls": 1},
            "guarantees": [{"id": "g", "rarityId": "rare", "threshold": 2, "quantity": 1}],
        }
        result = execute_gacha("demo", self.pool, settings, 30, rng=_sequence([0.1, 0.2, 0.95]))
        rare = next(entry for entry in result.items if entry.rarity_id == "rare")
        self.assertEqual(rare.count, 2)
        self.assertEqual(rare.guaranteed_count, 1)
        self.assertEqual(result.count_for("common"), 1)

    def test_guarantee_below_threshold_is_ignored(self) -> None:
        settings = {
            "perPull": {"price": 10},
            "guarantees": [{"rarityId": "rare", "threshold": 10}],
        }
        result = execute_gacha("demo", self.pool, settings, 30, rng=lambda: 0.0)
        self.assertEqual(result.count_for("common"), 3)
        self.assertTrue(all(entry.guaranteed_count == 0 for entry in result.items))

    def test_item_guarantee_targets_the_named_item(self) -> None:
        pool = GachaPoolDefinition.from_items(
            "demo",
            [_item("common", "common", 80), _item("rare-a", "rare", 20), _item("rare-b", "rare", 20)],
        )
        settings = {
            "perPull": {"price": 10},
            "guarantees": [
                {
                    "id": "pick",
                    "rarityId": "rare",
                    "threshold": 1,
                    "quantity": 2,
                    "target": {"type": "item", "itemId": "rare-b"},
                }
            ],
        }
        result = execute_gacha("demo", pool, settings, 30, rng=lambda: 0.0)
        entry = next(entry for entry in result.items if entry.item_id == "rare-b")
        self.assertEqual(entry.guaranteed_count, 2)
        self.assertEqual(result.count_for("common"), 1)

    def test_missing_guarantee_rarity_warns_without_error(self) -> None:
        settings = {
            "perPull": {"price": 10},
            "guarantees": [{"id": "legend", "rarityId": "legend", "threshold": 1}],
        }
        result = execute_gacha("demo", self.pool, settings, 30, rng=lambda: 0.0)
        self.assertEqual(result.errors, [])
        self.assertIn("保証設定「legend」に対応するアイテムが存在しません。", result.warnings)
        self.assertEqual(sum(entry.count for entry in result.items), 3)

    def test_legacy_complete_key_is_accepted(self) -> None:
        legacy = execute_gacha("demo", self.pool, {"complate": {"price": 120}}, 240, rng=lambda: 0.0)
        current = execute_gacha("demo", self.pool, {"complete": {"price": 120}}, 240, rng=lambda: 0.0)
        self.assertEqual(legacy.items, current.items)
        self.assertEqual(legacy.complete_executions, 2)

    def test_empty_pool_consumes_points_without_items(self) -> None:
        pool = GachaPoolDefinition(gacha_id="empty")
        result = execute_gacha("empty", pool, {"perPull": {"price": 10}}, 30, rng=lambda: 0.0)
        self.assertEqual(result.total_pulls, 3)
        self.assertEqual(result.items, [])
        self.assertEqual(result.errors, [])
        self.assertNotIn(WARNING_STOCK_SHORTAGE, result.warnings)

    def test_plan_errors_skip_execution(self) -> None:
        result = execute_gacha("demo", self.pool, None, 100, rng=lambda: 0.0)
        self.assertEqual(result.errors, [ERROR_NO_PURCHASE_OPTION])
        self.assertEqual(result.items, [])

    def test_weights_follow_emit_rates(self) -> None:
        result = execute_gacha("demo", self.pool, {"perPull": {"price": 1}}, 2, rng=_sequence([0.79, 0.81]))
        self.assertEqual(result.count_for("common"), 1)
        self.assertEqual(result.count_for("rare"), 1)

    def test_zero_percent_rarity_is_never_drawn(self) -> None:
        catalogs = {
            "demo": {
                "order": ["plain", "ultra"],
                "items": {
                    "plain": {"itemId": "plain", "name": "Plain", "rarityId": "N"},
                    "ultra": {"itemId": "ultra", "name": "Ultra", "rarityId": "UR"},
                },
            }
        }
        rarities = {"demo": {"N": {"rarityNum": 1, "emitRate": 100}, "UR": {"rarityNum": 2, "emitRate": 0}}}
        pools, _ = build_gacha_pools(catalogs, rarities)
        result = execute_gacha("demo", pools["demo"], {"perPull": {"price": 1}}, 2000, rng=random.Random(1).random)
        self.assertEqual(result.count_for("ultra"), 0)
        self.assertEqual(result.count_for("plain"), 2000)

    def test_unrated_pool_falls_back_to_uniform(self) -> None:
        pool = GachaPoolDefinition.from_items(
            "demo",
            [
                GachaItemDefinition(item_id="a", name="A", rarity_id="n", rarity_label="N"),
                GachaItemDefinition(item_id="b", name="B", rarity_id="r", rarity_label="R"),
            ],
        )
        result = execute_gacha("demo", pool, {"perPull": {"price": 1}}, 2, rng=_sequence([0.25, 0.75]))
        self.assertEqual(result.count_for("a"), 1)
        self.assertEqual(result.count_for("b"), 1)

    def test_exhausted_rated_items_do_not_spill_into_zero_rarity(self) -> None:
        pool = GachaPoolDefinition.from_items(
            "demo",
            [_item("limited", "n", 100, remaining_stock=1), _item("zero", "ur", 0)],
        )
        result = execute_gacha("demo", pool, {"perPull": {"price": 1}}, 3, rng=lambda: 0.5)
        self.assertEqual(result.count_for("limited"), 1)
        self.assertEqual(result.count_for("zero"), 0)
        self.assertIn(WARNING_STOCK_SHORTAGE, result.warnings)

    def test_stocked_items_are_not_overdrawn(self) -> None:
        pool = GachaPoolDefinition.from_items(
            "demo",
            [_item("limited", "n", 50, remaining_stock=1), _item("open", "n", 50)],
        )
        result = execute_gacha("demo", pool, {"perPull": {"price": 10}}, 50, rng=lambda: 0.0)
        self.assertEqual(result.count_for("limited"), 1)
        self.assertEqual(result.count_for("open"), 4)
        self.assertNotIn(WARNING_STOCK_SHORTAGE, result.warnings)

    def test_stock_shortage_is_reported(self) -> None:
        pool = GachaPoolDefinition.from_items(
            "demo",
            [_item("a", "n", 50, remaining_stock=1), _item("b", "n", 50, remaining_stock=1)],
        )
        result = execute_gacha("demo", pool, {"perPull": {"price": 10}}, 50, rng=lambda: 0.0)
        self.assertEqual(sum(entry.count for entry in result.items), 2)
        self.assertIn(WARNING_STOCK_SHORTAGE, result.warnings)

    def test_items_are_sorted_by_count(self) -> None:
        result = execute_gacha("demo", self.pool, {"perPull": {"price": 10}}, 30, rng=_sequence([0.9, 0.1, 0.95]))
        self.assertEqual([entry.item_id for entry in result.items], ["rare", "common"])


if __name__ == "__main__":
    unittest.main()
