"""Gacha draw execution.

``execute_gacha`` turns a point balance into concrete items: it asks the point
calculator for a plan, sweeps complete sets, injects guaranteed pulls and rolls
the remaining pulls against the rarity emit rates and item draw weights.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .models import (
    DrawPlan,
    ExecutedPullItem,
    GachaExecutionResult,
    GachaItemDefinition,
    GachaPoolDefinition,
    GuaranteeSetting,
    PtSettingV3,
)
from .point_calculator import calculate_draw_plan

logger = logging.getLogger("gachabox.engine")

Rng = Callable[[], float]

WARNING_STOCK_SHORTAGE = "在庫不足のため、一部の抽選が実行できませんでした。"
_MAX_ROLL = 0.9999999999


@dataclass(frozen=True)
class _Draw:
    item_id: str
    guaranteed: bool = False


def _positive(value: Optional[float]) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    number = float(value)
    if not math.isfinite(number) or number <= 0:
        return 0.0
    return number


class _StockLedger:
    """Tracks remaining stock for items that declare one; others are unlimited."""

    def __init__(self, items: Sequence[GachaItemDefinition]) -> None:
        self._remaining: Dict[str, int] = {}
        for item in items:
            remaining = item.remaining_stock
            if remaining is None or isinstance(remaining, bool):
                continue
            if isinstance(remaining, (int, float)) and math.isfinite(remaining):
                self._remaining[item.item_id] = max(0, int(math.floor(remaining)))

    def available(self, item: GachaItemDefinition) -> bool:
        remaining = self._remaining.get(item.item_id)
        return remaining is None or remaining > 0

    def take(self, item: GachaItemDefinition) -> None:
        remaining = self._remaining.get(item.item_id)
        if remaining is not None:
            self._remaining[item.item_id] = max(0, remaining - 1)


def _emit_rate(pool: GachaPoolDefinition, item: GachaItemDefinition) -> Optional[float]:
    group = pool.rarity_groups.get(item.rarity_id)
    for candidate in (group.emit_rate if group is not None else None, item.rarity_emit_rate):
        if candidate is None or isinstance(candidate, bool):
            continue
        number = float(candidate)
        if math.isfinite(number):
            return number
    return None


def _item_weights(pool: GachaPoolDefinition, items: Sequence[GachaItemDefinition]) -> List[float]:
    """Probability weight of each item: rarity emit rate times its share of the rarity.

    A rarity rated 0% (or left unrated next to rated ones) gets weight 0. Only a
    pool with no rated rarity at all falls back to item rates, then uniform.
    """
    if all(_emit_rate(pool, item) is None for item in pool.items):
        fallback = [_positive(item.item_rate) or _positive(item.draw_weight) for item in items]
        return fallback if sum(fallback) > 0 else [1.0] * len(items)

    group_totals: Dict[str, Tuple[float, int]] = {}
    for item in items:
        total, count = group_totals.get(item.rarity_id, (0.0, 0))
        group_totals[item.rarity_id] = (total + _positive(item.draw_weight), count + 1)

    weights: List[float] = []
    for item in items:
        emit_rate = _positive(_emit_rate(pool, item))
        if emit_rate <= 0:
            weights.append(0.0)
            continue
        total, count = group_totals[item.rarity_id]
        weights.append(emit_rate * _positive(item.draw_weight) / total if total > 0 else emit_rate / count)
    return weights


def _draw_weighted(
    items: Sequence[GachaItemDefinition],
    weights: Sequence[float],
    rng: Rng,
) -> Optional[GachaItemDefinition]:
    total = sum(weights)
    if not items or total <= 0:
        return None
    pick = max(0.0, min(_MAX_ROLL, rng())) * total
    cumulative = 0.0
    for item, weight in zip(items, weights):
        cumulative += weight
        if pick < cumulative:
            return item
    # Floating point edge case.
    return items[-1]


def _within_rarity_weights(items: Sequence[GachaItemDefinition]) -> List[float]:
    weights = [_positive(item.draw_weight) for item in items]
    if sum(weights) <= 0:
        return [1.0] * len(items)
    return weights


def _complete_sweeps(
    pool: GachaPoolDefinition,
    executions: int,
    stock: _StockLedger,
    include_out_of_stock: bool,
) -> List[_Draw]:
    draws: List[_Draw] = []
    for _ in range(executions):
        for item in pool.items:
            if not include_out_of_stock and not stock.available(item):
                continue
            stock.take(item)
            draws.append(_Draw(item.item_id))
    return draws


def _guaranteed_draws(
    plan: DrawPlan,
    pool: GachaPoolDefinition,
    guarantees: Sequence[GuaranteeSetting],
    rng: Rng,
    stock: _StockLedger,
    allow_out_of_stock_item: bool,
) -> Tuple[List[_Draw], List[str], int]:
    remaining_random = max(0, plan.random_pulls)
    if not guarantees or plan.total_pulls <= 0:
        return [], [], remaining_random

    items_by_id = {item.item_id: item for item in pool.items}
    draws: List[_Draw] = []
    warnings: List[str] = []

    for guarantee in guarantees:
        if plan.total_pulls < guarantee.threshold or remaining_random <= 0:
            continue
        label = guarantee.id or guarantee.rarity_id

        group = pool.rarity_groups.get(guarantee.rarity_id)
        if group is None or not group.items:
            logger.warning("Guarantee %s targets rarity %s which has no items.", label, guarantee.rarity_id)
            warnings.append(f"保証設定「{label}」に対応するアイテムが存在しません。")
            continue

        allocation = min(guarantee.quantity, remaining_random)
        if allocation < guarantee.quantity:
            warnings.append(f"保証設定「{label}」に割り当て可能な抽選回数が不足しています。")

        target: Optional[GachaItemDefinition] = None
        if guarantee.target_type == "item" and guarantee.item_id:
            candidate = items_by_id.get(guarantee.item_id)
            if candidate is None:
                warnings.append(f"保証設定「{label}」の対象アイテムが見つかりません。")
            elif candidate.rarity_id != guarantee.rarity_id:
                warnings.append(f"保証設定「{label}」の対象アイテムは指定したレアリティと一致しません。")
            else:
                target = candidate

        allocated = 0
        for _ in range(allocation):
            selected: Optional[GachaItemDefinition] = None
            if target is not None:
                if stock.available(target):
                    selected = target
                elif allow_out_of_stock_item and isinstance(target.stock_count, int):
                    selected = target
                else:
                    warnings.append(f"保証設定「{label}」の対象アイテムは在庫切れです。")
                    target = None

            if selected is None:
                candidates = [item for item in group.items if stock.available(item)]
                if not candidates:
                    warnings.append(f"保証設定「{label}」に割り当て可能な在庫がありません。")
                    break
                selected = _draw_weighted(candidates, _within_rarity_weights(candidates), rng) or candidates[-1]

            stock.take(selected)
            draws.append(_Draw(selected.item_id, guaranteed=True))
            allocated += 1

        remaining_random -= allocated

    return draws, warnings, remaining_random


def _random_draws(pool: GachaPoolDefinition, count: int, rng: Rng, stock: _StockLedger) -> List[_Draw]:
    draws: List[_Draw] = []
    for _ in range(count):
        candidates = [item for item in pool.items if stock.available(item)]
        if not candidates:
            break
        item = _draw_weighted(candidates, _item_weights(pool, candidates), rng)
        if item is None:
            break
        stock.take(item)
        draws.append(_Draw(item.item_id))
    return draws


def _aggregate(pool: GachaPoolDefinition, draws: Sequence[_Draw]) -> List[ExecutedPullItem]:
    items_by_id = {item.item_id: item for item in pool.items}
    aggregated: Dict[str, ExecutedPullItem] = {}
    for draw in draws:
        item = items_by_id.get(draw.item_id)
        if item is None:
            continue
        entry = aggregated.get(draw.item_id)
        if entry is None:
            entry = ExecutedPullItem(
                item_id=item.item_id,
                rarity_id=item.rarity_id,
                name=item.name,
                rarity_label=item.rarity_label,
                rarity_color=item.rarity_color,
            )
            aggregated[draw.item_id] = entry
        entry.count += 1
        if draw.guaranteed:
            entry.guaranteed_count += 1
    return sorted(aggregated.values(), key=lambda entry: (-entry.count, entry.name.casefold(), entry.name))


def execute_gacha(
    gacha_id: str,
    pool: GachaPoolDefinition,
    settings: Optional[PtSettingV3],
    points: float,
    rng: Optional[Rng] = None,
    *,
    include_out_of_stock_in_complete: bool = False,
    allow_out_of_stock_guarantee_item: bool = False,
) -> GachaExecutionResult:
    rng = rng or random.random
    plan = calculate_draw_plan(points, settings, len(pool.items))
    result = GachaExecutionResult(
        plan=plan,
        total_pulls=plan.total_pulls,
        points_spent=plan.points_used,
        points_remainder=plan.points_remainder,
        complete_executions=plan.complete_executions,
        errors=list(plan.errors),
        warnings=list(plan.warnings),
    )
    if plan.errors or plan.total_pulls <= 0:
        return result

    stock = _StockLedger(pool.items)
    draws: List[_Draw] = []
    if plan.complete_pulls > 0:
        executions = 1 if plan.normalized_settings.complete.mode == "frontload" else plan.complete_executions
        draws.extend(_complete_sweeps(pool, executions, stock, include_out_of_stock_in_complete))

    guaranteed, guarantee_warnings, remaining_random = _guaranteed_draws(
        plan,
        pool,
        plan.normalized_settings.guarantees,
        rng,
        stock,
        allow_out_of_stock_guarantee_item,
    )
    draws.extend(guaranteed)
    result.warnings.extend(guarantee_warnings)

    draws.extend(_random_draws(pool, remaining_random, rng, stock))

    if pool.items and len(draws) < plan.total_pulls:
        result.warnings.append(WARNING_STOCK_SHORTAGE)

    result.items = _aggregate(pool, draws)
    logger.debug(
        "Gacha %s: %d pulls (%d guaranteed) into %d distinct items.",
        gacha_id,
        len(draws),
        len(guaranteed),
        len(result.items),
    )
    return result


__all__ = ["Rng", "WARNING_STOCK_SHORTAGE", "execute_gacha"]
