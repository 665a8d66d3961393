"""Build draw pools from persisted catalog and rarity snapshots."""

from __future__ import annotations

import logging
import math
from typing import Dict, Mapping, Optional, Tuple

from .models import GachaItemDefinition, GachaPoolDefinition, RarityTable
from .utils import to_finite_number

logger = logging.getLogger("gachabox.pools")

MAX_RATE_FRACTION_DIGITS = 12

InventoryCounts = Optional[Mapping[str, object]]


def format_percent(percent: Optional[float]) -> str:
    """Render a percentage without scientific notation or trailing zeros."""
    value = to_finite_number(percent)
    if value is None:
        return ""
    if value == 0:
        return "0"
    formatted = f"{value:.{MAX_RATE_FRACTION_DIGITS}f}"
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    if formatted == "-0":
        return "0"
    return formatted


def format_rate(rate: Optional[float]) -> str:
    """Render a 0..1 probability as a percentage string."""
    value = to_finite_number(rate)
    if value is None:
        return ""
    return format_percent(value * 100)


def _clamp_fraction_digits(value: Optional[float]) -> Optional[int]:
    number = to_finite_number(value)
    if number is None:
        return None
    return max(0, min(MAX_RATE_FRACTION_DIGITS, int(number)))


def format_item_rate_with_precision(rate: Optional[float], fraction_digits: Optional[int] = None) -> str:
    """Pad the rendered rate to ``fraction_digits`` decimals; never rounds digits away."""
    formatted = format_rate(rate)
    digits = _clamp_fraction_digits(fraction_digits)
    if digits is None or not formatted:
        return formatted

    whole, dot, fraction = formatted.partition(".")
    if not dot:
        return formatted if digits <= 0 else f"{formatted}.{'0' * digits}"
    if len(fraction) >= digits:
        return formatted
    return f"{formatted}{'0' * (digits - len(fraction))}"


def infer_rarity_fraction_digits(rows: Mapping[str, Mapping[str, object]]) -> Dict[str, int]:
    """Number of decimals each rarity's percentage was entered with."""
    result: Dict[str, int] = {}
    for rarity_id, row in (rows or {}).items():
        if not isinstance(row, Mapping):
            continue
        formatted = format_percent(row.get("emitRate"))
        if not formatted:
            continue
        _, dot, fraction = formatted.partition(".")
        result[rarity_id] = len(fraction) if dot else 0
    return result


def _non_negative_int(value: object) -> Optional[int]:
    number = to_finite_number(value)
    if number is None:
        return None
    return max(0, int(math.floor(number)))


def build_item_inventory_count_map(by_item_id: Optional[Mapping[str, object]]) -> Dict[str, int]:
    """Total copies already handed out per item, from the inventories index."""
    counts: Dict[str, int] = {}
    for item_id, entries in (by_item_id or {}).items():
        if not item_id or not isinstance(entries, (list, tuple)):
            continue
        total = 0
        for entry in entries:
            raw = entry.get("count") if isinstance(entry, Mapping) else None
            count = _non_negative_int(raw)
            if count:
                total += count
        if total > 0:
            counts[item_id] = total
    return counts


def resolve_remaining_stock(
    item_id: str,
    stock_count: object,
    inventory_counts: InventoryCounts = None,
) -> Optional[int]:
    stock = None if stock_count is None else _non_negative_int(stock_count)
    if stock is None:
        return None
    used = _non_negative_int((inventory_counts or {}).get(item_id)) or 0
    return max(0, stock - used)


def _draw_weight(raw: object) -> float:
    number = to_finite_number(raw)
    if number is None:
        return 1.0
    return max(0.0, number)


def build_gacha_pools(
    catalogs: Mapping[str, Mapping[str, object]],
    rarities: RarityTable,
    *,
    inventory_counts: InventoryCounts = None,
    include_out_of_stock_items: bool = True,
) -> Tuple[Dict[str, GachaPoolDefinition], Dict[str, GachaItemDefinition]]:
    pools: Dict[str, GachaPoolDefinition] = {}
    items_by_id: Dict[str, GachaItemDefinition] = {}

    for gacha_id, catalog in (catalogs or {}).items():
        if not isinstance(catalog, Mapping):
            continue
        order = catalog.get("order") or []
        snapshots = catalog.get("items") or {}
        rarity_rows = (rarities or {}).get(gacha_id) or {}
        fraction_digits = infer_rarity_fraction_digits(rarity_rows)

        entries = [snapshots.get(item_id) for item_id in order]
        entries = [entry for entry in entries if isinstance(entry, Mapping) and entry.get("rarityId")]

        weight_totals: Dict[str, float] = {}
        for entry in entries:
            rarity_id = str(entry["rarityId"])
            weight_totals[rarity_id] = weight_totals.get(rarity_id, 0.0) + _draw_weight(entry.get("drawWeight"))

        items = []
        for entry in entries:
            item_id = str(entry.get("itemId") or "")
            if not item_id:
                continue
            rarity_id = str(entry["rarityId"])
            rarity = rarity_rows.get(rarity_id) or {}
            emit_rate = to_finite_number(rarity.get("emitRate"))
            weight = _draw_weight(entry.get("drawWeight"))
            item_rate: Optional[float] = None
            if emit_rate is not None and weight_totals[rarity_id] > 0:
                item_rate = (emit_rate / 100) * weight / weight_totals[rarity_id]
            remaining = resolve_remaining_stock(item_id, entry.get("stockCount"), inventory_counts)
            if remaining == 0 and not include_out_of_stock_items:
                logger.debug("Skipping %s in %s: out of stock.", item_id, gacha_id)
                continue
            display = format_item_rate_with_precision(item_rate, fraction_digits.get(rarity_id))
            item = GachaItemDefinition(
                item_id=item_id,
                name=str(entry.get("name") or item_id),
                rarity_id=rarity_id,
                rarity_label=str(rarity.get("label") or rarity_id),
                rarity_color=rarity.get("color") or None,
                rarity_emit_rate=emit_rate,
                item_rate=item_rate,
                item_rate_display=f"{display}%" if display else "",
                pickup_target=bool(entry.get("pickupTarget", False)),
                draw_weight=weight,
                stock_count=_non_negative_int(entry.get("stockCount")),
                remaining_stock=remaining,
            )
            items.append(item)
            items_by_id[item_id] = item

        if not items:
            continue
        pools[gacha_id] = GachaPoolDefinition.from_items(gacha_id, items)

    return pools, items_by_id


__all__ = [
    "MAX_RATE_FRACTION_DIGITS",
    "build_gacha_pools",
    "build_item_inventory_count_map",
    "format_item_rate_with_precision",
    "format_percent",
    "format_rate",
    "infer_rarity_fraction_digits",
    "resolve_remaining_stock",
]
