"""Rarity emit-rate normalization.

Every gacha owns a rarity table whose emit rates (percentages) must stay in
``[0, 100]``, never increase from a weaker rarity to a stronger one, and add
up to exactly 100. The helpers in this module repair a table after edits and
auto-fill rarities whose rate has not been set yet.

Strength comes from ``rarityNum`` (or ``sortOrder``); a larger number is a
stronger, rarer tier. Entries are walked weak -> strong, i.e. ascending
strength, while the rates along that walk must be non-increasing.
"""

from __future__ import annotations

import copy
import logging
import math
import sys
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .models import RarityRow, RarityTable

logger = logging.getLogger("gachabox.emit_rates")

PRECISION_DECIMALS = 10
EPSILON = sys.float_info.epsilon


@dataclass
class RateEntry:
    name: str
    rn: float
    rate: Optional[float]
    label: Optional[str] = None

    @property
    def value(self) -> float:
        return self.rate if self.rate is not None else 0.0


def round_rate(value: float, digits: int = PRECISION_DECIMALS) -> float:
    scale = 10 ** digits
    scaled = (float(value) + EPSILON) * scale
    rounded = math.copysign(math.floor(abs(scaled) + 0.5), scaled) / scale
    return rounded + 0.0


def _is_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def clamp_rate(value: object, low: float = 0.0, high: float = 100.0) -> Optional[float]:
    if not _is_number(value):
        return None
    return round_rate(min(high, max(low, float(value))))


def _strength_of(row: Mapping[str, object]) -> float:
    for key in ("rarityNum", "sortOrder"):
        candidate = row.get(key)
        if _is_number(candidate) and math.isfinite(candidate):
            return float(candidate)
    return 0.0


def to_sorted_entries(rows: Mapping[str, Mapping[str, object]]) -> List[RateEntry]:
    entries: List[RateEntry] = []
    for name, row in rows.items():
        row = row if isinstance(row, Mapping) else {}
        label = row.get("label")
        entries.append(
            RateEntry(
                name=str(name),
                rn=_strength_of(row),
                rate=clamp_rate(row.get("emitRate")),
                label=str(label) if label else None,
            )
        )
    entries.sort(key=lambda entry: (entry.rn, (entry.label or entry.name).casefold(), entry.name))
    return entries


def enforce_monotone_weak_to_strong(entries: List[RateEntry]) -> None:
    for index in range(len(entries) - 2, -1, -1):
        stronger = entries[index + 1].value
        if entries[index].value < stronger:
            entries[index].rate = stronger


def adjust_sum_to_100_keep_monotone(entries: List[RateEntry]) -> None:
    enforce_monotone_weak_to_strong(entries)

    total = round_rate(sum(entry.value for entry in entries))
    residual = round_rate(100 - total)
    if residual == 0:
        return

    if residual > 0:
        # Raise from the weak end; nobody may pass its weaker neighbour.
        for index, entry in enumerate(entries):
            if residual <= 0:
                break
            cap = 100.0 if index == 0 else min(100.0, entries[index - 1].value)
            room = round_rate(cap - entry.value)
            add = min(residual, max(0.0, room))
            entry.rate = round_rate(entry.value + add)
            residual = round_rate(residual - add)
    else:
        # Lower from the weak end; nobody may drop below its stronger neighbour.
        # Each pass frees at least the strongest non-zero tier, so len(entries) passes suffice.
        residual = -residual
        last = len(entries) - 1
        for _ in range(len(entries)):
            if residual <= 0:
                break
            for index, entry in enumerate(entries):
                if residual <= 0:
                    break
                floor = 0.0 if index == last else entries[index + 1].value
                room = round_rate(entry.value - floor)
                sub = min(residual, max(0.0, room))
                entry.rate = round_rate(entry.value - sub)
                residual = round_rate(residual - sub)

    enforce_monotone_weak_to_strong(entries)


def auto_fill_by_strength(entries: List[RateEntry]) -> None:
    known = [index for index, entry in enumerate(entries) if entry.rate is not None]

    if not known:
        count = len(entries)
        total_weight = count * (count + 1) / 2
        for index, entry in enumerate(entries):
            entry.rate = round_rate(100 * (count - index) / total_weight)
    else:
        enforce_monotone_weak_to_strong(entries)

        first, last = known[0], known[-1]
        for index in range(first):
            entries[index].rate = entries[first].rate
        for left_index, right_index in zip(known, known[1:]):
            left = entries[left_index].value
            right = entries[right_index].value
            span = right_index - left_index
            for index in range(left_index + 1, right_index):
                t = (index - left_index) / span
                entries[index].rate = round_rate(left - (left - right) * t)
        for index in range(last + 1, len(entries)):
            entries[index].rate = entries[last].rate

    adjust_sum_to_100_keep_monotone(entries)


def _copy_table(table: RarityTable) -> Dict[str, Dict[str, Dict[str, object]]]:
    copied: Dict[str, Dict[str, Dict[str, object]]] = {}
    for gacha_id, rows in (table or {}).items():
        if not isinstance(rows, Mapping):
            continue
        copied[gacha_id] = {
            str(name): dict(copy.deepcopy(row)) if isinstance(row, Mapping) else {}
            for name, row in rows.items()
        }
    return copied


def _write_back(
    rows: Dict[str, Dict[str, object]],
    entries: Sequence[RateEntry],
    digits: int,
) -> bool:
    changed = False
    for entry in entries:
        row = rows.setdefault(entry.name, {"rarityNum": 0, "emitRate": None})
        next_rate = round_rate(entry.value, digits)
        if row.get("emitRate") != next_rate:
            row["emitRate"] = next_rate
            changed = True
    return changed


def ensure_auto_emit_rates_for_gacha(
    table: RarityTable,
    gacha_id: str,
) -> Tuple[Dict[str, Dict[str, Dict[str, object]]], bool]:
    """Auto-fill unset rates for ``gacha_id``; returns ``(new_table, changed)``."""
    result = _copy_table(table)
    rows = result.get(gacha_id)
    if not rows:
        return result, False

    entries = to_sorted_entries(rows)
    if not any(entry.rate is None for entry in entries):
        return result, False

    auto_fill_by_strength(entries)
    _write_back(rows, entries, PRECISION_DECIMALS)
    logger.debug("Auto-filled emit rates for gacha %s (%d rarities).", gacha_id, len(entries))
    return result, True


def normalize_emit_rates_for_gacha(
    table: RarityTable,
    gacha_id: str,
    *,
    digits: int = PRECISION_DECIMALS,
) -> Tuple[Dict[str, Dict[str, Dict[str, object]]], bool]:
    """Repair monotonicity and the 100% sum after an edit; returns ``(new_table, changed)``."""
    result = _copy_table(table)
    rows = result.get(gacha_id)
    if not rows:
        return result, False

    entries = to_sorted_entries(rows)
    if any(entry.rate is None for entry in entries):
        auto_fill_by_strength(entries)
    else:
        enforce_monotone_weak_to_strong(entries)
        adjust_sum_to_100_keep_monotone(entries)

    changed = _write_back(rows, entries, digits)
    if changed:
        logger.debug("Normalized emit rates for gacha %s.", gacha_id)
    return result, changed


def normalize_rarity_rows(rows: Sequence[RarityRow]) -> Tuple[List[RarityRow], bool]:
    """Normalize a list of ``RarityRow``; the returned list keeps the input order."""
    mapping = {
        row.id: {"sortOrder": row.sort_order, "emitRate": row.emit_rate, "label": row.label}
        for row in rows
    }
    normalized, changed = normalize_emit_rates_for_gacha({"_": mapping}, "_")
    rates = normalized.get("_", {})
    updated = [
        replace(row, emit_rate=rates[row.id]["emitRate"]) if row.id in rates else row
        for row in rows
    ]
    return updated, changed


__all__ = [
    "EPSILON",
    "PRECISION_DECIMALS",
    "RateEntry",
    "adjust_sum_to_100_keep_monotone",
    "auto_fill_by_strength",
    "clamp_rate",
    "enforce_monotone_weak_to_strong",
    "ensure_auto_emit_rates_for_gacha",
    "normalize_emit_rates_for_gacha",
    "normalize_rarity_rows",
    "round_rate",
    "to_sorted_entries",
]
