"""Point budget planning for gacha draws.

A plan decides how a point balance is spent on the purchase options of a
gacha (bundles, complete sets, single pulls) and how many pulls that buys.
Planning is pure: the same inputs always give the same :class:`DrawPlan`.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Mapping, Optional, Tuple

from .models import (
    BundleApplication,
    BundleSetting,
    CompleteSetting,
    DrawPlan,
    GuaranteeSetting,
    NormalizedPtSetting,
    PerPullPurchase,
    PerPullSetting,
    PtSettingV3,
)
from .utils import to_positive_number

logger = logging.getLogger("gachabox.point_calculator")

COMPLETE_MODES = ("default", "frontload")
# Older saves spell the default mode "repeat" and the complete key "complate".
COMPLETE_MODE_ALIASES: Dict[str, str] = {"repeat": "default"}
LEGACY_SETTING_KEYS: Dict[str, str] = {"complate": "complete"}

ERROR_NO_PURCHASE_OPTION = "購入設定が不足しているため、ポイントを消費できません。"
ERROR_INVALID_POINTS = "1pt以上を入力してください。"
ERROR_UNAFFORDABLE = "入力ポイントではガチャを実行できません。"
ERROR_COMPLETE_WITHOUT_ITEMS = "コンプリート価格に到達していますが、アイテムが存在しません。"

_FLOAT_TOLERANCE = 1e-12


def _apply_legacy_keys(settings: Mapping[str, object]) -> Dict[str, object]:
    canonical = dict(settings)
    for legacy, current in LEGACY_SETTING_KEYS.items():
        if legacy in canonical:
            value = canonical.pop(legacy)
            canonical.setdefault(current, value)
    return canonical


def _label(entry: object, fallback: str = "unknown") -> str:
    if isinstance(entry, Mapping) and entry.get("id"):
        return str(entry["id"])
    return fallback


def _normalize_guarantee(entry: object, index: int, warnings: List[str]) -> Optional[GuaranteeSetting]:
    label = _label(entry)
    incomplete = f"保証設定「{label}」が不完全のため、除外しました。"
    if not isinstance(entry, Mapping):
        warnings.append(incomplete)
        return None

    raw_rarity = entry.get("rarityId")
    rarity_id = raw_rarity.strip() if isinstance(raw_rarity, str) else ""
    threshold = to_positive_number(entry.get("threshold"))
    if not rarity_id or threshold is None:
        warnings.append(incomplete)
        return None

    quantity = to_positive_number(entry.get("quantity", 1))
    if quantity is None or math.floor(quantity) < 1:
        warnings.append(f"保証設定「{label}」の保証数が無効なため、1として扱いました。")
        quantity = 1

    target = entry.get("target")
    target_type = "rarity"
    item_id: Optional[str] = None
    if target is not None:
        if not isinstance(target, Mapping) or target.get("type") not in ("rarity", "item"):
            warnings.append(incomplete)
            return None
        if target.get("type") == "item":
            raw_item = target.get("itemId")
            item_id = raw_item.strip() if isinstance(raw_item, str) else ""
            if not item_id:
                warnings.append(incomplete)
                return None
            target_type = "item"

    return GuaranteeSetting(
        id=str(entry.get("id") or f"guarantee-{index + 1}"),
        rarity_id=rarity_id,
        threshold=int(math.floor(threshold)),
        quantity=int(math.floor(quantity)),
        target_type=target_type,
        item_id=item_id,
    )


def normalize_pt_setting(settings: Optional[PtSettingV3]) -> Tuple[NormalizedPtSetting, List[str]]:
    """Validate a persisted purchase setting; invalid parts are dropped with a warning."""
    normalized = NormalizedPtSetting()
    warnings: List[str] = []
    if not isinstance(settings, Mapping):
        return normalized, warnings

    canonical = _apply_legacy_keys(settings)

    per_pull = canonical.get("perPull")
    if isinstance(per_pull, Mapping):
        price = to_positive_number(per_pull.get("price"))
        pulls = to_positive_number(per_pull.get("pulls", 1))
        if price is None or pulls is None:
            warnings.append("単発購入の価格または回数が無効なため、設定を無視しました。")
        else:
            normalized.per_pull = PerPullSetting(price=price, pulls=int(pulls), unit_price=price / int(pulls))

    complete = canonical.get("complete")
    if isinstance(complete, Mapping):
        price = to_positive_number(complete.get("price"))
        if price is None:
            warnings.append("コンプリート価格が無効なため、設定を無視しました。")
        else:
            mode = "default"
            requested = complete.get("mode")
            if requested:
                requested = COMPLETE_MODE_ALIASES.get(str(requested), str(requested))
                if requested in COMPLETE_MODES:
                    mode = requested
                else:
                    warnings.append("コンプリート排出モードが無効なため、既定値を使用しました。")
            normalized.complete = CompleteSetting(price=price, mode=mode)

    bundles = canonical.get("bundles")
    if isinstance(bundles, (list, tuple)):
        for index, bundle in enumerate(bundles):
            source = bundle if isinstance(bundle, Mapping) else {}
            price = to_positive_number(source.get("price"))
            pulls = to_positive_number(source.get("pulls"))
            if price is None or pulls is None:
                warnings.append(f"バンドル「{_label(bundle)}」の価格または回数が無効なため、除外しました。")
                continue
            normalized.bundles.append(
                BundleSetting(
                    id=str(source.get("id") or f"bundle-{index + 1}"),
                    price=price,
                    pulls=int(pulls),
                    efficiency=int(pulls) / price,
                )
            )

    guarantees = canonical.get("guarantees")
    if isinstance(guarantees, (list, tuple)):
        for index, entry in enumerate(guarantees):
            guarantee = _normalize_guarantee(entry, index, warnings)
            if guarantee is not None:
                normalized.guarantees.append(guarantee)

    # Most pulls per point first; cheaper bundle wins a tie.
    normalized.bundles.sort(key=lambda bundle: (-bundle.efficiency, bundle.price))
    normalized.guarantees.sort(key=lambda guarantee: guarantee.threshold)
    return normalized, warnings


def _apply_bundles(
    bundles: List[BundleSetting],
    points: float,
    base_efficiency: Optional[float],
) -> Tuple[List[BundleApplication], float]:
    applications: List[BundleApplication] = []
    remaining = points
    for bundle in bundles:
        if base_efficiency is not None and bundle.efficiency + _FLOAT_TOLERANCE < base_efficiency:
            continue
        times = int(remaining // bundle.price)
        if times <= 0:
            continue
        spent = bundle.price * times
        remaining -= spent
        applications.append(
            BundleApplication(
                bundle_id=bundle.id,
                bundle_price=bundle.price,
                bundle_pulls=bundle.pulls,
                times=times,
                total_price=spent,
                total_pulls=bundle.pulls * times,
            )
        )
    return applications, remaining


def _purchase_per_pull(per_pull: Optional[PerPullSetting], points: float) -> Tuple[Optional[PerPullPurchase], float]:
    if per_pull is None or points <= 0:
        return None, points
    times = int(points // per_pull.price)
    if times <= 0:
        return None, points
    spent = per_pull.price * times
    purchase = PerPullPurchase(
        price=per_pull.price,
        pulls=per_pull.pulls,
        times=times,
        total_price=spent,
        total_pulls=per_pull.pulls * times,
    )
    return purchase, points - spent


def _sanitize_points(points: object) -> float:
    if isinstance(points, bool) or not isinstance(points, (int, float)):
        return 0.0
    if not math.isfinite(points) or points < 0:
        return 0.0
    return float(points)


def calculate_draw_plan(
    points: float,
    settings: Optional[PtSettingV3],
    total_item_types: int,
) -> DrawPlan:
    normalized, warnings = normalize_pt_setting(settings)
    errors: List[str] = []
    available = _sanitize_points(points)
    plan = DrawPlan(
        normalized_settings=normalized,
        points_remainder=available,
        errors=errors,
        warnings=warnings,
    )

    if not normalized.has_purchase_option():
        errors.append(ERROR_NO_PURCHASE_OPTION)
        return plan

    if available <= 0:
        errors.append(ERROR_INVALID_POINTS)
        return plan

    remaining = available
    base_efficiency = None
    if normalized.per_pull is not None:
        base_efficiency = 1 / normalized.per_pull.unit_price

    plan.bundle_applications, remaining = _apply_bundles(normalized.bundles, remaining, base_efficiency)
    random_pulls = plan.bundle_pulls

    complete = normalized.complete
    if complete is not None:
        executions = int(remaining // complete.price)
        if executions > 0:
            plan.complete_executions = executions
            swept = min(1, executions) if complete.mode == "frontload" else executions
            if total_item_types > 0:
                plan.complete_pulls = total_item_types * swept
                random_pulls += total_item_types * (executions - swept)
            else:
                warnings.append("アイテムが未登録のため、コンプリート購入は結果に反映されません。")
            remaining -= complete.price * executions

    plan.per_pull_purchases, remaining = _purchase_per_pull(normalized.per_pull, remaining)
    if plan.per_pull_purchases is not None:
        random_pulls += plan.per_pull_purchases.total_pulls

    plan.random_pulls = random_pulls
    plan.total_pulls = plan.complete_pulls + random_pulls
    plan.points_remainder = remaining
    plan.points_used = available - remaining

    if plan.total_pulls <= 0:
        if plan.complete_executions > 0 and total_item_types <= 0:
            errors.append(ERROR_COMPLETE_WITHOUT_ITEMS)
        else:
            errors.append(ERROR_UNAFFORDABLE)

    if remaining > 0 and normalized.per_pull is None and not plan.bundle_applications and plan.total_pulls > 0:
        warnings.append("残りポイントがありますが、利用可能な購入設定がありません。")

    logger.debug(
        "Plan for %s pts: %d complete (%d pulls), %d random pulls, %s pts left.",
        available,
        plan.complete_executions,
        plan.complete_pulls,
        plan.random_pulls,
        plan.points_remainder,
    )
    return plan


__all__ = [
    "COMPLETE_MODES",
    "ERROR_COMPLETE_WITHOUT_ITEMS",
    "ERROR_INVALID_POINTS",
    "ERROR_NO_PURCHASE_OPTION",
    "ERROR_UNAFFORDABLE",
    "calculate_draw_plan",
    "normalize_pt_setting",
]
