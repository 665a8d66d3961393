"""Profit math for riagu (physical prize) items.

All helpers are pure and return ``None`` (or an ``unavailable`` evaluation)
whenever an input is missing, non-finite or out of range.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .models import BreakEvenResult, RiaguProfitEvaluation
from .utils import js_round, to_finite_number

STATUS_PROFIT = "profit"
STATUS_LOSS = "loss"
STATUS_EVEN = "even"
STATUS_UNAVAILABLE = "unavailable"

MARGIN_PERCENT_SCALE = 1000
MARGIN_PERCENT_DIVISOR = 10


def _status_for(percent: float) -> str:
    if percent > 0:
        return STATUS_PROFIT
    if percent < 0:
        return STATUS_LOSS
    return STATUS_EVEN


def calculate_revenue_per_draw(per_pull_price: Optional[float], share_rate: Optional[float]) -> Optional[float]:
    price = to_finite_number(per_pull_price)
    share = to_finite_number(share_rate)
    if price is None or price <= 0 or share is None or share <= 0:
        return None
    value = price * share
    return value if to_finite_number(value) is not None and value > 0 else None


def calculate_expected_cost_per_draw(
    *,
    item_rate: Optional[float],
    unit_cost: Optional[float],
    is_out_of_stock: bool = False,
) -> Optional[float]:
    if is_out_of_stock:
        return None
    rate = to_finite_number(item_rate)
    cost = to_finite_number(unit_cost)
    if rate is None or cost is None:
        return None
    return to_finite_number(rate * cost)


def calculate_profit_amount(revenue_amount: Optional[float], cost_amount: Optional[float]) -> Optional[float]:
    revenue = to_finite_number(revenue_amount)
    cost = to_finite_number(cost_amount)
    if revenue is None or cost is None:
        return None
    return to_finite_number(revenue - cost)


def evaluate_profit_margin(
    *,
    revenue_amount: Optional[float],
    cost_amount: Optional[float],
    is_out_of_stock: bool = False,
) -> RiaguProfitEvaluation:
    if is_out_of_stock:
        return RiaguProfitEvaluation(status=STATUS_UNAVAILABLE, percent=None, is_out_of_stock=True)

    revenue = to_finite_number(revenue_amount)
    cost = to_finite_number(cost_amount)
    if revenue is None or cost is None or revenue == 0:
        return RiaguProfitEvaluation(status=STATUS_UNAVAILABLE, percent=None, is_out_of_stock=False)

    ratio = (revenue - cost) / revenue
    if to_finite_number(ratio) is None:
        return RiaguProfitEvaluation(status=STATUS_UNAVAILABLE, percent=None, is_out_of_stock=False)

    # One decimal place; "+ 0.0" folds -0.0 into 0.0.
    percent = js_round(ratio * MARGIN_PERCENT_SCALE) / MARGIN_PERCENT_DIVISOR + 0.0
    return RiaguProfitEvaluation(status=_status_for(percent), percent=percent, is_out_of_stock=False)


def calculate_inverse_rate_weighted_break_even(
    *,
    revenue_per_draw: Optional[float],
    selected_item_rate: Optional[float],
    all_riagu_item_rates: Iterable[Optional[float]],
    weight_exponent: float = 1,
) -> BreakEvenResult:
    """Largest unit cost the selected riagu can carry.

    Revenue per draw is split between every riagu item in proportion to
    ``1 / rate ** weight_exponent``, so rarer prizes get a larger budget.
    """
    unavailable = BreakEvenResult(break_even_unit_cost=None, weight_share=None)
    revenue = to_finite_number(revenue_per_draw)
    selected = to_finite_number(selected_item_rate)
    exponent = to_finite_number(weight_exponent)
    if exponent is None:
        exponent = 1.0
    if revenue is None or revenue <= 0 or selected is None or selected <= 0:
        return unavailable

    rates = [rate for rate in (to_finite_number(value) for value in all_riagu_item_rates) if rate is not None and rate > 0]
    if not rates:
        return unavailable

    total_weight = sum(1 / rate ** exponent for rate in rates)
    if to_finite_number(total_weight) is None or total_weight <= 0:
        return unavailable

    weight_share = (1 / selected ** exponent) / total_weight
    break_even = (revenue * weight_share) / selected
    if to_finite_number(break_even) is None:
        return unavailable
    return BreakEvenResult(break_even_unit_cost=break_even, weight_share=weight_share)


__all__ = [
    "STATUS_EVEN",
    "STATUS_LOSS",
    "STATUS_PROFIT",
    "STATUS_UNAVAILABLE",
    "calculate_expected_cost_per_draw",
    "calculate_inverse_rate_weighted_break_even",
    "calculate_profit_amount",
    "calculate_revenue_per_draw",
    "evaluate_profit_margin",
]
