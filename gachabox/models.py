"""Dataclasses and shared type definitions for gachabox."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence


PtSettingV3 = Mapping[str, object]
RarityTable = Mapping[str, Mapping[str, object]]


@dataclass(frozen=True)
class RarityRow:
    id: str
    emit_rate: Optional[float] = None
    sort_order: Optional[float] = None
    label: Optional[str] = None
    color: Optional[str] = None


@dataclass(frozen=True)
class GachaItemDefinition:
    item_id: str
    name: str
    rarity_id: str
    rarity_label: str
    rarity_color: Optional[str] = None
    rarity_emit_rate: Optional[float] = None
    item_rate: Optional[float] = None
    item_rate_display: str = ""
    pickup_target: bool = False
    draw_weight: float = 1.0
    stock_count: Optional[int] = None
    remaining_stock: Optional[int] = None


@dataclass
class RarityGroup:
    rarity_id: str
    label: str
    color: Optional[str] = None
    emit_rate: Optional[float] = None
    item_count: int = 0
    total_weight: float = 0.0
    items: List[GachaItemDefinition] = field(default_factory=list)

    def add(self, item: GachaItemDefinition) -> None:
        self.items.append(item)
        self.item_count += 1
        if item.draw_weight and item.draw_weight > 0:
            self.total_weight += float(item.draw_weight)


@dataclass
class GachaPoolDefinition:
    gacha_id: str
    items: List[GachaItemDefinition] = field(default_factory=list)
    rarity_groups: Dict[str, RarityGroup] = field(default_factory=dict)

    @classmethod
    def from_items(
        cls,
        gacha_id: str,
        items: Sequence[GachaItemDefinition],
        *,
        emit_rates: Optional[Mapping[str, float]] = None,
    ) -> "GachaPoolDefinition":
        """Group ``items`` by rarity; ``emit_rates`` overrides the per-item rarity rate."""
        groups: Dict[str, RarityGroup] = {}
        for item in items:
            group = groups.get(item.rarity_id)
            if group is None:
                emit_rate = item.rarity_emit_rate
                if emit_rates is not None and item.rarity_id in emit_rates:
                    emit_rate = emit_rates[item.rarity_id]
                group = RarityGroup(
                    rarity_id=item.rarity_id,
                    label=item.rarity_label,
                    color=item.rarity_color,
                    emit_rate=emit_rate,
                )
                groups[item.rarity_id] = group
            group.add(item)
        return cls(gacha_id=gacha_id, items=list(items), rarity_groups=groups)


# Normalized purchase settings ----------------------------------------------


@dataclass(frozen=True)
class PerPullSetting:
    price: float
    pulls: int
    unit_price: float


@dataclass(frozen=True)
class CompleteSetting:
    price: float
    mode: str = "default"


@dataclass(frozen=True)
class BundleSetting:
    id: str
    price: float
    pulls: int
    efficiency: float


@dataclass(frozen=True)
class GuaranteeSetting:
    id: str
    rarity_id: str
    threshold: int
    quantity: int = 1
    target_type: str = "rarity"
    item_id: Optional[str] = None


@dataclass
class NormalizedPtSetting:
    per_pull: Optional[PerPullSetting] = None
    complete: Optional[CompleteSetting] = None
    bundles: List[BundleSetting] = field(default_factory=list)
    guarantees: List[GuaranteeSetting] = field(default_factory=list)

    def has_purchase_option(self) -> bool:
        return bool(self.per_pull or self.complete or self.bundles)


# Plans and results -----------------------------------------------------------


@dataclass(frozen=True)
class BundleApplication:
    bundle_id: str
    bundle_price: float
    bundle_pulls: int
    times: int
    total_price: float
    total_pulls: int


@dataclass(frozen=True)
class PerPullPurchase:
    price: float
    pulls: int
    times: int
    total_price: float
    total_pulls: int


@dataclass
class DrawPlan:
    normalized_settings: NormalizedPtSetting
    bundle_applications: List[BundleApplication] = field(default_factory=list)
    per_pull_purchases: Optional[PerPullPurchase] = None
    complete_executions: int = 0
    complete_pulls: int = 0
    random_pulls: int = 0
    total_pulls: int = 0
    points_used: float = 0
    points_remainder: float = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def bundle_pulls(self) -> int:
        return sum(application.total_pulls for application in self.bundle_applications)


@dataclass
class ExecutedPullItem:
    item_id: str
    rarity_id: str
    name: str
    rarity_label: str
    rarity_color: Optional[str] = None
    count: int = 0
    guaranteed_count: int = 0


@dataclass
class GachaExecutionResult:
    plan: DrawPlan
    items: List[ExecutedPullItem] = field(default_factory=list)
    total_pulls: int = 0
    points_spent: float = 0
    points_remainder: float = 0
    complete_executions: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def count_for(self, item_id: str) -> int:
        for entry in self.items:
            if entry.item_id == item_id:
                return entry.count
        return 0


# Riagu economics ---------------------------------------------------------------


@dataclass(frozen=True)
class RiaguProfitEvaluation:
    status: str
    percent: Optional[float]
    is_out_of_stock: bool


@dataclass(frozen=True)
class BreakEvenResult:
    break_even_unit_cost: Optional[float]
    weight_share: Optional[float]


__all__ = [
    "BreakEvenResult",
    "BundleApplication",
    "BundleSetting",
    "CompleteSetting",
    "DrawPlan",
    "ExecutedPullItem",
    "GachaExecutionResult",
    "GachaItemDefinition",
    "GachaPoolDefinition",
    "GuaranteeSetting",
    "NormalizedPtSetting",
    "PerPullPurchase",
    "PerPullSetting",
    "PtSettingV3",
    "RarityGroup",
    "RarityRow",
    "RarityTable",
    "RiaguProfitEvaluation",
]
