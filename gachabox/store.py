"""Persisted gacha documents: rarity tables, catalogs, purchase settings and riagu cards.

The computation modules never read storage themselves; callers take snapshots
from a :class:`GachaStore` and hand them in as plain data.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import yaml

from .emit_rates import normalize_emit_rates_for_gacha
from .models import ExecutedPullItem
from .pools import build_item_inventory_count_map
from .utils import path_from_env

logger = logging.getLogger("gachabox.store")

DEFAULT_STORE_PATH = Path("gachabox_store.json")
SECTIONS = ("rarities", "catalogs", "ptSettings", "riagu", "userInventories")


class StoreError(Exception):
    """Raised when a store document cannot be read or has the wrong shape."""


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in {".yaml", ".yml"}


class GachaStore:
    """A JSON or YAML document holding every gacha's persisted state."""

    def __init__(self, path: Path, payload: Optional[Mapping[str, object]] = None) -> None:
        self.path = path
        self._data: Dict[str, Dict[str, object]] = {section: {} for section in SECTIONS}
        if payload:
            self._merge(payload)

    @classmethod
    def load(cls, path: Path) -> "GachaStore":
        if not path.exists():
            logger.warning("Store %s not found; starting empty.", path)
            return cls(path)
        text = path.read_text(encoding="utf-8")
        try:
            payload = yaml.safe_load(text) if _is_yaml(path) else json.loads(text)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise StoreError(f"Failed to parse store {path}: {exc}") from exc
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise StoreError(f"Store {path} must contain an object at the top level.")
        return cls(path, payload)

    @classmethod
    def from_env(cls) -> "GachaStore":
        return cls.load(path_from_env("GACHABOX_STORE_PATH") or DEFAULT_STORE_PATH)

    def _merge(self, payload: Mapping[str, object]) -> None:
        for section in SECTIONS:
            value = payload.get(section)
            if value is None:
                continue
            if not isinstance(value, Mapping):
                raise StoreError(f"Section '{section}' must be an object.")
            self._data[section] = copy.deepcopy(dict(value))

    # Snapshots ---------------------------------------------------------------

    def list_gacha_ids(self) -> List[str]:
        ids = set(self._data["catalogs"]) | set(self._data["rarities"]) | set(self._data["ptSettings"])
        return sorted(ids, key=str.lower)

    @property
    def rarities(self) -> Dict[str, Dict[str, Dict[str, object]]]:
        return copy.deepcopy(self._data["rarities"])

    @property
    def catalogs(self) -> Dict[str, Dict[str, object]]:
        return copy.deepcopy(self._data["catalogs"])

    def rarity_table(self, gacha_id: str) -> Dict[str, Dict[str, object]]:
        return copy.deepcopy(self._data["rarities"].get(gacha_id) or {})

    def catalog(self, gacha_id: str) -> Dict[str, object]:
        return copy.deepcopy(self._data["catalogs"].get(gacha_id) or {})

    def pt_setting(self, gacha_id: str) -> Optional[Dict[str, object]]:
        setting = self._data["ptSettings"].get(gacha_id)
        return copy.deepcopy(setting) if isinstance(setting, Mapping) else None

    def riagu_cards(self, gacha_id: Optional[str] = None) -> List[Dict[str, object]]:
        cards = self._data["riagu"].get("riaguCards") or {}
        result = [copy.deepcopy(card) for card in cards.values() if isinstance(card, Mapping)]
        if gacha_id is not None:
            result = [card for card in result if card.get("gachaId") == gacha_id]
        return result

    def inventory_counts(self) -> Dict[str, int]:
        """Copies already won per item id, summed over every user."""
        return build_item_inventory_count_map(self._data["userInventories"].get("byItemId"))

    # Mutations -----------------------------------------------------------------

    def replace_rarity_table(self, gacha_id: str, rows: Mapping[str, Mapping[str, object]]) -> None:
        self._data["rarities"][gacha_id] = copy.deepcopy(dict(rows))

    def set_pt_setting(self, gacha_id: str, setting: Mapping[str, object]) -> None:
        self._data["ptSettings"][gacha_id] = copy.deepcopy(dict(setting))

    def record_pulls(self, user_id: str, gacha_id: str, items: Sequence[ExecutedPullItem]) -> int:
        """Add won items to the user's inventory index; returns the number of copies recorded."""
        by_item_id = self._data["userInventories"].setdefault("byItemId", {})
        recorded = 0
        for item in items:
            if item.count <= 0:
                continue
            entries = by_item_id.get(item.item_id)
            if not isinstance(entries, list):
                entries = by_item_id[item.item_id] = []
            for entry in entries:
                if isinstance(entry, dict) and entry.get("userId") == user_id and entry.get("gachaId") == gacha_id:
                    entry["count"] = int(entry.get("count") or 0) + item.count
                    break
            else:
                entries.append(
                    {"userId": user_id, "gachaId": gacha_id, "rarityId": item.rarity_id, "count": item.count}
                )
            recorded += item.count
        return recorded

    def to_payload(self) -> Dict[str, object]:
        return copy.deepcopy(self._data)

    def persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = self.to_payload()
        if _is_yaml(self.path):
            text = yaml.safe_dump(payload, allow_unicode=True, sort_keys=False)
        else:
            text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
        self.path.write_text(text, encoding="utf-8")
        logger.info("Saved store to %s.", self.path)


def normalize_store_rates(store: GachaStore, *, persist: bool = True) -> List[str]:
    """Normalize every gacha's emit rates; returns the ids that changed."""
    changed_ids: List[str] = []
    table = store.rarities
    for gacha_id in sorted(table, key=str.lower):
        table, changed = normalize_emit_rates_for_gacha(table, gacha_id)
        if changed:
            store.replace_rarity_table(gacha_id, table[gacha_id])
            changed_ids.append(gacha_id)
    if changed_ids and persist:
        store.persist()
    return changed_ids


__all__ = ["DEFAULT_STORE_PATH", "GachaStore", "StoreError", "normalize_store_rates"]
