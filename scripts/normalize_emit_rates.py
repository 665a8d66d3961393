#!/usr/bin/env python
"""Normalize every gacha's rarity emit rates in a store document."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

from gachabox.emit_rates import normalize_emit_rates_for_gacha
from gachabox.store import DEFAULT_STORE_PATH, GachaStore, StoreError, normalize_store_rates
from gachabox.utils import path_from_env

logger = logging.getLogger("normalize_emit_rates")


def parse_args() -> argparse.Namespace:
    load_dotenv()
    parser = argparse.ArgumentParser(
        description="Fill unset emit rates and repair ordering/100%% totals for every gacha in a store.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=path_from_env("GACHABOX_STORE_PATH") or DEFAULT_STORE_PATH,
        help="Path to the JSON or YAML store (defaults to GACHABOX_STORE_PATH or gachabox_store.json).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report which gachas would change without writing the store.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Increase logging verbosity.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")

    try:
        store = GachaStore.load(args.config)
    except StoreError as exc:
        raise SystemExit(str(exc)) from exc

    if args.dry_run:
        table = store.rarities
        pending = []
        for gacha_id in store.list_gacha_ids():
            table, changed = normalize_emit_rates_for_gacha(table, gacha_id)
            if changed:
                pending.append(gacha_id)
        logger.info("Dry run complete: %d gachas would change: %s", len(pending), ", ".join(pending) or "-")
        return

    changed_ids = normalize_store_rates(store)
    if changed_ids:
        logger.info("Updated %s (%d gachas: %s).", args.config, len(changed_ids), ", ".join(changed_ids))
    else:
        logger.info("All emit rates in %s are already normalized.", args.config)


if __name__ == "__main__":
    main()
