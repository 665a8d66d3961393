#!/usr/bin/env python
"""Run one draw against a store document and print the plan and results."""

from __future__ import annotations

import argparse
import logging
import random
from pathlib import Path

from dotenv import load_dotenv

from gachabox.commands import DrawService
from gachabox.store import DEFAULT_STORE_PATH, GachaStore, StoreError
from gachabox.utils import path_from_env


def parse_args() -> argparse.Namespace:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Plan and execute a single gacha draw from a store.")
    parser.add_argument(
        "--config",
        type=Path,
        default=path_from_env("GACHABOX_STORE_PATH") or DEFAULT_STORE_PATH,
        help="Path to the JSON or YAML store.",
    )
    parser.add_argument("--gacha", required=True, help="Gacha id to draw from.")
    parser.add_argument("--points", type=float, required=True, help="Point balance to spend.")
    parser.add_argument("--seed", type=int, help="Seed for a reproducible draw.")
    parser.add_argument("--verbose", action="store_true", help="Increase logging verbosity.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")

    try:
        store = GachaStore.load(args.config)
    except StoreError as exc:
        raise SystemExit(str(exc)) from exc

    rng = random.Random(args.seed).random if args.seed is not None else None
    service = DrawService(store, rng=rng, persist_changes=False)
    gacha_id = service.resolve_gacha_id(args.gacha)
    if gacha_id is None:
        raise SystemExit(f"Unknown gacha '{args.gacha}'. Known: {', '.join(store.list_gacha_ids()) or '-'}")

    _, result = service.draw(gacha_id, args.points)
    plan = result.plan
    print(f"Plan for {args.points:g} pts on {gacha_id}:")
    for application in plan.bundle_applications:
        print(f"  bundle {application.bundle_id}: x{application.times} ({application.total_price:g} pts, {application.total_pulls} pulls)")
    if plan.complete_executions:
        print(f"  complete: x{plan.complete_executions} ({plan.complete_pulls} swept pulls)")
    if plan.per_pull_purchases:
        purchase = plan.per_pull_purchases
        print(f"  singles: x{purchase.times} ({purchase.total_price:g} pts, {purchase.total_pulls} pulls)")
    print(f"  total pulls: {plan.total_pulls}, used {plan.points_used:g} pts, left {plan.points_remainder:g} pts")

    for entry in result.items:
        guaranteed = f" (guaranteed {entry.guaranteed_count})" if entry.guaranteed_count else ""
        print(f"{entry.rarity_label:>8}  {entry.name} x{entry.count}{guaranteed}")
    for message in result.errors:
        print(f"error: {message}")
    for message in result.warnings:
        print(f"warning: {message}")


if __name__ == "__main__":
    main()
