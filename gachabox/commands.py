"""Discord commands for drawing from stored gachas."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import discord
from discord.ext import commands

from .delivery import DrawResultMessenger, build_result_embeds
from .emit_rates import ensure_auto_emit_rates_for_gacha, to_sorted_entries
from .engine import Rng, execute_gacha
from .models import GachaExecutionResult, GachaPoolDefinition
from .pools import build_gacha_pools, format_percent
from .store import GachaStore

logger = logging.getLogger("gachabox.commands")

DEFAULT_MAX_DRAW_POINTS = 1_000_000


class DrawService:
    """Glue between the persisted store and the draw engine."""

    def __init__(
        self,
        store: GachaStore,
        *,
        max_points: int = DEFAULT_MAX_DRAW_POINTS,
        rng: Optional[Rng] = None,
        persist_changes: bool = True,
    ) -> None:
        self.store = store
        self.max_points = max_points
        self._rng = rng
        self._persist_changes = persist_changes

    def resolve_gacha_id(self, query: str) -> Optional[str]:
        lowered = query.strip().lower()
        for gacha_id in self.store.list_gacha_ids():
            if gacha_id.lower() == lowered:
                return gacha_id
        return None

    def load_pool(self, gacha_id: str) -> Optional[GachaPoolDefinition]:
        rarities, changed = ensure_auto_emit_rates_for_gacha(self.store.rarities, gacha_id)
        if changed:
            # Auto-filled rates become the stored rates.
            self.store.replace_rarity_table(gacha_id, rarities[gacha_id])
            if self._persist_changes:
                self.store.persist()
        pools, _ = build_gacha_pools(
            {gacha_id: self.store.catalog(gacha_id)},
            rarities,
            inventory_counts=self.store.inventory_counts(),
        )
        return pools.get(gacha_id)

    def draw(
        self,
        gacha_id: str,
        points: float,
        *,
        user_id: Optional[str] = None,
    ) -> Tuple[Optional[GachaPoolDefinition], GachaExecutionResult]:
        """Run one draw; with ``user_id`` the won items count against remaining stock from now on."""
        pool = self.load_pool(gacha_id) or GachaPoolDefinition(gacha_id=gacha_id)
        result = execute_gacha(gacha_id, pool, self.store.pt_setting(gacha_id), points, rng=self._rng)
        if user_id is not None and result.items:
            self.store.record_pulls(user_id, gacha_id, result.items)
            if self._persist_changes:
                self.store.persist()
        logger.info(
            "Draw on %s: %s pts -> %d pulls, %d errors.",
            gacha_id,
            points,
            result.total_pulls,
            len(result.errors),
        )
        return pool, result

    def rate_lines(self, gacha_id: str) -> List[str]:
        rows = self.store.rarity_table(gacha_id)
        lines: List[str] = []
        for entry in reversed(to_sorted_entries(rows)):
            row = rows.get(entry.name) or {}
            label = row.get("label") or entry.name
            if entry.rate is None:
                lines.append(f"{label}: 未設定")
            else:
                lines.append(f"{label}: {format_percent(entry.rate)}%")
        return lines


class DrawCommands:
    """Registers ``!draw``, ``!rates`` and ``!share`` on a bot."""

    def __init__(
        self,
        *,
        bot: commands.Bot,
        service: DrawService,
        messenger: Optional[DrawResultMessenger] = None,
    ) -> None:
        self.bot = bot
        self.service = service
        self.messenger = messenger

    def register_commands(self) -> None:
        @commands.command(name="draw")
        async def draw_command(ctx: commands.Context, gacha: str = "", points: str = "") -> None:
            await self.command_draw(ctx, gacha, points)

        @commands.command(name="rates")
        async def rates_command(ctx: commands.Context, gacha: str = "") -> None:
            await self.command_rates(ctx, gacha)

        @commands.command(name="share")
        async def share_command(ctx: commands.Context, url: str = "", *, comment: str = "") -> None:
            await self.command_share(ctx, url, comment)

        for command in (draw_command, rates_command, share_command):
            if self.bot.get_command(command.name):
                self.bot.remove_command(command.name)
            self.bot.add_command(command)

    async def command_draw(self, ctx: commands.Context, gacha: str, points: str) -> None:
        gacha_id = self.service.resolve_gacha_id(gacha) if gacha else None
        if gacha_id is None:
            await ctx.reply("Usage: `!draw <gacha> <points>`", mention_author=False)
            return
        try:
            amount = float(points)
        except ValueError:
            await ctx.reply("Points must be a number.", mention_author=False)
            return
        if amount > self.service.max_points:
            await ctx.reply(f"At most {self.service.max_points} points per draw.", mention_author=False)
            return

        pool, result = self.service.draw(gacha_id, amount, user_id=str(ctx.author.id))
        embeds = build_result_embeds(result, title=f"{gacha_id} の結果", pool=pool)
        for embed in embeds:
            await ctx.reply(embed=embed, mention_author=False)

        if self.messenger is not None and not result.errors:
            delivered = await self.messenger.send_result(
                result,
                content=f"{ctx.author.display_name} が {gacha_id} を引きました。",
                title=f"{gacha_id} の結果",
                pool=pool,
            )
            if not delivered:
                await ctx.reply("Result delivery to Discord failed; check the logs.", mention_author=False)

    async def command_rates(self, ctx: commands.Context, gacha: str) -> None:
        gacha_id = self.service.resolve_gacha_id(gacha) if gacha else None
        if gacha_id is None:
            await ctx.reply("Usage: `!rates <gacha>`", mention_author=False)
            return
        lines = self.service.rate_lines(gacha_id)
        embed = discord.Embed(
            title=f"{gacha_id} の排出率",
            description="\n".join(lines) or "レアリティが登録されていません。",
        )
        await ctx.reply(embed=embed, mention_author=False)

    async def command_share(self, ctx: commands.Context, url: str, comment: str) -> None:
        if self.messenger is None:
            await ctx.reply("Prize link delivery is not configured.", mention_author=False)
            return
        if not url.startswith(("https://", "http://")):
            await ctx.reply("Usage: `!share <url> [comment]`", mention_author=False)
            return
        delivered = await self.messenger.send_share_link(url, comment=comment.strip() or None)
        if delivered:
            await ctx.reply("Prize link sent.", mention_author=False)
        else:
            await ctx.reply("Prize link delivery failed; check the logs.", mention_author=False)


def setup_draw_commands(
    bot: commands.Bot,
    *,
    store: GachaStore,
    max_points: int = DEFAULT_MAX_DRAW_POINTS,
    webhook_url: Optional[str] = None,
) -> DrawCommands:
    """Factory used by bot.py to bootstrap the draw commands."""
    messenger = DrawResultMessenger(webhook_url) if webhook_url else None
    manager = DrawCommands(
        bot=bot,
        service=DrawService(store, max_points=max_points),
        messenger=messenger,
    )
    manager.register_commands()
    return manager


__all__ = ["DrawCommands", "DrawService", "setup_draw_commands"]
