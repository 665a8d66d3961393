"""Discord delivery of draw results and prize links."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import aiohttp
import discord

from .models import ExecutedPullItem, GachaExecutionResult, GachaPoolDefinition
from .utils import utc_now

logger = logging.getLogger("gachabox.delivery")

DEFAULT_EMBED_COLOR = 0x5865F2
ERROR_EMBED_COLOR = 0xE74C3C

EMBED_TOTAL_CHAR_LIMIT = 6000
EMBED_MAX_FIELDS = 25
EMBED_FIELD_VALUE_LIMIT = 1024
EMBEDS_PER_MESSAGE = 10
DEFAULT_SHARE_TITLE = "景品リンクです"


def parse_color(value: Optional[str]) -> int:
    """Turn ``#rrggbb`` (or ``rrggbb``) into an int colour; falls back to the default."""
    if not value:
        return DEFAULT_EMBED_COLOR
    text = str(value).strip().lstrip("#")
    if len(text) == 3:
        text = "".join(ch * 2 for ch in text)
    try:
        return int(text, 16) if len(text) == 6 else DEFAULT_EMBED_COLOR
    except ValueError:
        return DEFAULT_EMBED_COLOR


def _format_points(value: float) -> str:
    return f"{int(value)}" if float(value).is_integer() else f"{value:g}"


def _item_line(entry: ExecutedPullItem) -> str:
    line = f"{entry.name} ×{entry.count}"
    if entry.guaranteed_count:
        line += f" (保証 {entry.guaranteed_count})"
    return line


def chunk_lines(lines: Sequence[str], *, limit: int = 900) -> List[str]:
    buckets: List[str] = []
    current: List[str] = []
    current_len = 0
    for line in lines:
        if current_len + len(line) + 1 > limit and current:
            buckets.append("\n".join(current))
            current = []
            current_len = 0
        current.append(line)
        current_len += len(line) + 1
    if current:
        buckets.append("\n".join(current))
    return buckets


def _clone_embed(embed: discord.Embed) -> discord.Embed:
    clone = discord.Embed(
        title=embed.title,
        description=embed.description,
        colour=embed.colour,
        timestamp=embed.timestamp,
    )
    if embed.footer:
        clone.set_footer(text=embed.footer.text)
    return clone


def _iter_field_chunks(name: str, value: str, inline: bool) -> Iterable[Tuple[str, str, bool]]:
    if len(value) <= EMBED_FIELD_VALUE_LIMIT:
        yield name, value, inline
        return
    start = 0
    part = 0
    while start < len(value):
        chunk_name = name if part == 0 else f"{name} (cont. {part + 1})"
        yield chunk_name, value[start:start + EMBED_FIELD_VALUE_LIMIT], inline
        start += EMBED_FIELD_VALUE_LIMIT
        part += 1


def paginate_embed_fields(
    base_embed: discord.Embed,
    fields: Sequence[Tuple[str, str, bool]],
) -> List[discord.Embed]:
    pages: List[discord.Embed] = []
    current = _clone_embed(base_embed)
    current_length = len(current)
    for name, value, inline in fields:
        for chunk_name, chunk_value, chunk_inline in _iter_field_chunks(name, value, inline):
            chunk_len = len(chunk_name) + len(chunk_value)
            if current.fields and (
                len(current.fields) >= EMBED_MAX_FIELDS or current_length + chunk_len > EMBED_TOTAL_CHAR_LIMIT
            ):
                pages.append(current)
                current = _clone_embed(base_embed)
                current_length = len(current)
            current.add_field(name=chunk_name, value=chunk_value, inline=chunk_inline)
            current_length += chunk_len
    if current.fields or not pages:
        pages.append(current)
    return pages


def _headline_color(result: GachaExecutionResult, pool: Optional[GachaPoolDefinition]) -> int:
    if result.errors:
        return ERROR_EMBED_COLOR
    colored = [entry for entry in result.items if entry.rarity_color]
    if not colored:
        return DEFAULT_EMBED_COLOR
    if pool is None:
        return parse_color(colored[0].rarity_color)

    def emit_rate(entry: ExecutedPullItem) -> float:
        group = pool.rarity_groups.get(entry.rarity_id)
        if group is None or not group.emit_rate or group.emit_rate <= 0:
            return float("inf")
        return group.emit_rate

    # Colour of the rarest tier that was actually pulled.
    return parse_color(min(colored, key=emit_rate).rarity_color)


def build_result_embeds(
    result: GachaExecutionResult,
    *,
    title: str = "ガチャ結果",
    pool: Optional[GachaPoolDefinition] = None,
) -> List[discord.Embed]:
    """Render a draw result as one or more embeds, grouped by rarity."""
    summary = [
        f"消費ポイント: **{_format_points(result.points_spent)}pt**",
        f"残りポイント: **{_format_points(result.points_remainder)}pt**",
        f"抽選回数: **{result.total_pulls}**",
    ]
    if result.complete_executions:
        summary.append(f"コンプリート: **{result.complete_executions}回**")
    base = discord.Embed(
        title=title,
        description="\n".join(summary),
        color=_headline_color(result, pool),
        timestamp=utc_now(),
    )

    fields: List[Tuple[str, str, bool]] = []
    grouped: List[Tuple[str, List[str]]] = []
    for entry in result.items:
        for label, lines in grouped:
            if label == entry.rarity_label:
                lines.append(_item_line(entry))
                break
        else:
            grouped.append((entry.rarity_label, [_item_line(entry)]))
    for label, lines in grouped:
        for chunk in chunk_lines(lines):
            fields.append((label, chunk, False))

    if result.errors:
        fields.append(("エラー", "\n".join(result.errors), False))
    if result.warnings:
        fields.append(("注意", "\n".join(result.warnings), False))
    return paginate_embed_fields(base, fields)


def format_share_message(share_url: str, *, title: Optional[str] = None, comment: Optional[str] = None) -> str:
    parts = [title or DEFAULT_SHARE_TITLE, share_url, comment or ""]
    return "\n".join(part for part in parts if part)


class DrawResultMessenger:
    """Posts results and prize links to a Discord webhook."""

    def __init__(self, webhook_url: str, *, username: Optional[str] = None) -> None:
        if not webhook_url:
            raise ValueError("A webhook URL is required for delivery.")
        self.webhook_url = webhook_url
        self.username = username

    def _webhook(self, session: aiohttp.ClientSession) -> discord.Webhook:
        return discord.Webhook.from_url(self.webhook_url, session=session)

    async def _send(self, webhook: discord.Webhook, **kwargs) -> bool:
        try:
            await webhook.send(
                username=self.username or discord.utils.MISSING,
                allowed_mentions=discord.AllowedMentions.none(),
                **kwargs,
            )
        except discord.HTTPException as exc:
            logger.warning("Discord delivery failed: %s", exc)
            return False
        return True

    async def send_result(
        self,
        result: GachaExecutionResult,
        *,
        content: Optional[str] = None,
        title: str = "ガチャ結果",
        pool: Optional[GachaPoolDefinition] = None,
        session: Optional[aiohttp.ClientSession] = None,
        webhook: Optional[discord.Webhook] = None,
    ) -> bool:
        embeds = build_result_embeds(result, title=title, pool=pool)
        owns_session = webhook is None and session is None
        if owns_session:
            session = aiohttp.ClientSession()
        try:
            hook = webhook or self._webhook(session)
            for index in range(0, len(embeds), EMBEDS_PER_MESSAGE):
                batch = embeds[index:index + EMBEDS_PER_MESSAGE]
                kwargs = {"embeds": batch}
                if content and index == 0:
                    kwargs["content"] = content
                if not await self._send(hook, **kwargs):
                    return False
        finally:
            if owns_session:
                await session.close()
        logger.info("Delivered draw result (%d embeds).", len(embeds))
        return True

    async def send_share_link(
        self,
        share_url: str,
        *,
        title: Optional[str] = None,
        comment: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        webhook: Optional[discord.Webhook] = None,
    ) -> bool:
        if not share_url:
            raise ValueError("share_url is required.")
        content = format_share_message(share_url, title=title, comment=comment)
        owns_session = webhook is None and session is None
        if owns_session:
            session = aiohttp.ClientSession()
        try:
            hook = webhook or self._webhook(session)
            return await self._send(hook, content=content)
        finally:
            if owns_session:
                await session.close()


__all__ = [
    "DrawResultMessenger",
    "build_result_embeds",
    "chunk_lines",
    "format_share_message",
    "paginate_embed_fields",
    "parse_color",
]
