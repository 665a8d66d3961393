import logging
import os

import discord
from discord.ext import commands
from dotenv import load_dotenv

from gachabox.commands import DEFAULT_MAX_DRAW_POINTS, setup_draw_commands
from gachabox.store import GachaStore
from gachabox.utils import int_from_env

load_dotenv()

logging.basicConfig(
    level=os.getenv("GACHABOX_LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("gachabox")

DISCORD_TOKEN = os.getenv("GACHABOX_DISCORD_TOKEN")
if not DISCORD_TOKEN:
    raise RuntimeError("Missing GACHABOX_DISCORD_TOKEN. Set it in your environment or .env file.")

intents = discord.Intents.default()
intents.message_content = True

bot = commands.Bot(command_prefix=os.getenv("GACHABOX_COMMAND_PREFIX", "!"), intents=intents)

STORE = GachaStore.from_env()
DRAW_COMMANDS = setup_draw_commands(
    bot,
    store=STORE,
    max_points=int_from_env("GACHABOX_MAX_DRAW_POINTS", DEFAULT_MAX_DRAW_POINTS),
    webhook_url=os.getenv("GACHABOX_DELIVERY_WEBHOOK_URL", "").strip() or None,
)


@bot.event
async def on_ready():
    logger.info("Logged in as %s; serving %d gachas from %s.", bot.user, len(STORE.list_gacha_ids()), STORE.path)


def main():
    bot.run(DISCORD_TOKEN, log_handler=None)


if __name__ == "__main__":
    main()
