"""
Herald Discord Bot
==================

A Discord bot that logs guild events (message edits and deletions, role
grants, bans, departures) into a configured channel, welcomes new members
with a generated image, and assigns auto-roles.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. HERALD_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("HERALD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dataclasses import dataclass

import discord
from dotenv import load_dotenv

from herald.bot.discord_gateway import DiscordGateway
from herald.configuration.app_configuration import app_config
from herald.configuration.config_cache import ConfigCache
from herald.configuration.config_service import GuildConfigService
from herald.database.config_store import ConfigStore
from herald.dispatch.event_dispatcher import EventDispatcher
from herald.util.logger import get_logger, handle_exception
from herald.welcome.image_renderer import WelcomeImageRenderer

logger = get_logger("main")


@dataclass
class Runtime:
    """Process-wide objects, built once and passed to the cogs."""

    store: ConfigStore
    cache: ConfigCache
    renderer: WelcomeImageRenderer
    config_service: GuildConfigService


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for member, message content, role and ban events."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.messages = True
    intents.message_content = True
    intents.moderation = True
    return intents


async def build_runtime() -> Runtime:
    """Open the store, hydrate the cache and wire the configuration service."""
    store = ConfigStore()
    await store.initialize(app_config.database_path)

    cache = ConfigCache()
    renderer = WelcomeImageRenderer.from_app_config(app_config)
    service = GuildConfigService(store, cache, renderer, uploads_dir=app_config.uploads_dir)
    await service.load_cache()
    return Runtime(store=store, cache=cache, renderer=renderer, config_service=service)


def load_cogs(discord_bot_instance: discord.Bot, runtime: Runtime) -> None:
    """Register all cogs with the provided Discord bot instance."""
    from herald.bot.cogs import events_listener, guild_config_cmds

    dispatcher = EventDispatcher(
        runtime.cache,
        DiscordGateway(discord_bot_instance),
        runtime.renderer,
        timeout=app_config.network_timeout,
    )
    events_listener.setup(discord_bot_instance, dispatcher, runtime.config_service, app_config.presence_activity)
    guild_config_cmds.setup(discord_bot_instance, runtime.config_service)

    logger.info("All cogs loaded successfully.")


def create_bot(runtime: Runtime) -> discord.Bot:
    """Instantiate the Discord bot and register all cogs."""
    bot = discord.Bot(intents=build_intents())
    load_cogs(bot, runtime)
    return bot


async def start_bot(bot: discord.Bot, token: str) -> None:
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, runtime: Runtime | None) -> None:
    """Gracefully stop the Discord bot and close the database."""
    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    if runtime is not None:
        try:
            await runtime.store.close()
        except Exception as exc:
            logger.exception("Error during database shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the store, cache and bot, returning an exit code."""
    token = load_environment()

    try:
        logger.info("Initializing database and loading guild configuration...")
        runtime = await build_runtime()
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    try:
        bot = create_bot(runtime)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await shutdown_runtime(None, runtime)
        return 1

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, runtime)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting Herald…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 0 if code is None else 1


if __name__ == "__main__":
    sys.exit(main())
