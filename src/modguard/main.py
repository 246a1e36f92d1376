"""
ModGuard Discord Bot
====================

A rule-based automod bot: configurable message rules, a warn ledger that
escalates to a kick at three warnings, timed mutes that survive restarts and
rate-limited manual moderation commands.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. MODGUARD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("MODGUARD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


import asyncio
import discord
from dotenv import load_dotenv

from modguard.bot.runtime import ModerationRuntime
from modguard.configuration.app_configuration import AppConfig
from modguard.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment(base_dir: Path) -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=base_dir / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Construct the Discord intents required for message moderation."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


def create_bot(app_config: AppConfig) -> tuple[discord.Bot, ModerationRuntime]:
    """Instantiate the Discord bot, its moderation runtime and the listener cog."""
    from modguard.bot.cogs import moderation_listener

    bot = discord.Bot(intents=build_intents())
    runtime = ModerationRuntime.build(bot, app_config)
    moderation_listener.setup(bot, runtime)
    logger.info("All cogs loaded successfully.")
    return bot, runtime


async def start_bot(bot: discord.Bot, token: str) -> None:
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot, runtime: ModerationRuntime) -> None:
    """Close the Discord connection, then stop the mute scheduler and database."""
    if not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    await runtime.shutdown()
    logger.info("Shutdown complete.")


async def async_main(base_dir: Path) -> int:
    """Bootstrap the bot and its moderation runtime, returning an exit code."""
    token = load_environment(base_dir)
    app_config = AppConfig(base_dir / "config" / "app_config.yml")

    try:
        bot, runtime = create_bot(app_config)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        return 1

    await runtime.start()

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
    base_dir = resolve_base_dir()
    os.chdir(base_dir)

    logger.info("Starting ModGuard…")
    try:
        return asyncio.run(async_main(base_dir))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
