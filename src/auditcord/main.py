"""
Auditcord Discord Bot
=====================

A Discord bot that watches member and user updates, works out what changed,
attributes the change to a moderator through the guild audit log, and
archives a structured log record for every change it did not cause itself.
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. AUDITCORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the project root.
    """
    if env_home := os.getenv("AUDITCORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()

import asyncio
import discord
from dotenv import load_dotenv

from auditcord.audit.audit_correlator import AuditCorrelator, AuditLogSource, DiscordAuditLogSource
from auditcord.audit.event_pipeline import AuditEventPipeline
from auditcord.audit.log_emitter import ConsoleLogSink, LogEmitter
from auditcord.audit.suppression import IgnoreRegistry, SuppressionGate
from auditcord.configuration.audit_settings import AuditSettings
from auditcord.database.db_connection import db_connection
from auditcord.database.log_archive import LogArchiveSink
from auditcord.util.logger import get_logger, handle_exception


logger = get_logger("main")


@dataclass
class AuditRuntime:
    """The wired-up audit pipeline and its collaborators."""
    registry: IgnoreRegistry
    gate: SuppressionGate
    correlator: AuditCorrelator
    emitter: LogEmitter
    pipeline: AuditEventPipeline
    archive: Optional[LogArchiveSink] = None


def build_audit_runtime(
    settings: AuditSettings,
    *,
    archive: Optional[LogArchiveSink] = None,
    source: Optional[AuditLogSource] = None,
) -> AuditRuntime:
    """Wire registry, gate, correlator, emitter and pipeline from settings.

    Parameters
    ----------
    settings:
        The ``audit_settings`` block of the application config.
    archive:
        Optional SQLite sink subscribed to the emitter.
    source:
        Audit trail reader; defaults to the py-cord backed source.
    """
    registry = IgnoreRegistry(default_ttl=settings.ignore_ttl_seconds)
    gate = SuppressionGate(registry)
    correlator = AuditCorrelator.from_settings(source or DiscordAuditLogSource(), settings)

    emitter = LogEmitter()
    emitter.subscribe(ConsoleLogSink())
    if archive is not None:
        emitter.subscribe(archive)

    pipeline = AuditEventPipeline.from_settings(correlator, gate, emitter, settings)
    return AuditRuntime(
        registry=registry,
        gate=gate,
        correlator=correlator,
        emitter=emitter,
        pipeline=pipeline,
        archive=archive,
    )


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
    """Construct the intents the audit pipeline needs.

    Member updates and the member cache used for user-update fan-out both
    require the privileged members intent.
    """
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    return intents


def create_bot(runtime: AuditRuntime, retention_days: int) -> discord.Bot:
    """Instantiate the Discord bot and register the audit listener cog."""
    from auditcord.cog.listener import audit_listener

    bot = discord.Bot(intents=build_intents())
    audit_listener.setup(bot, runtime.pipeline, runtime.registry, runtime.archive, retention_days)
    logger.info("All cogs loaded successfully.")
    return bot


async def shutdown_runtime(bot: discord.Bot | None, runtime: AuditRuntime | None) -> None:
    """Close the bot, flush pending sink writes and close the archive database."""
    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord bot: %s", exc)

    if runtime is not None:
        await runtime.emitter.drain()

    await db_connection.close()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the archive, pipeline and bot, returning an exit code."""
    from auditcord.configuration.app_configuration import app_config

    token = load_environment()
    settings = app_config.audit_settings

    archive: Optional[LogArchiveSink] = None
    try:
        archive = LogArchiveSink(db_connection)
        await archive.initialize(app_config.database_path)
    except Exception as exc:
        logger.critical("Failed to initialize the log archive: %s", exc)
        return 1

    runtime = build_audit_runtime(settings, archive=archive)
    if not settings.enabled:
        logger.warning("Audit logging is disabled in the configuration; no records will be emitted.")

    try:
        bot = create_bot(runtime, app_config.archive_retention_days)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await shutdown_runtime(None, runtime)
        return 1

    exit_code = 0
    try:
        logger.info("Attempting to connect to Discord…")
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Bot start cancelled; proceeding to shutdown")
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, runtime)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    os.chdir(BASE_DIR)
    logger.info("Starting Auditcord…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        if code is None:
            return 1
        try:
            return int(code)
        except (ValueError, TypeError):
            logger.warning("SystemExit.code is not an int (%r); defaulting to 1", code)
            return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    print(f"Exited with code: {main()}")
