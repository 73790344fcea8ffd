"""Audit listener Cog for Auditcord.

This cog has exactly ONE responsibility: turn py-cord member and user
update events into snapshots and hand them to the audit pipeline. All
diffing, suppression, correlation and emission happens in
:mod:`auditcord.audit.event_pipeline`.
"""

from __future__ import annotations

from typing import Optional

import discord
from discord.ext import commands

from auditcord.audit.event_pipeline import AuditEventPipeline, PipelineResult
from auditcord.audit.suppression import IgnoreRegistry
from auditcord.database.log_archive import LogArchiveSink
from auditcord.datatypes.entity_datatypes import EventKind, MemberSnapshot, UserSnapshot
from auditcord.util.logger import get_logger

logger = get_logger("audit_listener")


class AuditListenerCog(commands.Cog):
    """Forwards member/user change events to the audit pipeline."""

    def __init__(
        self,
        bot: discord.Bot,
        pipeline: AuditEventPipeline,
        registry: IgnoreRegistry,
        archive: Optional[LogArchiveSink] = None,
        retention_days: int = 90,
    ) -> None:
        self.bot = bot
        self.pipeline = pipeline
        self.registry = registry
        self.archive = archive
        self.retention_days = retention_days
        logger.info("[AUDIT LISTENER] Audit listener cog loaded")

    # ------------------------------------------------------------------
    # Gateway events
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_member_update")
    async def on_member_update(self, before: Optional[discord.Member], after: discord.Member) -> None:
        """Log nickname and role changes of guild members (the bot's own member excluded)."""
        if self.bot.user is not None and after.id == self.bot.user.id:
            return

        try:
            before_snapshot = MemberSnapshot.from_member(before) if before is not None else None
            after_snapshot = MemberSnapshot.from_member(after)
        except Exception:
            logger.exception("[AUDIT LISTENER] Could not snapshot member %s", after.id)
            return

        await self._dispatch(EventKind.MEMBER_UPDATE, after.guild, before_snapshot, after_snapshot)

    @commands.Cog.listener(name="on_user_update")
    async def on_user_update(self, before: Optional[discord.User], after: discord.User) -> None:
        """Log username changes in every guild the user is still a member of."""
        try:
            before_snapshot = UserSnapshot.from_user(before) if before is not None else None
            after_snapshot = UserSnapshot.from_user(after)
        except Exception:
            logger.exception("[AUDIT LISTENER] Could not snapshot user %s", after.id)
            return

        for guild in list(self.bot.guilds):
            if guild.get_member(after.id) is None:
                continue
            await self._dispatch(EventKind.USER_UPDATE, guild, before_snapshot, after_snapshot)

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        """Housekeeping after (re)connecting: expired ignore entries and old archive rows."""
        await self.registry.purge_expired()
        if self.archive is not None:
            try:
                await self.archive.prune(self.retention_days)
            except Exception:
                logger.exception("[AUDIT LISTENER] Failed to prune the log archive")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _dispatch(self, kind: EventKind, guild, before, after) -> Optional[PipelineResult]:
        try:
            result = await self.pipeline.handle(kind, guild, before, after)
        except Exception:
            logger.exception("[AUDIT LISTENER] Pipeline failed for %s in guild %s", kind, guild.id)
            return None

        logger.debug(
            "[AUDIT LISTENER] %s for %s in guild %s -> %s (%d records)",
            kind, after.id, guild.id, result.status.value, len(result.records),
        )
        return result


def setup(
    bot: discord.Bot,
    pipeline: AuditEventPipeline,
    registry: IgnoreRegistry,
    archive: Optional[LogArchiveSink] = None,
    retention_days: int = 90,
) -> None:
    """Register the AuditListenerCog with the bot."""
    bot.add_cog(AuditListenerCog(bot, pipeline, registry, archive, retention_days))
