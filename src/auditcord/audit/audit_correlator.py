"""
Attribute a change to a moderator through the guild audit trail.

Gateway events and audit entries are delivered independently: the entry for
a role edit can land a moment after the member update that announced it, or
never (self-service changes, missing permissions). The correlator therefore
polls the audit trail a few times within a bounded timeout and only accepts
entries recent enough to belong to the event at hand. Whatever goes wrong,
the result degrades to :data:`UNKNOWN_ACTOR` so the log entry is still
emitted.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Protocol, Sequence

import discord

from auditcord.audit.errors import (
    AuditLogPermissionDenied,
    AuditLogQueryError,
    AuditLogUnavailable,
)
from auditcord.configuration.audit_settings import AuditSettings
from auditcord.datatypes.audit_datatypes import UNKNOWN_ACTOR, Actor, AuditLogEntry
from auditcord.util.logger import get_logger

logger = get_logger("audit_correlator")


class AuditLogSource(Protocol):
    """Reads a guild's audit trail, most recent entry first."""

    async def query(
        self,
        guild: Any,
        action_type: discord.AuditLogAction,
        limit: int,
    ) -> Sequence[AuditLogEntry]:
        ...


class DiscordAuditLogSource:
    """AuditLogSource backed by py-cord's ``Guild.audit_logs`` iterator."""

    async def query(
        self,
        guild: discord.Guild,
        action_type: discord.AuditLogAction,
        limit: int,
    ) -> List[AuditLogEntry]:
        """
        Fetch the latest audit entries of one action type.

        Raises:
            AuditLogPermissionDenied: The bot cannot view the audit log of ``guild``.
            AuditLogUnavailable: The request failed for any other reason.
        """
        me = guild.me
        if me is None or not me.guild_permissions.view_audit_log:
            raise AuditLogPermissionDenied(f"Missing view_audit_log in guild {guild.id}")

        try:
            return [
                AuditLogEntry.from_discord(entry)
                async for entry in guild.audit_logs(limit=limit, action=action_type)
            ]
        except discord.Forbidden as exc:
            raise AuditLogPermissionDenied(str(exc)) from exc
        except (discord.DiscordException, OSError) as exc:
            raise AuditLogUnavailable(str(exc)) from exc


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def select_relevant_entry(
    entries: Sequence[AuditLogEntry],
    expected_action: discord.AuditLogAction,
    target_id: int,
    recency_window: timedelta,
    now: datetime,
) -> Optional[AuditLogEntry]:
    """
    Pick the most recent entry matching action and target within the window.

    Entries older than ``recency_window`` relative to ``now`` are ignored even
    when they match: the audit trail is append-only, so an old entry for the
    same target is an unrelated earlier edit.
    """
    reference = _as_utc(now)
    best: Optional[AuditLogEntry] = None
    for entry in entries:
        if entry.action_type != expected_action or entry.target_id != target_id:
            continue
        created_at = _as_utc(entry.created_at)
        if reference - created_at > recency_window:
            continue
        if best is None or created_at > _as_utc(best.created_at):
            best = entry
    return best


class AuditCorrelator:
    """
    Resolves the actor behind a change by searching the audit trail.

    Attributes:
        source (AuditLogSource): Where audit entries are read from.
        recency_window (float): Default maximum entry age in seconds.
        timeout (float): Upper bound in seconds for one lookup, retries included.
        query_limit (int): Number of entries requested per query.
        retry_attempts (int): Queries made before giving up on an empty match.
        retry_delay (float): Pause in seconds between queries.
    """

    def __init__(
        self,
        source: AuditLogSource,
        *,
        recency_window: float = 30.0,
        timeout: float = 5.0,
        query_limit: int = 10,
        retry_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        self.source = source
        self.recency_window = recency_window
        self.timeout = timeout
        self.query_limit = query_limit
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(cls, source: AuditLogSource, settings: AuditSettings) -> "AuditCorrelator":
        return cls(
            source,
            recency_window=settings.recency_window_seconds,
            timeout=settings.lookup_timeout_seconds,
            query_limit=settings.query_limit,
            retry_attempts=settings.retry_attempts,
            retry_delay=settings.retry_delay_seconds,
        )

    async def find_actor(
        self,
        guild: Any,
        expected_action: discord.AuditLogAction,
        target_id: int,
        recency_window: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Actor:
        """
        Return the actor of the most plausible audit entry, or UNKNOWN_ACTOR.

        Args:
            guild: Guild whose audit trail is searched.
            expected_action: Audit action the change should have produced.
            target_id: Id of the changed entity.
            recency_window: Override of the default window, in seconds.
            now: Reference time of the event; defaults to the current time.

        Returns:
            Actor: The resolved actor, or UNKNOWN_ACTOR when nothing correlates
            or the audit trail cannot be read in time.
        """
        window = timedelta(seconds=self.recency_window if recency_window is None else recency_window)
        reference = now or datetime.now(timezone.utc)
        guild_id = getattr(guild, "id", "?")

        try:
            entry = await asyncio.wait_for(
                self._search(guild, expected_action, target_id, window, reference),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[AUDIT CORRELATOR] Lookup for target %s in guild %s timed out after %.1fs",
                target_id, guild_id, self.timeout,
            )
            return UNKNOWN_ACTOR
        except AuditLogPermissionDenied as exc:
            logger.debug("[AUDIT CORRELATOR] No audit log access in guild %s: %s", guild_id, exc)
            return UNKNOWN_ACTOR
        except AuditLogQueryError as exc:
            logger.warning("[AUDIT CORRELATOR] Audit log query failed in guild %s: %s", guild_id, exc)
            return UNKNOWN_ACTOR
        except Exception:
            logger.exception("[AUDIT CORRELATOR] Unexpected error correlating target %s", target_id)
            return UNKNOWN_ACTOR

        if entry is None:
            logger.debug(
                "[AUDIT CORRELATOR] No %s entry for target %s in guild %s",
                expected_action, target_id, guild_id,
            )
            return UNKNOWN_ACTOR
        return entry.resolve_actor()

    async def _search(
        self,
        guild: Any,
        expected_action: discord.AuditLogAction,
        target_id: int,
        window: timedelta,
        reference: datetime,
    ) -> Optional[AuditLogEntry]:
        for attempt in range(1, self.retry_attempts + 1):
            entries = await self.source.query(guild, expected_action, self.query_limit)
            entry = select_relevant_entry(entries, expected_action, target_id, window, reference)
            if entry is not None:
                return entry
            if attempt < self.retry_attempts:
                await asyncio.sleep(self.retry_delay)
        return None
