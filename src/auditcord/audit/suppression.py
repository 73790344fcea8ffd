"""
One-shot ignore entries and the gate that consults them.

When the bot itself performs a moderation action it already knows the member
update the gateway is about to deliver. Registering an ignore entry before
the action lets the pipeline drop that echo instead of logging it twice.

Entries are keyed by ``(guild_id, log_type, subject_id)``, consumed by the
first matching check, and expire after a TTL so an echo that never arrives
cannot silence a later, unrelated change.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

from auditcord.datatypes.delta_datatypes import Delta
from auditcord.datatypes.discord_datatypes import GuildID, UserID
from auditcord.datatypes.log_datatypes import LogType
from auditcord.util.logger import get_logger

logger = get_logger("suppression")

IgnoreKey = Tuple[GuildID, LogType, UserID]


@dataclass(frozen=True, slots=True)
class IgnoreEntry:
    """A pending suppression for one log type and subject."""

    guild_id: GuildID
    log_type: LogType
    subject_id: UserID
    expires_at: float


class IgnoreRegistry:
    """
    Process-wide store of pending ignore entries.

    Check-and-consume runs under an asyncio lock, so two deliveries of the
    same event racing through the pipeline consume a single entry exactly
    once.

    Attributes:
        default_ttl (float): Lifetime in seconds of entries registered without a TTL.
    """

    def __init__(self, default_ttl: float = 10.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._deadlines: Dict[IgnoreKey, List[float]] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(
        guild_id: Union[GuildID, int, str],
        log_type: LogType,
        subject_id: Union[UserID, int, str],
    ) -> IgnoreKey:
        return (GuildID(guild_id), log_type, UserID(subject_id))

    async def register(
        self,
        guild_id: Union[GuildID, int, str],
        log_type: LogType,
        subject_id: Union[UserID, int, str],
        ttl: Optional[float] = None,
    ) -> IgnoreEntry:
        """
        Add an ignore entry.

        Args:
            guild_id: Guild the expected change happens in.
            log_type: Log type to suppress.
            subject_id: User the change applies to.
            ttl: Seconds before the entry expires; defaults to ``default_ttl``.

        Returns:
            IgnoreEntry: The registered entry.
        """
        key = self._key(guild_id, log_type, subject_id)
        lifetime = self.default_ttl if ttl is None else ttl
        expires_at = self._clock() + lifetime

        async with self._lock:
            self._deadlines.setdefault(key, []).append(expires_at)

        logger.debug("[IGNORE REGISTRY] Registered %s for %s in guild %s (ttl %.1fs)", log_type, key[2], key[0], lifetime)
        return IgnoreEntry(guild_id=key[0], log_type=log_type, subject_id=key[2], expires_at=expires_at)

    async def try_consume(
        self,
        guild_id: Union[GuildID, int, str],
        log_type: LogType,
        subject_id: Union[UserID, int, str],
    ) -> bool:
        """Remove one live entry for the key and return True, or return False if none exists."""
        key = self._key(guild_id, log_type, subject_id)
        async with self._lock:
            deadlines = self._deadlines.get(key)
            if not deadlines:
                return False

            now = self._clock()
            live = [deadline for deadline in deadlines if deadline > now]
            consumed = bool(live)
            if consumed:
                live.pop(0)

            if live:
                self._deadlines[key] = live
            else:
                del self._deadlines[key]
            return consumed

    async def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        async with self._lock:
            now = self._clock()
            removed = 0
            for key in list(self._deadlines):
                deadlines = self._deadlines[key]
                live = [deadline for deadline in deadlines if deadline > now]
                removed += len(deadlines) - len(live)
                if live:
                    self._deadlines[key] = live
                else:
                    del self._deadlines[key]

        if removed:
            logger.debug("[IGNORE REGISTRY] Purged %d expired entries", removed)
        return removed

    def pending(self, guild_id: Union[GuildID, int, str]) -> List[IgnoreEntry]:
        """Return the entries currently registered for a guild, expired ones included."""
        gid = GuildID(guild_id)
        return [
            IgnoreEntry(guild_id=key[0], log_type=key[1], subject_id=key[2], expires_at=deadline)
            for key, deadlines in self._deadlines.items()
            if key[0] == gid
            for deadline in deadlines
        ]


class SuppressionGate:
    """Decides whether a detected delta should be dropped instead of logged."""

    def __init__(self, registry: IgnoreRegistry) -> None:
        self.registry = registry

    async def should_suppress(
        self,
        guild_id: Union[GuildID, int, str],
        log_type: LogType,
        subject_id: Union[UserID, int, str],
    ) -> bool:
        """
        Consume a matching ignore entry if one exists.

        Registry failures fail open: a duplicate log line is preferable to a
        change that silently goes unlogged.
        """
        try:
            return await self.registry.try_consume(guild_id, log_type, subject_id)
        except Exception:
            logger.exception("[SUPPRESSION GATE] Ignore registry lookup failed; not suppressing %s", log_type)
            return False

    async def suppressing_log_type(
        self,
        guild_id: Union[GuildID, int, str],
        delta: Delta,
        subject_id: Union[UserID, int, str],
    ) -> Optional[LogType]:
        """
        Check the delta's candidate log types in priority order.

        For role deltas the combined role-change type is checked first, then
        the added-only and removed-only types that match the delta's shape.
        The first consumed entry wins and later candidates are left untouched.

        Returns:
            Optional[LogType]: The log type whose entry was consumed, or None.
        """
        for log_type in delta.suppression_candidates:
            if await self.should_suppress(guild_id, log_type, subject_id):
                return log_type
        return None
