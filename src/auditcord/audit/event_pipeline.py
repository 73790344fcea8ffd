"""
Orchestration of one raw change event into zero or more log records.

Every event walks the same states::

    Received -> Normalized -> Diffed -> {Suppressed | Correlating -> Emitted}

Events of one guild are processed one at a time in arrival order; events of
different guilds run concurrently. Within an event, suppression is checked
per delta in declaration order (consumption is stateful), audit lookups for
the surviving deltas run concurrently, and records are emitted in
declaration order. A failure while handling one delta is logged and marks
only that delta as failed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional

from auditcord.audit.audit_correlator import AuditCorrelator
from auditcord.audit.diff_engine import diff
from auditcord.audit.log_emitter import LogEmitter
from auditcord.audit.normalizer import NormalizedProjection, normalize
from auditcord.audit.suppression import SuppressionGate
from auditcord.configuration.audit_settings import AuditSettings
from auditcord.datatypes.audit_datatypes import UNKNOWN_ACTOR, Actor
from auditcord.datatypes.delta_datatypes import (
    Delta,
    NicknameChanged,
    RolesAdded,
    RolesChanged,
    RolesRemoved,
    UsernameChanged,
)
from auditcord.datatypes.discord_datatypes import GuildID, UserID
from auditcord.datatypes.entity_datatypes import Entity, EventKind, RawChangeEvent
from auditcord.datatypes.log_datatypes import LogRecord, LogType
from auditcord.util.logger import get_logger

logger = get_logger("event_pipeline")

RoleNameResolver = Callable[[Any, int], Optional[str]]


class EventStatus(Enum):
    IGNORED_NO_PRIOR_STATE = "ignored_no_prior_state"
    NO_OP = "no_op"
    PROCESSED = "processed"


class DeltaStatus(Enum):
    PENDING = "pending"
    DISABLED = "disabled"
    SUPPRESSED = "suppressed"
    EMITTED = "emitted"
    FAILED = "failed"


@dataclass(slots=True)
class DeltaOutcome:
    """Terminal state reached by one delta."""

    delta: Delta
    status: DeltaStatus = DeltaStatus.PENDING
    record: Optional[LogRecord] = None
    suppressed_by: Optional[LogType] = None


@dataclass(slots=True)
class PipelineResult:
    """What happened to one raw event."""

    status: EventStatus
    outcomes: List[DeltaOutcome] = field(default_factory=list)

    @property
    def records(self) -> List[LogRecord]:
        return [outcome.record for outcome in self.outcomes if outcome.record is not None]


def discord_role_name(guild: Any, role_id: int) -> Optional[str]:
    """Look a role name up in the py-cord guild cache."""
    role = guild.get_role(role_id)
    return role.name if role is not None else None


class AuditEventPipeline:
    """
    Turns raw member/user change events into correlated, suppressible log records.

    Attributes:
        correlator (AuditCorrelator): Resolves who performed a change.
        gate (SuppressionGate): Drops changes the bot announced in advance.
        emitter (LogEmitter): Receives finished records.
        disabled_log_types (FrozenSet[LogType]): Log types that are never emitted.
    """

    def __init__(
        self,
        correlator: AuditCorrelator,
        gate: SuppressionGate,
        emitter: LogEmitter,
        *,
        role_name_resolver: RoleNameResolver = discord_role_name,
        disabled_log_types: Iterable[LogType] = (),
    ) -> None:
        self.correlator = correlator
        self.gate = gate
        self.emitter = emitter
        self.disabled_log_types: FrozenSet[LogType] = frozenset(disabled_log_types)
        self._role_name_resolver = role_name_resolver
        self._guild_locks: Dict[GuildID, asyncio.Lock] = {}
        self._handlers: Dict[EventKind, Callable[[Any, Optional[Entity], Entity], Awaitable[PipelineResult]]] = {
            EventKind.MEMBER_UPDATE: self.on_member_update,
            EventKind.USER_UPDATE: self.on_user_update,
        }

    @classmethod
    def from_settings(
        cls,
        correlator: AuditCorrelator,
        gate: SuppressionGate,
        emitter: LogEmitter,
        settings: AuditSettings,
    ) -> "AuditEventPipeline":
        """Build a pipeline; with ``enabled: false`` every log type is disabled."""
        disabled = settings.disabled_log_types if settings.enabled else frozenset(LogType)
        return cls(correlator, gate, emitter, disabled_log_types=disabled)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle(
        self,
        kind: EventKind,
        guild: Any,
        before: Optional[Entity],
        after: Entity,
    ) -> PipelineResult:
        """
        Dispatch one raw event to the handler registered for its kind.

        Returns once every delta of the event reached a terminal state.

        Raises:
            ValueError: If no handler is registered for ``kind``.
        """
        handler = self._handlers.get(kind)
        if handler is None:
            raise ValueError(f"No handler registered for event kind {kind!r}")
        return await handler(guild, before, after)

    async def handle_event(self, guild: Any, event: RawChangeEvent) -> PipelineResult:
        return await self.handle(event.kind, guild, event.before, event.after)

    async def on_member_update(self, guild: Any, before: Optional[Entity], after: Entity) -> PipelineResult:
        return await self._process(guild, before, after, subject_key="member", exclude_fields=("roles", "user"))

    async def on_user_update(self, guild: Any, before: Optional[Entity], after: Entity) -> PipelineResult:
        return await self._process(guild, before, after, subject_key="user", exclude_fields=())

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _lock_for(self, guild_id: GuildID) -> asyncio.Lock:
        lock = self._guild_locks.get(guild_id)
        if lock is None:
            lock = asyncio.Lock()
            self._guild_locks[guild_id] = lock
        return lock

    async def _process(
        self,
        guild: Any,
        before: Optional[Entity],
        after: Entity,
        *,
        subject_key: str,
        exclude_fields: Iterable[str],
    ) -> PipelineResult:
        if before is None:
            logger.debug("[EVENT PIPELINE] No prior state for %s in guild %s; skipping", after.id, guild.id)
            return PipelineResult(EventStatus.IGNORED_NO_PRIOR_STATE)

        event_time = datetime.now(timezone.utc)
        guild_id = GuildID.from_guild(guild)
        subject_id = UserID.from_user(after)

        async with self._lock_for(guild_id):
            deltas = diff(before, after)
            if not deltas:
                return PipelineResult(EventStatus.NO_OP)

            subject = normalize(after, exclude_fields)
            outcomes = [DeltaOutcome(delta=delta) for delta in deltas]

            correlating: List[DeltaOutcome] = []
            for outcome in outcomes:
                try:
                    if await self._gate(guild_id, subject_id, outcome):
                        correlating.append(outcome)
                except Exception:
                    logger.exception("[EVENT PIPELINE] Suppression check failed for %s", type(outcome.delta).__name__)
                    outcome.status = DeltaStatus.FAILED

            actors = await asyncio.gather(
                *(self._correlate(guild, outcome.delta, after.id, event_time) for outcome in correlating),
                return_exceptions=True,
            )

            for outcome, actor in zip(correlating, actors):
                if isinstance(actor, Exception):
                    logger.warning("[EVENT PIPELINE] Correlation raised %r; using unknown actor", actor)
                    actor = UNKNOWN_ACTOR
                try:
                    record = self._build_record(guild, guild_id, subject_id, subject_key, subject, outcome.delta, actor)
                    self.emitter.emit(record)
                except Exception:
                    logger.exception("[EVENT PIPELINE] Failed to emit %s", outcome.delta.log_type)
                    outcome.status = DeltaStatus.FAILED
                    continue
                outcome.record = record
                outcome.status = DeltaStatus.EMITTED

        return PipelineResult(EventStatus.PROCESSED, outcomes)

    async def _gate(self, guild_id: GuildID, subject_id: UserID, outcome: DeltaOutcome) -> bool:
        """Return True when the delta should proceed to correlation."""
        log_type = outcome.delta.log_type
        if log_type in self.disabled_log_types:
            outcome.status = DeltaStatus.DISABLED
            return False

        matched = await self.gate.suppressing_log_type(guild_id, outcome.delta, subject_id)
        if matched is not None:
            logger.info(
                "[EVENT PIPELINE] Suppressed %s for %s in guild %s (ignore entry %s)",
                log_type, subject_id, guild_id, matched,
            )
            outcome.status = DeltaStatus.SUPPRESSED
            outcome.suppressed_by = matched
            return False
        return True

    async def _correlate(self, guild: Any, delta: Delta, target_id: int, event_time: datetime) -> Optional[Actor]:
        if delta.audit_action is None:
            return None
        return await self.correlator.find_actor(guild, delta.audit_action, target_id, now=event_time)

    # ------------------------------------------------------------------
    # Record building
    # ------------------------------------------------------------------

    def _role_names(self, guild: Any, role_ids: Iterable[int]) -> str:
        names = []
        for role_id in sorted(role_ids):
            try:
                name = self._role_name_resolver(guild, role_id)
            except Exception:
                logger.debug("[EVENT PIPELINE] Role lookup failed for %s", role_id, exc_info=True)
                name = None
            names.append(name if name is not None else f"Unknown ({role_id})")
        return ", ".join(names)

    def _build_record(
        self,
        guild: Any,
        guild_id: GuildID,
        subject_id: UserID,
        subject_key: str,
        subject: NormalizedProjection,
        delta: Delta,
        actor: Optional[Actor],
    ) -> LogRecord:
        payload: Dict[str, Any] = {subject_key: subject}

        if isinstance(delta, NicknameChanged):
            payload["old_nick"] = delta.old
            payload["new_nick"] = delta.new
        elif isinstance(delta, RolesChanged):
            payload["added_roles"] = self._role_names(guild, delta.added)
            payload["removed_roles"] = self._role_names(guild, delta.removed)
        elif isinstance(delta, (RolesAdded, RolesRemoved)):
            payload["roles"] = self._role_names(guild, delta.roles)
        elif isinstance(delta, UsernameChanged):
            payload["old_name"] = delta.old
            payload["new_name"] = delta.new

        if actor is not None:
            payload["mod"] = normalize(actor)

        return LogRecord(log_type=delta.log_type, guild_id=guild_id, subject_id=subject_id, payload=payload)
