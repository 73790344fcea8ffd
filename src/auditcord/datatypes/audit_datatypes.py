"""
Audit trail entries and the actors resolved from them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

import discord


@dataclass(frozen=True, slots=True)
class ResolvedActor:
    """A platform user identified as the author of a change."""

    id: int
    username: str
    discriminator: str = "0"
    bot: bool = False

    @classmethod
    def from_user(cls, user: Union[discord.User, discord.Member]) -> "ResolvedActor":
        return cls(
            id=user.id,
            username=user.name,
            discriminator=str(user.discriminator),
            bot=bool(user.bot),
        )


@dataclass(frozen=True, slots=True)
class UnknownActor:
    """Sentinel actor used when no audit entry could be correlated."""

    id: int = 0
    username: str = "Unknown"
    discriminator: str = "0000"
    bot: bool = False


Actor = Union[ResolvedActor, UnknownActor]

UNKNOWN_ACTOR = UnknownActor()


@dataclass(frozen=True, slots=True)
class AuditLogEntry:
    """
    One row of a guild's audit trail.

    Attributes:
        actor_id: Id of the user who performed the action.
        action_type: The audit action recorded by the platform.
        target_id: Id of the entity the action was applied to.
        created_at: When the platform recorded the action (UTC).
        reason: Optional audit reason supplied by the actor.
        actor: The resolved actor, when the platform returned one.
    """

    actor_id: int
    action_type: discord.AuditLogAction
    target_id: Optional[int]
    created_at: datetime
    reason: Optional[str] = None
    actor: Optional[ResolvedActor] = None

    @classmethod
    def from_discord(cls, entry: discord.AuditLogEntry) -> "AuditLogEntry":
        """Copy a py-cord audit log entry into an immutable value."""
        user = entry.user
        target = entry.target
        return cls(
            actor_id=user.id if user is not None else 0,
            action_type=entry.action,
            target_id=getattr(target, "id", None),
            created_at=entry.created_at,
            reason=entry.reason,
            actor=ResolvedActor.from_user(user) if user is not None else None,
        )

    def resolve_actor(self) -> ResolvedActor:
        """Return the entry's actor, falling back to a bare id-only actor."""
        if self.actor is not None:
            return self.actor
        return ResolvedActor(id=self.actor_id, username=str(self.actor_id))
