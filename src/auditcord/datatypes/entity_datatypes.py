"""
Snapshots of the platform entities the audit pipeline compares.

py-cord hands listeners live, cache-backed objects. The pipeline never works
on those directly: each event is reduced to immutable snapshots first so the
diff engine stays a pure function of its inputs and tests can build entities
without a gateway connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Union

import discord


class EventKind(Enum):
    """Raw gateway event kinds the pipeline knows how to handle."""

    MEMBER_UPDATE = "member_update"
    USER_UPDATE = "user_update"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class UserSnapshot:
    """Point-in-time copy of a Discord user's profile fields."""

    id: int
    username: str
    discriminator: str = "0"
    bot: bool = False
    avatar: Optional[str] = None

    @classmethod
    def from_user(cls, user: Union[discord.User, discord.Member]) -> "UserSnapshot":
        """
        Create a snapshot from a py-cord User or Member.

        Args:
            user: The Discord user to copy.

        Returns:
            UserSnapshot: Immutable copy of the profile fields.
        """
        avatar = user.avatar.key if user.avatar else None
        return cls(
            id=user.id,
            username=user.name,
            discriminator=str(user.discriminator),
            bot=bool(user.bot),
            avatar=avatar,
        )


@dataclass(frozen=True, slots=True)
class MemberSnapshot:
    """
    Point-in-time copy of a guild member.

    Attributes:
        id: The member's user id.
        guild_id: The guild the membership belongs to.
        nick: Guild nickname, ``None`` when unset.
        roles: Ids of the member's roles, excluding the default @everyone role.
        joined_at: When the member joined the guild.
        pending: Whether the member has not passed membership screening yet.
        premium_since: When the member started boosting, if they are.
        user: The member's user profile.
    """

    id: int
    guild_id: int
    nick: Optional[str] = None
    roles: FrozenSet[int] = frozenset()
    joined_at: Optional[datetime] = None
    pending: bool = False
    premium_since: Optional[datetime] = None
    user: Optional[UserSnapshot] = None

    @classmethod
    def from_member(cls, member: discord.Member) -> "MemberSnapshot":
        """
        Create a snapshot from a py-cord Member.

        Args:
            member: The Discord member to copy.

        Returns:
            MemberSnapshot: Immutable copy of the member's fields.
        """
        return cls(
            id=member.id,
            guild_id=member.guild.id,
            nick=member.nick,
            roles=frozenset(role.id for role in member.roles if not role.is_default()),
            joined_at=member.joined_at,
            pending=bool(member.pending),
            premium_since=member.premium_since,
            user=UserSnapshot.from_user(member),
        )


Entity = Union[MemberSnapshot, UserSnapshot]


@dataclass(frozen=True, slots=True)
class RawChangeEvent:
    """A change notification as delivered by the gateway.

    ``before`` is ``None`` when the cache had no prior state for the entity
    (cold cache after a restart or a missed event).
    """

    kind: EventKind
    after: Entity
    before: Optional[Entity] = None
