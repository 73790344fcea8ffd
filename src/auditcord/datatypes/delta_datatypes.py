"""
Typed deltas produced by the diff engine.

A delta describes one semantic change category detected between two
snapshots of the same entity. Every delta knows which log type it is emitted
as, which log types can suppress it (in priority order), which audit action
attributes it, and how to undo itself on the ``after`` snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import ClassVar, FrozenSet, Optional, Tuple

import discord

from auditcord.datatypes.entity_datatypes import Entity
from auditcord.datatypes.log_datatypes import LogType

NO_NICKNAME = "<none>"


def display_nick(nick: Optional[str]) -> str:
    """Return the nickname as shown in logs, with the sentinel for no nickname."""
    return nick if nick is not None else NO_NICKNAME


class Delta:
    """Base class for all deltas."""

    __slots__ = ()

    audit_action: ClassVar[Optional[discord.AuditLogAction]] = None

    @property
    def log_type(self) -> LogType:
        raise NotImplementedError

    @property
    def suppression_candidates(self) -> Tuple[LogType, ...]:
        """Log types whose ignore entries suppress this delta, highest priority first."""
        return (self.log_type,)

    def revert(self, entity: Entity) -> Entity:
        """Return ``entity`` with this change undone."""
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class NicknameChanged(Delta):
    """Guild nickname changed. ``old``/``new`` are the display strings (``<none>`` when unset)."""

    old_nick: Optional[str]
    new_nick: Optional[str]

    audit_action: ClassVar[Optional[discord.AuditLogAction]] = discord.AuditLogAction.member_update

    @property
    def old(self) -> str:
        return display_nick(self.old_nick)

    @property
    def new(self) -> str:
        return display_nick(self.new_nick)

    @property
    def log_type(self) -> LogType:
        return LogType.MEMBER_NICK_CHANGE

    def revert(self, entity: Entity) -> Entity:
        return replace(entity, nick=self.old_nick)


@dataclass(frozen=True, slots=True)
class UsernameChanged(Delta):
    """Username or discriminator changed."""

    old_username: str
    old_discriminator: str
    new_username: str
    new_discriminator: str

    @property
    def old(self) -> str:
        return f"{self.old_username}#{self.old_discriminator}"

    @property
    def new(self) -> str:
        return f"{self.new_username}#{self.new_discriminator}"

    @property
    def log_type(self) -> LogType:
        return LogType.MEMBER_USERNAME_CHANGE

    def revert(self, entity: Entity) -> Entity:
        return replace(entity, username=self.old_username, discriminator=self.old_discriminator)


@dataclass(frozen=True, slots=True)
class RolesAdded(Delta):
    """Roles were granted and none were revoked."""

    roles: FrozenSet[int]

    audit_action: ClassVar[Optional[discord.AuditLogAction]] = discord.AuditLogAction.member_role_update

    @property
    def log_type(self) -> LogType:
        return LogType.MEMBER_ROLE_ADD

    @property
    def suppression_candidates(self) -> Tuple[LogType, ...]:
        return (LogType.MEMBER_ROLE_CHANGES, LogType.MEMBER_ROLE_ADD)

    def revert(self, entity: Entity) -> Entity:
        return replace(entity, roles=frozenset(entity.roles - self.roles))


@dataclass(frozen=True, slots=True)
class RolesRemoved(Delta):
    """Roles were revoked and none were granted."""

    roles: FrozenSet[int]

    audit_action: ClassVar[Optional[discord.AuditLogAction]] = discord.AuditLogAction.member_role_update

    @property
    def log_type(self) -> LogType:
        return LogType.MEMBER_ROLE_REMOVE

    @property
    def suppression_candidates(self) -> Tuple[LogType, ...]:
        return (LogType.MEMBER_ROLE_CHANGES, LogType.MEMBER_ROLE_REMOVE)

    def revert(self, entity: Entity) -> Entity:
        return replace(entity, roles=frozenset(entity.roles | self.roles))


@dataclass(frozen=True, slots=True)
class RolesChanged(Delta):
    """Roles were granted and revoked in the same update."""

    added: FrozenSet[int]
    removed: FrozenSet[int]

    audit_action: ClassVar[Optional[discord.AuditLogAction]] = discord.AuditLogAction.member_role_update

    @property
    def log_type(self) -> LogType:
        return LogType.MEMBER_ROLE_CHANGES

    @property
    def suppression_candidates(self) -> Tuple[LogType, ...]:
        return (LogType.MEMBER_ROLE_CHANGES, LogType.MEMBER_ROLE_ADD, LogType.MEMBER_ROLE_REMOVE)

    def revert(self, entity: Entity) -> Entity:
        return replace(entity, roles=frozenset((entity.roles - self.added) | self.removed))
