"""
Log types and the immutable record handed to log sinks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from auditcord.datatypes.discord_datatypes import GuildID, UserID


class LogType(Enum):
    """Enumeration of the log types produced by the audit pipeline."""

    MEMBER_NICK_CHANGE = "member_nick_change"
    MEMBER_ROLE_ADD = "member_role_add"
    MEMBER_ROLE_REMOVE = "member_role_remove"
    MEMBER_ROLE_CHANGES = "member_role_changes"
    MEMBER_USERNAME_CHANGE = "member_username_change"

    def __str__(self) -> str:
        return self.value


def _freeze(value: Any) -> Any:
    """Return ``value`` with every nested mapping made read-only and lists made tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    """Inverse of :func:`_freeze`: plain dicts and lists, ready for ``json.dumps``."""
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


@dataclass(frozen=True, slots=True)
class LogRecord:
    """A single structured log entry.

    Records are immutable once built: ``payload`` and every mapping nested in
    it are wrapped in read-only mappings so sinks cannot alter what other
    sinks see. Use :meth:`plain_payload` for a mutable copy.

    Attributes:
        log_type: What kind of change was logged.
        guild_id: Guild the change happened in.
        subject_id: The user the change applies to.
        payload: Field name to value mapping consumed by formatters and storage.
        timestamp: When the record was built (UTC).
    """

    log_type: LogType
    guild_id: GuildID
    subject_id: UserID
    payload: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", _freeze(self.payload))

    def to_dict(self) -> dict[str, Any]:
        """Return a plain, JSON-friendly representation of the record."""
        return {
            "log_type": self.log_type.value,
            "guild_id": str(self.guild_id),
            "subject_id": str(self.subject_id),
            "payload": self.plain_payload(),
            "timestamp": self.timestamp.isoformat(),
        }

    def plain_payload(self) -> dict[str, Any]:
        """Return a mutable deep copy of ``payload`` made of plain dicts and lists."""
        return _thaw(self.payload)
