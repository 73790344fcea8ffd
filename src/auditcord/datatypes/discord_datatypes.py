"""
Type-safe wrapper classes for Discord identifiers.

Snowflakes arrive from py-cord as ints, from the archive database as ints and
from configuration files as strings. These wrappers give the audit pipeline
one comparable, hashable representation for guild and user keys.
"""

from __future__ import annotations

from typing import Union
import discord


class _Snowflake:
    """
    Shared behaviour for snowflake wrappers.

    The value is stored as a string for JSON parity and compares equal to
    the same id given as ``int`` or ``str``.
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "_Snowflake"]) -> None:
        """
        Args:
            value: The snowflake ID as a string, int, or wrapper of the same type.

        Raises:
            ValueError: If the value cannot be converted to a valid snowflake.
        """
        if isinstance(value, type(self)):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls."""
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, type(self)):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(_Snowflake):
    """
    Type-safe wrapper for Discord user snowflake IDs.

    Example:
        >>> uid = UserID.from_int(123456789012345678)
        >>> uid.to_int()
        123456789012345678
        >>> UserID("123456789012345678") == 123456789012345678
        True
    """

    __slots__ = ()

    @classmethod
    def from_user(cls, member: Union[discord.Member, discord.User]) -> "UserID":
        """Create a UserID from a Discord Member or User object."""
        return cls(member.id)


class GuildID(_Snowflake):
    """Type-safe wrapper for Discord guild snowflake IDs."""

    __slots__ = ()

    @classmethod
    def from_guild(cls, guild: discord.Guild) -> "GuildID":
        """Create a GuildID from a Discord Guild object."""
        return cls(guild.id)
