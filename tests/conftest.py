"""
Pytest configuration and fixtures for Auditcord tests.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, Iterable, Optional

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from auditcord.datatypes.entity_datatypes import MemberSnapshot, UserSnapshot  # noqa: E402


GUILD_ID = 1111
MEMBER_ID = 2222
MODERATOR_ID = 3333


class FakeRole:
    def __init__(self, role_id: int, name: str = "", default: bool = False):
        self.id = role_id
        self.name = name or f"role-{role_id}"
        self._default = default

    def is_default(self) -> bool:
        return self._default


class FakeGuild:
    """Minimal stand-in for a py-cord Guild: id, a role cache and member lookup."""

    def __init__(self, guild_id: int = GUILD_ID, roles: Optional[Dict[int, str]] = None, members: Iterable[int] = ()):
        self.id = guild_id
        self._roles = {role_id: FakeRole(role_id, name) for role_id, name in (roles or {}).items()}
        self._members = set(members)

    def get_role(self, role_id: int):
        return self._roles.get(role_id)

    def get_member(self, member_id: int):
        if member_id in self._members:
            return SimpleNamespace(id=member_id)
        return None


def make_member(
    nick: Optional[str] = None,
    roles: Iterable[int] = (),
    member_id: int = MEMBER_ID,
    guild_id: int = GUILD_ID,
) -> MemberSnapshot:
    return MemberSnapshot(
        id=member_id,
        guild_id=guild_id,
        nick=nick,
        roles=frozenset(roles),
        joined_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        user=UserSnapshot(id=member_id, username="alice", discriminator="0001"),
    )


def make_user(username: str = "alice", discriminator: str = "0001", user_id: int = MEMBER_ID) -> UserSnapshot:
    return UserSnapshot(id=user_id, username=username, discriminator=discriminator)


@pytest.fixture
def guild() -> FakeGuild:
    return FakeGuild(roles={10: "Muted", 20: "Helper", 30: "Verified"}, members=[MEMBER_ID])
