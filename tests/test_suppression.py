import asyncio
from unittest.mock import AsyncMock

import pytest

from auditcord.audit.suppression import IgnoreRegistry, SuppressionGate
from auditcord.datatypes.delta_datatypes import NicknameChanged, RolesAdded, RolesChanged, RolesRemoved
from auditcord.datatypes.discord_datatypes import GuildID, UserID
from auditcord.datatypes.log_datatypes import LogType


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return IgnoreRegistry(default_ttl=10.0, clock=clock)


@pytest.mark.asyncio
async def test_entry_is_consumed_exactly_once(registry):
    await registry.register(1, LogType.MEMBER_ROLE_ADD, 2)

    assert await registry.try_consume(1, LogType.MEMBER_ROLE_ADD, 2) is True
    assert await registry.try_consume(1, LogType.MEMBER_ROLE_ADD, 2) is False


@pytest.mark.asyncio
async def test_keys_accept_ints_strings_and_wrappers(registry):
    await registry.register(GuildID(1), LogType.MEMBER_NICK_CHANGE, "2")

    assert await registry.try_consume("1", LogType.MEMBER_NICK_CHANGE, UserID(2)) is True


@pytest.mark.asyncio
async def test_entries_are_scoped_by_guild_type_and_subject(registry):
    await registry.register(1, LogType.MEMBER_ROLE_ADD, 2)

    assert await registry.try_consume(9, LogType.MEMBER_ROLE_ADD, 2) is False
    assert await registry.try_consume(1, LogType.MEMBER_ROLE_REMOVE, 2) is False
    assert await registry.try_consume(1, LogType.MEMBER_ROLE_ADD, 3) is False
    assert await registry.try_consume(1, LogType.MEMBER_ROLE_ADD, 2) is True


@pytest.mark.asyncio
async def test_two_registrations_suppress_two_events(registry):
    await registry.register(1, LogType.MEMBER_ROLE_ADD, 2)
    await registry.register(1, LogType.MEMBER_ROLE_ADD, 2)

    results = [await registry.try_consume(1, LogType.MEMBER_ROLE_ADD, 2) for _ in range(3)]

    assert results == [True, True, False]


@pytest.mark.asyncio
async def test_expired_entry_does_not_suppress(registry, clock):
    await registry.register(1, LogType.MEMBER_NICK_CHANGE, 2, ttl=5.0)
    clock.now += 5.0

    assert await registry.try_consume(1, LogType.MEMBER_NICK_CHANGE, 2) is False
    assert registry.pending(1) == []


@pytest.mark.asyncio
async def test_default_ttl_applies(registry, clock):
    entry = await registry.register(1, LogType.MEMBER_NICK_CHANGE, 2)

    assert entry.expires_at == pytest.approx(clock.now + 10.0)
    clock.now += 9.9
    assert await registry.try_consume(1, LogType.MEMBER_NICK_CHANGE, 2) is True


@pytest.mark.asyncio
async def test_purge_expired_removes_only_stale_entries(registry, clock):
    await registry.register(1, LogType.MEMBER_ROLE_ADD, 2, ttl=1.0)
    await registry.register(1, LogType.MEMBER_ROLE_REMOVE, 2, ttl=60.0)
    await registry.register(5, LogType.MEMBER_ROLE_ADD, 2, ttl=1.0)
    clock.now += 2.0

    removed = await registry.purge_expired()

    assert removed == 2
    remaining = registry.pending(1)
    assert [entry.log_type for entry in remaining] == [LogType.MEMBER_ROLE_REMOVE]
    assert registry.pending(5) == []


@pytest.mark.asyncio
async def test_concurrent_consumers_share_one_entry(registry):
    await registry.register(1, LogType.MEMBER_ROLE_ADD, 2)

    results = await asyncio.gather(*(registry.try_consume(1, LogType.MEMBER_ROLE_ADD, 2) for _ in range(5)))

    assert sorted(results) == [False, False, False, False, True]


@pytest.mark.asyncio
async def test_combined_registration_suppresses_additions_only(registry):
    gate = SuppressionGate(registry)
    await registry.register(1, LogType.MEMBER_ROLE_CHANGES, 2)

    matched = await gate.suppressing_log_type(1, RolesAdded(roles=frozenset({5})), 2)

    assert matched is LogType.MEMBER_ROLE_CHANGES
    assert registry.pending(1) == []


@pytest.mark.asyncio
async def test_combined_type_takes_precedence_over_narrow_type(registry):
    gate = SuppressionGate(registry)
    await registry.register(1, LogType.MEMBER_ROLE_REMOVE, 2)
    await registry.register(1, LogType.MEMBER_ROLE_CHANGES, 2)

    matched = await gate.suppressing_log_type(1, RolesRemoved(roles=frozenset({5})), 2)

    assert matched is LogType.MEMBER_ROLE_CHANGES
    # the narrower entry is left for a later event
    assert [entry.log_type for entry in registry.pending(1)] == [LogType.MEMBER_ROLE_REMOVE]


@pytest.mark.asyncio
async def test_narrow_types_match_their_own_shape_only(registry):
    gate = SuppressionGate(registry)
    await registry.register(1, LogType.MEMBER_ROLE_REMOVE, 2)

    assert await gate.suppressing_log_type(1, RolesAdded(roles=frozenset({5})), 2) is None
    assert await gate.suppressing_log_type(1, RolesChanged(added=frozenset({5}), removed=frozenset({6})), 2) is LogType.MEMBER_ROLE_REMOVE


@pytest.mark.asyncio
async def test_nickname_delta_checks_its_own_type(registry):
    gate = SuppressionGate(registry)
    await registry.register(1, LogType.MEMBER_ROLE_CHANGES, 2)

    assert await gate.suppressing_log_type(1, NicknameChanged(old_nick="a", new_nick="b"), 2) is None

    await registry.register(1, LogType.MEMBER_NICK_CHANGE, 2)
    assert await gate.suppressing_log_type(1, NicknameChanged(old_nick="a", new_nick="b"), 2) is LogType.MEMBER_NICK_CHANGE


@pytest.mark.asyncio
async def test_gate_fails_open_when_registry_breaks():
    broken = AsyncMock()
    broken.try_consume.side_effect = RuntimeError("corrupt")
    gate = SuppressionGate(broken)

    assert await gate.should_suppress(1, LogType.MEMBER_ROLE_ADD, 2) is False
    assert await gate.suppressing_log_type(1, RolesAdded(roles=frozenset({1})), 2) is None
