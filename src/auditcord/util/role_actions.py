"""
Role edits performed by the bot itself.

The bot's own role edits come back through the gateway as ordinary member
updates. Each helper here registers the matching ignore entry before calling
Discord, so the audit pipeline drops that echo instead of logging the bot's
own action as if a moderator had made it.
"""

from __future__ import annotations

from typing import Collection, Optional, Sequence

import discord

from auditcord.audit.suppression import IgnoreEntry, IgnoreRegistry
from auditcord.datatypes.log_datatypes import LogType
from auditcord.util.logger import get_logger

logger = get_logger("role_actions")


def expected_role_log_type(added: Collection[int], removed: Collection[int]) -> Optional[LogType]:
    """Return the log type a role update with these sets will be emitted as."""
    if added and removed:
        return LogType.MEMBER_ROLE_CHANGES
    if added:
        return LogType.MEMBER_ROLE_ADD
    if removed:
        return LogType.MEMBER_ROLE_REMOVE
    return None


async def expect_role_change(
    registry: IgnoreRegistry,
    guild_id: int,
    member_id: int,
    added: Collection[int] = (),
    removed: Collection[int] = (),
    ttl: Optional[float] = None,
) -> Optional[IgnoreEntry]:
    """
    Register the ignore entry for an upcoming role change.

    Args:
        registry: Registry consulted by the audit pipeline.
        guild_id: Guild the change happens in.
        member_id: Member whose roles change.
        added: Role ids about to be granted.
        removed: Role ids about to be revoked.
        ttl: Lifetime of the entry; defaults to the registry TTL.

    Returns:
        Optional[IgnoreEntry]: The registered entry, or None when nothing changes.
    """
    log_type = expected_role_log_type(added, removed)
    if log_type is None:
        return None
    return await registry.register(guild_id, log_type, member_id, ttl=ttl)


async def apply_role_changes(
    member: discord.Member,
    registry: IgnoreRegistry,
    *,
    add: Sequence[discord.Role] = (),
    remove: Sequence[discord.Role] = (),
    reason: str | None = None,
) -> bool:
    """
    Grant and revoke roles on ``member`` without logging the bot's own edit.

    Roles the member already has (or lacks, for removal) are skipped so the
    registered ignore entry matches the update Discord will actually send.

    Returns:
        bool: True if Discord accepted the edit (or there was nothing to do),
        False if it was rejected.
    """
    current = {role.id for role in member.roles}
    to_add = [role for role in add if role.id not in current]
    to_remove = [role for role in remove if role.id in current]

    if not to_add and not to_remove:
        return True

    entry = await expect_role_change(
        registry,
        member.guild.id,
        member.id,
        added=[role.id for role in to_add],
        removed=[role.id for role in to_remove],
    )

    try:
        if to_add and to_remove:
            removed_ids = {role.id for role in to_remove}
            kept = [role for role in member.roles if role.id not in removed_ids and not role.is_default()]
            await member.edit(roles=kept + to_add, reason=reason)
        elif to_add:
            await member.add_roles(*to_add, reason=reason)
        else:
            await member.remove_roles(*to_remove, reason=reason)
    except discord.Forbidden:
        logger.warning("[ROLE ACTIONS] Missing permissions to edit roles of %s in guild %s", member.id, member.guild.id)
        await _retract(registry, entry)
        return False
    except discord.HTTPException as exc:
        logger.error("[ROLE ACTIONS] Failed to edit roles of %s: %s", member.id, exc)
        await _retract(registry, entry)
        return False

    logger.info(
        "[ROLE ACTIONS] Edited roles of %s in guild %s (+%d/-%d)",
        member.id, member.guild.id, len(to_add), len(to_remove),
    )
    return True


async def _retract(registry: IgnoreRegistry, entry: Optional[IgnoreEntry]) -> None:
    """Consume an entry registered for an edit Discord rejected."""
    if entry is not None:
        await registry.try_consume(entry.guild_id, entry.log_type, entry.subject_id)
