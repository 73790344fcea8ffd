"""
Detect which semantic changes happened between two entity snapshots.

Detectors run in a fixed order (nickname, roles, username) so the deltas of
one event always come out in the same sequence. A detector only applies to
entities that carry its fields; a detector that raises is logged and skipped
without affecting the others.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from auditcord.datatypes.delta_datatypes import (
    Delta,
    NicknameChanged,
    RolesAdded,
    RolesChanged,
    RolesRemoved,
    UsernameChanged,
    display_nick,
)
from auditcord.datatypes.entity_datatypes import Entity, MemberSnapshot, UserSnapshot
from auditcord.util.logger import get_logger

logger = get_logger("diff_engine")

Detector = Callable[[Entity, Entity], Optional[Delta]]


def diff_nickname(before: Entity, after: Entity) -> Optional[NicknameChanged]:
    if not (isinstance(before, MemberSnapshot) and isinstance(after, MemberSnapshot)):
        return None
    if display_nick(before.nick) == display_nick(after.nick):
        return None
    return NicknameChanged(old_nick=before.nick, new_nick=after.nick)


def diff_roles(before: Entity, after: Entity) -> Optional[Delta]:
    """Compare role sets; both directions at once collapse into one RolesChanged."""
    if not (isinstance(before, MemberSnapshot) and isinstance(after, MemberSnapshot)):
        return None
    old_roles, new_roles = frozenset(before.roles), frozenset(after.roles)
    added = new_roles - old_roles
    removed = old_roles - new_roles

    if added and removed:
        return RolesChanged(added=added, removed=removed)
    if added:
        return RolesAdded(roles=added)
    if removed:
        return RolesRemoved(roles=removed)
    return None


def diff_username(before: Entity, after: Entity) -> Optional[UsernameChanged]:
    if not (isinstance(before, UserSnapshot) and isinstance(after, UserSnapshot)):
        return None
    if before.username == after.username and before.discriminator == after.discriminator:
        return None
    return UsernameChanged(
        old_username=before.username,
        old_discriminator=before.discriminator,
        new_username=after.username,
        new_discriminator=after.discriminator,
    )


DETECTORS: Tuple[Tuple[str, Detector], ...] = (
    ("nickname", diff_nickname),
    ("roles", diff_roles),
    ("username", diff_username),
)


def diff(before: Entity, after: Entity) -> List[Delta]:
    """
    Return the deltas between ``before`` and ``after`` in declaration order.

    Args:
        before: Snapshot prior to the change. Callers short-circuit when it is missing.
        after: Snapshot after the change.

    Returns:
        List[Delta]: At most one delta per change category; empty when nothing changed.
    """
    deltas: List[Delta] = []
    for name, detector in DETECTORS:
        try:
            delta = detector(before, after)
        except Exception:
            logger.exception("[DIFF ENGINE] %s detector failed for entity %s", name, getattr(after, "id", "?"))
            continue
        if delta is not None:
            deltas.append(delta)
    return deltas
