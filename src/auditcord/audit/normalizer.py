"""
Scalar projections of entities for log payloads and equality checks.

Each entity type has an explicit allow-list of fields. Anything outside that
list, anything named in ``exclude_fields`` and any value that is not a scalar
is left out, so a projection is always safe to compare, serialize and store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Tuple

from auditcord.datatypes.audit_datatypes import ResolvedActor, UnknownActor
from auditcord.datatypes.entity_datatypes import MemberSnapshot, UserSnapshot

NormalizedProjection = Dict[str, Any]

SCALAR_TYPES = (str, int, float, bool)

PROJECTION_FIELDS: Dict[type, Tuple[str, ...]] = {
    MemberSnapshot: ("id", "guild_id", "nick", "roles", "joined_at", "pending", "premium_since", "user"),
    UserSnapshot: ("id", "username", "discriminator", "bot", "avatar"),
    ResolvedActor: ("id", "username", "discriminator", "bot"),
    UnknownActor: ("id", "username", "discriminator", "bot"),
}


def _to_scalar(value: Any) -> Tuple[bool, Any]:
    """Return ``(True, value)`` for scalars, datetimes as ISO text, else ``(False, None)``."""
    if value is None or isinstance(value, SCALAR_TYPES):
        return True, value
    if isinstance(value, datetime):
        return True, value.isoformat()
    return False, None


def normalize(entity: Any, exclude_fields: Iterable[str] = ()) -> NormalizedProjection:
    """
    Reduce an entity to a mapping of scalar fields.

    Args:
        entity: A snapshot, actor or plain mapping. Unknown types project to ``{}``.
        exclude_fields: Field names to drop even when they are scalars.

    Returns:
        NormalizedProjection: Field name to scalar value.
    """
    excluded = set(exclude_fields)

    if isinstance(entity, Mapping):
        items = ((key, entity[key]) for key in entity if isinstance(key, str))
    else:
        field_names = PROJECTION_FIELDS.get(type(entity), ())
        items = ((name, getattr(entity, name, None)) for name in field_names)

    projection: NormalizedProjection = {}
    for name, value in items:
        if name in excluded:
            continue
        is_scalar, scalar = _to_scalar(value)
        if is_scalar:
            projection[name] = scalar
    return projection
