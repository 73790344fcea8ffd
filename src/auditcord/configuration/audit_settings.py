from typing import Any, Dict, FrozenSet

from auditcord.datatypes.log_datatypes import LogType


class AuditSettings:
    """Helper exposing typed accessors for the ``audit_settings`` config block.

    Values are coerced on access so a hand-edited YAML file with strings
    where numbers belong still yields usable settings.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        """Return the underlying mapping."""
        return self.data

    @property
    def enabled(self) -> bool:
        return bool(self.data.get("enabled", True))

    @property
    def recency_window_seconds(self) -> float:
        """Maximum age of an audit entry that may still be correlated."""
        return float(self.data.get("recency_window_seconds", 30.0))

    @property
    def lookup_timeout_seconds(self) -> float:
        """Upper bound for one audit lookup, retries included."""
        return float(self.data.get("lookup_timeout_seconds", 5.0))

    @property
    def query_limit(self) -> int:
        return int(self.data.get("query_limit", 10))

    @property
    def retry_attempts(self) -> int:
        return max(1, int(self.data.get("retry_attempts", 3)))

    @property
    def retry_delay_seconds(self) -> float:
        return float(self.data.get("retry_delay_seconds", 0.5))

    @property
    def ignore_ttl_seconds(self) -> float:
        """How long an unconsumed ignore entry stays registered."""
        return float(self.data.get("ignore_ttl_seconds", 10.0))

    @property
    def disabled_log_types(self) -> FrozenSet[LogType]:
        raw = self.data.get("disabled_log_types", [])
        if not isinstance(raw, (list, tuple, set)):
            return frozenset()
        disabled = set()
        for value in raw:
            try:
                disabled.add(LogType(str(value).lower()))
            except ValueError:
                continue
        return frozenset(disabled)
