from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from auditcord.configuration.audit_settings import AuditSettings
from auditcord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()
DEFAULT_DATABASE_PATH = "./data/audit_logs.db"


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches contents of ``./config/app_config.yml``, exposes
    dictionary-like access helpers, and resolves the audit pipeline tuning
    through :class:`AuditSettings`. Uses fcntl file locks for safe concurrent
    access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            logger.warning("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def audit_settings(self) -> AuditSettings:
        """Return the audit pipeline settings wrapped in an AuditSettings helper."""
        settings = self._data.get("audit_settings", {})
        if not isinstance(settings, dict):
            settings = {}
        return AuditSettings(settings)

    @property
    def database_path(self) -> Path:
        """Return the path of the SQLite log archive."""
        value = self._data.get("database_path") or DEFAULT_DATABASE_PATH
        return Path(str(value)).resolve()

    @property
    def archive_retention_days(self) -> int:
        """Return how many days archived log records are kept. Default is 90."""
        try:
            return max(1, int(self._data.get("archive_retention_days", 90)))
        except (TypeError, ValueError):
            return 90


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
