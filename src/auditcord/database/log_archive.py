"""
Log sink that archives every emitted record in SQLite.
"""

from __future__ import annotations

from pathlib import Path
from datetime import datetime, timedelta, timezone
from typing import List

from auditcord.database.db_connection import ConnectionManager
from auditcord.database.db_schema import SchemaManager
from auditcord.datatypes.log_datatypes import LogRecord, LogType
from auditcord.repositories.log_record_repo import ArchivedLogRecord, LogRecordRepo
from auditcord.util.logger import get_logger

logger = get_logger("log_archive")


class LogArchiveSink:
    """
    Persists log records through :class:`LogRecordRepo`.

    Subscribe an instance to the :class:`~auditcord.audit.log_emitter.LogEmitter`;
    calling it returns a coroutine, which the emitter schedules as a task.
    """

    def __init__(self, connection: ConnectionManager, repo: LogRecordRepo | None = None) -> None:
        self.connection = connection
        self.repo = repo or LogRecordRepo()

    async def initialize(self, path: Path) -> None:
        """Open the database (if needed) and create the schema."""
        if not self.connection.is_open:
            await self.connection.open(path)
        await SchemaManager.initialize_schema(self.connection.connection)

    async def __call__(self, record: LogRecord) -> int:
        async with self.connection.transaction() as conn:
            row_id = await self.repo.insert(conn, record)
        logger.debug("[LOG ARCHIVE] Stored %s for %s as row %s", record.log_type, record.subject_id, row_id)
        return row_id

    async def fetch_recent(
        self,
        guild_id: int,
        limit: int = 50,
        log_type: LogType | None = None,
    ) -> List[ArchivedLogRecord]:
        """Return the newest archived records of a guild, newest first."""
        async with self.connection.read() as conn:
            return await self.repo.fetch_recent(conn, guild_id, limit=limit, log_type=log_type)

    async def prune(self, retention_days: int) -> int:
        """Delete records older than ``retention_days``; return how many were removed."""
        cutoff = int((datetime.now(timezone.utc) - timedelta(days=retention_days)).timestamp())
        async with self.connection.transaction() as conn:
            removed = await self.repo.delete_older_than(conn, cutoff)
        if removed:
            logger.info("[LOG ARCHIVE] Pruned %d records older than %d days", removed, retention_days)
        return removed
