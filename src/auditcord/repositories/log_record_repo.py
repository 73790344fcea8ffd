"""
Persistent storage for emitted audit log records.

Timestamps are stored as INTEGER unix seconds so retention queries are plain
integer comparisons. Payloads are stored as JSON text.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiosqlite

from auditcord.datatypes.log_datatypes import LogRecord, LogType
from auditcord.util.logger import get_logger

logger = get_logger("log_record_repo")


@dataclass
class ArchivedLogRecord:
    """A single row from the ``audit_log_records`` table."""
    id: int
    guild_id: int
    log_type: LogType
    subject_id: str
    created_at: int   # unix seconds (UTC)
    payload: Dict[str, Any] = field(default_factory=dict)


class LogRecordRepo:
    """Low-level CRUD for the ``audit_log_records`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(conn: aiosqlite.Connection, record: LogRecord) -> int:
        """Insert one record and return its row id."""
        cursor = await conn.execute(
            """
            INSERT INTO audit_log_records (guild_id, log_type, subject_id, payload, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                record.guild_id.to_int(),
                record.log_type.value,
                str(record.subject_id),
                json.dumps(record.plain_payload(), default=str),
                int(record.timestamp.timestamp()),
            ),
        )
        return cursor.lastrowid

    @staticmethod
    async def delete_older_than(conn: aiosqlite.Connection, cutoff: int) -> int:
        """Remove rows created before ``cutoff`` (unix seconds); return how many."""
        cursor = await conn.execute(
            "DELETE FROM audit_log_records WHERE created_at < ?",
            (cutoff,),
        )
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def fetch_recent(
        conn: aiosqlite.Connection,
        guild_id: int,
        limit: int = 50,
        log_type: Optional[LogType] = None,
    ) -> List[ArchivedLogRecord]:
        """Return the newest rows for a guild, optionally of one log type."""
        query = (
            "SELECT id, guild_id, log_type, subject_id, payload, created_at "
            "FROM audit_log_records WHERE guild_id = ?"
        )
        params: list[Any] = [guild_id]
        if log_type is not None:
            query += " AND log_type = ?"
            params.append(log_type.value)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()
        records = []
        for row in rows:
            try:
                payload = json.loads(row[4])
            except (TypeError, ValueError):
                logger.warning("[LOG RECORD REPO] Unreadable payload in row %s", row[0])
                payload = {}
            records.append(
                ArchivedLogRecord(
                    id=row[0],
                    guild_id=row[1],
                    log_type=LogType(row[2]),
                    subject_id=str(row[3]),
                    payload=payload,
                    created_at=row[5],
                )
            )
        return records
