"""Repository layer for archived log records."""
from auditcord.repositories.log_record_repo import ArchivedLogRecord, LogRecordRepo

__all__ = [
    "ArchivedLogRecord",
    "LogRecordRepo",
]
