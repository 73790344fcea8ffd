"""
Fan-out of finished log records to their sinks.

Emission is fire-and-forget for the pipeline: sinks are called in
subscription order, coroutine sinks are scheduled as tasks, and a failing
sink is logged without affecting the other sinks or the caller. Nothing is
retried here.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from auditcord.datatypes.log_datatypes import LogRecord
from auditcord.util.logger import get_logger

logger = get_logger("log_emitter")

LogSink = Callable[[LogRecord], Union[None, Awaitable[Any]]]


class LogEmitter:
    """Dispatches log records to subscribed sinks."""

    def __init__(self, sinks: Optional[List[LogSink]] = None) -> None:
        self._sinks: List[LogSink] = list(sinks or [])
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, sink: LogSink) -> None:
        if sink not in self._sinks:
            self._sinks.append(sink)

    def unsubscribe(self, sink: LogSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    @property
    def sinks(self) -> List[LogSink]:
        return list(self._sinks)

    def emit(self, record: LogRecord) -> None:
        """Hand ``record`` to every sink."""
        for sink in list(self._sinks):
            try:
                result = sink(record)
            except Exception:
                logger.exception("[LOG EMITTER] Sink %r failed for %s", sink, record.log_type)
                continue

            if inspect.isawaitable(result):
                self._schedule(sink, record, result)

    def _schedule(self, sink: LogSink, record: LogRecord, awaitable: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[LOG EMITTER] No running event loop; dropping %s for sink %r", record.log_type, sink)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = loop.create_task(awaitable)
        self._pending.add(task)

        def _cleanup(completed: asyncio.Task) -> None:
            self._pending.discard(completed)
            if completed.cancelled():
                return
            exc = completed.exception()
            if exc is not None:
                logger.error(
                    "[LOG EMITTER] Sink %r failed for %s: %s",
                    sink, record.log_type, exc,
                    exc_info=(type(exc), exc, exc.__traceback__),
                )

        task.add_done_callback(_cleanup)

    async def drain(self) -> None:
        """Wait for every scheduled sink task to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class ConsoleLogSink:
    """Writes a one-line summary of each record to the application logger."""

    def __init__(self, logger_name: str = "audit_log") -> None:
        self._logger = get_logger(logger_name)

    def __call__(self, record: LogRecord) -> None:
        self._logger.info(
            "[%s] guild=%s subject=%s %s",
            record.log_type.value.upper(),
            record.guild_id,
            record.subject_id,
            {key: value for key, value in record.plain_payload().items() if key not in ("member", "user")},
        )
