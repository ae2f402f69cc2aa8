"""
Audit trail + error reporting: fire-and-forget write paths.

Both sinks hand records to a bounded asyncio.Queue that a single background
task drains into the store. Callers only ever do put_nowait():
  - the request path never awaits a log write
  - a full queue drops the record (logged locally, never raised)
  - a failing write is logged locally and the worker moves on

The local structlog stream is the fallback channel for anything lost here.
"""

import asyncio
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from smartlink.core.clock import utcnow

logger = structlog.get_logger()


class AuditAction(str, Enum):
    CREATE = "CREATE"
    BULK_CREATE = "BULK_CREATE"
    RENAME = "RENAME"
    UPDATE = "UPDATE"
    STATUS_CHANGE = "STATUS_CHANGE"
    DELETE = "DELETE"
    CLICK_REAL = "CLICK_REAL"
    CRAWLER_PREVIEW = "CRAWLER_PREVIEW"
    REDIRECT_NOT_FOUND = "REDIRECT_NOT_FOUND"
    REDIRECT_FORBIDDEN = "REDIRECT_FORBIDDEN"


@dataclass(frozen=True)
class AuditEntry:
    entity_type: str
    entity_id: str
    action: str
    actor_email: str
    details: str = ""
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ErrorReport:
    endpoint: str
    method: str
    message: str
    stacktrace: str | None = None
    request_context: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=utcnow)


class BackgroundWriter:
    """Bounded queue + one worker task that feeds `write`."""

    def __init__(self, name: str, write: Callable[[Any], Awaitable[None]], maxsize: int = 1000):
        self.name = name
        self._write = write
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, item: Any) -> bool:
        """Hand off without waiting. Returns False if the record was dropped."""
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning(f"{self.name}_dropped", record=repr(item), queue_size=self._queue.maxsize)
            return False
        return True

    async def start(self):
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name=f"{self.name}-writer")

    async def drain(self):
        """Wait until everything submitted so far has been written (or dropped)."""
        await self._queue.join()

    async def stop(self):
        """Flush what is queued, then cancel the worker."""
        if self._worker is None:
            return
        await self.drain()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def _run(self):
        while True:
            item = await self._queue.get()
            try:
                await self._write(item)
            except Exception:
                logger.exception(f"{self.name}_write_failed", record=repr(item))
            finally:
                self._queue.task_done()


class AuditSink(BackgroundWriter):
    """Append-only audit trail. `record()` never blocks and never raises."""

    def __init__(self, write: Callable[[AuditEntry], Awaitable[None]], system_actor: str = "system",
                 maxsize: int = 1000):
        super().__init__("audit", write, maxsize)
        self.system_actor = system_actor

    def record(
        self,
        entity_type: str,
        entity_id: str,
        action: AuditAction | str,
        actor: str | None = None,
        details: str = "",
    ) -> bool:
        entry = AuditEntry(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value if isinstance(action, AuditAction) else action,
            actor_email=actor or self.system_actor,
            details=details,
        )
        return self.submit(entry)


class ErrorReporter(BackgroundWriter):
    """Error-logging collaborator: persists failures independently of the response."""

    def __init__(self, write: Callable[[ErrorReport], Awaitable[None]], maxsize: int = 1000):
        super().__init__("error_log", write, maxsize)

    def report(
        self,
        endpoint: str,
        method: str,
        exc: BaseException,
        request_context: dict[str, Any] | None = None,
    ) -> bool:
        stacktrace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        logger.error("server_error", endpoint=endpoint, method=method, error=str(exc))
        return self.submit(ErrorReport(
            endpoint=endpoint,
            method=method,
            message=str(exc) or type(exc).__name__,
            stacktrace=stacktrace,
            request_context=request_context,
        ))
