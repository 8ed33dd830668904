"""Fire-and-forget audit trail for account operations.

Request handlers hand events to :class:`AuditDispatcher`, which queues them
and writes them from a dedicated worker thread owned by the application
lifespan. Cancelling or failing a request therefore never drops an event that
was already recorded, and a failing writer never reaches the caller.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class AuditLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def logging_level(self) -> int:
        return logging.getLevelName(self.name)


@dataclass(frozen=True, slots=True)
class AuditEvent:
    level: AuditLevel
    operation: str
    actor_id: str
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


AuditWriter = Callable[[AuditEvent], None]

_STOP = object()


class AuditDispatcher:
    """Bounded queue of audit events drained by a background thread."""

    def __init__(self, writer: AuditWriter, *, max_queue: int = 1000) -> None:
        """Store the event writer and allocate the bounded event queue."""
        self._writer = writer
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue)
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="audit-dispatcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Drain pending events and stop the worker thread.

        Gives up after ``timeout`` when the queue stays full; the worker is
        a daemon thread, so it never holds up interpreter exit.
        """
        if self._thread is None:
            return
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("audit queue still full at shutdown, abandoning %d events", self._queue.qsize())
            return
        self._thread.join(timeout)
        self._thread = None

    def join(self) -> None:
        """Block until every queued event has been handed to the writer."""
        self._queue.join()

    def record(self, level: AuditLevel, operation: str, actor_id: str, message: str) -> None:
        """Queue an event without blocking; a full queue drops it with a warning."""
        event = AuditEvent(level=level, operation=operation, actor_id=actor_id, message=message)
        logger.log(level.logging_level, "%s actor=%s: %s", operation, actor_id or "-", message)
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.warning("audit queue full, dropping %s event", operation)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._writer(item)
            except Exception as exc:
                logger.warning("audit write failed for %s: %s", item.operation, exc)
            finally:
                self._queue.task_done()
