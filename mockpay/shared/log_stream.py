"""Persisted, streamable logs: a logging handler that writes records to the
``logs`` collection and fans them out to live ``/__logs`` subscribers."""

import asyncio
import logging
import os
import time
from typing import Optional

from mockpay.shared.request_id import current_request_id
from mockpay.shared.file_store import Collection

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
MAX_PERSISTED_LOGS = 1000

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


class LogBroadcaster:
    """Fans log entries out to ``/__logs`` subscribers.

    Records are emitted from request handlers and from the worker threads
    that run store calls, so entries for a queue owned by another thread's
    event loop are handed over with ``call_soon_threadsafe``.
    """

    def __init__(self, max_queue: int = 500):
        self.max_queue = max_queue
        self._subscribers: dict[asyncio.Queue, Optional[asyncio.AbstractEventLoop]] = {}

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        self._subscribers[queue] = loop
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.pop(queue, None)

    @staticmethod
    def _offer(queue: asyncio.Queue, entry: dict) -> None:
        try:
            queue.put_nowait(entry)
        except asyncio.QueueFull:
            pass  # slow reader, drop the line

    def publish(self, entry: dict) -> None:
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        for queue, loop in list(self._subscribers.items()):
            if loop is None or loop is current:
                self._offer(queue, entry)
            elif not loop.is_closed():
                loop.call_soon_threadsafe(self._offer, queue, entry)


class CollectionLogHandler(logging.Handler):

    def __init__(self, collection: Collection, broadcaster: LogBroadcaster,
                 level: int = logging.INFO):
        super().__init__(level)
        self.collection = collection
        self.broadcaster = broadcaster

    def emit(self, record: logging.LogRecord) -> None:
        entry = {
            "level": "http" if record.name.startswith("mockpay.http") else _LEVEL_NAMES.get(record.levelno, "info"),
            "message": record.getMessage(),
            "source": record.name.rsplit(".", 1)[-1],
            "request_id": current_request_id() or None,
            "timestamp": int(time.time() * 1000),
        }
        self.broadcaster.publish(entry)
        try:
            self.collection.add(entry, cap=MAX_PERSISTED_LOGS)
        except Exception:
            pass  # Don't fail requests over log persistence


def configure_logging(level: Optional[str] = None,
                      handler: Optional[logging.Handler] = None) -> None:
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # basicConfig is a no-op once the root logger has handlers
    root = logging.getLogger("mockpay")
    root.setLevel(level)
    if handler is not None:
        # One persisting handler at a time; a new data dir replaces the old one
        for existing in [h for h in root.handlers if isinstance(h, CollectionLogHandler)]:
            root.removeHandler(existing)
        root.addHandler(handler)
