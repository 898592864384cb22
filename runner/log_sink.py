"""Leveled event log for telemetry actions.

Entries are written to the ``nvtelemetry.events`` logger (and so to stderr and
any runner log file), recorded as Sentry breadcrumbs, and handed to subscribed
listeners such as an event-log view. Listeners are skipped for entries logged
with ``suppress_events=True``.
"""

import logging
import os
from typing import Callable, List, Optional

from sentry_config import add_breadcrumb

logger = logging.getLogger(__name__)

EVENT_LOGGER_NAME = "nvtelemetry.events"
FILE_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

LogListener = Callable[[int, str], None]


class LogSink:
    def __init__(self, name: str = EVENT_LOGGER_NAME):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)
        self._listeners: List[LogListener] = []
        self._file_handler: Optional[logging.FileHandler] = None

    @property
    def file_logging_enabled(self) -> bool:
        return self._file_handler is not None

    def subscribe(self, listener: LogListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: LogListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def log(self, level: int, message: str, *, suppress_events: bool = False) -> None:
        self.logger.log(level, message)
        add_breadcrumb(
            message,
            category="telemetry",
            level=logging.getLevelName(level).lower(),
        )
        if suppress_events:
            return
        for listener in list(self._listeners):
            try:
                listener(level, message)
            except Exception:
                logger.exception("Log listener %r failed", listener)

    def info(self, message: str, *, suppress_events: bool = False) -> None:
        self.log(logging.INFO, message, suppress_events=suppress_events)

    def error(self, message: str, *, suppress_events: bool = False) -> None:
        self.log(logging.ERROR, message, suppress_events=suppress_events)

    def enable_file_logging(self, path: str) -> None:
        """Start appending events to ``path``; replaces any previous log file."""
        self.disable_file_logging()
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        self.logger.addHandler(handler)
        self._file_handler = handler
        logger.info("Event log file initialized: %s", path)

    def disable_file_logging(self) -> None:
        if self._file_handler is None:
            return
        self.logger.removeHandler(self._file_handler)
        self._file_handler.close()
        self._file_handler = None
