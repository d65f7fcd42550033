"""Counts log lines that match a pattern, up to the moment counting started."""

from __future__ import annotations

import queue
from datetime import datetime
from typing import Callable, Optional

from nodeproblem.log_buffer import LogBuffer
from nodeproblem.types import Log

BUFFER_SIZE = 1000
DEFAULT_TIMEOUT = 1.0


def _now() -> datetime:
    return datetime.now().astimezone()


class LogCounter:
    """Counts matches of ``pattern`` among incoming logs, less matches of ``revert_pattern``."""

    def __init__(
        self,
        log_queue: "queue.Queue[Optional[Log]]",
        pattern: str,
        revert_pattern: str = "",
        clock: Optional[Callable[[], datetime]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.log_queue = log_queue
        self.pattern = pattern
        self.revert_pattern = revert_pattern
        self.clock = clock or _now
        self.timeout = timeout
        self.buffer = LogBuffer(BUFFER_SIZE)

    def count(self) -> int:
        """Count logs until one is newer than the start or none arrives within the timeout.

        Raises RuntimeError if the log queue is closed.
        """
        start = self.clock()
        total = 0
        while True:
            try:
                log = self.log_queue.get(timeout=self.timeout)
            except queue.Empty:
                return total
            if log is None:
                raise RuntimeError("log channel closed unexpectedly")
            if log.timestamp is not None and start < log.timestamp:
                return total
            self.buffer.push(log)
            if self.buffer.match(self.pattern):
                total += 1
            if self.revert_pattern and self.buffer.match(self.revert_pattern):
                total -= 1