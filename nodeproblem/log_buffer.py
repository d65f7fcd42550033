"""A fixed-size buffer of recent log lines that can be matched with a regular expression."""

from __future__ import annotations

import re
from collections import deque
from typing import Iterable, Optional

from nodeproblem.types import Log


def concat_logs(logs: Iterable[str]) -> str:
    """Join log lines into one string, one line per log."""
    return "\n".join(logs)


class LogBuffer:
    """Ring buffer of the last ``max_lines`` logs.

    The buffer size is also the largest number of lines a pattern can span.
    """

    def __init__(self, max_lines: int) -> None:
        if max_lines <= 0:
            raise ValueError(f"log buffer size must be positive, got {max_lines}")
        self._entries: deque[Optional[Log]] = deque([None] * max_lines, maxlen=max_lines)

    def push(self, log: Log) -> None:
        """Add a log, dropping the oldest one when the buffer is full."""
        self._entries.append(log)

    def match(self, expr: str) -> list[Log]:
        """Return the logs matched by ``expr``, which must match up to the last line."""
        pattern = re.compile(expr + r"\Z")
        text = str(self)
        found = pattern.search(text)
        if found is None:
            return []
        # Number of characters from the start of the match to the end of the text.
        span = len(text) - found.start() - 1
        total = 0
        matched: list[Log] = []
        for entry in reversed(self._entries):
            if entry is None:
                break
            matched.append(entry)
            total += len(entry.message) + 1
            if total > span:
                break
        matched.reverse()
        return matched

    def __str__(self) -> str:
        return concat_logs(entry.message if entry is not None else "" for entry in self._entries)