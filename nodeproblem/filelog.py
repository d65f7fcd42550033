"""Log watcher that follows a plain log file."""

from __future__ import annotations

import logging
import os
import queue
import re
import threading
from datetime import datetime, timedelta
from typing import Optional

from nodeproblem.translator import Translator
from nodeproblem.types import Log, LogWatcher, WatcherConfig

logger = logging.getLogger(__name__)

WATCH_POLL_INTERVAL = 0.5
_QUEUE_SIZE = 1000

_UNITS = {
    "ns": 1e-9, "us": 1e-6, "\u00b5s": 1e-6, "\u03bcs": 1e-6,
    "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"1h30m"``, ``"1.5s"`` or ``"0"``."""
    body = text
    sign = 1
    if body[:1] in "+-" and body:
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f"invalid duration {text!r}")
    seconds = 0.0
    pos = 0
    while pos < len(body):
        part = _DURATION_PART.match(body, pos)
        if part is None:
            raise ValueError(f"invalid duration {text!r}")
        seconds += float(part.group(1)) * _UNITS[part.group(2)]
        pos = part.end()
    return sign * timedelta(seconds=seconds)


def _open_log(path: str):
    if path == "":
        raise ValueError("unexpected empty log path")
    os.stat(path)
    return open(path, "r", encoding="utf-8", errors="replace", newline="")


class FilelogWatcher(LogWatcher):
    """Follows a log file from its beginning, keeping lines at or after the start time."""

    def __init__(self, config: WatcherConfig, start_time: Optional[datetime] = None) -> None:
        self.config = config
        self.translator = Translator(config.plugin_config)
        if start_time is None:
            start_time = datetime.now().astimezone() - parse_duration(config.lookback or "0")
        self.start_time = start_time.astimezone()
        self._stopping = threading.Event()
        self._queue: "queue.Queue[Optional[Log]]" = queue.Queue(_QUEUE_SIZE)

    def watch(self) -> "queue.Queue[Optional[Log]]":
        """Open the file and start following it in the background."""
        handle = _open_log(self.config.log_path)
        logger.info("Start watching filelog")
        threading.Thread(target=self._watch_loop, args=(handle,), daemon=True).start()
        return self._queue

    def stop(self) -> None:
        """Stop following the file."""
        self._stopping.set()

    def _watch_loop(self, handle) -> None:
        pending = ""
        try:
            while not self._stopping.is_set():
                chunk = handle.readline()
                if chunk:
                    pending += chunk
                if not pending.endswith("\n"):
                    self._stopping.wait(WATCH_POLL_INTERVAL)
                    continue
                line, pending = pending[:-1], ""
                try:
                    log = self.translator.translate(line)
                except ValueError as exc:
                    logger.warning("Unable to parse line: %r, %s", line, exc)
                    continue
                if log.timestamp < self.start_time:
                    logger.debug("Throwing away msg %r before start time", log.message)
                    continue
                self._queue.put(log)
            logger.info("Stop watching filelog")
        except OSError as exc:
            logger.error("Exiting filelog watch with error: %s", exc)
        finally:
            handle.close()
            self._queue.put(None)