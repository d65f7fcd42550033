"""Log watcher that reads kernel messages from /dev/kmsg."""

from __future__ import annotations

import logging
import os
import queue
import sys
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Iterator, Optional, Protocol

from nodeproblem.filelog import parse_duration
from nodeproblem.types import Log, LogWatcher, WatcherConfig

logger = logging.getLogger(__name__)

_QUEUE_SIZE = 100
KMSG_PATH = "/dev/kmsg"


@dataclass
class KmsgMessage:
    """One kernel log record."""

    message: str
    timestamp: datetime
    priority: int = 0
    sequence_number: int = 0


class KmsgParser(Protocol):
    def parse(self) -> Iterable[KmsgMessage]: ...

    def close(self) -> None: ...


def parse_kmsg_record(record: str, boot_time: datetime) -> KmsgMessage:
    """Parse a ``pri,seq,usec,flags;message`` record read from /dev/kmsg."""
    header, sep, body = record.partition(";")
    if not sep:
        raise ValueError(f"malformed kmsg record {record!r}")
    fields = header.split(",")
    if len(fields) < 3:
        raise ValueError(f"malformed kmsg header {header!r}")
    try:
        priority = int(fields[0]) & 7
        sequence = int(fields[1])
        usec = int(fields[2])
    except ValueError as exc:
        raise ValueError(f"malformed kmsg header {header!r}") from exc
    message = body.split("\n", 1)[0]
    return KmsgMessage(
        message=message,
        timestamp=boot_time + timedelta(microseconds=usec),
        priority=priority,
        sequence_number=sequence,
    )


def _boot_time() -> datetime:
    with open("/proc/uptime", encoding="ascii") as handle:
        uptime = float(handle.read().split()[0])
    return datetime.now().astimezone() - timedelta(seconds=uptime)


def read_kmsg(path: str = KMSG_PATH) -> Iterator[KmsgMessage]:
    """Yield kernel messages from ``path`` as they appear."""
    boot_time = _boot_time()
    fd = os.open(path, os.O_RDONLY)
    try:
        while True:
            try:
                data = os.read(fd, 8192)
            except BrokenPipeError:
                # Records were overwritten before we read them; continue with the next.
                continue
            if not data:
                return
            try:
                yield parse_kmsg_record(data.decode("utf-8", "replace"), boot_time)
            except ValueError as exc:
                logger.warning("Skipping kmsg record: %s", exc)
    finally:
        os.close(fd)


class _DevKmsgParser:
    def __init__(self, path: str = KMSG_PATH) -> None:
        self._messages = read_kmsg(path)

    def parse(self) -> Iterable[KmsgMessage]:
        return self._messages

    def close(self) -> None:
        try:
            self._messages.close()
        except ValueError:
            pass  # still being read in another thread


class KmsgWatcher(LogWatcher):
    """Delivers kernel messages at or after the start time."""

    def __init__(
        self,
        config: WatcherConfig,
        parser: Optional[KmsgParser] = None,
        start_time: Optional[datetime] = None,
    ) -> None:
        self.config = config
        self.parser = parser
        if start_time is None:
            start_time = datetime.now().astimezone() - parse_duration(config.lookback or "0")
        self.start_time = start_time.astimezone()
        self._stopping = threading.Event()
        self._queue: "queue.Queue[Optional[Log]]" = queue.Queue(_QUEUE_SIZE)

    def watch(self) -> "queue.Queue[Optional[Log]]":
        """Start reading kernel messages in the background."""
        if self.parser is None:
            if not sys.platform.startswith("linux"):
                raise OSError(f"kmsg parser is not supported in {sys.platform}")
            self.parser = _DevKmsgParser()
        threading.Thread(target=self._watch_loop, daemon=True).start()
        return self._queue

    def stop(self) -> None:
        """Close the parser and stop watching."""
        if self.parser is not None:
            self.parser.close()
        self._stopping.set()

    def _watch_loop(self) -> None:
        assert self.parser is not None
        try:
            for msg in self.parser.parse():
                if self._stopping.is_set():
                    logger.info("Stop watching kernel log")
                    return
                if msg.message == "":
                    continue
                if msg.timestamp < self.start_time:
                    logger.debug("Throwing away msg %r before start time", msg.message)
                    continue
                self._queue.put(Log(timestamp=msg.timestamp, message=msg.message.strip()))
            logger.error("Kmsg channel closed")
        except OSError as exc:
            logger.error("Kmsg read failed: %s", exc)
        finally:
            try:
                self.parser.close()
            except OSError as exc:
                logger.error("Failed to close kmsg parser: %s", exc)
            self._queue.put(None)