"""Collects statuses from all problem daemons and hands them to the exporters."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Optional, Sequence

from nodeproblem.types import Exporter, Monitor, Status

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


class NoProblemDaemonError(RuntimeError):
    """Raised when not a single problem daemon could be started."""


def _forward(source: "queue.Queue[Optional[Status]]", sink: "queue.Queue[Status]") -> None:
    while True:
        status = source.get()
        if status is None:
            return
        sink.put(status)


class ProblemDetector:
    """Runs the problem daemons and exports every status they report."""

    def __init__(self, monitors: Sequence[Monitor], exporters: Sequence[Exporter]) -> None:
        self.monitors = list(monitors)
        self.exporters = list(exporters)

    def run(self, stop_event: threading.Event) -> None:
        """Run until ``stop_event`` is set; stops every monitor on the way out."""
        queues = []
        failures = 0
        for monitor in self.monitors:
            try:
                status_queue = monitor.start()
            except Exception:
                # Keep going with the remaining problem daemons.
                logger.exception("Failed to start problem daemon %r", monitor)
                failures += 1
                continue
            if status_queue is not None:
                queues.append(status_queue)

        if failures == len(self.monitors):
            raise NoProblemDaemonError("no problem daemon is successfully setup")

        try:
            combined: "queue.Queue[Status]" = queue.Queue()
            for status_queue in queues:
                threading.Thread(
                    target=_forward, args=(status_queue, combined), daemon=True
                ).start()
            logger.info("Problem detector started")

            while not stop_event.is_set():
                try:
                    status = combined.get(timeout=_POLL_INTERVAL)
                except queue.Empty:
                    continue
                for exporter in self.exporters:
                    exporter.export_problems(status)
        finally:
            for monitor in self.monitors:
                monitor.stop()