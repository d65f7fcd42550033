"""Problem daemon that watches a system log and reports problems found by rules."""

from __future__ import annotations

import dataclasses
import json
import logging
import queue
import threading
from datetime import datetime
from typing import Iterable, Optional, Sequence

from nodeproblem.config import MonitorConfig
from nodeproblem.log_buffer import LogBuffer, concat_logs
from nodeproblem.logwatchers import get_log_watcher
from nodeproblem.problemdaemon import ProblemDaemonHandler, register
from nodeproblem.problemmetrics import get_global_manager
from nodeproblem.types import (
    Condition,
    ConditionStatus,
    Event,
    Log,
    LogWatcher,
    Monitor,
    ProblemType,
    Rule,
    Severity,
    Status,
)

logger = logging.getLogger(__name__)

SYSTEM_LOG_MONITOR_NAME = "system-log-monitor"

_OUTPUT_SIZE = 1000
_POLL_INTERVAL = 0.1


def initialize_problem_metrics(rules: Iterable[Rule]) -> None:
    """Create the metrics of every problem the rules can report, all set to zero."""
    manager = get_global_manager()
    for rule in rules:
        if rule.type is ProblemType.PERM:
            manager.set_problem_gauge(rule.condition, rule.reason, False)
        manager.increment_problem_counter(rule.reason, 0)


def initial_conditions(defaults: Sequence[Condition]) -> list[Condition]:
    """Copy the default conditions, marking each False as of now."""
    now = datetime.now().astimezone()
    return [
        dataclasses.replace(condition, status=ConditionStatus.FALSE, transition=now)
        for condition in defaults
    ]


def generate_message(logs: Iterable[Log]) -> str:
    """Join the messages of the logs, one per line."""
    return concat_logs(log.message for log in logs)


def _condition_change_event(
    reason: str, message: str, timestamp: Optional[datetime]
) -> Event:
    return Event(
        severity=Severity.INFO,
        timestamp=timestamp,
        reason=reason,
        message=message,
    )


class LogMonitor(Monitor):
    """Matches every new log line against the rules and reports a status per match."""

    def __init__(
        self, config: MonitorConfig, watcher: Optional[LogWatcher], config_path: str = ""
    ) -> None:
        config.apply_default_configuration()
        config.validate_rules()
        self.config = config
        self.watcher = watcher
        self.config_path = config_path
        self.buffer = LogBuffer(config.buffer_size)
        self.conditions: list[Condition] = initial_conditions(config.default_conditions)
        self._output: "queue.Queue[Optional[Status]]" = queue.Queue(_OUTPUT_SIZE)
        self._stopping = threading.Event()
        self._logs: "Optional[queue.Queue[Optional[Log]]]" = None
        if config.enable_metrics_reporting:
            initialize_problem_metrics(config.rules)

    @classmethod
    def from_file(cls, config_path: str) -> "LogMonitor":
        """Create a log monitor from a JSON configuration file."""
        with open(config_path, encoding="utf-8") as handle:
            data = json.load(handle)
        config = MonitorConfig.from_dict(data)
        config.apply_default_configuration()
        config.validate_rules()
        logger.info("Finish parsing log monitor config file %s: %r", config_path, config)
        watcher = get_log_watcher(config.watcher_config)
        return cls(config, watcher, config_path)

    def start(self) -> "queue.Queue[Optional[Status]]":
        """Start watching the log; statuses arrive on the returned queue."""
        logger.info("Start log monitor %s", self.config_path)
        if self.watcher is None:
            raise RuntimeError("log monitor has no log watcher")
        self._logs = self.watcher.watch()
        threading.Thread(target=self._monitor_loop, daemon=True).start()
        return self._output

    def stop(self) -> None:
        """Stop the monitor and its log watcher."""
        logger.info("Stop log monitor %s", self.config_path)
        self._stopping.set()

    def _monitor_loop(self) -> None:
        assert self._logs is not None
        try:
            self._initialize_status()
            while True:
                if self._stopping.is_set():
                    if self.watcher is not None:
                        self.watcher.stop()
                    logger.info("Log monitor stopped: %s", self.config_path)
                    return
                try:
                    log = self._logs.get(timeout=_POLL_INTERVAL)
                except queue.Empty:
                    continue
                if log is None:
                    logger.error("Log channel closed: %s", self.config_path)
                    return
                self._parse_log(log)
        finally:
            self._output.put(None)

    def _parse_log(self, log: Log) -> None:
        self.buffer.push(log)
        for rule in self.config.rules:
            matched = self.buffer.match(rule.pattern)
            if not matched:
                continue
            status = self.generate_status(matched, rule)
            logger.info("New status generated: %r", status)
            self._output.put(status)

    def generate_status(self, logs: Sequence[Log], rule: Rule) -> Status:
        """Build the status reported when ``rule`` matched ``logs``."""
        timestamp = logs[0].timestamp
        message = generate_message(logs)
        events: list[Event] = []
        changed: list[Condition] = []
        if rule.type is ProblemType.TEMP:
            events.append(
                Event(
                    severity=Severity.WARN,
                    timestamp=timestamp,
                    reason=rule.reason,
                    message=message,
                )
            )
        else:
            for condition in self.conditions:
                if condition.type != rule.condition:
                    continue
                # A condition changes only when its status or reason changes.
                if condition.status is ConditionStatus.FALSE or condition.reason != rule.reason:
                    condition.transition = timestamp
                    condition.message = message
                    events.append(_condition_change_event(rule.reason, message, timestamp))
                condition.status = ConditionStatus.TRUE
                condition.reason = rule.reason
                changed.append(condition)
                break

        if self.config.enable_metrics_reporting:
            manager = get_global_manager()
            for event in events:
                try:
                    manager.increment_problem_counter(event.reason, 1)
                except (RuntimeError, ValueError) as exc:
                    logger.error(
                        "Failed to update problem counter metrics for %r: %s", event.reason, exc
                    )
            for condition in changed:
                try:
                    manager.set_problem_gauge(
                        condition.type,
                        condition.reason,
                        condition.status is ConditionStatus.TRUE,
                    )
                except (RuntimeError, ValueError) as exc:
                    logger.error(
                        "Failed to update problem gauge metrics for problem %r, reason %r: %s",
                        condition.type,
                        condition.reason,
                        exc,
                    )

        return Status(
            source=self.config.source,
            events=events,
            conditions=[dataclasses.replace(c) for c in self.conditions],
        )

    def _initialize_status(self) -> None:
        self.conditions = initial_conditions(self.config.default_conditions)
        logger.info("Initialize condition generated: %r", self.conditions)
        self._output.put(
            Status(
                source=self.config.source,
                conditions=[dataclasses.replace(c) for c in self.conditions],
            )
        )


register(
    SYSTEM_LOG_MONITOR_NAME,
    ProblemDaemonHandler(
        create_problem_daemon=LogMonitor.from_file,
        cmd_option_description="Set to config file paths.",
    ),
)