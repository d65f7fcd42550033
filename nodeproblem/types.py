"""Core data types shared by the log watchers, log monitor and problem detector."""

from __future__ import annotations

import abc
import queue
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional


class ProblemType(str, Enum):
    """Whether a problem is a one-off event or a lasting node condition."""

    TEMP = "temporary"
    PERM = "permanent"


class ConditionStatus(str, Enum):
    """Status of a node condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Severity(str, Enum):
    """Severity of an event."""

    INFO = "info"
    WARN = "warn"


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass
class Log:
    """One log line as produced by a log watcher."""

    timestamp: Optional[datetime] = None
    message: str = ""


@dataclass
class Rule:
    """How the log monitor recognises a problem in the log."""

    type: ProblemType
    condition: str = ""
    reason: str = ""
    pattern: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rule":
        """Build a rule from its JSON form."""
        try:
            problem_type = ProblemType(data["type"])
        except KeyError:
            raise ValueError("rule has no type") from None
        except ValueError:
            raise ValueError(f"unknown problem type {data['type']!r}") from None
        return cls(
            type=problem_type,
            condition=data.get("condition", ""),
            reason=data.get("reason", ""),
            pattern=data.get("pattern", ""),
        )


@dataclass
class WatcherConfig:
    """Configuration of a log watcher."""

    plugin: str = ""
    plugin_config: dict[str, str] = field(default_factory=dict)
    log_path: str = ""
    lookback: str = ""
    delay: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WatcherConfig":
        """Build a watcher configuration from its JSON form."""
        return cls(
            plugin=data.get("plugin", ""),
            plugin_config=dict(data.get("pluginConfig") or {}),
            log_path=data.get("logPath", ""),
            lookback=data.get("lookback", ""),
            delay=data.get("delay", ""),
        )


@dataclass
class Condition:
    """A node condition reported by a problem daemon."""

    type: str
    status: ConditionStatus = ConditionStatus.FALSE
    transition: Optional[datetime] = None
    reason: str = ""
    message: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        """Build a condition from its JSON form."""
        try:
            condition_type = data["type"]
        except KeyError:
            raise ValueError("condition has no type") from None
        status = data.get("status")
        return cls(
            type=condition_type,
            status=ConditionStatus(status) if status else ConditionStatus.FALSE,
            transition=_parse_time(data.get("transition")),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
        )


@dataclass
class Event:
    """A one-off problem event."""

    severity: Severity
    timestamp: Optional[datetime]
    reason: str
    message: str


@dataclass
class Status:
    """What a problem daemon reports: its source, new events and all its conditions."""

    source: str
    events: list[Event] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)


class LogWatcher(abc.ABC):
    """Watches a log source and delivers its lines."""

    @abc.abstractmethod
    def watch(self) -> "queue.Queue[Optional[Log]]":
        """Start watching; logs arrive on the returned queue, None marks its end."""

    @abc.abstractmethod
    def stop(self) -> None:
        """Stop watching and release open resources."""


class Monitor(abc.ABC):
    """A problem daemon that reports statuses."""

    @abc.abstractmethod
    def start(self) -> "Optional[queue.Queue[Optional[Status]]]":
        """Start monitoring; statuses arrive on the returned queue, None marks its end."""

    @abc.abstractmethod
    def stop(self) -> None:
        """Stop monitoring."""


class Exporter(abc.ABC):
    """Sends reported problems somewhere."""

    @abc.abstractmethod
    def export_problems(self, status: Status) -> None:
        """Export the problems in a status."""