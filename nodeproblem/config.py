"""Configuration of the system log monitor."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from nodeproblem.types import Condition, Rule, WatcherConfig

DEFAULT_BUFFER_SIZE = 10
DEFAULT_LOOKBACK = "0"
DEFAULT_ENABLE_METRICS_REPORTING = True


@dataclass
class MonitorConfig:
    """Configuration of one log monitor."""

    watcher_config: WatcherConfig = field(default_factory=WatcherConfig)
    buffer_size: int = 0
    source: str = ""
    default_conditions: list[Condition] = field(default_factory=list)
    rules: list[Rule] = field(default_factory=list)
    enable_metrics_reporting: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MonitorConfig":
        """Build a configuration from its JSON form; watcher keys sit at the top level."""
        return cls(
            watcher_config=WatcherConfig.from_dict(data),
            buffer_size=int(data.get("bufferSize", 0)),
            source=data.get("source", ""),
            default_conditions=[Condition.from_dict(c) for c in data.get("conditions") or []],
            rules=[Rule.from_dict(r) for r in data.get("rules") or []],
            enable_metrics_reporting=data.get("metricsReporting"),
        )

    def apply_default_configuration(self) -> None:
        """Fill in defaults for the settings that were left unset."""
        if self.buffer_size == 0:
            self.buffer_size = DEFAULT_BUFFER_SIZE
        if self.enable_metrics_reporting is None:
            self.enable_metrics_reporting = DEFAULT_ENABLE_METRICS_REPORTING
        if self.watcher_config.lookback == "":
            self.watcher_config.lookback = DEFAULT_LOOKBACK

    def validate_rules(self) -> None:
        """Raise ValueError if any rule's pattern is not a valid regular expression."""
        for rule in self.rules:
            try:
                re.compile(rule.pattern)
            except re.error as exc:
                raise ValueError(f"invalid pattern {rule.pattern!r}: {exc}") from exc