"""Metrics derived from problems: a counter per reason and a gauge per condition type."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Sequence

PROBLEM_COUNTER_NAME = "problem_counter"
PROBLEM_GAUGE_NAME = "problem_gauge"


class Aggregation(str, Enum):
    """How recorded values of a metric are combined."""

    SUM = "sum"
    LAST_VALUE = "last_value"


@dataclass
class MetricRepresentation:
    """One labelled series of a metric and its current value."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    value: int = 0


class Int64Metric:
    """An integer metric kept in memory, one value per set of label values."""

    def __init__(self, name: str, aggregation: Aggregation, label_names: Sequence[str]) -> None:
        self.name = name
        self.aggregation = Aggregation(aggregation)
        self.label_names = tuple(label_names)
        self._values: dict[tuple[str, ...], int] = {}
        self._lock = threading.Lock()

    def record(self, labels: Mapping[str, str], value: int) -> None:
        """Record a value for the series identified by ``labels``."""
        if set(labels) != set(self.label_names):
            raise ValueError(
                f"metric {self.name!r} expects labels {sorted(self.label_names)}, "
                f"got {sorted(labels)}"
            )
        key = tuple(labels[name] for name in self.label_names)
        with self._lock:
            if self.aggregation is Aggregation.SUM:
                self._values[key] = self._values.get(key, 0) + value
            else:
                self._values[key] = value

    def list_metrics(self) -> list[MetricRepresentation]:
        """Return every recorded series in the order it first appeared."""
        with self._lock:
            return [
                MetricRepresentation(self.name, dict(zip(self.label_names, key)), value)
                for key, value in self._values.items()
            ]


class ProblemMetricsManager:
    """Keeps problem counters and gauges up to date. Safe to use from several threads."""

    def __init__(
        self, problem_counter: Optional[Int64Metric], problem_gauge: Optional[Int64Metric]
    ) -> None:
        self._problem_counter = problem_counter
        self._problem_gauge = problem_gauge
        self._type_to_reason: dict[str, str] = {}
        self._lock = threading.Lock()

    def increment_problem_counter(self, reason: str, count: int) -> None:
        """Add ``count`` occurrences of the problem with this reason."""
        if self._problem_counter is None:
            raise RuntimeError("problem counter is being incremented before initialized")
        self._problem_counter.record({"reason": reason}, count)

    def set_problem_gauge(self, problem_type: str, reason: str, value: bool) -> None:
        """Set whether a problem type currently affects the node, and for which reason.

        At most one reason per type is set at a time: the previous reason is cleared.
        """
        if self._problem_gauge is None:
            raise RuntimeError("problem gauge is being set before initialized")
        with self._lock:
            last_reason = self._type_to_reason.get(problem_type)
            if last_reason is not None:
                try:
                    self._problem_gauge.record({"type": problem_type, "reason": last_reason}, 0)
                except ValueError as exc:
                    raise RuntimeError(
                        f"failed to clear previous reason {last_reason!r} "
                        f"for type {problem_type!r}: {exc}"
                    ) from exc
            self._type_to_reason[problem_type] = reason
            self._problem_gauge.record(
                {"type": problem_type, "reason": reason}, 1 if value else 0
            )


def _new_metrics() -> tuple[Int64Metric, Int64Metric]:
    counter = Int64Metric(PROBLEM_COUNTER_NAME, Aggregation.SUM, ["reason"])
    gauge = Int64Metric(PROBLEM_GAUGE_NAME, Aggregation.LAST_VALUE, ["type", "reason"])
    return counter, gauge


def new_problem_metrics_manager() -> ProblemMetricsManager:
    """Create a manager with fresh problem counter and gauge metrics."""
    return ProblemMetricsManager(*_new_metrics())


def new_problem_metrics_manager_stub() -> tuple[ProblemMetricsManager, Int64Metric, Int64Metric]:
    """Create a manager together with the metrics it writes to, for inspection."""
    counter, gauge = _new_metrics()
    return ProblemMetricsManager(counter, gauge), counter, gauge


_global_manager: ProblemMetricsManager = new_problem_metrics_manager()


def get_global_manager() -> ProblemMetricsManager:
    """Return the manager shared by all problem daemons."""
    return _global_manager


def set_global_manager(manager: ProblemMetricsManager) -> None:
    """Replace the manager shared by all problem daemons."""
    global _global_manager
    _global_manager = manager