import json
import queue
import threading
from datetime import datetime, timedelta, timezone

import pytest

from nodeproblem import problemmetrics
from nodeproblem.config import MonitorConfig
from nodeproblem.filelog import FilelogWatcher
from nodeproblem.log_monitor import (
    SYSTEM_LOG_MONITOR_NAME,
    LogMonitor,
    generate_message,
    initial_conditions,
    initialize_problem_metrics,
)
from nodeproblem.problemdaemon import get_problem_daemon_handler
from nodeproblem.types import (
    Condition,
    ConditionStatus,
    Event,
    Log,
    LogWatcher,
    ProblemType,
    Rule,
    Severity,
    Status,
)

TEST_SOURCE = "TestSource"
CONDITION_A = "TestConditionA"
CONDITION_B = "TestConditionB"


def _ts(seconds, nanos):
    return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(microseconds=nanos // 1000)


@pytest.fixture
def metrics():
    original = problemmetrics.get_global_manager()
    manager, counter, gauge = problemmetrics.new_problem_metrics_manager_stub()
    problemmetrics.set_global_manager(manager)
    yield counter, gauge
    problemmetrics.set_global_manager(original)


def _normalize(items):
    return sorted((m.name, tuple(sorted(m.labels.items())), m.value) for m in items)


def _expected(*entries):
    return sorted((name, tuple(sorted(labels.items())), value) for name, labels, value in entries)


class FakeWatcher(LogWatcher):
    def __init__(self):
        self.queue = queue.Queue()
        self.stopped = threading.Event()

    def watch(self):
        return self.queue

    def stop(self):
        self.stopped.set()


def _init_conditions():
    return [
        Condition(
            type=CONDITION_A,
            status=ConditionStatus.TRUE,
            transition=_ts(500, 500),
            reason="initial reason",
        ),
        Condition(type=CONDITION_B, status=ConditionStatus.FALSE, transition=_ts(500, 500)),
    ]


LOGS = [
    Log(timestamp=_ts(1000, 1000), message="test message 1"),
    Log(timestamp=_ts(2000, 2000), message="test message 2"),
]


def _monitor_with(conditions):
    monitor = LogMonitor(MonitorConfig(source=TEST_SOURCE), None)
    monitor.conditions = conditions
    return monitor


def test_generate_status_permanent_changed(metrics):
    monitor = _monitor_with(_init_conditions())
    rule = Rule(type=ProblemType.PERM, condition=CONDITION_A, reason="test reason")
    got = monitor.generate_status(LOGS, rule)
    assert got.source == TEST_SOURCE
    assert len(got.events) == 1
    event = got.events[0]
    assert event.severity is Severity.INFO
    assert event.reason == "test reason"
    assert event.timestamp == _ts(1000, 1000)
    assert "test message 1\ntest message 2" in event.message
    assert got.conditions == [
        Condition(
            type=CONDITION_A,
            status=ConditionStatus.TRUE,
            transition=_ts(1000, 1000),
            reason="test reason",
            message="test message 1\ntest message 2",
        ),
        _init_conditions()[1],
    ]


def test_generate_status_permanent_unchanged(metrics):
    monitor = _monitor_with(_init_conditions())
    rule = Rule(type=ProblemType.PERM, condition=CONDITION_A, reason="initial reason")
    got = monitor.generate_status(LOGS, rule)
    assert got == Status(source=TEST_SOURCE, events=[], conditions=_init_conditions())


def test_generate_status_temporary(metrics):
    monitor = _monitor_with(_init_conditions())
    rule = Rule(type=ProblemType.TEMP, reason="test reason")
    got = monitor.generate_status(LOGS, rule)
    assert got == Status(
        source=TEST_SOURCE,
        events=[
            Event(
                severity=Severity.WARN,
                timestamp=_ts(1000, 1000),
                reason="test reason",
                message="test message 1\ntest message 2",
            )
        ],
        conditions=_init_conditions(),
    )


FOO = "problem reason foo"
BAR = "problem reason bar"


def _temp(reason):
    return Rule(type=ProblemType.TEMP, reason=reason)


def _perm(condition, reason):
    return Rule(type=ProblemType.PERM, condition=condition, reason=reason)


def _counter(reason, value):
    return ("problem_counter", {"reason": reason}, value)


def _gauge(cond, reason, value):
    return ("problem_gauge", {"type": cond, "reason": reason}, value)


@pytest.mark.parametrize(
    "conditions,rules,expected",
    [
        ([], [], []),
        ([], [_temp(FOO)], [_counter(FOO, 1)]),
        ([], [_temp(FOO), _temp(FOO)], [_counter(FOO, 2)]),
        ([], [_temp(FOO), _temp(BAR)], [_counter(FOO, 1), _counter(BAR, 1)]),
        (
            ["ConditionA"],
            [_perm("ConditionA", FOO)],
            [_gauge("ConditionA", FOO, 1), _counter(FOO, 1)],
        ),
        (
            ["ConditionA"],
            [_perm("ConditionA", FOO), _perm("ConditionA", FOO)],
            [_gauge("ConditionA", FOO, 1), _counter(FOO, 1)],
        ),
        (
            ["ConditionA"],
            [_perm("ConditionA", FOO), _perm("ConditionA", BAR)],
            [
                _gauge("ConditionA", FOO, 0),
                _gauge("ConditionA", BAR, 1),
                _counter(FOO, 1),
                _counter(BAR, 1),
            ],
        ),
        (
            ["ConditionA", "ConditionB"],
            [_perm("ConditionA", FOO), _perm("ConditionB", BAR)],
            [
                _gauge("ConditionA", FOO, 1),
                _gauge("ConditionB", BAR, 1),
                _counter(FOO, 1),
                _counter(BAR, 1),
            ],
        ),
    ],
)
def test_generate_status_for_metrics(metrics, conditions, rules, expected):
    counter, gauge = metrics
    monitor = _monitor_with(
        [Condition(type=c, status=ConditionStatus.FALSE) for c in conditions]
    )
    for rule in rules:
        monitor.generate_status([Log()], rule)
    got = counter.list_metrics() + gauge.list_metrics()
    assert _normalize(got) == _expected(*expected)


@pytest.mark.parametrize(
    "rules,expected",
    [
        ([], []),
        ([_temp(FOO)], [_counter(FOO, 0)]),
        ([_perm("ConditionA", FOO)], [_gauge("ConditionA", FOO, 0), _counter(FOO, 0)]),
        ([_temp(FOO), _temp(FOO)], [_counter(FOO, 0)]),
        ([_temp(FOO), _temp(BAR)], [_counter(FOO, 0), _counter(BAR, 0)]),
        (
            [_perm("ConditionA", FOO), _perm("ConditionA", BAR)],
            [
                _gauge("ConditionA", FOO, 0),
                _gauge("ConditionA", BAR, 0),
                _counter(FOO, 0),
                _counter(BAR, 0),
            ],
        ),
        (
            [_perm("ConditionA", FOO), _perm("ConditionB", BAR)],
            [
                _gauge("ConditionA", FOO, 0),
                _gauge("ConditionB", BAR, 0),
                _counter(FOO, 0),
                _counter(BAR, 0),
            ],
        ),
        (
            [_perm("ConditionA", FOO), _perm("ConditionA", FOO)],
            [_gauge("ConditionA", FOO, 0), _counter(FOO, 0)],
        ),
        (
            [
                _temp(FOO),
                _perm("ConditionA", "problem reason hello"),
                _perm("ConditionA", FOO),
                _perm("ConditionB", FOO),
                _perm("ConditionB", BAR),
                _temp(FOO),
                _temp(BAR),
            ],
            [
                _gauge("ConditionA", "problem reason hello", 0),
                _gauge("ConditionA", FOO, 0),
                _gauge("ConditionB", FOO, 0),
                _gauge("ConditionB", BAR, 0),
                _counter("problem reason hello", 0),
                _counter(FOO, 0),
                _counter(BAR, 0),
            ],
        ),
    ],
)
def test_initialize_problem_metrics(metrics, rules, expected):
    counter, gauge = metrics
    initialize_problem_metrics(rules)
    got = counter.list_metrics() + gauge.list_metrics()
    assert _normalize(got) == _expected(*expected)


def test_initial_conditions_resets_status_and_keeps_defaults():
    defaults = _init_conditions()
    got = initial_conditions(defaults)
    assert [c.status for c in got] == [ConditionStatus.FALSE, ConditionStatus.FALSE]
    assert [c.type for c in got] == [CONDITION_A, CONDITION_B]
    assert all(c.transition > _ts(500, 500) for c in got)
    assert defaults[0].status is ConditionStatus.TRUE


def test_generate_message():
    assert generate_message(LOGS) == "test message 1\ntest message 2"
    assert generate_message([]) == ""


def test_constructor_applies_defaults(metrics):
    monitor = LogMonitor(MonitorConfig(), None)
    assert monitor.config.buffer_size == 10
    assert monitor.config.enable_metrics_reporting is True
    assert monitor.config.watcher_config.lookback == "0"


def test_constructor_rejects_invalid_rule(metrics):
    config = MonitorConfig(rules=[_perm("A", "r")])
    config.rules[0].pattern = "("
    with pytest.raises(ValueError):
        LogMonitor(config, None)


def test_start_reports_and_stops(metrics):
    watcher = FakeWatcher()
    config = MonitorConfig(
        source="kernel-monitor",
        default_conditions=[Condition(type="KernelDeadlock")],
        rules=[
            Rule(
                type=ProblemType.PERM,
                condition="KernelDeadlock",
                reason="DockerHung",
                pattern=r"task docker:\w+ blocked",
            )
        ],
    )
    monitor = LogMonitor(config, watcher, "config.json")
    output = monitor.start()

    initial = output.get(timeout=5)
    assert initial.source == "kernel-monitor"
    assert [c.status for c in initial.conditions] == [ConditionStatus.FALSE]

    stamp = datetime.now().astimezone()
    watcher.queue.put(Log(timestamp=stamp, message="task docker:abc blocked"))
    status = output.get(timeout=5)
    assert len(status.events) == 1
    assert status.events[0].reason == "DockerHung"
    assert status.conditions[0].status is ConditionStatus.TRUE
    assert status.conditions[0].reason == "DockerHung"
    assert status.conditions[0].transition == stamp

    monitor.stop()
    assert output.get(timeout=5) is None
    assert watcher.stopped.wait(5)


def test_closed_log_queue_ends_output(metrics):
    watcher = FakeWatcher()
    monitor = LogMonitor(MonitorConfig(source="s"), watcher)
    output = monitor.start()
    watcher.queue.put(None)
    assert output.get(timeout=5) == Status(source="s")
    assert output.get(timeout=5) is None


def test_from_file(metrics, tmp_path):
    log_file = tmp_path / "kern.log"
    log_file.write_text("")
    config_file = tmp_path / "monitor.json"
    config_file.write_text(
        json.dumps(
            {
                "plugin": "filelog",
                "pluginConfig": {
                    "timestamp": "^.{15}",
                    "message": "kernel: \\[.*\\] (.*)",
                    "timestampFormat": "Jan _2 15:04:05",
                },
                "logPath": str(log_file),
                "source": "kernel-monitor",
                "conditions": [{"type": "KernelDeadlock"}],
                "rules": [{"type": "temporary", "reason": "OOMKilling", "pattern": "Kill.*"}],
            }
        )
    )
    monitor = LogMonitor.from_file(str(config_file))
    counter, _ = metrics
    assert isinstance(monitor.watcher, FilelogWatcher)
    assert monitor.config.source == "kernel-monitor"
    assert monitor.config.buffer_size == 10
    assert monitor.config_path == str(config_file)
    assert _normalize(counter.list_metrics()) == _expected(_counter("OOMKilling", 0))


def test_from_file_invalid_pattern(metrics, tmp_path):
    config_file = tmp_path / "monitor.json"
    config_file.write_text(
        json.dumps(
            {
                "plugin": "filelog",
                "rules": [{"type": "temporary", "reason": "X", "pattern": "("}],
            }
        )
    )
    with pytest.raises(ValueError):
        LogMonitor.from_file(str(config_file))


def test_from_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        LogMonitor.from_file(str(tmp_path / "absent.json"))