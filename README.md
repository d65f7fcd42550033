# nodeproblem

`nodeproblem` watches a machine's system logs and turns what it finds into
problem reports: node *conditions* (permanent problems), *events* (temporary
problems) and problem metrics.

It uses only the Python standard library.

## What is in it

- `nodeproblem.types`: the shared data types (`Log`, `Rule`,
  `WatcherConfig`, `Condition`, `Event`, `Status`, the enums `ProblemType`,
  `ConditionStatus`, `Severity`) and the abstract bases `LogWatcher`,
  `Monitor` and `Exporter`.
- `nodeproblem.log_buffer`: `LogBuffer`, a fixed-size buffer of recent log
  lines that regular expressions, possibly spanning several lines, are
  matched against.
- `nodeproblem.config`: `MonitorConfig`, the configuration of a log monitor.
- `nodeproblem.translator`: `Translator`, which picks the timestamp and the
  message out of a raw log line, and `parse_go_time`, which parses a
  timestamp by a reference-time layout such as `Jan _2 15:04:05`.
- `nodeproblem.filelog`: `FilelogWatcher`, which follows a plain log file,
  and `parse_duration` for values such as `0`, `1s`, `5m` or `1h30m`.
- `nodeproblem.kmsg`: `KmsgWatcher`, which reads kernel messages from
  `/dev/kmsg` (Linux only, unless a parser is passed in), with
  `parse_kmsg_record` and `read_kmsg`.
- `nodeproblem.logwatchers`: the watcher plugin registry,
  `register_log_watcher` and `get_log_watcher`, with `filelog` and `kmsg`
  registered.
- `nodeproblem.log_monitor`: `LogMonitor`, a problem daemon that matches
  every new log line against its rules and reports a `Status` per match. It
  registers itself under the name `system-log-monitor`.
- `nodeproblem.problemdaemon`: the problem daemon registry (`register`,
  `get_problem_daemon_names`, `get_problem_daemon_handler`,
  `new_problem_daemons`, `clear_registry`).
- `nodeproblem.problemdetector`: `ProblemDetector`, which starts a set of
  monitors and hands every status they report to a set of exporters.
- `nodeproblem.problemmetrics`: a counter per problem reason and a gauge per
  condition type and reason, kept by a `ProblemMetricsManager`.
- `nodeproblem.logcounter`: `LogCounter`, which counts how often a pattern
  appears in incoming logs.
- `nodeproblem.hctypes`: component health-check settings: the kubelet and
  kube-proxy health endpoints and `LogPatternFlag`.

## Log monitor configuration

A log monitor is described by a JSON file:

```json
{
  "plugin": "filelog",
  "pluginConfig": {
    "timestamp": "^.{15}",
    "message": "kernel: \\[.*\\] (.*)",
    "timestampFormat": "Jan _2 15:04:05"
  },
  "logPath": "/var/log/kern.log",
  "lookback": "5m",
  "bufferSize": 10,
  "source": "kernel-monitor",
  "conditions": [
    {
      "type": "KernelDeadlock",
      "reason": "KernelHasNoDeadlock",
      "message": "kernel has no deadlock"
    }
  ],
  "rules": [
    {
      "type": "temporary",
      "reason": "OOMKilling",
      "pattern": "Killed process \\d+ (.+) total-vm:\\d+kB.*"
    },
    {
      "type": "permanent",
      "condition": "KernelDeadlock",
      "reason": "DockerHung",
      "pattern": "task docker:\\w+ blocked for more than \\w+ seconds\\."
    }
  ]
}
```

- `plugin` selects the log watcher: `filelog` or `kmsg`.
- For `filelog`, `pluginConfig` gives the regular expressions that pick the
  timestamp and the message out of each line (the last group is used) and
  the layout of the timestamp, such as `Jan _2 15:04:05` or
  `2006-01-02T15:04:05.999999999-07:00`. A timestamp without a year is taken
  to be in the current year; one without a zone is taken as local time.
- `lookback` (default `0`) is how far back from now log lines are still
  delivered; older lines are dropped.
- `bufferSize` (default 10) is the number of lines kept for matching, and so
  the longest multi-line pattern that can match.
- Rule `type` is `temporary` (reported as a warning event) or `permanent`
  (sets the named condition to `True` with the rule's reason).
- Rule patterns must match up to the end of the newest log line.
- `metricsReporting` (default `true`) turns the problem metrics on or off.

## Using it

Matching against the log buffer:

```python
from nodeproblem.log_buffer import LogBuffer
from nodeproblem.types import Log

buffer = LogBuffer(3)
for text in ["a1", "b2", "c3"]:
    buffer.push(Log(message=text))

[log.message for log in buffer.match(r"[a-z]\d\n[a-z]\d")]  # ['b2', 'c3']
str(buffer)                                                # 'a1\nb2\nc3'
```

Parsing a single log line:

```python
from nodeproblem.translator import Translator

translator = Translator({
    "timestamp": "^.{15}",
    "message": r"kernel: \[.*\] (.*)",
    "timestampFormat": "Jan _2 15:04:05",
})
log = translator.translate("May  1 12:23:45 hostname kernel: [0.000000] component: log message")
log.message  # 'component: log message'
```

`Translator.translate` raises `ValueError` when a line cannot be parsed.

Running monitors under a problem detector:

```python
import threading

from nodeproblem.log_monitor import LogMonitor
from nodeproblem.problemdetector import ProblemDetector
from nodeproblem.types import Exporter


class PrintExporter(Exporter):
    def export_problems(self, status):
        print(status.source, status.events, status.conditions)


monitor = LogMonitor.from_file("kernel-monitor.json")
stop = threading.Event()
ProblemDetector([monitor], [PrintExporter()]).run(stop)
```

`ProblemDetector.run` raises `NoProblemDaemonError` when none of its monitors
could be started, and stops every monitor and returns once the stop event is
set.

## Problem metrics

Problem metrics are written to a process-wide `ProblemMetricsManager`
(`get_global_manager()` / `set_global_manager()`). To read the values back,
install a manager made by `new_problem_metrics_manager_stub()`, which also
returns its counter and gauge; `Int64Metric.list_metrics()` lists each
recorded series as a `MetricRepresentation`:

```python
from nodeproblem import problemmetrics

manager, counter, gauge = problemmetrics.new_problem_metrics_manager_stub()
problemmetrics.set_global_manager(manager)
manager.increment_problem_counter("OOMKilling", 1)
counter.list_metrics()
# [MetricRepresentation(name='problem_counter', labels={'reason': 'OOMKilling'}, value=1)]
```

Setting a gauge for a problem type clears the reason previously set for that
type, so at most one reason per type is at 1.

## Health-check settings

`nodeproblem.hctypes` holds the settings a component health check uses.
`kubelet_health_check_endpoint()` and `kube_proxy_health_check_endpoint()`
default to `http://127.0.0.1:10248/healthz` and
`http://127.0.0.1:10256/healthz`; the host and ports can be overridden with
the `HOST_ADDRESS`, `KUBELET_PORT` and `KUBEPROXY_PORT` environment
variables, read at import and again by `set_kube_endpoints()`.

`LogPatternFlag` maps log patterns to failure thresholds. Its values have
the form `<threshold>:<pattern>[,<threshold>:<pattern>...]`:

```python
from nodeproblem.hctypes import LogPatternFlag

flag = LogPatternFlag()
flag.set("10:pattern1,20:pattern2")
str(flag)                      # 'pattern1:10 pattern2:20'
flag.log_pattern_count_map()   # {'pattern1': 10, 'pattern2': 20}
```

A threshold of zero, a missing threshold or an empty pattern raises
`ValueError`.

## What it does not do

- It does not itself check or repair node components: there is no health
  checker that queries the endpoints or services above, reads their logs or
  restarts them. `nodeproblem.hctypes` only provides the settings.
- It has no command-line program; it is used as a library.
- It ships no exporters. Reports go wherever an `Exporter` you write sends
  them, and metrics are kept in memory only.
- There is no journald log watcher; only `filelog` and `kmsg` are available.