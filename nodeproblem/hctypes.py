"""Settings, constants and the log pattern option shared by the health checker."""

from __future__ import annotations

import os
import re
import sys
from datetime import timedelta

DEFAULT_LOOP_BACK_TIME = timedelta(minutes=0)
DEFAULT_CRI_TIMEOUT = timedelta(seconds=2)
DEFAULT_COOL_DOWN_TIME = timedelta(minutes=2)
DEFAULT_HEALTH_CHECK_TIMEOUT = timedelta(seconds=10)
CMD_TIMEOUT = timedelta(seconds=10)
LOG_PARSING_TIME_LAYOUT = "2006-01-02 15:04:05"

KUBELET_COMPONENT = "kubelet"
CRI_COMPONENT = "cri"
DOCKER_COMPONENT = "docker"
CONTAINERD_SERVICE = "containerd"
KUBE_PROXY_COMPONENT = "kube-proxy"

LOG_PATTERN_FLAG_SEPARATOR = ":"

_HOST_ADDRESS_KEY = "HOST_ADDRESS"
_KUBELET_PORT_KEY = "KUBELET_PORT"
_KUBE_PROXY_PORT_KEY = "KUBEPROXY_PORT"

_DEFAULT_HOST_ADDRESS = "127.0.0.1"
_DEFAULT_KUBELET_PORT = "10248"
_DEFAULT_KUBE_PROXY_PORT = "10256"

if sys.platform == "win32":
    DEFAULT_CRICTL = "C:/etc/kubernetes/node/bin/crictl.exe"
    DEFAULT_CRI_SOCKET_PATH = "npipe:////./pipe/containerd-containerd"
    UPTIME_TIME_LAYOUT = "Mon 02 Jan 2006 15:04:05 MST"
else:
    DEFAULT_CRICTL = "/usr/bin/crictl"
    DEFAULT_CRI_SOCKET_PATH = "unix:///var/run/containerd/containerd.sock"
    UPTIME_TIME_LAYOUT = "Mon 2006-01-02 15:04:05 MST"

LOG_PARSING_TIME_FORMAT = "yyyy-MM-dd HH:mm:ss"

_INTEGER = re.compile(r"[+-]?\d+")

_kubelet_health_check_endpoint = ""
_kube_proxy_health_check_endpoint = ""


def set_kube_endpoints() -> None:
    """Recompute the health check endpoints from the environment."""
    global _kubelet_health_check_endpoint, _kube_proxy_health_check_endpoint
    host_address = os.environ.get(_HOST_ADDRESS_KEY) or _DEFAULT_HOST_ADDRESS
    kubelet_port = os.environ.get(_KUBELET_PORT_KEY) or _DEFAULT_KUBELET_PORT
    kube_proxy_port = os.environ.get(_KUBE_PROXY_PORT_KEY) or _DEFAULT_KUBE_PROXY_PORT
    _kubelet_health_check_endpoint = f"http://{host_address}:{kubelet_port}/healthz"
    _kube_proxy_health_check_endpoint = f"http://{host_address}:{kube_proxy_port}/healthz"


def kubelet_health_check_endpoint() -> str:
    """Return the kubelet health check URL."""
    return _kubelet_health_check_endpoint


def kube_proxy_health_check_endpoint() -> str:
    """Return the kube-proxy health check URL."""
    return _kube_proxy_health_check_endpoint


class LogPatternFlag:
    """Maps log patterns to the number of occurrences that mark a service unhealthy.

    Values are given as ``count:pattern`` items separated by commas.
    """

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}

    def set(self, value: str) -> None:
        """Add the ``count:pattern`` items in ``value``; raise ValueError if malformed."""
        for item in value.split(","):
            parts = item.split(LOG_PATTERN_FLAG_SEPARATOR, 1)
            if len(parts) != 2:
                raise ValueError(f"invalid format of the flag value: {parts}")
            count_text, pattern = parts
            if not _INTEGER.fullmatch(count_text) or int(count_text) == 0:
                raise ValueError(f"invalid format for the flag value: {parts}")
            if pattern == "":
                raise ValueError(f"invalid format for the flag value: {parts}")
            self._counts[pattern] = int(count_text)

    def __str__(self) -> str:
        return " ".join(f"{key}:{self._counts[key]}" for key in sorted(self._counts))

    def log_pattern_count_map(self) -> dict[str, int]:
        """Return the pattern to threshold mapping."""
        return dict(self._counts)


set_kube_endpoints()