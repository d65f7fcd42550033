"""Registry of problem daemon kinds and creation of problem daemons from their configs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping

from nodeproblem.types import Monitor

logger = logging.getLogger(__name__)


@dataclass
class ProblemDaemonHandler:
    """How to create a kind of problem daemon and how to describe its option."""

    create_problem_daemon: Callable[[str], Monitor]
    cmd_option_description: str = ""


_handlers: dict[str, ProblemDaemonHandler] = {}


def register(problem_daemon_type: str, handler: ProblemDaemonHandler) -> None:
    """Register the handler used to create problem daemons of this type."""
    _handlers[problem_daemon_type] = handler


def get_problem_daemon_names() -> list[str]:
    """Return all registered problem daemon types."""
    return list(_handlers)


def get_problem_daemon_handler(problem_daemon_type: str) -> ProblemDaemonHandler:
    """Return the handler of a problem daemon type; raise KeyError if there is none."""
    try:
        return _handlers[problem_daemon_type]
    except KeyError:
        raise KeyError(
            f"Problem daemon handler for {problem_daemon_type} does not exist"
        ) from None


def new_problem_daemons(monitor_config_paths: Mapping[str, Iterable[str]]) -> list[Monitor]:
    """Create one problem daemon per distinct config path; duplicated paths are skipped."""
    daemons: dict[str, Monitor] = {}
    for problem_daemon_type, config_paths in monitor_config_paths.items():
        for config_path in config_paths:
            if config_path in daemons:
                logger.warning("Duplicated problem daemon configuration %r", config_path)
                continue
            handler = get_problem_daemon_handler(problem_daemon_type)
            daemons[config_path] = handler.create_problem_daemon(config_path)
    return list(daemons.values())


def clear_registry() -> None:
    """Forget every registered handler."""
    _handlers.clear()