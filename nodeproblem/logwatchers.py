"""Registry of log watcher plugins."""

from __future__ import annotations

import logging
from typing import Callable

from nodeproblem.filelog import FilelogWatcher
from nodeproblem.kmsg import KmsgWatcher
from nodeproblem.types import LogWatcher, WatcherConfig

logger = logging.getLogger(__name__)

WatcherCreateFunc = Callable[[WatcherConfig], LogWatcher]

_create_funcs: dict[str, WatcherCreateFunc] = {}


def register_log_watcher(name: str, create: WatcherCreateFunc) -> None:
    """Register the create function of a log watcher plugin."""
    _create_funcs[name] = create


def get_log_watcher(config: WatcherConfig) -> LogWatcher:
    """Create the log watcher named by ``config.plugin``; raise KeyError if unknown."""
    try:
        create = _create_funcs[config.plugin]
    except KeyError:
        raise KeyError(f"No create function found for plugin {config.plugin!r}") from None
    logger.info("Use log watcher of plugin %r", config.plugin)
    return create(config)


register_log_watcher("filelog", lambda cfg: FilelogWatcher(cfg))
register_log_watcher("kmsg", lambda cfg: KmsgWatcher(cfg))