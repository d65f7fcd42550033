"""Turns raw log lines into Log items using configurable regular expressions."""

from __future__ import annotations

import logging
import re
import time as _time
from datetime import datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Mapping, Optional

from nodeproblem.types import Log

logger = logging.getLogger(__name__)

TIMESTAMP_KEY = "timestamp"
MESSAGE_KEY = "message"
TIMESTAMP_FORMAT_KEY = "timestampFormat"

_MONTHS = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

# Reference-time layout elements, longest first where they share a prefix.
_ELEMENTS: list[tuple[str, str, Optional[str]]] = [
    ("January", r"([A-Za-z]+)", "month_name"),
    ("Jan", r"([A-Za-z]{3})", "month_name"),
    ("Monday", r"(?:[A-Za-z]+)", None),
    ("Mon", r"(?:[A-Za-z]{3})", None),
    ("MST", r"([A-Za-z]{3,5})", "zone_name"),
    ("2006", r"(\d{4})", "year"),
    ("-07:00:00", r"([+-]\d{2}:\d{2}:\d{2})", "offset"),
    ("-070000", r"([+-]\d{6})", "offset"),
    ("-07:00", r"([+-]\d{2}:\d{2})", "offset"),
    ("-0700", r"([+-]\d{4})", "offset"),
    ("-07", r"([+-]\d{2})", "offset"),
    ("Z07:00:00", r"(Z|[+-]\d{2}:\d{2}:\d{2})", "offset"),
    ("Z070000", r"(Z|[+-]\d{6})", "offset"),
    ("Z07:00", r"(Z|[+-]\d{2}:\d{2})", "offset"),
    ("Z0700", r"(Z|[+-]\d{4})", "offset"),
    ("Z07", r"(Z|[+-]\d{2})", "offset"),
    ("PM", r"([AaPp][Mm])", "ampm"),
    ("pm", r"([AaPp][Mm])", "ampm"),
    ("_2", r"[ ]?(\d{1,2})", "day"),
    ("15", r"(\d{1,2})", "hour"),
    ("01", r"(\d{2})", "month"),
    ("02", r"(\d{2})", "day"),
    ("03", r"(\d{2})", "hour12"),
    ("04", r"(\d{2})", "minute"),
    ("05", r"(\d{2})", "second"),
    ("06", r"(\d{2})", "year2"),
    ("1", r"(\d{1,2})", "month"),
    ("2", r"(\d{1,2})", "day"),
    ("3", r"(\d{1,2})", "hour12"),
    ("4", r"(\d{1,2})", "minute"),
    ("5", r"(\d{1,2})", "second"),
]


@lru_cache(maxsize=64)
def _compile_layout(layout: str) -> tuple["re.Pattern[str]", tuple[str, ...]]:
    parts: list[str] = []
    fields: list[str] = []
    i, n = 0, len(layout)
    while i < n:
        ch = layout[i]
        if ch in ".," and i + 1 < n and layout[i + 1] in "09":
            digit = layout[i + 1]
            j = i + 1
            while j < n and layout[j] == digit:
                j += 1
            if j == n or not layout[j].isdigit():
                count = j - i - 1
                if digit == "0":
                    parts.append(re.escape(ch) + rf"(\d{{{count}}})")
                else:
                    parts.append(r"(?:[.,](\d+))?")
                fields.append("fraction")
                i = j
                continue
        for element, pattern, kind in _ELEMENTS:
            if layout.startswith(element, i):
                parts.append(pattern)
                if kind is not None:
                    fields.append(kind)
                i += len(element)
                break
        else:
            parts.append(re.escape(ch))
            i += 1
    return re.compile("".join(parts)), tuple(fields)


def _parse_offset(text: str) -> tzinfo:
    if text == "Z":
        return timezone.utc
    sign = -1 if text[0] == "-" else 1
    digits = text[1:].replace(":", "")
    hours = int(digits[0:2])
    minutes = int(digits[2:4] or 0)
    seconds = int(digits[4:6] or 0)
    return timezone(sign * timedelta(hours=hours, minutes=minutes, seconds=seconds))


def _zone_from_name(name: str) -> Optional[tzinfo]:
    if name.upper() in ("UTC", "GMT"):
        return timezone.utc
    if name in _time.tzname:
        return None
    return timezone(timedelta(0), name)


def parse_go_time(layout: str, value: str) -> datetime:
    """Parse ``value`` with a reference-time layout such as ``"Jan _2 15:04:05"``.

    Values without a zone are taken as local time; a missing year becomes the
    current year. The result is always timezone-aware.
    """
    pattern, fields = _compile_layout(layout)
    found = pattern.fullmatch(value)
    if found is None:
        raise ValueError(f"cannot parse {value!r} as {layout!r}")
    year: Optional[int] = None
    month, day, hour, minute, second, micro = 1, 1, 0, 0, 0, 0
    pm: Optional[bool] = None
    zone: Optional[tzinfo] = None
    for kind, text in zip(fields, found.groups()):
        if text is None:
            continue
        if kind == "year":
            year = int(text)
        elif kind == "year2":
            short = int(text)
            year = short + (1900 if short >= 69 else 2000)
        elif kind == "month":
            month = int(text)
        elif kind == "month_name":
            lowered = text.lower()
            matches = [
                idx for idx, name in enumerate(_MONTHS, 1)
                if name == lowered or name[:3] == lowered
            ]
            if not matches:
                raise ValueError(f"cannot parse {value!r} as {layout!r}: bad month {text!r}")
            month = matches[0]
        elif kind == "day":
            day = int(text)
        elif kind in ("hour", "hour12"):
            hour = int(text)
        elif kind == "minute":
            minute = int(text)
        elif kind == "second":
            second = int(text)
        elif kind == "fraction":
            micro = int(text[:6].ljust(6, "0"))
        elif kind == "ampm":
            pm = text.lower() == "pm"
        elif kind == "offset":
            zone = _parse_offset(text)
        elif kind == "zone_name" and zone is None:
            zone = _zone_from_name(text)
    if pm is not None:
        if hour > 12:
            raise ValueError(f"cannot parse {value!r} as {layout!r}: hour out of range")
        hour = hour % 12 + (12 if pm else 0)
    if year is None:
        year = datetime.now().year
    try:
        if zone is None:
            return datetime(year, month, day, hour, minute, second, micro).astimezone()
        return datetime(year, month, day, hour, minute, second, micro, tzinfo=zone)
    except ValueError as exc:
        raise ValueError(f"cannot parse {value!r} as {layout!r}: {exc}") from exc


def validate_plugin_config(cfg: Mapping[str, str]) -> None:
    """Raise ValueError if a required translator setting is missing."""
    if not cfg.get(TIMESTAMP_KEY):
        raise ValueError("unexpected empty timestamp regular expression")
    if not cfg.get(MESSAGE_KEY):
        raise ValueError("unexpected empty message regular expression")
    if not cfg.get(TIMESTAMP_FORMAT_KEY):
        raise ValueError("unexpected empty timestamp format string")


def _last_submatch(found: "re.Match[str]") -> str:
    if found.re.groups == 0:
        return found.group(0)
    return found.group(found.re.groups) or ""


class Translator:
    """Extracts timestamp and message from a line; the last submatch of each regex is used."""

    def __init__(self, plugin_config: Mapping[str, str]) -> None:
        try:
            validate_plugin_config(plugin_config)
        except ValueError as exc:
            logger.error("Failed to validate plugin configuration %r: %s", plugin_config, exc)
        self.timestamp_regexp = re.compile(plugin_config.get(TIMESTAMP_KEY, ""))
        self.message_regexp = re.compile(plugin_config.get(MESSAGE_KEY, ""))
        self.timestamp_format = plugin_config.get(TIMESTAMP_FORMAT_KEY, "")

    def translate(self, line: str) -> Log:
        """Translate one line; raise ValueError if it cannot be parsed."""
        found = self.timestamp_regexp.search(line)
        if found is None:
            raise ValueError(
                f"no timestamp found in line {line!r} with regular expression "
                f"{self.timestamp_regexp.pattern}"
            )
        stamp = _last_submatch(found)
        try:
            timestamp = parse_go_time(self.timestamp_format, stamp)
        except ValueError as exc:
            raise ValueError(f"failed to parse timestamp {stamp!r}: {exc}") from exc
        found = self.message_regexp.search(line)
        if found is None:
            raise ValueError(
                f"no message found in line {line!r} with regular expression "
                f"{self.message_regexp.pattern}"
            )
        return Log(timestamp=timestamp, message=_last_submatch(found))