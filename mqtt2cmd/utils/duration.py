"""Parsing of duration values written in configuration files."""

import re
from datetime import timedelta
from typing import Union

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """Parse a duration.

    Accepts a timedelta, a number of seconds, or a Go-style duration
    string such as ``"30s"``, ``"1m"`` or ``"1h30m"``.

    Raises:
        ValueError: If the value is not a valid, non-negative duration
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    elif isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        seconds = _parse_string(value.strip())
    else:
        raise ValueError(f"Invalid duration: {value!r}")

    if seconds < 0:
        raise ValueError(f"Duration must not be negative: {value!r}")
    return timedelta(seconds=seconds)


def _parse_string(text: str) -> float:
    if not text:
        raise ValueError("Empty duration")
    if text == "0":
        return 0.0
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    seconds = 0.0
    for match in _PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        raise ValueError(f"Invalid duration: {text!r}")
    return seconds
