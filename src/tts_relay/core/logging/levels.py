"""
Numeric Log Levels.

    1 MINIMAL  startup, shutdown, conversion failures       -> logging.WARNING
    2 NORMAL   conversion lifecycle, provider outcomes      -> logging.INFO
    3 VERBOSE  probe results, per-attempt timing, reads     -> logging.DEBUG
    4 DEBUG    status transitions, internal state           -> logging.DEBUG - 5

The numeric level decides whether an emit helper logs at all; the mapped
Python level only drives the console handler threshold.
"""
from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    MINIMAL = 1
    NORMAL = 2
    VERBOSE = 3
    DEBUG = 4

    @property
    def python_level(self) -> int:
        return LEVEL_MAP[self]


LEVEL_MAP = {
    LogLevel.MINIMAL: logging.WARNING,
    LogLevel.NORMAL: logging.INFO,
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG - 5,
}

LEVEL_NAMES = {level.value: level.name for level in LogLevel}

# Python level names are accepted so TTS_RELAY_LOG_LEVEL=INFO works too
_ALIASES = {
    "CRITICAL": LogLevel.MINIMAL,
    "ERROR": LogLevel.MINIMAL,
    "WARNING": LogLevel.MINIMAL,
    "WARN": LogLevel.MINIMAL,
    "INFO": LogLevel.NORMAL,
    "TRACE": LogLevel.DEBUG,
}


def coerce_level(value: Any) -> LogLevel:
    """
    Resolve settings/env input to a LogLevel.

    Accepts a LogLevel, 1-4, a Python logging level number, a level name
    or a digit string. Unrecognized input resolves to NORMAL.

        >>> coerce_level("verbose")
        <LogLevel.VERBOSE: 3>
        >>> coerce_level(logging.WARNING)
        <LogLevel.MINIMAL: 1>
    """
    if isinstance(value, LogLevel):
        return value

    if isinstance(value, str):
        key = value.strip().upper()
        if key.isdigit():
            value = int(key)
        elif key in LogLevel.__members__:
            return LogLevel[key]
        else:
            return _ALIASES.get(key, LogLevel.NORMAL)

    if isinstance(value, int) and not isinstance(value, bool):
        if 1 <= value <= 4:
            return LogLevel(value)
        if value >= logging.WARNING:
            return LogLevel.MINIMAL
        return LogLevel.NORMAL if value >= logging.INFO else LogLevel.DEBUG

    return LogLevel.NORMAL
