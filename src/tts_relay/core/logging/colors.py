"""
Console Palette.

Maps relay log vocabulary onto ANSI colors:
    - tags (SUCCESS, FAIL, WARN, ...)
    - attempt outcomes (success, timeout, provider errors)
    - HTTP status codes of delivery responses
    - attempt/probe latency bands

Colors are switched off for non-TTY output, when NO_COLOR is set
(https://no-color.org/) or when TTS_RELAY_NO_COLOR=1.
"""
from __future__ import annotations

import os
import sys
from typing import Any, Optional, TextIO


class Colors:
    RESET = "\033[0m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    GRAY = "\033[90m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


_TAG_COLORS = {
    "SUCCESS": Colors.BRIGHT_GREEN,
    "FAIL": Colors.BRIGHT_RED,
    "ERROR": Colors.BRIGHT_RED,
    "WARN": Colors.BRIGHT_YELLOW,
    "INFO": Colors.BRIGHT_CYAN,
    "DEBUG": Colors.GRAY,
}

# Provider calls are network-bound: (upper bound in seconds, color)
_LATENCY_BANDS = ((0.5, Colors.GREEN), (3.0, Colors.YELLOW))


def supports_color(stream: Optional[TextIO] = None) -> bool:
    """True when ANSI codes should be written to ``stream`` (stdout by default)."""
    if os.getenv("TTS_RELAY_NO_COLOR", "0") == "1" or os.getenv("NO_COLOR"):
        return False

    stream = stream or sys.stdout
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return False

    if sys.platform == "win32":
        try:
            import ctypes
            kernel32 = ctypes.windll.kernel32
            # ENABLE_VIRTUAL_TERMINAL_PROCESSING on STD_OUTPUT_HANDLE
            kernel32.SetConsoleMode(kernel32.GetStdHandle(-11), 7)
        except (AttributeError, OSError):
            return False
    return True


# Re-evaluated by configure_logging(); tests may flip it directly
USE_COLORS = supports_color()


def colorize(text: str, color: str) -> str:
    """Wrap ``text`` in ``color`` when colors are on."""
    if not USE_COLORS:
        return text
    return f"{color}{text}{Colors.RESET}"


def get_tag_color(tag: str) -> str:
    return _TAG_COLORS.get(tag.upper(), Colors.WHITE)


def latency_color(seconds: float) -> str:
    for bound, color in _LATENCY_BANDS:
        if seconds < bound:
            return color
    return Colors.RED


def field_color(key: str, value: Any) -> str:
    """
    Color for one ``key=value`` pair of a console line.

    outcome: success green, timeout yellow, any ErrorKind red.
    status: HTTP status, green below 400, yellow for 4xx, red for 5xx.
    provider: always magenta so attempts are easy to follow.
    """
    if key == "outcome":
        return {"success": Colors.GREEN, "timeout": Colors.YELLOW}.get(str(value), Colors.RED)
    if key == "status" and isinstance(value, int):
        if value < 400:
            return Colors.GREEN
        return Colors.YELLOW if value < 500 else Colors.RED
    if key == "provider":
        return Colors.MAGENTA
    return Colors.DIM
