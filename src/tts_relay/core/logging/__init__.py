"""
tts-relay Structured Logging.

Standard-library logging with a numeric verbosity knob, a colored console
handler and an optional JSONL file for machine parsing. Only the
"tts-relay" logger tree is configured; uvicorn, httpx and the root logger
keep whatever handlers they already have.

Levels (see levels.py):
    1 MINIMAL   2 NORMAL (default)   3 VERBOSE   4 DEBUG

Configuration:
    settings.yaml:
        logging:
          level: 2
          log_dir: logs
          jsonl_file: tts-relay.jsonl

    Environment (wins over the file):
        TTS_RELAY_LOG_LEVEL=3  TTS_RELAY_LOG_DIR=logs  TTS_RELAY_NO_COLOR=1

Usage:
    from tts_relay.core.logging import get_logger, info, warn, verbose

    _LOG = get_logger("tts-relay.orchestrator")

    info(_LOG, "conversion_started", chars=150)
    warn(_LOG, "attempt_failed", provider="VoiceRSS", outcome="timeout", seconds=3.0)
    verbose(_LOG, "probe_result", provider="GoogleTTS", available=True)

Every emit helper takes an event name and keyword fields. ``seconds`` and
``event`` are lifted into their own record attributes; the rest ends up
under ``extra`` in JSONL and as ``key=value`` on the console.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from . import colors
from .colors import Colors, colorize, get_tag_color, supports_color
from .context import (
    get_level,
    get_log_config,
    get_request_id,
    is_configured,
    read_logging_config,
    request_scope,
    set_configured,
    set_level,
    set_log_config,
    set_request_id,
)
from .formatters import ColoredConsoleFormatter, JsonlFormatter
from .levels import LEVEL_MAP, LEVEL_NAMES, LogLevel, coerce_level

ROOT_LOGGER = "tts-relay"

_DEFAULT_JSONL = "tts-relay.jsonl"
_DEFAULT_ROTATE_BYTES = 10 * 1024 * 1024
_DEFAULT_ROTATE_BACKUPS = 5


def _file_handler(log_config: Dict[str, Any]) -> Optional[logging.Handler]:
    log_dir = log_config.get("log_dir")
    if not log_dir:
        return None
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        Path(log_dir) / str(log_config.get("jsonl_file", _DEFAULT_JSONL)),
        maxBytes=int(log_config.get("rotate_max_bytes", _DEFAULT_ROTATE_BYTES)),
        backupCount=int(log_config.get("rotate_backup_count", _DEFAULT_ROTATE_BACKUPS)),
        encoding="utf-8",
        delay=True,
    )
    # The file keeps every line that passed the numeric filter
    handler.setLevel(1)
    handler.setFormatter(JsonlFormatter())
    return handler


def configure_logging(
    level: Optional[int | str | LogLevel] = None,
    force: bool = False,
    section: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Install handlers on the "tts-relay" logger.

    Args:
        level: Overrides the configured level (1-4, a name, or LogLevel).
        force: Rebuild handlers even when already configured.
        section: ``logging`` settings to use instead of reading the file.
    """
    if is_configured() and not force:
        return

    colors.USE_COLORS = supports_color()

    log_config = read_logging_config(section)
    set_log_config(log_config)
    current = coerce_level(level if level is not None else log_config.get("level", LogLevel.NORMAL))
    set_level(current)

    relay = logging.getLogger(ROOT_LOGGER)
    # 1 instead of 0: level 0 would defer to the root logger
    relay.setLevel(1)
    relay.propagate = False
    for handler in list(relay.handlers):
        relay.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(current.python_level)
    console.setFormatter(ColoredConsoleFormatter())
    relay.addHandler(console)

    file_handler = _file_handler(log_config)
    if file_handler is not None:
        relay.addHandler(file_handler)

    set_configured(True)


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Logger under the "tts-relay" tree, configuring logging on first use.

    Use dotted names ("tts-relay.storage") so records reach the
    configured handlers.
    """
    configure_logging()
    return logging.getLogger(name)


def _emit(logger: logging.Logger, python_level: int, tag: str, numeric_level: LogLevel,
          msg: str, fields: Dict[str, Any]) -> None:
    if numeric_level > get_level():
        return
    event = fields.pop("event", None)
    seconds = fields.pop("seconds", None)
    logger.log(
        python_level,
        msg,
        extra={
            "tag": tag,
            "numeric_level": int(numeric_level),
            "request_id": get_request_id(),
            "event": event,
            "seconds": seconds,
            "extra_data": fields or None,
        },
    )


def _helper(name: str, python_level: int, tag: str, numeric_level: LogLevel) -> Callable[..., None]:
    def log_fn(logger: logging.Logger, msg: str, **fields: Any) -> None:
        _emit(logger, python_level, tag, numeric_level, msg, fields)

    log_fn.__name__ = log_fn.__qualname__ = name
    log_fn.__doc__ = f"Log a {tag} line, shown from level {int(numeric_level)} ({numeric_level.name})."
    return log_fn


error = _helper("error", logging.ERROR, "ERROR", LogLevel.MINIMAL)
fail = _helper("fail", logging.ERROR, "FAIL", LogLevel.MINIMAL)
warn = _helper("warn", logging.WARNING, "WARN", LogLevel.NORMAL)
info = _helper("info", logging.INFO, "INFO", LogLevel.NORMAL)
success = _helper("success", logging.INFO, "SUCCESS", LogLevel.NORMAL)
verbose = _helper("verbose", logging.DEBUG, "INFO", LogLevel.VERBOSE)
debug = _helper("debug", logging.DEBUG - 5, "DEBUG", LogLevel.DEBUG)


__all__ = [
    "LogLevel",
    "LEVEL_MAP",
    "LEVEL_NAMES",
    "coerce_level",
    "Colors",
    "colorize",
    "get_tag_color",
    "supports_color",
    "get_level",
    "set_level",
    "get_log_config",
    "get_request_id",
    "set_request_id",
    "request_scope",
    "ColoredConsoleFormatter",
    "JsonlFormatter",
    "configure_logging",
    "get_logger",
    "error",
    "fail",
    "warn",
    "info",
    "success",
    "verbose",
    "debug",
]
