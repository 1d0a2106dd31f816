"""
Logging State.

Request ids live in a ContextVar. Worker threads do not inherit context on
their own; the orchestrator submits probes and attempts through
contextvars.copy_context().run so their log lines keep the request id of
the conversion that started them.

Process-wide state (current numeric level, resolved logging section) is
held in a single module-level _LogState.

Environment overrides, highest priority first:
    TTS_RELAY_LOG_LEVEL          1-4 or a level name
    TTS_RELAY_LOG_DIR            enables the JSONL file handler
    TTS_RELAY_JSONL_FILE         JSONL file name inside the log dir
    TTS_RELAY_LOG_ROTATE_BYTES   rotation size
    TTS_RELAY_LOG_ROTATE_BACKUP  rotated files kept
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

import yaml

from tts_relay.core.config import ConfigValidationError, load_settings_or_default

from .levels import LogLevel

# "-" marks lines emitted outside any request
_request_id: ContextVar[str] = ContextVar("tts_relay_request_id", default="-")


@dataclass
class _LogState:
    configured: bool = False
    level: LogLevel = LogLevel.NORMAL
    config: Dict[str, Any] = field(default_factory=dict)


_STATE = _LogState()

_ENV_STR = {
    "TTS_RELAY_LOG_LEVEL": "level",
    "TTS_RELAY_LOG_DIR": "log_dir",
    "TTS_RELAY_JSONL_FILE": "jsonl_file",
}
_ENV_INT = {
    "TTS_RELAY_LOG_ROTATE_BYTES": "rotate_max_bytes",
    "TTS_RELAY_LOG_ROTATE_BACKUP": "rotate_backup_count",
}


def get_request_id() -> str:
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Tag every later log line in this context with ``rid``."""
    _request_id.set(rid)


@contextmanager
def request_scope(rid: str) -> Iterator[str]:
    """Temporarily bind ``rid``; the previous id is restored on exit."""
    token = _request_id.set(rid)
    try:
        yield rid
    finally:
        _request_id.reset(token)


def get_level() -> LogLevel:
    return _STATE.level


def set_level(level: LogLevel) -> None:
    _STATE.level = level


def is_configured() -> bool:
    return _STATE.configured


def set_configured(value: bool) -> None:
    _STATE.configured = value


def get_log_config() -> Dict[str, Any]:
    return _STATE.config


def set_log_config(config: Dict[str, Any]) -> None:
    _STATE.config = config


def read_logging_config(section: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Resolve the ``logging`` section: environment over settings over defaults.

    Args:
        section: An already loaded ``logging`` section. When None the
            settings file is read; an unreadable or invalid file is ignored
            so logging still comes up to report the error.
    """
    cfg: Dict[str, Any] = {}
    if section is not None:
        cfg.update(section)
    else:
        try:
            cfg.update(load_settings_or_default().raw.get("logging") or {})
        except (OSError, ValueError, yaml.YAMLError, ConfigValidationError):
            pass

    for var, key in _ENV_STR.items():
        if os.getenv(var):
            cfg[key] = os.environ[var]
    for var, key in _ENV_INT.items():
        value = os.getenv(var)
        if value and value.strip().isdigit():
            cfg[key] = int(value)
    return cfg
