"""
Log Formatters.

Both formatters read the same custom record attributes, attached by the
emit helpers in ``tts_relay.core.logging``:

    tag            SUCCESS / FAIL / WARN / ERROR / INFO / DEBUG
    numeric_level  1-4
    request_id     correlation id, "-" outside a request
    event          optional sub-event name
    seconds        optional latency
    extra_data     remaining keyword fields (provider, outcome, status, ...)

JSONL line:
    {"ts":"2024-01-15T14:30:05+00:00","level":2,"tag":"SUCCESS","message":"attempt_done",
     "request_id":"abc123","seconds":0.41,"extra":{"provider":"GoogleTTS","outcome":"success"}}

Console line:
    14:30:05 [SUCCESS] (abc123) attempt_done 0.410s provider=GoogleTTS outcome=success
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .colors import Colors, colorize, field_color, get_tag_color, latency_color


def _relay_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        "tag": getattr(record, "tag", record.levelname),
        "level": getattr(record, "numeric_level", 2),
        "request_id": getattr(record, "request_id", "-"),
        "event": getattr(record, "event", None),
        "seconds": getattr(record, "seconds", None),
        "extra": getattr(record, "extra_data", None) or {},
    }


class JsonlFormatter(logging.Formatter):
    """One JSON object per record; optional keys are omitted when empty."""

    def format(self, record: logging.LogRecord) -> str:
        f = _relay_fields(record)
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": f["level"],
            "tag": f["tag"],
            "message": record.getMessage(),
            "request_id": f["request_id"],
        }
        for key in ("event", "seconds"):
            if f[key] is not None:
                payload[key] = f[key]
        if f["extra"]:
            payload["extra"] = f["extra"]
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Short human-readable lines; colors follow ``colors.USE_COLORS``."""

    def format(self, record: logging.LogRecord) -> str:
        f = _relay_fields(record)
        parts: List[str] = [
            colorize(datetime.fromtimestamp(record.created).strftime("%H:%M:%S"), Colors.DIM),
            colorize(f"[{f['tag']:^7}]", get_tag_color(f["tag"])),
        ]
        if f["request_id"] != "-":
            parts.append(colorize(f"({f['request_id']})", Colors.CYAN))
        parts.append(record.getMessage())

        event: Optional[str] = f["event"]
        if event:
            parts.append(colorize(f"event={event}", Colors.BLUE))
        if f["seconds"] is not None:
            parts.append(colorize(f"{f['seconds']:.3f}s", latency_color(f["seconds"])))
        parts.extend(colorize(f"{k}={v}", field_color(k, v)) for k, v in f["extra"].items())

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line
