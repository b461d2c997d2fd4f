"""
Log formatters: JSON Lines for files, colored text for the console.

Console example:
    14:30:05 [ INFO  ] (3f2a9c1d0b7e) submit_ok result=pending task_id=8812
    14:30:06 [ WARN  ] (3f2a9c1d0b7e) upstream_retry attempt=1 status=503

JSONL example:
    {"ts": "2024-01-15T14:30:05+03:00", "level": 2, "tag": "INFO",
     "message": "submit_ok", "request_id": "3f2a9c1d0b7e",
     "extra": {"result": "pending", "task_id": "8812"}}
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from .colors import Colors, get_tag_color


def _use_colors() -> bool:
    # Read at format time so tests and configure_logging can flip it.
    import tts_proxy.core.logging as log_module
    return bool(getattr(log_module, "USE_COLORS", False))


def _paint(text: str, color: str) -> str:
    if not _use_colors():
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """One JSON object per line, with request id and structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Human-readable console lines.

    Format: ``HH:MM:SS [ TAG ] (rid) message event=... 0.123s key=value``

    Timings are green under 0.5s, yellow under 3s and red above; upstream
    HTTP statuses are red for 5xx, yellow for 4xx and green otherwise.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "request_id", "-")

        parts = [
            _paint(ts, Colors.DIM),
            _paint(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if rid != "-":
            parts.append(_paint(f"({rid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(_paint(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 0.5:
                color = Colors.GREEN
            elif seconds < 3.0:
                color = Colors.YELLOW
            else:
                color = Colors.RED
            parts.append(_paint(f"{seconds:.3f}s", color))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for key, value in extra_data.items():
                parts.append(_paint(f"{key}={value}", self._field_color(key, value)))

        return " ".join(parts)

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key == "status" and isinstance(value, int):
            if value >= 500:
                return Colors.RED
            if value >= 400:
                return Colors.YELLOW
            return Colors.GREEN
        if key == "cache":
            return Colors.GREEN if value == "hit" else Colors.MAGENTA
        if key in ("attempt", "attempts"):
            return Colors.YELLOW
        return Colors.DIM
