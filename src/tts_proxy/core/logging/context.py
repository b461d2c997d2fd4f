"""
Request correlation and logging state.

The request id lives in a ContextVar so that concurrent requests served on
the same event loop each see their own id. The remaining state (level,
configured flag, resolved config) is process-wide.

Environment Variables:
    - TTS_PROXY_LOG_LEVEL: 1-4 or a level name
    - TTS_PROXY_LOG_DIR: directory for the JSONL log file
    - TTS_PROXY_JSONL_FILE: JSONL filename (default: tts-proxy.jsonl)
    - TTS_PROXY_LOG_ROTATE_BYTES / TTS_PROXY_LOG_ROTATE_BACKUP: rotation
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Request id of the current context, "-" outside a request."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Bind a request id to the current context."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve the logging section from the settings file and environment.

    Priority (highest first):
        1. TTS_PROXY_LOG_* environment variables
        2. ``logging:`` section of the settings file
        3. Built-in defaults (applied by configure_logging)

    Returns:
        Dictionary with any of: level, log_dir, jsonl_file,
        rotate_max_bytes, rotate_backup_count.
    """
    cfg: Dict[str, Any] = {}

    from tts_proxy.core.config import ConfigValidationError, load_settings
    try:
        settings = load_settings()
    except (OSError, ConfigValidationError):
        settings = None
    if settings is not None:
        cfg.update(settings.raw.get("logging", {}) or {})
        # level as validated by core.config (TTS_PROXY_LOG_LEVEL included);
        # an invalid config elsewhere leaves the raw value for coerce_level
        try:
            cfg["level"] = settings.get_proxy_config().logging.level
        except ConfigValidationError:
            pass

    if os.getenv("TTS_PROXY_LOG_DIR"):
        cfg["log_dir"] = os.environ["TTS_PROXY_LOG_DIR"]
    if os.getenv("TTS_PROXY_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["TTS_PROXY_JSONL_FILE"]
    for env_name, key in (
        ("TTS_PROXY_LOG_ROTATE_BYTES", "rotate_max_bytes"),
        ("TTS_PROXY_LOG_ROTATE_BACKUP", "rotate_backup_count"),
    ):
        raw = os.getenv(env_name)
        if raw:
            try:
                cfg[key] = int(raw)
            except ValueError:
                pass  # keep the file/default value

    return cfg
