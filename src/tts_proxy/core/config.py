"""
Configuration Management for tts-proxy.

Configuration Hierarchy (highest priority first):
    1. Environment variables (TTS_PROXY_*)
    2. YAML config file (config/settings.yaml, or $TTS_PROXY_SETTINGS)
    3. Defaults class values

A missing settings file is not an error: the proxy runs on defaults plus
environment overrides, which is how container deployments configure it.

Example settings.yaml:
    upstream:
      api_key: "..."
      retry_count: 2
      vendor:
        device_id: "..."
        token: "..."

    cache:
      enabled: true
      ttl_seconds: 3600
      max_size: 1000

    voices:
      alloy: voice1
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from tts_proxy.core.logging.levels import coerce_level

DEFAULT_SETTINGS_PATH = "config/settings.yaml"


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or malformed."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Server: bind address for `tts-proxy serve`
        - Upstream: vendor endpoints, credentials, timeouts, retries
        - Polling: long-running task status polling
        - Cache: in-memory audio cache
        - Transcoder: ffmpeg location
        - Auth / Rate limit: inbound protection for /v1/audio/speech
        - Logging
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Server
    # ─────────────────────────────────────────────────────────────────────────
    SERVER_HOST = "0.0.0.0"
    SERVER_PORT = 3000

    # ─────────────────────────────────────────────────────────────────────────
    # Upstream vendor API
    # ─────────────────────────────────────────────────────────────────────────
    UPSTREAM_URL = "https://user.api.hudunsoft.com/v1/alivoice/texttoaudio"
    UPSTREAM_TASK_URL = "https://user.api.hudunsoft.com/v1/alivoice/textTaskInfo"
    UPSTREAM_TIMEOUT_S = 30.0           # Submission and status calls
    UPSTREAM_RETRY_COUNT = 2            # Extra attempts after the first failure
    UPSTREAM_DOWNLOAD_TIMEOUT_S = 60.0  # Audio asset download

    # Static vendor form/header values
    VENDOR_X_DOMAIN = "user.api.hudunsoft.com"
    VENDOR_X_PRODUCT = "335"
    VENDOR_X_VERSION = "5.7.0.0"
    VENDOR_CLIENT = "web"
    VENDOR_SOURCE = "335"
    VENDOR_SOFT_VERSION = "V4.4.0.0"
    VENDOR_BG_ID = "0"
    VENDOR_BG_VOLUME = "5"
    VENDOR_VOLUME = "5"
    VENDOR_PITCH_RATE = "5"
    VENDOR_USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/140.0.0.0 Safari/537.36"
    )

    # ─────────────────────────────────────────────────────────────────────────
    # Task polling
    # ─────────────────────────────────────────────────────────────────────────
    POLL_MAX_ATTEMPTS = 30
    POLL_INTERVAL_MS = 1000

    # ─────────────────────────────────────────────────────────────────────────
    # Cache
    # ─────────────────────────────────────────────────────────────────────────
    CACHE_ENABLED = False
    CACHE_TTL_SECONDS = 3600
    CACHE_MAX_SIZE = 1000

    # ─────────────────────────────────────────────────────────────────────────
    # Transcoder
    # ─────────────────────────────────────────────────────────────────────────
    FFMPEG_PATH = "ffmpeg"

    # ─────────────────────────────────────────────────────────────────────────
    # Inbound protection
    # ─────────────────────────────────────────────────────────────────────────
    AUTH_ENABLED = False
    RATE_LIMIT_ENABLED = False
    RATE_LIMIT_WINDOW_S = 60
    RATE_LIMIT_MAX_REQUESTS = 100

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_LEVEL = 2
    LOGGING_TEXT_PREVIEW_CHARS = 20


# OpenAI voice name -> vendor voice id
DEFAULT_VOICE_MAPPING: Dict[str, str] = {
    "alloy": "voice1",
    "echo": "voice2",
    "fable": "voice3",
    "onyx": "voice4",
    "nova": "voice5",
    "shimmer": "voice6",
    "ash": "voice6",
    "ballad": "voice6",
    "coral": "voice6",
    "sage": "voice6",
    "verse": "voice6",
    "marin": "voice6",
    "cedar": "voice6",
}

# Container name -> response Content-Type
DEFAULT_FORMAT_MAPPING: Dict[str, str] = {
    "mp3": "audio/mpeg",
    "opus": "audio/opus",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "amr": "audio/amr",
}


@dataclass
class ServerConfig:
    host: str = Defaults.SERVER_HOST
    port: int = Defaults.SERVER_PORT


@dataclass
class VendorConfig:
    """
    Static values the vendor expects on every call.

    Header values (x_domain, x_product, x_version) identify the calling
    product; the rest are form fields copied into each submission.
    """
    x_domain: str = Defaults.VENDOR_X_DOMAIN
    x_product: str = Defaults.VENDOR_X_PRODUCT
    x_version: str = Defaults.VENDOR_X_VERSION
    client: str = Defaults.VENDOR_CLIENT
    source: str = Defaults.VENDOR_SOURCE
    soft_version: str = Defaults.VENDOR_SOFT_VERSION
    device_id: str = ""
    token: str = ""
    bg_id: str = Defaults.VENDOR_BG_ID
    bg_volume: str = Defaults.VENDOR_BG_VOLUME
    volume: str = Defaults.VENDOR_VOLUME
    pitch_rate: str = Defaults.VENDOR_PITCH_RATE
    bg_url: str = ""
    user_agent: str = Defaults.VENDOR_USER_AGENT


@dataclass
class UpstreamConfig:
    url: str = Defaults.UPSTREAM_URL
    task_url: str = Defaults.UPSTREAM_TASK_URL
    api_key: str = ""
    timeout_s: float = Defaults.UPSTREAM_TIMEOUT_S
    retry_count: int = Defaults.UPSTREAM_RETRY_COUNT
    download_timeout_s: float = Defaults.UPSTREAM_DOWNLOAD_TIMEOUT_S
    vendor: VendorConfig = field(default_factory=VendorConfig)


@dataclass
class PollingConfig:
    max_attempts: int = Defaults.POLL_MAX_ATTEMPTS
    interval_ms: int = Defaults.POLL_INTERVAL_MS


@dataclass
class CacheConfig:
    """
    In-memory audio cache.

    Disabled by default; the proxy is correct either way, the cache only
    saves vendor round-trips for repeated requests.
    """
    enabled: bool = Defaults.CACHE_ENABLED
    ttl_seconds: int = Defaults.CACHE_TTL_SECONDS
    max_size: int = Defaults.CACHE_MAX_SIZE


@dataclass
class TranscoderConfig:
    ffmpeg_path: str = Defaults.FFMPEG_PATH


@dataclass
class AuthConfig:
    enabled: bool = Defaults.AUTH_ENABLED
    api_key: Optional[str] = None


@dataclass
class RateLimitConfig:
    enabled: bool = Defaults.RATE_LIMIT_ENABLED
    window_s: int = Defaults.RATE_LIMIT_WINDOW_S
    max_requests: int = Defaults.RATE_LIMIT_MAX_REQUESTS


@dataclass
class LoggingConfig:
    level: int = Defaults.LOGGING_LEVEL
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS


@dataclass
class ProxyConfig:
    """
    Validated, typed view over Settings.

    Usage:
        settings = load_settings()
        config = ProxyConfig.from_settings(settings)
        print(config.upstream.retry_count)
    """
    server: ServerConfig = field(default_factory=ServerConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    transcoder: TranscoderConfig = field(default_factory=TranscoderConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    voices: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_VOICE_MAPPING))
    formats: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FORMAT_MAPPING))

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ProxyConfig":
        """
        Build a ProxyConfig from raw settings, applying defaults.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Server
        # ─────────────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {}) or {}
        server = ServerConfig(
            host=str(server_raw.get("host", Defaults.SERVER_HOST)),
            port=cls._as_int("server.port", server_raw.get("port", Defaults.SERVER_PORT)),
        )
        cls._validate_range("server.port", server.port, 1, 65535)

        # ─────────────────────────────────────────────────────────────────────
        # Upstream + vendor constants
        # ─────────────────────────────────────────────────────────────────────
        upstream_raw = raw.get("upstream", {}) or {}
        vendor_raw = upstream_raw.get("vendor", {}) or {}
        vendor_defaults = VendorConfig()
        vendor = VendorConfig(**{
            name: str(vendor_raw.get(name, getattr(vendor_defaults, name)))
            for name in vendor_defaults.__dataclass_fields__
        })
        upstream = UpstreamConfig(
            url=str(upstream_raw.get("url", Defaults.UPSTREAM_URL)),
            task_url=str(upstream_raw.get("task_url", Defaults.UPSTREAM_TASK_URL)),
            api_key=str(upstream_raw.get("api_key", "") or ""),
            timeout_s=cls._as_float("upstream.timeout_s",
                                    upstream_raw.get("timeout_s", Defaults.UPSTREAM_TIMEOUT_S)),
            retry_count=cls._as_int("upstream.retry_count",
                                    upstream_raw.get("retry_count", Defaults.UPSTREAM_RETRY_COUNT)),
            download_timeout_s=cls._as_float(
                "upstream.download_timeout_s",
                upstream_raw.get("download_timeout_s", Defaults.UPSTREAM_DOWNLOAD_TIMEOUT_S),
            ),
            vendor=vendor,
        )
        cls._validate_positive("upstream.timeout_s", upstream.timeout_s)
        cls._validate_non_negative("upstream.retry_count", upstream.retry_count)
        cls._validate_positive("upstream.download_timeout_s", upstream.download_timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Polling
        # ─────────────────────────────────────────────────────────────────────
        polling_raw = raw.get("polling", {}) or {}
        polling = PollingConfig(
            max_attempts=cls._as_int("polling.max_attempts",
                                     polling_raw.get("max_attempts", Defaults.POLL_MAX_ATTEMPTS)),
            interval_ms=cls._as_int("polling.interval_ms",
                                    polling_raw.get("interval_ms", Defaults.POLL_INTERVAL_MS)),
        )
        cls._validate_positive("polling.max_attempts", polling.max_attempts)
        cls._validate_non_negative("polling.interval_ms", polling.interval_ms)

        # ─────────────────────────────────────────────────────────────────────
        # Cache
        # ─────────────────────────────────────────────────────────────────────
        cache_raw = raw.get("cache", {}) or {}
        cache = CacheConfig(
            enabled=_as_bool(cache_raw.get("enabled", Defaults.CACHE_ENABLED)),
            ttl_seconds=cls._as_int("cache.ttl_seconds",
                                    cache_raw.get("ttl_seconds", Defaults.CACHE_TTL_SECONDS)),
            max_size=cls._as_int("cache.max_size", cache_raw.get("max_size", Defaults.CACHE_MAX_SIZE)),
        )
        cls._validate_positive("cache.ttl_seconds", cache.ttl_seconds)
        cls._validate_positive("cache.max_size", cache.max_size)

        # ─────────────────────────────────────────────────────────────────────
        # Transcoder
        # ─────────────────────────────────────────────────────────────────────
        transcoder_raw = raw.get("transcoder", {}) or {}
        transcoder = TranscoderConfig(
            ffmpeg_path=str(transcoder_raw.get("ffmpeg_path", Defaults.FFMPEG_PATH)),
        )

        # ─────────────────────────────────────────────────────────────────────
        # Auth / rate limiting
        # ─────────────────────────────────────────────────────────────────────
        auth_raw = raw.get("auth", {}) or {}
        auth = AuthConfig(
            enabled=_as_bool(auth_raw.get("enabled", Defaults.AUTH_ENABLED)),
            api_key=auth_raw.get("api_key") or None,
        )

        rate_raw = raw.get("rate_limit", {}) or {}
        rate_limit = RateLimitConfig(
            enabled=_as_bool(rate_raw.get("enabled", Defaults.RATE_LIMIT_ENABLED)),
            window_s=cls._as_int("rate_limit.window_s",
                                 rate_raw.get("window_s", Defaults.RATE_LIMIT_WINDOW_S)),
            max_requests=cls._as_int("rate_limit.max_requests",
                                     rate_raw.get("max_requests", Defaults.RATE_LIMIT_MAX_REQUESTS)),
        )
        cls._validate_positive("rate_limit.window_s", rate_limit.window_s)
        cls._validate_positive("rate_limit.max_requests", rate_limit.max_requests)

        # ─────────────────────────────────────────────────────────────────────
        # Logging (string levels accepted, e.g. "info", "debug")
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)
        if isinstance(level_raw, str):
            level = int(coerce_level(level_raw))
        else:
            level = cls._as_int("logging.level", level_raw)
        logging_cfg = LoggingConfig(
            level=level,
            text_preview_chars=cls._as_int(
                "logging.text_preview_chars",
                logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS),
            ),
        )
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        # ─────────────────────────────────────────────────────────────────────
        # Mapping tables (merged over the defaults)
        # ─────────────────────────────────────────────────────────────────────
        voices = dict(DEFAULT_VOICE_MAPPING)
        voices.update({str(k): str(v) for k, v in (raw.get("voices", {}) or {}).items()})
        formats = dict(DEFAULT_FORMAT_MAPPING)
        formats.update({str(k): str(v) for k, v in (raw.get("formats", {}) or {}).items()})

        return cls(
            server=server,
            upstream=upstream,
            polling=polling,
            cache=cache,
            transcoder=transcoder,
            auth=auth,
            rate_limit=rate_limit,
            logging=logging_cfg,
            voices=voices,
            formats=formats,
        )

    @staticmethod
    def _as_int(name: str, value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigValidationError(f"{name} must be an integer, got {value!r}")

    @staticmethod
    def _as_float(name: str, value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigValidationError(f"{name} must be a number, got {value!r}")

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class Settings:
    """
    Immutable raw settings as loaded from YAML plus environment overrides.

    Use get_proxy_config() for the validated, typed view.
    """
    raw: Dict[str, Any]

    def get_proxy_config(self) -> ProxyConfig:
        return ProxyConfig.from_settings(self)


# env var -> (path into raw settings, converter)
_ENV_OVERRIDES: Dict[str, tuple[tuple[str, ...], Callable[[str], Any]]] = {
    "TTS_PROXY_HOST": (("server", "host"), str),
    "TTS_PROXY_PORT": (("server", "port"), int),
    "TTS_PROXY_UPSTREAM_URL": (("upstream", "url"), str),
    "TTS_PROXY_UPSTREAM_TASK_URL": (("upstream", "task_url"), str),
    "TTS_PROXY_API_KEY": (("upstream", "api_key"), str),
    "TTS_PROXY_UPSTREAM_TIMEOUT": (("upstream", "timeout_s"), float),
    "TTS_PROXY_RETRY_COUNT": (("upstream", "retry_count"), int),
    "TTS_PROXY_VENDOR_DEVICE_ID": (("upstream", "vendor", "device_id"), str),
    "TTS_PROXY_VENDOR_TOKEN": (("upstream", "vendor", "token"), str),
    "TTS_PROXY_VENDOR_X_DOMAIN": (("upstream", "vendor", "x_domain"), str),
    "TTS_PROXY_VENDOR_X_PRODUCT": (("upstream", "vendor", "x_product"), str),
    "TTS_PROXY_VENDOR_X_VERSION": (("upstream", "vendor", "x_version"), str),
    "TTS_PROXY_POLL_MAX_ATTEMPTS": (("polling", "max_attempts"), int),
    "TTS_PROXY_POLL_INTERVAL_MS": (("polling", "interval_ms"), int),
    "TTS_PROXY_CACHE_ENABLED": (("cache", "enabled"), _as_bool),
    "TTS_PROXY_CACHE_TTL": (("cache", "ttl_seconds"), int),
    "TTS_PROXY_CACHE_MAX_SIZE": (("cache", "max_size"), int),
    "TTS_PROXY_FFMPEG_PATH": (("transcoder", "ffmpeg_path"), str),
    "TTS_PROXY_AUTH_ENABLED": (("auth", "enabled"), _as_bool),
    "TTS_PROXY_AUTH_KEY": (("auth", "api_key"), str),
    "TTS_PROXY_RATE_LIMIT_ENABLED": (("rate_limit", "enabled"), _as_bool),
    "TTS_PROXY_RATE_LIMIT_WINDOW": (("rate_limit", "window_s"), int),
    "TTS_PROXY_RATE_LIMIT_MAX": (("rate_limit", "max_requests"), int),
    "TTS_PROXY_LOG_LEVEL": (("logging", "level"), str),
}

_VOICE_ENV_PREFIX = "TTS_PROXY_VOICE_"


def _apply_env_overrides(raw: Dict[str, Any]) -> None:
    for env_name, (path, convert) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None or value == "":
            continue
        try:
            converted = convert(value)
        except ValueError:
            raise ConfigValidationError(f"{env_name} has an invalid value: {value!r}")
        node = raw
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = converted

    # TTS_PROXY_VOICE_ALLOY=voice7 -> voices.alloy
    for env_name, value in os.environ.items():
        if env_name.startswith(_VOICE_ENV_PREFIX) and value:
            voice = env_name[len(_VOICE_ENV_PREFIX):].lower()
            raw.setdefault("voices", {})[voice] = value


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from YAML and apply environment overrides.

    Args:
        path: Settings file. Defaults to $TTS_PROXY_SETTINGS, then
            config/settings.yaml. A missing file yields an empty base.

    Returns:
        Settings object with the merged raw configuration.

    Raises:
        ConfigValidationError: If the file is not a YAML mapping or an
            environment override cannot be converted.
    """
    p = Path(path or os.getenv("TTS_PROXY_SETTINGS", DEFAULT_SETTINGS_PATH))

    raw: Dict[str, Any] = {}
    if p.exists():
        with p.open("r", encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigValidationError(f"invalid YAML in {p}: {e}")
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigValidationError(f"settings file must contain a mapping: {p}")
        raw = loaded or {}

    _apply_env_overrides(raw)
    return Settings(raw=raw)
