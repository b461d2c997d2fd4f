"""
FastAPI dependency providers.

    get_settings()        - settings loaded once per process
    get_tts_service()     - the shared TTSService
    get_rate_limiter()    - the shared FixedWindowRateLimiter
    check_rate_limit()    - 429 when the caller is over its window
    require_api_key()     - 401 when auth is on and the bearer token is wrong

The last two are attached to /v1/audio/speech only, rate limit first.

Tests swap the service with
``app.dependency_overrides[get_tts_service] = lambda: service``.
"""
from __future__ import annotations

import threading
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request

from tts_proxy.api.errors import APIError
from tts_proxy.api.ratelimit import FixedWindowRateLimiter
from tts_proxy.core.config import Settings, load_settings
from tts_proxy.core.logging import get_logger, warn
from tts_proxy.services.tts_service import TTSService, get_service

_LOG = get_logger("tts-proxy.api")

_limiter: Optional[FixedWindowRateLimiter] = None
_limiter_lock = threading.Lock()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The file comes from $TTS_PROXY_SETTINGS or config/settings.yaml; a
    missing file means defaults plus environment overrides.
    """
    return load_settings()


def get_tts_service() -> TTSService:
    return get_service(get_settings())


def get_rate_limiter(service: TTSService = Depends(get_tts_service)) -> FixedWindowRateLimiter:
    global _limiter
    if _limiter is None:
        with _limiter_lock:
            if _limiter is None:
                cfg = service.config.rate_limit
                _limiter = FixedWindowRateLimiter(cfg.max_requests, cfg.window_s)
    return _limiter


def reset_rate_limiter() -> None:
    global _limiter
    with _limiter_lock:
        _limiter = None


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def check_rate_limit(
    request: Request,
    service: TTSService = Depends(get_tts_service),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
) -> None:
    if not service.config.rate_limit.enabled:
        return

    decision = limiter.hit(_client_ip(request))
    if decision.allowed:
        return

    warn(_LOG, "rate_limited", client=_client_ip(request), limit=decision.limit)
    reset_s = str(int(decision.reset_after_s + 0.999))
    raise APIError(
        429,
        "Rate limit exceeded",
        "rate_limit_error",
        "too_many_requests",
        headers={
            "RateLimit-Limit": str(decision.limit),
            "RateLimit-Remaining": "0",
            "RateLimit-Reset": reset_s,
            "Retry-After": reset_s,
        },
    )


def require_api_key(request: Request, service: TTSService = Depends(get_tts_service)) -> None:
    """
    Bearer-token check, active only when auth is enabled and a key is set.
    """
    auth = service.config.auth
    if not auth.enabled or not auth.api_key:
        return

    header = request.headers.get("authorization", "")
    parts = header.split(" ")
    token = parts[1] if len(parts) > 1 else ""
    if token and token == auth.api_key:
        return

    warn(_LOG, "unauthorized", client=_client_ip(request))
    raise APIError(401, "Invalid authentication credentials", "invalid_request_error", "invalid_api_key")
