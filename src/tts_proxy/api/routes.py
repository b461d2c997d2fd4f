"""
Service routes.

Endpoints:
    GET /api/generate-tts  - demo speech endpoint used by browser pages
    GET /health            - liveness, version, memory and cache stats
    GET /metrics           - Prometheus metrics

The demo endpoint takes its text base64-encoded (of the percent-encoded
string) so arbitrary text survives the query string:

    text = btoa(encodeURIComponent("Hello world"))
    GET /api/generate-tts?text=SGVsbG8lMjB3b3JsZA==&voice=alloy&response_format=mp3

Demo requests go through the same pipeline as /v1/audio/speech but use a
separate cache namespace, and errors come back as
``{"code": <status>, "message": "...", "data": null}``. The demo endpoint
is not behind auth or rate limiting.
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from tts_proxy.api.dependencies import get_tts_service
from tts_proxy.api.errors import demo_response_for, status_for_error
from tts_proxy.api.openai_compat import speech_response
from tts_proxy.api.schemas import HealthResponse
from tts_proxy.core.errors import TTSError
from tts_proxy.core.logging import error, get_logger, set_request_id
from tts_proxy.core.metrics import metrics
from tts_proxy.services.tts_service import TTSService
from tts_proxy.services.validators import validate_demo_request

router = APIRouter()

_LOG = get_logger("tts-proxy.api")


@router.get("/api/generate-tts", response_class=Response)
async def generate_tts(
    text: Optional[str] = None,
    voice: Optional[str] = None,
    speed: Optional[str] = None,
    emotion: Optional[str] = None,
    response_format: Optional[str] = None,
    format_alias: Optional[str] = Query(default=None, alias="format"),
    service: TTSService = Depends(get_tts_service),
):
    """
    Demo text-to-speech via query parameters.

    Args:
        text: base64(encodeURIComponent(text)), required.
        voice: Voice name, required.
        speed: Speed multiplier (default 1.0).
        emotion: Optional vendor emotion tag.
        response_format: Output format (``format`` is accepted as alias).
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    try:
        request = validate_demo_request(
            text=text,
            voice=voice,
            response_format=response_format or format_alias,
            speed=speed,
            emotion=emotion,
        )
        result = await service.synthesize(request, rid)
        return speech_response(result)

    except TTSError as e:
        if status_for_error(e).status >= 500:
            error(_LOG, "demo_error", error=e.message)
        return demo_response_for(e)


@router.get("/health", response_model=HealthResponse)
def health(service: TTSService = Depends(get_tts_service)):
    """
    Liveness probe.

    Returns:
        status, timestamp, version, memoryUsage and cache statistics.
    """
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus text format metrics."""
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
