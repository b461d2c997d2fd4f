"""
OpenAI-compatible speech endpoint.

    POST /v1/audio/speech

Accepts OpenAI's request body (plus an optional ``emotion``) and answers
with audio bytes, so OpenAI TTS clients can point their base URL here:

    from openai import OpenAI
    client = OpenAI(base_url="http://localhost:3000/v1", api_key="...")
    client.audio.speech.create(model="tts-1", voice="alloy", input="Hello").write_to_file("out.mp3")

Protection (both off by default, see config ``rate_limit`` and ``auth``):
    1. fixed-window rate limit per client IP  -> 429 rate_limit_error
    2. bearer token check                     -> 401 invalid_api_key

Response headers:
    Content-Type          per response_format (default audio/mpeg)
    Content-Disposition   attachment; filename="speech.<format>"
    X-Cache               HIT or MISS
    X-Processed-By        OpenAI-Compat-TTS-API
    X-Request-Id          correlation id used in the logs

Errors use OpenAI's error object; see api/errors.py for the mapping.
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response

from tts_proxy.api.dependencies import check_rate_limit, get_tts_service, require_api_key
from tts_proxy.api.errors import openai_response_for, status_for_error
from tts_proxy.api.schemas import SpeechBody
from tts_proxy.core.errors import TTSError
from tts_proxy.core.logging import debug, error, get_logger, set_request_id
from tts_proxy.services.tts_service import SpeechResult, TTSService
from tts_proxy.services.validators import validate_speech_request

router = APIRouter()

_LOG = get_logger("tts-proxy.openai")

PROCESSED_BY = "OpenAI-Compat-TTS-API"


def speech_response(result: SpeechResult) -> Response:
    """Audio response with the headers shared by both speech endpoints."""
    headers = {
        "Content-Disposition": f'attachment; filename="speech.{result.format}"',
        "X-Processed-By": PROCESSED_BY,
        "X-Cache": "HIT" if result.cached else "MISS",
        "X-Request-Id": result.request_id,
    }
    return Response(content=result.audio, media_type=result.content_type, headers=headers)


@router.post(
    "/v1/audio/speech",
    response_class=Response,
    dependencies=[Depends(check_rate_limit), Depends(require_api_key)],
)
async def openai_speech(
    body: SpeechBody,
    service: TTSService = Depends(get_tts_service),
):
    """
    OpenAI-compatible text-to-speech.

    Raises:
        400: Missing model/input/voice, input over 4096 chars, bad speed
        401: Invalid API key (auth enabled)
        429: Rate limit exceeded (rate limiting enabled)
        502: Vendor error code, or audio download failed
        504: Vendor unreachable, or task polling timed out
        4xx/5xx: Vendor HTTP status, passed through

    Example:
        curl -X POST http://localhost:3000/v1/audio/speech \\
            -H "Content-Type: application/json" \\
            -d '{"model": "tts-1", "input": "Hello!", "voice": "alloy"}' \\
            --output speech.mp3
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    try:
        request = validate_speech_request(
            model=body.model,
            text=body.input,
            voice=body.voice,
            response_format=body.response_format,
            speed=body.speed,
            emotion=body.emotion,
        )
        result = await service.synthesize(request, rid)
        return speech_response(result)

    except TTSError as e:
        mapping = status_for_error(e)
        if mapping.status >= 500:
            error(_LOG, "speech_error", status=mapping.status, error=e.message)
        debug(_LOG, "speech_error_details", details=e.details)
        return openai_response_for(e)
