"""
Input validation for speech requests.

Validation happens before any vendor call so that bad requests never
cost a submission.

Rules:
    - model, input and voice are required (non-empty)
    - input: at most 4096 characters
    - speed: a number (no range check; see speed_to_rate)
    - response_format: defaults to mp3, letters and digits only
    - demo text: base64 of a percent-encoded string

All failures raise ValidationError (core.errors) with ``param`` set to
the offending field where there is one.

Usage:
    from tts_proxy.services.validators import validate_speech_request

    request = validate_speech_request(
        model=body.model, text=body.input, voice=body.voice,
        response_format=body.response_format, speed=body.speed,
    )
"""
from __future__ import annotations

import base64
import binascii
import math
import re
from typing import Any, Optional
from urllib.parse import unquote

from tts_proxy.core.errors import ErrorCode, ValidationError
from tts_proxy.core.logging import get_logger, warn
from tts_proxy.tts.models import MAX_INPUT_CHARS, SpeechRequest

_LOG = get_logger("tts-proxy.validators")

MISSING_PARAMS_MESSAGE = "Missing required parameters: model, input, or voice"
MISSING_DEMO_PARAMS_MESSAGE = "Missing required parameters: text or voice"
TEXT_TOO_LONG_MESSAGE = f"Input text too long. Maximum length is {MAX_INPUT_CHARS} characters."

_FORMAT_RE = re.compile(r"^[A-Za-z0-9]+$")


def validate_text(text: Any, max_length: int = MAX_INPUT_CHARS) -> str:
    """
    Check the input text length.

    The text is not stripped or normalized; the vendor receives exactly
    what the caller sent.
    """
    if not isinstance(text, str):
        raise ValidationError("input must be a string", param="input")
    if len(text) > max_length:
        warn(_LOG, "text_too_long", chars=len(text))
        raise ValidationError(TEXT_TOO_LONG_MESSAGE, ErrorCode.TEXT_TOO_LONG, param="input")
    return text


def validate_speed(speed: Any) -> float:
    if speed is None or speed == "":
        return 1.0
    if isinstance(speed, bool):
        raise ValidationError("speed must be a number", param="speed")
    try:
        value = float(speed)
    except (TypeError, ValueError):
        raise ValidationError("speed must be a number", param="speed")
    if not math.isfinite(value):
        raise ValidationError("speed must be a finite number", param="speed")
    # speeds from 1.5 up use the unclamped rate formula, which must stay finite
    if value >= 1.5 and not math.isfinite((value - 1) / 3 * 6):
        raise ValidationError("speed is out of range", param="speed")
    return value


def validate_format(response_format: Optional[str]) -> str:
    """Empty means mp3. Unknown formats pass (served as audio/mpeg)."""
    if not response_format:
        return "mp3"
    fmt = str(response_format)
    # ends up in Content-Disposition
    if not _FORMAT_RE.match(fmt):
        raise ValidationError(f"Invalid response_format: {fmt!r}", param="response_format")
    return fmt.lower()


def validate_speech_request(
    model: Any,
    text: Any,
    voice: Any,
    response_format: Optional[str] = None,
    speed: Any = None,
    emotion: Optional[str] = None,
) -> SpeechRequest:
    """
    Validate a /v1/audio/speech body.

    Raises:
        ValidationError: Missing model/input/voice, text too long, or a
            malformed speed or format.
    """
    if not model or not text or not voice:
        missing = [name for name, value in (("model", model), ("input", text), ("voice", voice)) if not value]
        warn(_LOG, "missing_params", missing=",".join(missing))
        raise ValidationError(MISSING_PARAMS_MESSAGE)

    return SpeechRequest(
        text=validate_text(text),
        voice=str(voice),
        speed=validate_speed(speed),
        emotion=emotion or None,
        response_format=validate_format(response_format),
    )


def decode_demo_text(encoded: str) -> str:
    """
    Decode the demo endpoint's ``text`` parameter.

    The browser sends ``base64(encodeURIComponent(text))``. Query parsing
    turns ``+`` into a space, so spaces are mapped back first; URL-safe
    alphabet and missing padding are accepted.

    Raises:
        ValidationError: Not valid base64 or not UTF-8 after decoding.

    Example:
        >>> decode_demo_text("SGVsbG8lMjB3b3JsZA==")
        'Hello world'
    """
    s = encoded.strip().replace(" ", "+").replace("-", "+").replace("_", "/")
    s += "=" * (-len(s) % 4)
    try:
        raw = base64.b64decode(s, validate=True)
        return unquote(raw.decode("utf-8"), errors="strict")
    except (binascii.Error, ValueError):
        # UnicodeDecodeError is a ValueError
        raise ValidationError("text must be base64-encoded", param="text")


def validate_demo_request(
    text: Optional[str],
    voice: Optional[str],
    response_format: Optional[str] = None,
    speed: Any = None,
    emotion: Optional[str] = None,
) -> SpeechRequest:
    """Validate /api/generate-tts query parameters into a demo SpeechRequest."""
    if not text or not voice:
        warn(_LOG, "missing_params", endpoint="demo")
        raise ValidationError(MISSING_DEMO_PARAMS_MESSAGE)

    decoded = decode_demo_text(text)
    return SpeechRequest(
        text=validate_text(decoded),
        voice=voice,
        speed=validate_speed(speed),
        emotion=emotion or None,
        response_format=validate_format(response_format),
        is_demo=True,
    )
