"""
API request/response schemas.

SpeechBody is loose: every field is optional and untyped so
that missing or malformed values reach services.validators and come back
as OpenAI-style 400s instead of FastAPI's 422 body.

Example Request:
    {
        "model": "tts-1",
        "input": "Hello there",
        "voice": "alloy",
        "response_format": "opus",
        "speed": 1.25
    }
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SpeechBody(BaseModel):
    """POST /v1/audio/speech body (OpenAI shape plus ``emotion``)."""
    model: Optional[Any] = Field(default=None, description="Required; not used for routing.")
    input: Optional[Any] = Field(default=None, description="Text to speak, at most 4096 characters.")
    voice: Optional[Any] = Field(default=None, description="OpenAI voice name or vendor voice id.")
    response_format: Optional[Any] = Field(default="mp3", description="mp3, opus, aac, flac, wav or amr.")
    speed: Optional[Any] = Field(default=1.0, description="Speed multiplier.")
    emotion: Optional[str] = Field(default=None, description="Vendor emotion tag.")


class MemoryUsage(BaseModel):
    rss: str
    rss_bytes: int


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    memoryUsage: MemoryUsage
    cache: Dict[str, Any]
