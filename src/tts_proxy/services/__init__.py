"""
tts-proxy services layer.

Business logic between the HTTP/CLI surfaces and the vendor components.

Components:
    - tts_service.py: TTSService (request pipeline / stage machine)
    - validators.py: Input validation into SpeechRequest
"""
from .tts_service import (
    SpeechResult,
    Stage,
    TTSService,
    get_service,
    reset_service,
)

__all__ = [
    "TTSService",
    "SpeechResult",
    "Stage",
    "get_service",
    "reset_service",
]
