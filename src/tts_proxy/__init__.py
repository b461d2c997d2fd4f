"""
tts-proxy: OpenAI-compatible text-to-speech proxy.

Accepts OpenAI ``/v1/audio/speech`` requests and fulfils them through a
vendor TTS API that answers either immediately with an audio link or with
a task id that has to be polled. Audio is downloaded, transcoded to amr or
opus with ffmpeg when the vendor format differs, and optionally cached.

Example Usage:
    >>> import asyncio
    >>> from tts_proxy.services import TTSService
    >>> from tts_proxy.tts.models import SpeechRequest
    >>> from tts_proxy.core.config import Settings
    >>>
    >>> service = TTSService(Settings(raw={"cache": {"enabled": True}}))
    >>> result = asyncio.run(service.synthesize(SpeechRequest(text="Hello", voice="alloy")))
    >>> with open("speech.mp3", "wb") as f:
    ...     f.write(result.audio)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
