"""
Data model of the speech pipeline.

Request side:
    SpeechRequest        - validated caller request
    UpstreamSubmission   - ordered vendor form fields, built once per request

Vendor outcomes (small variants, matched with isinstance):
    VendorResult = Immediate(audio_url) | Pending(task_id)
    TaskStatus   = TaskComplete(audio_url) | TaskInProgress() | TaskFailed(reason, payload)

Result side:
    AudioAsset           - downloaded bytes plus a source format hint
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Union
from urllib.parse import urlencode

from tts_proxy.core.config import VendorConfig
from tts_proxy.tts.mapping import map_voice, speed_to_rate

MAX_INPUT_CHARS = 4096
TITLE_CHARS = 50
# The vendor is always asked for mp3; other containers are produced locally.
VENDOR_FORMAT = "mp3"


@dataclass(frozen=True)
class SpeechRequest:
    """
    A validated speech request.

    Attributes:
        text: Text to speak (at most 4096 characters).
        voice: OpenAI voice name or a raw vendor voice id.
        speed: Speed multiplier, converted with speed_to_rate().
        emotion: Optional vendor emotion tag.
        response_format: Requested container (mp3, opus, aac, flac, wav, amr).
        is_demo: Demo endpoint call; only changes the cache namespace.
    """
    text: str
    voice: str
    speed: float = 1.0
    emotion: Optional[str] = None
    response_format: str = "mp3"
    is_demo: bool = False


@dataclass(frozen=True)
class UpstreamSubmission:
    """
    Form fields for one vendor submission, in the order the vendor expects.

    Built with from_request(); retries reuse the same instance so every
    attempt sends an identical body.
    """
    fields: Tuple[Tuple[str, str], ...]

    @classmethod
    def from_request(
        cls,
        request: SpeechRequest,
        vendor: VendorConfig,
        voices: Optional[Mapping[str, str]] = None,
    ) -> "UpstreamSubmission":
        text = request.text
        title = text[:TITLE_CHARS] + ("..." if len(text) > TITLE_CHARS else "")

        fields = [
            ("client", vendor.client),
            ("source", vendor.source),
            ("soft_version", vendor.soft_version),
            ("device_id", vendor.device_id),
            ("text", text),
            ("bgid", vendor.bg_id),
            ("bg_volume", vendor.bg_volume),
            ("format", VENDOR_FORMAT),
            ("voice", map_voice(request.voice, voices)),
        ]
        if request.emotion:
            fields.append(("emotion", request.emotion))
        fields += [
            ("volume", vendor.volume),
            ("speech_rate", str(speed_to_rate(request.speed))),
            ("pitch_rate", vendor.pitch_rate),
            ("title", title),
            ("token", vendor.token),
            ("bg_url", vendor.bg_url),
        ]
        return cls(fields=tuple(fields))

    def as_dict(self) -> dict:
        return dict(self.fields)

    def encode(self) -> str:
        """application/x-www-form-urlencoded body."""
        return urlencode(self.fields)


# ─────────────────────────────────────────────────────────────────────────────
# Vendor outcomes
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Immediate:
    """Submission finished synchronously; audio is ready."""
    audio_url: str


@dataclass(frozen=True)
class Pending:
    """Submission accepted as a long-running task."""
    task_id: str


VendorResult = Union[Immediate, Pending]


@dataclass(frozen=True)
class TaskComplete:
    audio_url: str


@dataclass(frozen=True)
class TaskInProgress:
    pass


@dataclass(frozen=True)
class TaskFailed:
    reason: str
    payload: Any = None


TaskStatus = Union[TaskComplete, TaskInProgress, TaskFailed]


@dataclass(frozen=True)
class AudioAsset:
    """
    Downloaded audio.

    Attributes:
        data: Raw audio bytes.
        source_format: Extension of the link it came from ("" if unknown).
    """
    data: bytes
    source_format: str = ""

    def __len__(self) -> int:
        return len(self.data)
