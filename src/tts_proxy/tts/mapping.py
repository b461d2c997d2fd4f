"""
Parameter translation between the OpenAI request shape and the vendor.

    map_voice("alloy")  -> "voice1"    (unknown names pass through)
    map_format("opus")  -> "audio/opus" (unknown formats -> audio/mpeg)
    speed_to_rate(1.0)  -> 5           (vendor speech_rate scale)

Mapping tables default to the built-in ones from core.config and can be
overridden per call (the service passes ProxyConfig.voices / .formats).
"""
from __future__ import annotations

import math
from typing import Mapping, Optional

from tts_proxy.core.config import DEFAULT_FORMAT_MAPPING, DEFAULT_VOICE_MAPPING

DEFAULT_CONTENT_TYPE = "audio/mpeg"


def map_voice(name: str, mapping: Optional[Mapping[str, str]] = None) -> str:
    """Vendor voice id for an OpenAI voice name; unknown names are sent as-is."""
    table = DEFAULT_VOICE_MAPPING if mapping is None else mapping
    return table.get(name, name)


def map_format(name: str, mapping: Optional[Mapping[str, str]] = None) -> str:
    """Content-Type for a response format."""
    table = DEFAULT_FORMAT_MAPPING if mapping is None else mapping
    return table.get(name, DEFAULT_CONTENT_TYPE)


def _round_half_up(value: float) -> int:
    # halves go toward +inf: 4.5 -> 5, -0.5 -> 0
    return int(math.floor(value + 0.5))


def speed_to_rate(speed: float) -> int:
    """
    Convert an OpenAI speed multiplier to the vendor speech_rate.

    Bands are checked in order, first match wins:

        speed <= 0.3        -> 2
        speed <  0.5        -> 3
        speed <  0.8        -> 4
        0.8 <= speed < 1.2  -> 5
        1.2 <= speed < 1.5  -> 6
        otherwise           -> round((speed - 1) / 3 * 6) + 5

    The fallback is not clamped, so speed 4.0 maps to 11.

    Examples:
        >>> speed_to_rate(1.0)
        5
        >>> speed_to_rate(3.25)
        10
    """
    if speed <= 0.3:
        return 2
    if speed < 0.5:
        return 3
    if speed < 0.8:
        return 4
    if speed < 1.2:
        return 5
    if speed < 1.5:
        return 6
    return _round_half_up((speed - 1) / 3 * 6) + 5
