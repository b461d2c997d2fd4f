"""
Tests for voice, format and speed translation.
"""
import pytest

from tts_proxy.tts.mapping import map_format, map_voice, speed_to_rate


class TestSpeedToRate:
    """Tests for the speed multiplier -> vendor speech_rate conversion."""

    @pytest.mark.parametrize("speed,rate", [
        (0.25, 2),
        (0.3, 2),
        (0.31, 3),
        (0.49, 3),
        (0.5, 4),
        (0.79, 4),
        (0.8, 5),
        (1.0, 5),
        (1.19, 5),
        (1.2, 6),
        (1.49, 6),
    ])
    def test_bands(self, speed, rate):
        assert speed_to_rate(speed) == rate

    @pytest.mark.parametrize("speed,rate", [
        (1.5, 6),
        (2.0, 7),
        (3.25, 10),   # 4.5 rounds up
        (4.0, 11),
    ])
    def test_formula_above_bands(self, speed, rate):
        assert speed_to_rate(speed) == rate

    def test_no_clamp(self):
        """Values past the documented range are not clamped."""
        assert speed_to_rate(10.0) > 11

    def test_non_positive_is_slowest(self):
        assert speed_to_rate(0.0) == 2
        assert speed_to_rate(-1.0) == 2


class TestVoiceMapping:
    def test_known_voices(self):
        assert map_voice("alloy") == "voice1"
        assert map_voice("nova") == "voice5"
        assert map_voice("cedar") == "voice6"

    def test_unknown_voice_passes_through(self):
        assert map_voice("aixiaomei") == "aixiaomei"

    def test_custom_table(self):
        assert map_voice("alloy", {"alloy": "v9"}) == "v9"
        assert map_voice("echo", {"alloy": "v9"}) == "echo"


class TestFormatMapping:
    @pytest.mark.parametrize("fmt,content_type", [
        ("mp3", "audio/mpeg"),
        ("opus", "audio/opus"),
        ("aac", "audio/aac"),
        ("flac", "audio/flac"),
        ("wav", "audio/wav"),
        ("amr", "audio/amr"),
    ])
    def test_known_formats(self, fmt, content_type):
        assert map_format(fmt) == content_type

    def test_unknown_format_defaults_to_mpeg(self):
        assert map_format("pcm") == "audio/mpeg"
