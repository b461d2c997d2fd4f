"""
Tests for the tts-proxy CLI.

Only the paths that need no network are exercised: dry-run, validation
errors and configuration errors.
"""
import json
import os

import pytest

from tts_proxy.cli import main


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    """Empty working directory, no TTS_PROXY_* variables."""
    for name in list(os.environ):
        if name.startswith("TTS_PROXY_"):
            monkeypatch.delenv(name)
    # main() writes --config into the environment; restore it afterwards
    monkeypatch.setenv("TTS_PROXY_SETTINGS", str(tmp_path / "settings.yaml"))
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _json_line(out: str) -> dict:
    for line in out.splitlines():
        if line.startswith("{"):
            return json.loads(line)
    raise AssertionError(f"no JSON line in output: {out!r}")


class TestDryRun:
    def test_prints_form_and_key(self, capsys):
        code = main(["speak", "Hello there", "--voice", "nova", "--speed", "1.3", "--dry-run", "--json"])
        out = capsys.readouterr().out

        assert code == 0
        assert "DRY_RUN_OK" in out
        payload = _json_line(out)
        assert payload["ok"] is True
        assert payload["dry_run"] is True
        assert payload["form"]["text"] == "Hello there"
        assert payload["form"]["voice"] == "voice5"
        assert payload["form"]["speech_rate"] == "6"
        assert payload["content_type"] == "audio/mpeg"
        assert payload["cache_key"].startswith("nova_1.3_none_mp3_")

    def test_secrets_masked(self, capsys, monkeypatch):
        monkeypatch.setenv("TTS_PROXY_VENDOR_TOKEN", "very-secret")
        monkeypatch.setenv("TTS_PROXY_VENDOR_DEVICE_ID", "device-123")

        main(["speak", "--text", "Hi", "--dry-run", "--json"])
        out = capsys.readouterr().out

        payload = _json_line(out)
        assert payload["form"]["token"] == "***"
        assert payload["form"]["device_id"] == "***"
        assert "very-secret" not in out

    def test_format_option(self, capsys):
        main(["speak", "Hi", "--format", "opus", "--dry-run", "--json"])
        payload = _json_line(capsys.readouterr().out)

        assert payload["content_type"] == "audio/opus"
        # the vendor is always asked for mp3
        assert payload["form"]["format"] == "mp3"

    def test_config_file(self, capsys, isolated):
        path = isolated / "custom.yaml"
        path.write_text("voices:\n  alloy: voice42\n", encoding="utf-8")

        main(["--config", str(path), "speak", "Hi", "--dry-run", "--json"])
        payload = _json_line(capsys.readouterr().out)

        assert payload["form"]["voice"] == "voice42"


class TestErrors:
    def test_text_too_long(self, capsys):
        code = main(["speak", "a" * 4097, "--dry-run", "--json"])
        payload = _json_line(capsys.readouterr().out)

        assert code == 1
        assert payload["ok"] is False
        assert payload["error"] == "text_too_long"

    def test_bad_speed(self, capsys):
        assert main(["speak", "Hi", "--speed", "fast", "--dry-run"]) == 1

    def test_speed_overflowing_rate(self, capsys):
        assert main(["speak", "Hi", "--speed", "1e308", "--dry-run", "--json"]) == 1
        payload = _json_line(capsys.readouterr().out)
        assert payload["ok"] is False
        assert payload["error"] == "INVALID_INPUT"

    def test_missing_text(self):
        with pytest.raises(SystemExit):
            main(["speak", "--dry-run"])

    def test_invalid_config(self, capsys, isolated):
        path = isolated / "bad.yaml"
        path.write_text("cache:\n  max_size: 0\n", encoding="utf-8")

        code = main(["--config", str(path), "speak", "Hi", "--dry-run"])

        assert code == 2
        assert "Invalid configuration" in capsys.readouterr().out
