"""
Command-line interface for tts-proxy.

Usage Examples:
    # Run the HTTP server
    tts-proxy serve --host 0.0.0.0 --port 3000

    # One request through the pipeline, no server
    tts-proxy speak "Hello there" --voice nova --out hello.mp3

    # Opus output (transcoded locally with ffmpeg)
    tts-proxy speak "Hello there" --format opus --out hello.opus

    # Dry-run: show the vendor form and cache key, no network
    tts-proxy speak "Test" --speed 1.3 --dry-run --json

Environment Variables:
    TTS_PROXY_SETTINGS: settings file (default config/settings.yaml)
    TTS_PROXY_*: configuration overrides, see core/config.py
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from tts_proxy.core.config import ConfigValidationError, Settings, load_settings
from tts_proxy.core.errors import TTSError
from tts_proxy.core.logging import configure_logging, get_logger, info, set_request_id
from tts_proxy.tts.cache import make_cache_key
from tts_proxy.tts.mapping import map_format
from tts_proxy.tts.models import SpeechRequest, UpstreamSubmission

# Form fields never echoed in full
_SECRET_FIELDS = ("token", "device_id")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tts-proxy", description="OpenAI-compatible TTS proxy")
    parser.add_argument("--config", help="Settings file (overrides TTS_PROXY_SETTINGS)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", help="Bind address (default from settings)")
    serve.add_argument("--port", type=int, help="Port (default from settings)")

    speak = sub.add_parser("speak", help="Synthesize one text without the server")
    speak.add_argument("text_pos", nargs="?", help="Text to speak (positional)")
    speak.add_argument("--text", help="Text to speak")
    speak.add_argument("--voice", default="alloy", help="Voice name or vendor voice id")
    speak.add_argument("--speed", default="1.0", help="Speed multiplier")
    speak.add_argument("--format", dest="response_format", default="mp3", help="Output format")
    speak.add_argument("--emotion", help="Vendor emotion tag")
    speak.add_argument("--out", help="Output file (default speech.<format>)")
    speak.add_argument("--dry-run", action="store_true", help="Print vendor form and cache key, no network")
    speak.add_argument("--json", action="store_true", help="Print JSON summary")

    return parser.parse_args(argv)


def _masked_form(fields: dict) -> dict:
    return {k: ("***" if k in _SECRET_FIELDS and v else v) for k, v in fields.items()}


def _print(payload: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def _serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    config = settings.get_proxy_config()
    uvicorn.run(
        "tts_proxy.main:app",
        host=args.host or config.server.host,
        port=args.port or config.server.port,
        log_config=None,
    )
    return 0


async def _speak_once(settings: Settings, request: SpeechRequest, request_id: str):
    from tts_proxy.services.tts_service import TTSService

    service = TTSService(settings)
    try:
        return await service.synthesize(request, request_id)
    finally:
        await service.aclose()


def _speak(args: argparse.Namespace, settings: Settings) -> int:
    from tts_proxy.services.validators import validate_speech_request

    log = get_logger("tts-proxy.cli")
    rid = str(uuid4())[:12]
    set_request_id(rid)

    text = args.text or args.text_pos
    if not text:
        raise SystemExit("Provide --text or a positional text.")

    try:
        request = validate_speech_request(
            model="tts-1",
            text=text,
            voice=args.voice,
            response_format=args.response_format,
            speed=args.speed,
            emotion=args.emotion,
        )

        if args.dry_run:
            config = settings.get_proxy_config()
            submission = UpstreamSubmission.from_request(request, config.upstream.vendor, config.voices)
            payload = {
                "ok": True,
                "dry_run": True,
                "form": _masked_form(submission.as_dict()),
                "cache_key": make_cache_key(request),
                "content_type": map_format(request.response_format, config.formats),
            }
            _print(payload, args.json)
            print("DRY_RUN_OK")
            return 0

        result = asyncio.run(_speak_once(settings, request, rid))

    except TTSError as e:
        _print(e.to_dict(), args.json)
        return 1

    out_path = Path(args.out or f"speech.{result.format}")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(result.audio)
    info(log, "written", out=str(out_path), bytes=len(result.audio))

    _print({
        "ok": True,
        "dry_run": False,
        "out": str(out_path),
        "bytes": len(result.audio),
        "content_type": result.content_type,
        "timings": {k: round(v, 4) for k, v in result.timings.items()},
    }, args.json)
    print("CLI_OK")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = _parse_args(argv)

    if args.config:
        os.environ["TTS_PROXY_SETTINGS"] = args.config

    configure_logging()

    try:
        settings = load_settings(args.config)
        settings.get_proxy_config()
    except ConfigValidationError as e:
        print(f"Invalid configuration: {e}")
        return 2

    if args.command == "serve":
        return _serve(args, settings)
    return _speak(args, settings)


if __name__ == "__main__":
    raise SystemExit(main())
