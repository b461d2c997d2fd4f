"""
ffmpeg-based conversion to the formats the vendor cannot produce.

Encoder settings are fixed per target:
    amr  - 12.2k bitrate, mono, 8000 Hz
    opus - 16k bitrate, mono, 16000 Hz, variable bitrate

ffmpeg runs as an async subprocess on temporary files, so a conversion
never blocks the event loop. Any failure (missing binary, non-zero exit,
empty output, temp file I/O) raises TranscodeError; the orchestrator
treats that as non-fatal and serves the original audio.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List

from tts_proxy.core.config import TranscoderConfig
from tts_proxy.core.errors import TranscodeError
from tts_proxy.core.logging import debug, get_logger, verbose
from tts_proxy.utils.audio import size_kb, temp_transcode_paths

_LOG = get_logger("tts-proxy.transcoder")

ENCODER_ARGS: Dict[str, List[str]] = {
    "amr": ["-b:a", "12.2k", "-ac", "1", "-ar", "8000"],
    "opus": ["-b:a", "16k", "-ac", "1", "-ar", "16000", "-vbr", "on"],
}

# ffmpeg muxer names for the output container
MUXERS = {"amr": "amr", "opus": "opus"}


def build_ffmpeg_command(ffmpeg: str, src: Path, dst: Path, target_format: str) -> List[str]:
    """
    Argument vector for one conversion.

    Raises:
        TranscodeError: Unsupported target format.
    """
    if target_format not in ENCODER_ARGS:
        raise TranscodeError(f"Unsupported transcode target: {target_format}")
    return [
        ffmpeg,
        "-hide_banner",
        "-loglevel", "error",
        "-y",
        "-i", str(src),
        *ENCODER_ARGS[target_format],
        "-f", MUXERS[target_format],
        str(dst),
    ]


class Transcoder:
    def __init__(self, config: TranscoderConfig):
        self.config = config

    async def convert(self, data: bytes, source_hint: str, target_format: str) -> bytes:
        """
        Convert audio bytes to ``target_format``.

        Args:
            data: Source audio.
            source_hint: Source extension, only used to name the input file.
            target_format: "amr" or "opus".

        Raises:
            TranscodeError: On any conversion failure, temp file I/O included.
        """
        try:
            with temp_transcode_paths(data, source_hint, target_format) as (src, dst):
                cmd = build_ffmpeg_command(self.config.ffmpeg_path, src, dst, target_format)
                debug(_LOG, "ffmpeg_exec", cmd=" ".join(cmd))
                await self._run_ffmpeg(cmd, target_format)

                if not dst.exists() or dst.stat().st_size == 0:
                    raise TranscodeError("ffmpeg produced no output", {"target_format": target_format})

                converted = dst.read_bytes()
        except OSError as exc:
            raise TranscodeError(
                f"Transcode I/O error: {exc}", {"target_format": target_format}
            ) from exc

        verbose(_LOG, "transcode_ok", target_format=target_format, size_kb=size_kb(converted))
        return converted

    async def _run_ffmpeg(self, cmd: List[str], target_format: str) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except OSError as exc:
            raise TranscodeError(
                f"Could not start ffmpeg ({self.config.ffmpeg_path}): {exc}",
                {"target_format": target_format},
            ) from exc

        try:
            _, stderr = await proc.communicate()
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            raise TranscodeError(
                f"ffmpeg failed with code {proc.returncode}",
                {"target_format": target_format, "stderr": stderr.decode(errors="replace")[-500:]},
            )
