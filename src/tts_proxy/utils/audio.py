"""
Audio helpers for the fetch and transcode stages.

The vendor never says which container it produced; the only hint is the
file extension on the audio link. ``infer_source_format`` turns a link
into that hint, and ``temp_transcode_paths`` gives ffmpeg an input and an
output file in a throwaway directory.

Example:
    >>> infer_source_format("https://cdn.example.com/a/b/out.MP3?sig=abc")
    'mp3'
    >>> needs_transcode("mp3", "opus")
    True
"""
from __future__ import annotations

import contextlib
import shutil
import tempfile
from pathlib import Path
from typing import Iterator, Tuple
from urllib.parse import urlsplit

# Formats the vendor cannot deliver directly
TRANSCODE_TARGETS = frozenset({"amr", "opus"})


def infer_source_format(url: str) -> str:
    """
    Lowercase file extension of a URL path, without the dot.

    Query string and fragment are ignored. Returns "" when the last path
    segment has no extension.
    """
    path = urlsplit(url).path
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def needs_transcode(source_format: str, target_format: str) -> bool:
    """Only amr and opus are produced locally, and only when the source differs."""
    target = target_format.lower()
    return target in TRANSCODE_TARGETS and source_format.lower() != target


@contextlib.contextmanager
def temp_transcode_paths(data: bytes, source_format: str, target_format: str) -> Iterator[Tuple[Path, Path]]:
    """
    Write ``data`` to a temporary input file and yield (input, output) paths.

    The whole directory is removed on exit, whether or not the input write
    succeeded or ffmpeg wrote the output.
    """
    tmp_dir = Path(tempfile.mkdtemp(prefix="tts_proxy_tc_"))
    src = tmp_dir / f"input.{source_format or 'bin'}"
    dst = tmp_dir / f"output.{target_format}"
    try:
        src.write_bytes(data)
        yield src, dst
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)


def size_kb(data: bytes) -> float:
    return round(len(data) / 1024, 1)
