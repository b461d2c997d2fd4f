"""
Timing utilities for per-stage measurements.

The orchestrator wraps each pipeline stage in ``timeit`` and reports the
collected seconds in SpeechResult.timings and in VERBOSE log lines.

Works unchanged around ``await`` expressions, since it only reads
perf_counter() on enter and exit:

    with timeit("submit") as t:
        result = await client.submit(submission)
    print(f"Took {t.timing.seconds:.3f}s")
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    """
    Timing measurement result.

    Attributes:
        name: What was timed (e.g., "submit", "poll", "fetch").
        seconds: Duration in seconds.
        meta: Optional metadata for additional context.
    """
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager for timing code blocks.

    ``timing`` is set on exit, including when the block raises, so a
    failed stage still reports how long it took.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        t1 = perf_counter()
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=(t1 - self._t0), meta=self.meta)
