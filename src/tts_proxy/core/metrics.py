"""
Prometheus metrics for the proxy.

Metrics Exposed:
    tts_proxy_requests_total              - Speech requests by endpoint, status and cache
    tts_proxy_request_duration_seconds    - End-to-end pipeline latency
    tts_proxy_upstream_attempts_total     - Vendor submission attempts by outcome
    tts_proxy_poll_attempts_total         - Task status queries
    tts_proxy_cache_hits_total            - Cache hits
    tts_proxy_cache_misses_total          - Cache misses
    tts_proxy_transcodes_total            - ffmpeg conversions by format and outcome
    tts_proxy_audio_bytes_total           - Audio bytes returned to callers

Usage:
    from tts_proxy.core.metrics import metrics

    metrics.record_request("speech", "success", 1.8, cache_status="miss", audio_bytes=48213)
    metrics.record_upstream_attempt("retry")
    content, content_type = metrics.get_metrics_response()

All metrics live in a private CollectorRegistry so several instances
(tests, reloads) never collide on the default registry.
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class ProxyMetrics:
    """
    Metric collection for the speech pipeline.

    Prometheus metric operations are thread-safe, so one global instance
    (``metrics``) is shared by every request.
    """

    def __init__(self):
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "tts_proxy_requests_total",
            "Total speech requests",
            ["endpoint", "status", "cache_status"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "tts_proxy_request_duration_seconds",
            "Speech request duration in seconds",
            ["endpoint", "cache_status"],
            buckets=(0.05, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self._registry,
        )
        self._upstream_attempts = Counter(
            "tts_proxy_upstream_attempts_total",
            "Vendor submission attempts",
            ["outcome"],
            registry=self._registry,
        )
        self._poll_attempts = Counter(
            "tts_proxy_poll_attempts_total",
            "Vendor task status queries",
            ["outcome"],
            registry=self._registry,
        )
        self._cache_hits = Counter(
            "tts_proxy_cache_hits_total",
            "Total cache hits",
            registry=self._registry,
        )
        self._cache_misses = Counter(
            "tts_proxy_cache_misses_total",
            "Total cache misses",
            registry=self._registry,
        )
        self._transcodes = Counter(
            "tts_proxy_transcodes_total",
            "Audio conversions",
            ["format", "outcome"],
            registry=self._registry,
        )
        self._audio_bytes_total = Counter(
            "tts_proxy_audio_bytes_total",
            "Total audio bytes returned",
            registry=self._registry,
        )

    def record_request(
        self,
        endpoint: str,
        status: str,
        duration: float,
        cache_status: str = "miss",
        audio_bytes: int = 0,
    ) -> None:
        """
        Record a finished speech request.

        Args:
            endpoint: "speech" or "demo"
            status: "success" or "error"
            duration: Pipeline duration in seconds
            cache_status: "hit" or "miss"
            audio_bytes: Size of the returned audio
        """
        self._requests_total.labels(endpoint=endpoint, status=status, cache_status=cache_status).inc()
        self._request_duration.labels(endpoint=endpoint, cache_status=cache_status).observe(duration)
        if audio_bytes > 0:
            self._audio_bytes_total.inc(audio_bytes)

    def record_cache(self, result: str) -> None:
        """Record a cache "hit" or "miss"."""
        if result == "hit":
            self._cache_hits.inc()
        else:
            self._cache_misses.inc()

    def record_upstream_attempt(self, outcome: str) -> None:
        """outcome: "ok", "retry" or "failed"."""
        self._upstream_attempts.labels(outcome=outcome).inc()

    def record_poll(self, outcome: str) -> None:
        """outcome: "complete", "pending" or "failed"."""
        self._poll_attempts.labels(outcome=outcome).inc()

    def record_transcode(self, fmt: str, outcome: str) -> None:
        self._transcodes.labels(format=fmt, outcome=outcome).inc()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus text format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global singleton: from tts_proxy.core.metrics import metrics
metrics = ProxyMetrics()
