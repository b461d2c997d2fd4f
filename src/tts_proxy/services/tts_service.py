"""
TTSService - the speech request pipeline.

Both HTTP endpoints and the CLI go through TTSService.synthesize().

Pipeline (one Stage per step, one handler per Stage):

    CACHE_CHECK ──hit──────────────────────────────────────────► DONE
        │miss / cache disabled
        ▼
      SUBMIT ──Immediate──► FETCH ──► TRANSCODE? ──► CACHE_STORE ──► DONE
        │Pending              ▲
        ▼                     │
       POLL ──────────────────┘

    Any TTSError from a handler moves the run to FAILED and is re-raised
    unchanged. TRANSCODE is the exception: a TranscodeError is logged and
    the original audio continues to CACHE_STORE.

Components (all owned by the service, injectable for tests):
    - AudioCache: in-memory TTL cache, bypassed when cache.enabled is false
    - UpstreamClient: vendor submission with retries, task status queries
    - TaskPoller: fixed-interval polling of pending tasks
    - AudioFetcher: download of the finished audio
    - Transcoder: ffmpeg conversion to amr/opus

Example:
    >>> service = TTSService(Settings(raw={}))
    >>> result = await service.synthesize(SpeechRequest(text="Hello", voice="alloy"))
    >>> result.content_type, result.cached
    ('audio/mpeg', False)
"""
from __future__ import annotations

import asyncio
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import psutil

from tts_proxy import __version__
from tts_proxy.core.config import ProxyConfig, Settings
from tts_proxy.core.errors import ErrorCode, TranscodeError, TTSError
from tts_proxy.core.logging import debug, error, fail, get_logger, info, set_request_id, success, verbose
from tts_proxy.core.metrics import metrics
from tts_proxy.tts.cache import AudioCache, make_cache_key
from tts_proxy.tts.fetcher import AudioFetcher
from tts_proxy.tts.mapping import map_format
from tts_proxy.tts.models import AudioAsset, Immediate, SpeechRequest, UpstreamSubmission
from tts_proxy.tts.poller import TaskPoller
from tts_proxy.tts.transcoder import Transcoder
from tts_proxy.tts.upstream import SleepFn, UpstreamClient, make_http_client
from tts_proxy.utils.audio import needs_transcode, size_kb
from tts_proxy.utils.timeit import timeit

_LOG = get_logger("tts-proxy.service")


class Stage(str, Enum):
    """Pipeline position of one request."""
    CACHE_CHECK = "cache_check"
    SUBMIT = "submit"
    POLL = "poll"
    FETCH = "fetch"
    TRANSCODE = "transcode"
    CACHE_STORE = "cache_store"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STAGES = frozenset({Stage.DONE, Stage.FAILED})


@dataclass
class SpeechResult:
    """
    Result of one pipeline run.

    Attributes:
        audio: Audio bytes to return to the caller.
        format: Requested response format.
        content_type: MIME type for the format.
        cached: True when served from the cache.
        request_id: Correlation id used in logs.
        timings: Seconds per stage, plus "total".
        stages: Stages visited, in order.
    """
    audio: bytes
    format: str
    content_type: str
    cached: bool
    request_id: str
    timings: Dict[str, float] = field(default_factory=dict)
    stages: List[Stage] = field(default_factory=list)


@dataclass
class _Run:
    """Mutable state of one request while it moves through the stages."""
    request: SpeechRequest
    request_id: str
    cache_key: str = ""
    task_id: Optional[str] = None
    audio_url: Optional[str] = None
    asset: Optional[AudioAsset] = None
    cached: bool = False
    error: Optional[TTSError] = None


class TTSService:
    """
    Speech pipeline with caching, retries, polling and transcoding.

    Usage:
        service = TTSService(load_settings())
        result = await service.synthesize(SpeechRequest(text="Hi", voice="nova"))
        await service.aclose()

    Args:
        settings: Application settings.
        http: Shared httpx.AsyncClient. Created (and closed by aclose())
            when not given.
        transport: httpx transport for the internally created client.
        sleep: Awaitable sleep for retry backoff and poll intervals.
        cache / upstream / poller / fetcher / transcoder: component overrides.
    """

    def __init__(
        self,
        settings: Settings,
        http: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFn = asyncio.sleep,
        cache: Optional[AudioCache] = None,
        upstream: Optional[UpstreamClient] = None,
        poller: Optional[TaskPoller] = None,
        fetcher: Optional[AudioFetcher] = None,
        transcoder: Optional[Transcoder] = None,
    ):
        self._settings = settings
        self._config = ProxyConfig.from_settings(settings)

        self._owns_http = http is None
        self._http = http if http is not None else make_http_client(transport)

        # ─────────────────────────────────────────────────────────────────────
        # Cache
        # ─────────────────────────────────────────────────────────────────────
        self._cache_enabled = self._config.cache.enabled
        self._cache = cache if cache is not None else AudioCache(
            max_size=self._config.cache.max_size,
            ttl_seconds=self._config.cache.ttl_seconds,
        )

        # ─────────────────────────────────────────────────────────────────────
        # Vendor side
        # ─────────────────────────────────────────────────────────────────────
        self._upstream = upstream or UpstreamClient(self._config.upstream, self._http, sleep=sleep)
        self._poller = poller or TaskPoller(self._upstream, self._config.polling, sleep=sleep)
        self._fetcher = fetcher or AudioFetcher(self._config.upstream, self._http)
        self._transcoder = transcoder or Transcoder(self._config.transcoder)

        self._text_preview_chars = self._config.logging.text_preview_chars

        self._handlers: Dict[Stage, Callable[[_Run], Awaitable[Stage]]] = {
            Stage.CACHE_CHECK: self._cache_check,
            Stage.SUBMIT: self._submit,
            Stage.POLL: self._poll,
            Stage.FETCH: self._fetch,
            Stage.TRANSCODE: self._transcode,
            Stage.CACHE_STORE: self._cache_store,
        }

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config(self) -> ProxyConfig:
        return self._config

    @property
    def cache(self) -> AudioCache:
        return self._cache

    @property
    def cache_enabled(self) -> bool:
        return self._cache_enabled

    def content_type_for(self, response_format: str) -> str:
        return map_format(response_format, self._config.formats)

    def submission_for(self, request: SpeechRequest) -> UpstreamSubmission:
        """Vendor form for a request (also used by `tts-proxy speak --dry-run`)."""
        return UpstreamSubmission.from_request(request, self._config.upstream.vendor, self._config.voices)

    def get_health_info(self) -> Dict[str, Any]:
        """
        Liveness information for GET /health.

        Returns status, UTC timestamp, package version, process memory
        (RSS) and cache statistics.
        """
        rss = psutil.Process().memory_info().rss
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "memoryUsage": {
                "rss": f"{round(rss / 1024 / 1024)}MB",
                "rss_bytes": rss,
            },
            "cache": {"enabled": self._cache_enabled, **self._cache.stats()},
        }

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_http:
            await self._http.aclose()

    # =========================================================================
    # Stage handlers
    # =========================================================================

    async def _cache_check(self, run: _Run) -> Stage:
        if not self._cache_enabled:
            return Stage.SUBMIT

        run.cache_key = make_cache_key(run.request)
        asset = self._cache.get(run.cache_key)
        if asset is None:
            metrics.record_cache("miss")
            verbose(_LOG, "cache_miss", key=run.cache_key[:24])
            return Stage.SUBMIT

        metrics.record_cache("hit")
        info(_LOG, "cache_hit", demo=run.request.is_demo)
        run.asset = asset
        run.cached = True
        return Stage.DONE

    async def _submit(self, run: _Run) -> Stage:
        result = await self._upstream.submit(self.submission_for(run.request))
        if isinstance(result, Immediate):
            run.audio_url = result.audio_url
            return Stage.FETCH
        run.task_id = result.task_id
        return Stage.POLL

    async def _poll(self, run: _Run) -> Stage:
        assert run.task_id is not None
        run.audio_url = await self._poller.poll(run.task_id)
        return Stage.FETCH

    async def _fetch(self, run: _Run) -> Stage:
        assert run.audio_url is not None
        run.asset = await self._fetcher.fetch(run.audio_url)
        if needs_transcode(run.asset.source_format, run.request.response_format):
            return Stage.TRANSCODE
        return Stage.CACHE_STORE

    async def _transcode(self, run: _Run) -> Stage:
        assert run.asset is not None
        target = run.request.response_format
        info(_LOG, "transcode_start", source_format=run.asset.source_format or "-", target_format=target)
        try:
            converted = await self._transcoder.convert(run.asset.data, run.asset.source_format, target)
        except TranscodeError as e:
            metrics.record_transcode(target, "failed")
            error(_LOG, "transcode_failed", target_format=target, error=e.message)
            return Stage.CACHE_STORE

        metrics.record_transcode(target, "ok")
        run.asset = AudioAsset(data=converted, source_format=target)
        return Stage.CACHE_STORE

    async def _cache_store(self, run: _Run) -> Stage:
        assert run.asset is not None
        if self._cache_enabled:
            self._cache.put(run.cache_key, run.asset)
        return Stage.DONE

    # =========================================================================
    # Public API: synthesize()
    # =========================================================================

    async def synthesize(self, request: SpeechRequest, request_id: Optional[str] = None) -> SpeechResult:
        """
        Run one request through the pipeline.

        Args:
            request: Validated SpeechRequest.
            request_id: Correlation id; generated when omitted.

        Returns:
            SpeechResult with the audio and metadata.

        Raises:
            TTSError: The error that moved the run to FAILED. Unexpected
                exceptions are wrapped with code INTERNAL_ERROR.
        """
        rid = request_id or uuid.uuid4().hex[:12]
        set_request_id(rid)
        run = _Run(request=request, request_id=rid)
        endpoint = "demo" if request.is_demo else "speech"

        preview = request.text[:self._text_preview_chars] if self._text_preview_chars > 0 else ""
        info(_LOG, "request", chars=len(request.text), voice=request.voice,
             format=request.response_format, text_preview=preview)
        debug(_LOG, "request_full", text=request.text, speed=request.speed, emotion=request.emotion)

        timings: Dict[str, float] = {}
        stages: List[Stage] = []
        stage = Stage.CACHE_CHECK

        with timeit("request_total") as total_t:
            while stage not in TERMINAL_STAGES:
                stages.append(stage)
                with timeit(stage.value) as t:
                    try:
                        next_stage = await self._handlers[stage](run)
                    except TTSError as e:
                        run.error = e
                        next_stage = Stage.FAILED
                    except Exception as e:
                        run.error = TTSError(
                            f"Unexpected error: {e}",
                            ErrorCode.INTERNAL_ERROR,
                            {"error_type": type(e).__name__, "stage": stage.value},
                        )
                        run.error.__cause__ = e
                        next_stage = Stage.FAILED
                if t.timing:
                    timings[stage.value] = t.timing.seconds
                    verbose(_LOG, "stage", event=stage.value, seconds=round(t.timing.seconds, 4))
                stage = next_stage
            stages.append(stage)

        total_s = total_t.timing.seconds if total_t.timing else -1.0
        timings["total"] = total_s

        if stage is Stage.FAILED:
            assert run.error is not None
            fail(_LOG, "request_failed", stage=stages[-2].value, error=run.error.message,
                 code=run.error.code, seconds=round(total_s, 3))
            metrics.record_request(endpoint, "error", total_s)
            raise run.error

        assert run.asset is not None
        cache_status = "hit" if run.cached else "miss"
        success(_LOG, "done", size_kb=size_kb(run.asset.data), cache=cache_status, seconds=round(total_s, 3))
        metrics.record_request(endpoint, "success", total_s, cache_status=cache_status,
                               audio_bytes=len(run.asset.data))

        return SpeechResult(
            audio=run.asset.data,
            format=request.response_format,
            content_type=self.content_type_for(request.response_format),
            cached=run.cached,
            request_id=rid,
            timings=timings,
            stages=stages,
        )


# =============================================================================
# Global service instance
# =============================================================================

_service: Optional[TTSService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> TTSService:
    """
    Get or create the global TTSService instance.

    Thread-safe lazy singleton shared by the HTTP endpoints.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = TTSService(settings)
    return _service


def set_service(service: Optional[TTSService]) -> None:
    """Install a prebuilt service (tests, embedding)."""
    global _service
    with _service_lock:
        _service = service


def reset_service() -> None:
    """Forget the global instance (does not close it)."""
    set_service(None)


async def shutdown_service() -> None:
    """Close and forget the global instance."""
    global _service
    with _service_lock:
        service, _service = _service, None
    if service is not None:
        await service.aclose()
