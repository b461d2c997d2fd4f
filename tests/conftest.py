"""
Shared test helpers.

FakeVendor scripts the vendor behind httpx.MockTransport: each endpoint
has a queue of responses (or exceptions to raise); the last entry repeats
once the queue is down to one.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Union
from urllib.parse import parse_qsl

import httpx
import pytest

from tts_proxy.core.config import Settings

SUBMIT_URL = "https://vendor.test/v1/alivoice/texttoaudio"
TASK_URL = "https://vendor.test/v1/alivoice/textTaskInfo"
AUDIO_URL = "https://cdn.vendor.test/audio/out.mp3"
AUDIO_BYTES = b"ID3\x03\x00fake-mp3-frames"

Scripted = Union[httpx.Response, Exception]

BASE_RAW: Dict[str, Any] = {
    "upstream": {
        "url": SUBMIT_URL,
        "task_url": TASK_URL,
        "api_key": "credits-key",
        "retry_count": 2,
        "vendor": {"device_id": "dev-1", "token": "tok-1"},
    },
    "polling": {"max_attempts": 5, "interval_ms": 10},
}


def immediate(url: str = AUDIO_URL) -> httpx.Response:
    return httpx.Response(200, json={"code": 0, "message": "ok", "data": {"file_link": url}})


def pending(task_id: str = "task-1") -> httpx.Response:
    return httpx.Response(200, json={"code": 2105, "message": "processing", "data": {"task_id": task_id}})


def task_done(url: str = AUDIO_URL) -> httpx.Response:
    return httpx.Response(200, json={"code": 0, "data": {"is_complete": 1, "file_link": url}})


def task_running() -> httpx.Response:
    return httpx.Response(200, json={"code": "2105", "message": "processing"})


class FakeVendor:
    """Scripted vendor; records every request it receives."""

    def __init__(self):
        self.submit: List[Scripted] = [immediate()]
        self.task: List[Scripted] = [task_done()]
        self.downloads: Dict[str, Scripted] = {AUDIO_URL: httpx.Response(200, content=AUDIO_BYTES)}
        self.requests: List[httpx.Request] = []

    @staticmethod
    def _next(queue: List[Scripted]) -> Scripted:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url == SUBMIT_URL:
            item = self._next(self.submit)
        elif url == TASK_URL:
            item = self._next(self.task)
        else:
            item = self.downloads.get(url, httpx.Response(404, text="not found"))
        if isinstance(item, Exception):
            raise item
        # fresh copy, a scripted entry may be served many times
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]

    def submitted_forms(self) -> List[Dict[str, str]]:
        return [dict(parse_qsl(r.content.decode("utf-8"), keep_blank_values=True))
                for r in self.calls_to(SUBMIT_URL)]


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that only records delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_settings(overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """BASE_RAW with per-section overrides merged in."""
    raw = copy.deepcopy(BASE_RAW)
    for section, values in (overrides or {}).items():
        if isinstance(values, dict):
            raw.setdefault(section, {}).update(values)
        else:
            raw[section] = values
    return Settings(raw=raw)


@pytest.fixture
def vendor() -> FakeVendor:
    return FakeVendor()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
