"""
Vendor API client.

Two calls, both form-encoded POSTs with the vendor header set:

    submit(submission)  -> Immediate(audio_url) | Pending(task_id)
    query_task(task_id) -> TaskComplete | TaskInProgress | TaskFailed

Retry policy (submit only):
    - retry_count extra attempts after the first, retry_count + 1 in total
    - backoff before retry n (n from 1): 1s * 2^(n-1)
    - HTTP 400 and 401 abort immediately
    - timeouts, transport errors and other HTTP errors are retried
    - a 2xx body with an unexpected vendor code raises VendorError and is
      never retried

Vendor codes arrive both as numbers and as strings (``0`` vs ``"2105"``),
so they are compared as strings.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from tts_proxy.core.config import UpstreamConfig
from tts_proxy.core.errors import UpstreamError, VendorError
from tts_proxy.core.logging import debug, get_logger, info, verbose, warn
from tts_proxy.core.metrics import metrics
from tts_proxy.tts.models import (
    Immediate,
    Pending,
    TaskComplete,
    TaskFailed,
    TaskInProgress,
    TaskStatus,
    UpstreamSubmission,
    VendorResult,
)

_LOG = get_logger("tts-proxy.upstream")

CODE_OK = "0"
CODE_PENDING = "2105"
BACKOFF_BASE_S = 1.0

SleepFn = Callable[[float], Awaitable[Any]]


def backoff_delay(retry: int) -> float:
    """Seconds to wait before retry number ``retry`` (1-based)."""
    return BACKOFF_BASE_S * 2 ** (retry - 1)


def _data(payload: Dict[str, Any]) -> Dict[str, Any]:
    data = payload.get("data")
    return data if isinstance(data, dict) else {}


def classify_submission(payload: Any) -> VendorResult:
    """
    Turn a submission response body into a VendorResult.

    Raises:
        VendorError: For any body that is neither "done" nor "pending".
    """
    if not isinstance(payload, dict):
        raise VendorError("Vendor returned a non-JSON response", payload)

    code = str(payload.get("code"))
    data = _data(payload)
    if code == CODE_OK and data.get("file_link"):
        return Immediate(audio_url=str(data["file_link"]))
    if code == CODE_PENDING and data.get("task_id"):
        return Pending(task_id=str(data["task_id"]))

    message = payload.get("message") or "Unknown error"
    raise VendorError(f"Vendor returned error: {message}", payload)


def classify_task(payload: Any) -> TaskStatus:
    """
    Turn a task status response body into a TaskStatus.

    Only code 0 with ``is_complete == 1`` is complete; code 0 without
    it counts as a failure, not as progress.
    """
    if not isinstance(payload, dict):
        return TaskFailed(reason="non-JSON task status response", payload=payload)

    code = str(payload.get("code"))
    data = _data(payload)
    if code == CODE_OK and str(data.get("is_complete")) == "1" and data.get("file_link"):
        return TaskComplete(audio_url=str(data["file_link"]))
    if code == CODE_PENDING:
        return TaskInProgress()
    return TaskFailed(reason=str(payload.get("message") or "Unknown error"), payload=payload)


class UpstreamClient:
    """
    Async client for the vendor submission and task-status endpoints.

    Args:
        config: Upstream section of ProxyConfig.
        http: Shared httpx.AsyncClient (owned by the caller).
        sleep: Awaitable sleep used for backoff; tests inject a recorder.
    """

    def __init__(
        self,
        config: UpstreamConfig,
        http: httpx.AsyncClient,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.config = config
        self._http = http
        self._sleep = sleep

    def _headers(self, with_user_agent: bool = True) -> Dict[str, str]:
        vendor = self.config.vendor
        headers = {
            "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
            "x-credits": self.config.api_key,
            "x-domain": vendor.x_domain,
            "x-product": vendor.x_product,
            "x-version": vendor.x_version,
            "accept": "application/json, text/javascript, */*; q=0.01",
        }
        if with_user_agent:
            headers["user-agent"] = vendor.user_agent
        return headers

    async def _post(self, url: str, body: str, headers: Dict[str, str]) -> Any:
        """
        One POST; returns the decoded JSON body (or text if not JSON).

        Raises:
            UpstreamError: Non-2xx status (with status and body) or no
                response at all (status None).
        """
        try:
            response = await self._http.post(url, content=body, headers=headers, timeout=self.config.timeout_s)
        except httpx.TimeoutException as exc:
            raise UpstreamError(f"Vendor request timed out: {exc!r}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Vendor request failed: {exc!r}") from exc

        try:
            payload: Any = response.json()
        except ValueError:
            payload = response.text

        if not response.is_success:
            raise UpstreamError(
                f"Vendor returned HTTP {response.status_code}",
                status=response.status_code,
                body=payload,
            )
        return payload

    async def submit(self, submission: UpstreamSubmission) -> VendorResult:
        """
        Submit a synthesis request, retrying transient failures.

        Raises:
            UpstreamError: Last HTTP/transport error once retries run out,
                or the first 400/401.
            VendorError: Unexpected vendor code in a 2xx body.
        """
        body = submission.encode()
        headers = self._headers()
        debug(_LOG, "submit_form", fields=submission.as_dict())

        retries = 0
        while True:
            try:
                payload = await self._post(self.config.url, body, headers)
                break
            except UpstreamError as exc:
                retries += 1
                if retries > self.config.retry_count or not exc.retriable:
                    metrics.record_upstream_attempt("failed")
                    warn(_LOG, "upstream_failed", attempts=retries, status=exc.status, error=exc.message)
                    raise
                delay = backoff_delay(retries)
                metrics.record_upstream_attempt("retry")
                warn(
                    _LOG,
                    "upstream_retry",
                    attempt=retries,
                    max_retries=self.config.retry_count,
                    status=exc.status,
                    delay_s=delay,
                )
                await self._sleep(delay)

        metrics.record_upstream_attempt("ok")
        debug(_LOG, "submit_response", payload=payload)
        result = classify_submission(payload)
        if isinstance(result, Immediate):
            info(_LOG, "submit_ok", result="immediate")
        else:
            info(_LOG, "submit_ok", result="pending", task_id=result.task_id)
        return result

    async def query_task(self, task_id: str) -> TaskStatus:
        """
        One task status query; no retries.

        Raises:
            UpstreamError: HTTP or transport failure.
        """
        vendor = self.config.vendor
        form = UpstreamSubmission(fields=(
            ("client", vendor.client),
            ("source", vendor.source),
            ("soft_version", vendor.soft_version),
            ("device_id", vendor.device_id),
            ("taskId", task_id),
        ))
        payload = await self._post(self.config.task_url, form.encode(), self._headers(with_user_agent=False))
        status = classify_task(payload)
        verbose(_LOG, "task_status", task_id=task_id, status=type(status).__name__)
        return status


def make_http_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Shared AsyncClient for vendor calls and downloads; timeouts are set per request."""
    return httpx.AsyncClient(transport=transport, follow_redirects=True)
