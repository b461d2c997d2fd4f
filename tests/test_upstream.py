"""
Tests for the vendor client.

Tests cover:
- Response classification (immediate, pending, vendor error)
- Task status classification
- Retry policy: attempts, backoff, non-retriable statuses
- Headers and form sent to the vendor
"""
import asyncio

import httpx
import pytest

from conftest import SUBMIT_URL, TASK_URL, FakeVendor, SleepRecorder, immediate, make_settings, pending
from tts_proxy.core.config import Defaults, ProxyConfig
from tts_proxy.core.errors import ErrorCode, UpstreamError, VendorError
from tts_proxy.tts.models import (
    Immediate,
    Pending,
    SpeechRequest,
    TaskComplete,
    TaskFailed,
    TaskInProgress,
    UpstreamSubmission,
)
from tts_proxy.tts.upstream import UpstreamClient, backoff_delay, classify_submission, classify_task


def _run_submit(vendor: FakeVendor, sleeper: SleepRecorder, retry_count: int = 2):
    config = ProxyConfig.from_settings(make_settings({"upstream": {"retry_count": retry_count}}))
    submission = UpstreamSubmission.from_request(
        SpeechRequest(text="Hello", voice="alloy"), config.upstream.vendor, config.voices
    )

    async def scenario():
        async with httpx.AsyncClient(transport=vendor.transport()) as http:
            client = UpstreamClient(config.upstream, http, sleep=sleeper)
            return await client.submit(submission)

    return asyncio.run(scenario())


class TestClassifySubmission:
    def test_immediate(self):
        result = classify_submission({"code": 0, "data": {"file_link": "https://x/a.mp3"}})
        assert result == Immediate(audio_url="https://x/a.mp3")

    def test_pending_numeric_code(self):
        assert classify_submission({"code": 2105, "data": {"task_id": "t1"}}) == Pending(task_id="t1")

    def test_string_codes(self):
        assert isinstance(classify_submission({"code": "0", "data": {"file_link": "u"}}), Immediate)
        assert isinstance(classify_submission({"code": "2105", "data": {"task_id": 99}}), Pending)

    def test_task_id_stringified(self):
        assert classify_submission({"code": 2105, "data": {"task_id": 99}}).task_id == "99"

    def test_other_code_is_vendor_error(self):
        payload = {"code": 1001, "message": "token expired"}
        with pytest.raises(VendorError) as exc_info:
            classify_submission(payload)

        assert "token expired" in exc_info.value.message
        assert exc_info.value.payload == payload
        assert exc_info.value.code == ErrorCode.VENDOR_ERROR

    def test_ok_without_link_is_vendor_error(self):
        with pytest.raises(VendorError):
            classify_submission({"code": 0, "data": {}})

    def test_non_json_is_vendor_error(self):
        with pytest.raises(VendorError):
            classify_submission("<html>maintenance</html>")


class TestClassifyTask:
    def test_complete(self):
        status = classify_task({"code": 0, "data": {"is_complete": 1, "file_link": "https://x/a.mp3"}})
        assert status == TaskComplete(audio_url="https://x/a.mp3")

    def test_in_progress(self):
        assert classify_task({"code": 2105}) == TaskInProgress()

    def test_ok_but_not_complete_is_failure(self):
        assert isinstance(classify_task({"code": 0, "data": {"is_complete": 0}}), TaskFailed)

    def test_error_code_is_failure(self):
        status = classify_task({"code": 500, "message": "synthesis failed"})
        assert isinstance(status, TaskFailed)
        assert status.reason == "synthesis failed"


class TestBackoff:
    def test_delays_double(self):
        assert [backoff_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]


class TestSubmitRetries:
    """Tests for the submission retry policy."""

    def test_first_try_success(self, vendor, sleeper):
        assert isinstance(_run_submit(vendor, sleeper), Immediate)
        assert len(vendor.calls_to(SUBMIT_URL)) == 1
        assert sleeper.calls == []

    def test_server_error_retried_until_exhausted(self, vendor, sleeper):
        vendor.submit = [httpx.Response(503, json={"message": "busy"})]

        with pytest.raises(UpstreamError) as exc_info:
            _run_submit(vendor, sleeper, retry_count=2)

        assert len(vendor.calls_to(SUBMIT_URL)) == 3
        assert sleeper.calls == [1.0, 2.0]
        assert exc_info.value.status == 503
        assert exc_info.value.body == {"message": "busy"}

    def test_zero_retries_single_attempt(self, vendor, sleeper):
        vendor.submit = [httpx.Response(502)]

        with pytest.raises(UpstreamError):
            _run_submit(vendor, sleeper, retry_count=0)

        assert len(vendor.calls_to(SUBMIT_URL)) == 1
        assert sleeper.calls == []

    def test_recovers_after_transient_error(self, vendor, sleeper):
        vendor.submit = [httpx.Response(500), pending("t-7")]

        assert _run_submit(vendor, sleeper) == Pending(task_id="t-7")
        assert sleeper.calls == [1.0]

    @pytest.mark.parametrize("status", [400, 401])
    def test_client_errors_not_retried(self, vendor, sleeper, status):
        vendor.submit = [httpx.Response(status, json={"message": "bad"})]

        with pytest.raises(UpstreamError) as exc_info:
            _run_submit(vendor, sleeper)

        assert exc_info.value.status == status
        assert len(vendor.calls_to(SUBMIT_URL)) == 1
        assert sleeper.calls == []

    def test_other_4xx_retried(self, vendor, sleeper):
        vendor.submit = [httpx.Response(429), immediate()]

        assert isinstance(_run_submit(vendor, sleeper), Immediate)
        assert len(vendor.calls_to(SUBMIT_URL)) == 2

    def test_timeout_has_no_status(self, vendor, sleeper):
        vendor.submit = [httpx.ReadTimeout("slow")]

        with pytest.raises(UpstreamError) as exc_info:
            _run_submit(vendor, sleeper)

        assert exc_info.value.status is None
        assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE
        assert len(vendor.calls_to(SUBMIT_URL)) == 3

    def test_connection_error_retried(self, vendor, sleeper):
        vendor.submit = [httpx.ConnectError("refused"), immediate()]

        assert isinstance(_run_submit(vendor, sleeper), Immediate)
        assert sleeper.calls == [1.0]

    def test_vendor_error_not_retried(self, vendor, sleeper):
        vendor.submit = [httpx.Response(200, json={"code": 1001, "message": "no credits"})]

        with pytest.raises(VendorError):
            _run_submit(vendor, sleeper)

        assert len(vendor.calls_to(SUBMIT_URL)) == 1

    def test_retries_send_identical_body(self, vendor, sleeper):
        vendor.submit = [httpx.Response(503), httpx.Response(503), immediate()]
        _run_submit(vendor, sleeper)

        bodies = {r.content for r in vendor.calls_to(SUBMIT_URL)}
        assert len(bodies) == 1


class TestRequestShape:
    def test_submit_headers(self, vendor, sleeper):
        _run_submit(vendor, sleeper)
        request = vendor.calls_to(SUBMIT_URL)[0]

        assert request.method == "POST"
        assert request.headers["content-type"].startswith("application/x-www-form-urlencoded")
        assert request.headers["x-credits"] == "credits-key"
        assert request.headers["x-domain"] == Defaults.VENDOR_X_DOMAIN
        assert request.headers["x-product"] == Defaults.VENDOR_X_PRODUCT
        assert request.headers["user-agent"] == Defaults.VENDOR_USER_AGENT

    def test_submit_form(self, vendor, sleeper):
        _run_submit(vendor, sleeper)
        form = vendor.submitted_forms()[0]

        assert form["text"] == "Hello"
        assert form["voice"] == "voice1"
        assert form["speech_rate"] == "5"
        assert form["token"] == "tok-1"

    def test_query_task_form(self, vendor):
        config = ProxyConfig.from_settings(make_settings())

        async def scenario():
            async with httpx.AsyncClient(transport=vendor.transport()) as http:
                return await UpstreamClient(config.upstream, http).query_task("task-42")

        status = asyncio.run(scenario())

        assert isinstance(status, TaskComplete)
        request = vendor.calls_to(TASK_URL)[0]
        body = request.content.decode()
        assert "taskId=task-42" in body
        assert "device_id=dev-1" in body
        assert "text=" not in body
