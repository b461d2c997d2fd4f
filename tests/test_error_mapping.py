"""
Tests for pipeline error -> HTTP error mapping.
"""
import json

import pytest

from tts_proxy.api.errors import demo_response_for, openai_response_for, status_for_error
from tts_proxy.core.errors import (
    DownloadError,
    ErrorCode,
    PollTimeoutError,
    TTSError,
    UpstreamError,
    ValidationError,
    VendorError,
)


def _body(response):
    return json.loads(response.body)


class TestStatusForError:
    def test_validation(self):
        m = status_for_error(ValidationError("Missing required parameters: model, input, or voice"))

        assert m.status == 400
        assert m.error_type == "invalid_request_error"
        assert m.code is None

    def test_text_too_long_keeps_code(self):
        m = status_for_error(ValidationError("too long", ErrorCode.TEXT_TOO_LONG, param="input"))

        assert m.code == "text_too_long"
        assert m.param == "input"

    @pytest.mark.parametrize("status", [400, 401, 403, 429, 500, 503])
    def test_upstream_status_passed_through(self, status):
        m = status_for_error(UpstreamError("x", status=status, body={"message": "vendor says no"}))

        assert m.status == status
        assert m.error_type == "api_error"
        assert m.code == status
        assert m.message == "vendor says no"
        assert m.details == {"message": "vendor says no"}

    def test_upstream_default_message(self):
        m = status_for_error(UpstreamError("x", status=500, body="<html>"))
        assert m.message == "Error processing TTS request"

    def test_no_response(self):
        m = status_for_error(UpstreamError("timed out"))

        assert m.status == 504
        assert m.error_type == "timeout_error"
        assert m.code == "service_unavailable"
        assert m.message == "No response from TTS service"

    def test_vendor_error(self):
        m = status_for_error(VendorError("Vendor returned error: nope", {"code": 1001}))

        assert m.status == 502
        assert m.code == "vendor_error"
        assert m.details == {"code": 1001}

    def test_poll_timeout(self):
        m = status_for_error(PollTimeoutError("t1", 30))

        assert m.status == 504
        assert m.error_type == "timeout_error"
        assert m.code == "poll_timeout"

    def test_download_error(self):
        m = status_for_error(DownloadError("gone", "https://x/a.mp3", status=404))

        assert m.status == 502
        assert m.error_type == "server_error"

    def test_generic(self):
        assert status_for_error(TTSError("boom")).status == 500
        assert status_for_error(RuntimeError("boom")).message == "Internal server error"


class TestResponseBodies:
    def test_openai_shape(self):
        response = openai_response_for(ValidationError("bad", ErrorCode.TEXT_TOO_LONG, param="input"))
        body = _body(response)

        assert response.status_code == 400
        assert body == {
            "error": {"message": "bad", "type": "invalid_request_error", "param": "input", "code": "text_too_long"}
        }

    def test_openai_details_included(self):
        body = _body(openai_response_for(UpstreamError("x", status=503, body={"message": "busy"})))
        assert body["error"]["details"] == {"message": "busy"}

    def test_demo_shape(self):
        response = demo_response_for(UpstreamError("timed out"))

        assert response.status_code == 504
        assert _body(response) == {"code": 504, "message": "No response from TTS service", "data": None}
