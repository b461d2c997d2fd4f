"""
HTTP error shapes.

Two bodies are used:

OpenAI style (/v1/audio/speech, auth and rate limiting):
    {"error": {"message": "...", "type": "api_error", "param": null,
               "code": "...", "details": {...}}}

Demo style (/api/generate-tts):
    {"code": 504, "message": "...", "data": null}

``status_for_error`` is the single mapping from pipeline errors to HTTP
status, error type and code; both shapes are built from it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from tts_proxy.core.errors import (
    DownloadError,
    ErrorCode,
    PollTimeoutError,
    TTSError,
    UpstreamError,
    ValidationError,
    VendorError,
)


@dataclass(frozen=True)
class ErrorMapping:
    status: int
    error_type: str
    code: Any
    message: str
    param: Optional[str] = None
    details: Any = None


def _vendor_message(body: Any, default: str) -> str:
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return default


def status_for_error(exc: Exception) -> ErrorMapping:
    """
    Map an exception raised by the pipeline to an HTTP error.

        ValidationError                 400 invalid_request_error
        UpstreamError with a status     that status, api_error
        UpstreamError without status    504 timeout_error / service_unavailable
        VendorError                     502 api_error
        PollTimeoutError                504 timeout_error
        DownloadError                   502 server_error
        anything else                   500 server_error
    """
    if isinstance(exc, ValidationError):
        # the generic code is reported as null, like OpenAI does
        code = None if exc.code == ErrorCode.INVALID_INPUT else exc.code
        return ErrorMapping(400, "invalid_request_error", code, exc.message, param=exc.param)

    if isinstance(exc, UpstreamError):
        if exc.status is None:
            return ErrorMapping(504, "timeout_error", ErrorCode.SERVICE_UNAVAILABLE, "No response from TTS service")
        return ErrorMapping(
            exc.status,
            "api_error",
            exc.status,
            _vendor_message(exc.body, "Error processing TTS request"),
            details=exc.body,
        )

    if isinstance(exc, VendorError):
        return ErrorMapping(502, "api_error", ErrorCode.VENDOR_ERROR.lower(), exc.message, details=exc.payload)

    if isinstance(exc, PollTimeoutError):
        return ErrorMapping(504, "timeout_error", ErrorCode.POLL_TIMEOUT.lower(), exc.message)

    if isinstance(exc, DownloadError):
        return ErrorMapping(502, "server_error", ErrorCode.DOWNLOAD_FAILED.lower(), exc.message)

    if isinstance(exc, TTSError):
        return ErrorMapping(500, "server_error", None, exc.message or "Internal server error")

    return ErrorMapping(500, "server_error", None, "Internal server error")


def openai_error_response(
    message: str,
    error_type: str,
    code: Any = None,
    status_code: int = 500,
    param: Optional[str] = None,
    details: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Create an error response in OpenAI's error format.

    Example Response:
        {
            "error": {
                "message": "Input text too long. Maximum length is 4096 characters.",
                "type": "invalid_request_error",
                "param": "input",
                "code": "text_too_long"
            }
        }
    """
    body: Dict[str, Any] = {
        "message": message,
        "type": error_type,
        "param": param,
        "code": code,
    }
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body}, headers=headers)


def openai_response_for(exc: Exception) -> JSONResponse:
    m = status_for_error(exc)
    return openai_error_response(m.message, m.error_type, m.code, m.status, param=m.param, details=m.details)


def demo_response_for(exc: Exception) -> JSONResponse:
    """Demo endpoint error body: {code, message, data: null[, details]}."""
    m = status_for_error(exc)
    content: Dict[str, Any] = {"code": m.status, "message": m.message, "data": None}
    if m.details is not None:
        content["details"] = m.details
    return JSONResponse(status_code=m.status, content=content)


class APIError(Exception):
    """
    Raised by dependencies (auth, rate limit) to short-circuit a request
    with an OpenAI-style error body.
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        error_type: str,
        code: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.code = code
        self.headers = headers


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return openai_error_response(
        exc.message, exc.error_type, exc.code, exc.status_code, headers=exc.headers
    )
