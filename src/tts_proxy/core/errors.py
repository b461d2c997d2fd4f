"""
Error taxonomy for the speech pipeline.

Every failure the pipeline can surface is a TTSError subclass. The HTTP
layer maps them onto OpenAI-style error objects; the CLI prints to_dict().

    TTSError
     ├── ValidationError    - caller input rejected (400)
     ├── UpstreamError      - vendor HTTP failure or transport error
     ├── VendorError        - vendor answered with an unexpected code
     ├── PollTimeoutError   - task still pending after max_attempts
     ├── DownloadError      - audio asset could not be fetched
     └── TranscodeError     - ffmpeg failed (never reaches callers)
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """
    Standardized error codes used in TTSError and API responses.
    """
    INVALID_INPUT = "INVALID_INPUT"         # Bad request data
    TEXT_TOO_LONG = "text_too_long"         # input over the length limit
    UPSTREAM_FAILED = "UPSTREAM_FAILED"     # Vendor HTTP error
    SERVICE_UNAVAILABLE = "service_unavailable"  # Vendor unreachable/timeout
    VENDOR_ERROR = "VENDOR_ERROR"           # Unexpected vendor code
    POLL_TIMEOUT = "POLL_TIMEOUT"           # Task never completed
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"     # Audio fetch error
    TRANSCODE_FAILED = "TRANSCODE_FAILED"   # ffmpeg error
    INTERNAL_ERROR = "INTERNAL_ERROR"       # Unexpected error


class TTSError(Exception):
    """
    Base exception for pipeline errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain error dict (CLI output, logs)."""
        result = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(TTSError):
    """
    Raised when caller input is rejected.

    ``param`` names the offending request field, if any.
    """
    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, param: Optional[str] = None):
        super().__init__(message, code)
        self.param = param


class UpstreamError(TTSError):
    """
    Raised when a vendor HTTP call fails.

    Attributes:
        status: HTTP status from the vendor, or None for timeouts and
            transport errors (no response at all).
        body: Parsed (or raw text) response body, if there was one.
    """
    def __init__(self, message: str, status: Optional[int] = None, body: Any = None):
        code = ErrorCode.UPSTREAM_FAILED if status is not None else ErrorCode.SERVICE_UNAVAILABLE
        details: Dict[str, Any] = {}
        if status is not None:
            details["status"] = status
        if body is not None:
            details["body"] = body
        super().__init__(message, code, details)
        self.status = status
        self.body = body

    @property
    def retriable(self) -> bool:
        """400 and 401 are the caller's fault; everything else may pass."""
        return self.status not in (400, 401)


class VendorError(TTSError):
    """Raised when the vendor answers 2xx with a code the pipeline does not expect."""
    def __init__(self, message: str, payload: Any = None):
        super().__init__(message, ErrorCode.VENDOR_ERROR, {"payload": payload} if payload is not None else None)
        self.payload = payload


class PollTimeoutError(TTSError):
    """Raised when a task is still pending after the last poll attempt."""
    def __init__(self, task_id: str, attempts: int):
        super().__init__(
            f"Task {task_id} did not complete after {attempts} attempts",
            ErrorCode.POLL_TIMEOUT,
            {"task_id": task_id, "attempts": attempts},
        )
        self.task_id = task_id
        self.attempts = attempts


class DownloadError(TTSError):
    """Raised when the audio asset cannot be downloaded."""
    def __init__(self, message: str, url: str, status: Optional[int] = None):
        details: Dict[str, Any] = {"url": url}
        if status is not None:
            details["status"] = status
        super().__init__(message, ErrorCode.DOWNLOAD_FAILED, details)
        self.url = url
        self.status = status


class TranscodeError(TTSError):
    """Raised when ffmpeg fails or is missing."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.TRANSCODE_FAILED, details)
