"""
errors.py — Typed failures raised by the fact-check components.

Every failure a caller can see is a FactCheckError subclass. It carries:
  - kind         coarse category (drives retry / reporting policy)
  - status_code  HTTP-style status used in the response envelope
  - message      caller-safe text, never an internal error string
  - detail       optional diagnostic payload (e.g. raw AI text excerpt)

Anything that is *not* a FactCheckError reaching the pipeline entry point is
an internal fault: it is logged with a traceback and reported generically.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    RESOURCE_LIMIT_EXCEEDED = "RESOURCE_LIMIT_EXCEEDED"
    PARSE_FAILURE = "PARSE_FAILURE"
    INTERNAL = "INTERNAL"


class FactCheckError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500
    default_message: str = "Internal server error during analysis"

    def __init__(self, message: str | None = None, detail: Any = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


# ── Input ─────────────────────────────────────────────────────────────────────

class InvalidURL(FactCheckError):
    kind = ErrorKind.INVALID_INPUT
    status_code = 400
    default_message = "Invalid YouTube URL format"


# ── Acquisition ───────────────────────────────────────────────────────────────

class NoTranscript(FactCheckError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 404
    default_message = "Transcript not available"


class InfoFetchFailed(FactCheckError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502
    default_message = "Could not fetch video information"


class DownloadFailed(FactCheckError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502
    default_message = "Failed to download video"


class TooLong(FactCheckError):
    kind = ErrorKind.RESOURCE_LIMIT_EXCEEDED
    status_code = 400
    default_message = "Video too long"


class TooLarge(FactCheckError):
    kind = ErrorKind.RESOURCE_LIMIT_EXCEEDED
    status_code = 400
    default_message = "File too large"


# ── AI backend ────────────────────────────────────────────────────────────────

class BackendError(FactCheckError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502
    default_message = "AI backend request failed"


class BackendUnavailable(FactCheckError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 503
    default_message = "AI backend returning invalid responses. Check API key and quotas."


class MediaProcessingFailed(FactCheckError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502
    default_message = "Media processing failed on the AI backend"


class RemoteFileNotFound(FactCheckError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502
    default_message = "Uploaded media not found on the AI backend"


class ProcessingTimeout(FactCheckError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 504
    default_message = "Media processing timeout"


class SafetyBlocked(FactCheckError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 422
    default_message = "Content blocked due to safety concerns"


class ParseError(FactCheckError):
    kind = ErrorKind.PARSE_FAILURE
    status_code = 502
    default_message = "Failed to parse AI response"
