"""Error taxonomy & redaction.

Decode problems never raise (decoders return empty results), so everything
here concerns failures that must reach the top-level caller:

- ``RTAPIError``: the remote gateway could not complete a request
  (transport failure, HTTP error, or an error status in the REST header).
- ``SyncInconsistencyError``: the second write of a link mutation failed
  after the first one succeeded; the remote sides may now disagree.
- ``SelfLinkError``: a link mutation between a ticket and itself was refused.

Public helpers:
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

# Credentials can end up in URLs, form dumps and cookie headers.
_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(?<=[?&]pass=)[^&\s]+"),
    re.compile(r"(?<=['\"]pass['\"]: ['\"])[^'\"]+"),
    re.compile(r"(?i)(?<=password: )\S+"),
    re.compile(r"(?i)(?<=RT_SID_)[\w.]+=\w+"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class RTAPIError(RuntimeError):
    """Raised when the REST gateway fails to complete a request."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


# Name used throughout the sync code for gateway failures.
TransportFailure = RTAPIError


class SyncInconsistencyError(RuntimeError):
    """A link mutation wrote one side remotely but failed on the other."""

    def __init__(self, message: str, *, written: str, failed: str):
        super().__init__(message)
        self.written = written
        self.failed = failed


class SelfLinkError(ValueError):
    pass


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Replace credential-looking substrings with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    - gateway errors with 401/403 or "credentials required" -> 'rt.auth'
    - gateway errors with 404 or "does not exist" -> 'rt.not_found'
    - half-applied link mutations -> 'sync.inconsistent'
    - network-y keywords -> 'network', transient
    - fallback -> 'generic'
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if isinstance(exc, SyncInconsistencyError):
        return ErrorInfo(
            "sync.inconsistent",
            redact(msg),
            name,
            details={"written": exc.written, "failed": exc.failed},
        )
    if isinstance(exc, RTAPIError):
        details = {"status": exc.status} if exc.status is not None else None
        if exc.status in (401, 403) or "credentials required" in low:
            return ErrorInfo("rt.auth", redact(msg), name, details=details)
        if exc.status == 404 or "does not exist" in low:
            return ErrorInfo("rt.not_found", redact(msg), name, details=details)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable", "connection refused")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "ErrorInfo",
    "RTAPIError",
    "SelfLinkError",
    "SyncInconsistencyError",
    "TransportFailure",
    "classify_error",
    "redact",
]
