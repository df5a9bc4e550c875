"""Error classification for failed gateway calls.

Decides whether a failure is a connection problem, an authentication failure
that should trigger a token refresh, or a plain server error, and extracts
the user-facing message a server sent along with it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable

import httpx

from authgate.models.errors import GENERIC_ERROR_MESSAGE

UnauthorizedDetector = Callable[[int, Any], bool]

UNAUTHORIZED_ERROR_CODES = frozenset({"token_not_valid"})
UNAUTHORIZED_MARKERS = ("token", "expired", "not valid")


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    SERVER = "server"


def is_connection_error(error: BaseException) -> bool:
    """Check if an exception is a transport-level failure.

    Covers connect errors, DNS/host lookup failures and timeouts raised by
    httpx, plus OS-level socket errors leaking through custom transports.
    """
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, OSError):
        return True
    return "failed host lookup" in str(error).lower()


def _contains_marker(text: Any) -> bool:
    if text is None:
        return False
    lowered = str(text).lower()
    return any(marker in lowered for marker in UNAUTHORIZED_MARKERS)


def body_indicates_unauthorized(body: Any) -> bool:
    """Heuristic for 403 bodies that really mean "your token is bad".

    Matches an explicit ``code`` of ``token_not_valid``, a ``detail`` or
    ``message`` mentioning the token, or any entry of a ``messages`` list
    saying the token expired or is not valid.
    """
    if not isinstance(body, dict):
        return False

    code = body.get("code")
    if code is not None and str(code) in UNAUTHORIZED_ERROR_CODES:
        return True

    detail = body.get("detail")
    if detail is not None and "token" in str(detail).lower():
        return True

    message = body.get("message")
    if message is not None and "token" in str(message).lower():
        return True

    messages = body.get("messages")
    if isinstance(messages, list):
        for entry in messages:
            text = entry.get("message") if isinstance(entry, dict) else None
            if _contains_marker(text):
                return True

    return False


def default_unauthorized_detector(status_code: int, body: Any) -> bool:
    """401 always; 403 only when the body looks like a token failure."""
    if status_code == 401:
        return True
    return status_code == 403 and body_indicates_unauthorized(body)


def classify_status(
    status_code: int,
    body: Any,
    detector: UnauthorizedDetector = default_unauthorized_detector,
) -> ErrorKind:
    if detector(status_code, body):
        return ErrorKind.UNAUTHORIZED
    return ErrorKind.SERVER


def extract_server_message(body: Any, fallback: str = GENERIC_ERROR_MESSAGE) -> str:
    """Pick the user-facing message out of an error body.

    Prefers ``message``, then ``error``, then the first entry of an
    ``errors`` mapping. Anything else yields ``fallback``.
    """
    if not isinstance(body, dict):
        return fallback

    for key in ("message", "error"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value

    errors = body.get("errors")
    if isinstance(errors, dict) and errors:
        first = next(iter(errors.values()))
        if isinstance(first, list):
            first = first[0] if first else None
        if first is not None and str(first).strip():
            return str(first)

    return fallback
