"""Structured logging of outbound requests and their responses.

Bearer tokens are masked and multipart bodies are summarized so logs never
contain full credentials or raw file bytes.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from authgate.models.context import FormPayload

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def mask_token(token: str) -> str:
    """Keep the first 6 and last 6 characters of tokens longer than 12."""
    if len(token) <= 12:
        return token
    return f"{token[:6]}...{token[-6:]}"


def mask_bearer(value: str) -> str:
    if not value.startswith(BEARER_PREFIX):
        return mask_token(value)
    return f"{BEARER_PREFIX}{mask_token(value[len(BEARER_PREFIX) :])}"


def mask_headers(headers: Mapping[str, str]) -> dict[str, str]:
    masked = dict(headers)
    for key, value in masked.items():
        if key.lower() == "authorization":
            masked[key] = mask_bearer(str(value))
    return masked


SECRET_FIELDS = frozenset(
    {"access", "refresh", "access_token", "refresh_token", "session_token"}
)


def redact_body(body: Any) -> Any:
    """Mask token values in a decoded JSON object before it is logged."""
    if not isinstance(body, dict):
        return body
    return {
        key: mask_token(str(value)) if key in SECRET_FIELDS and value else value
        for key, value in body.items()
    }


def summarize_payload(payload: Any) -> str:
    """Render a request body for logs."""
    if payload is None:
        return "<empty>"

    if isinstance(payload, FormPayload):
        return json.dumps(payload.summary(), indent=2, default=str)

    if isinstance(payload, (dict, list)):
        try:
            return json.dumps(redact_body(payload), indent=2, default=str)
        except (TypeError, ValueError):
            return str(payload)

    if isinstance(payload, (bytes, bytearray)):
        return f"<{len(payload)} bytes>"

    return str(payload)


class RequestLogger:
    """Logs each request phase with a label identifying the client."""

    def __init__(self, label: str, log: logging.Logger | None = None):
        self.label = label
        self._log = log or logger

    def log_request(
        self, method: str, uri: str, headers: Mapping[str, str], payload: Any
    ) -> None:
        self._log.info(f"[{self.label}] [REQUEST] {method} => {uri}")
        self._log.info(f"[{self.label}] [HEADERS] => {mask_headers(headers)}")
        self._log.info(f"[{self.label}] [PAYLOAD] => {summarize_payload(payload)}")

    def log_response(self, status_code: int | None, body: Any) -> None:
        message = (
            f"[{self.label}] [RESPONSE {status_code}] => {redact_body(body)}"
        )
        if status_code is not None and 200 <= status_code < 300:
            self._log.info(message)
        elif status_code is not None and status_code < 400:
            self._log.warning(message)
        else:
            self._log.error(message)

    def log_error(self, message: str) -> None:
        self._log.error(f"[{self.label} API ERROR] {message}")
