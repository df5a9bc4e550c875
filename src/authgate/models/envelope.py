"""Normalized result envelope returned to every caller.

Servers answer either with a wrapped shape ``{success, message, data}`` or
with a raw array/object/primitive. ``classify_body`` tags the body as one of
the two shapes and ``ResultEnvelope`` builds the same result type from
either.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

Transform = Callable[[Any], Any]

SUCCESS_MESSAGE = "Success"
ERROR_MESSAGE = "Error"


@dataclass(frozen=True)
class Wrapped:
    """Body that already carries ``success`` and/or ``data`` keys."""

    success: bool | None
    message: str | None
    payload: Any


@dataclass(frozen=True)
class Raw:
    """Any other body: raw array, object or primitive."""

    body: Any


EnvelopeShape = Wrapped | Raw


def classify_body(body: Any) -> EnvelopeShape:
    """Tag a decoded response body as Wrapped or Raw.

    A mapping with a ``success`` or ``data`` key is wrapped. Its payload is
    ``body["data"]`` when present and not null, otherwise the whole body.
    """
    if isinstance(body, dict) and ("success" in body or "data" in body):
        success = body.get("success")
        message = body.get("message")
        data = body.get("data")
        return Wrapped(
            success=success if isinstance(success, bool) else None,
            message=str(message) if message is not None else None,
            payload=data if data is not None else body,
        )
    return Raw(body=body)


def is_success_status(status_code: int | None, upper_bound: int = 400) -> bool:
    return status_code is not None and 200 <= status_code < upper_bound


def _apply(transform: Transform | None, value: Any) -> Any:
    return transform(value) if transform is not None else value


class ResultEnvelope(BaseModel, Generic[T]):
    """Immutable result of one gateway call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool
    message: str
    data: T | None = None
    status_code: int | None = Field(default=None, alias="statusCode")

    @classmethod
    def from_body(
        cls,
        status_code: int | None,
        body: Any,
        transform: Transform | None = None,
        success_upper_bound: int = 400,
    ) -> ResultEnvelope[T]:
        """Build an envelope from a status code and decoded body.

        Args:
            status_code: HTTP status of the response
            body: Decoded response body (JSON value or text)
            transform: Optional callable applied to the payload
            success_upper_bound: Exclusive upper bound of success statuses

        Returns:
            ResultEnvelope: Normalized result
        """
        status_ok = is_success_status(status_code, success_upper_bound)
        shape = classify_body(body)

        if isinstance(shape, Wrapped):
            return cls(
                success=shape.success if shape.success is not None else status_ok,
                message=shape.message
                if shape.message is not None
                else SUCCESS_MESSAGE,
                data=_apply(transform, shape.payload),
                status_code=status_code,
            )

        return cls(
            success=status_ok,
            message=SUCCESS_MESSAGE if status_ok else ERROR_MESSAGE,
            data=_apply(transform, shape.body),
            status_code=status_code,
        )

    @classmethod
    def from_http(
        cls,
        response: httpx.Response,
        transform: Transform | None = None,
        success_upper_bound: int = 400,
    ) -> ResultEnvelope[T]:
        """Build an envelope from an httpx response."""
        return cls.from_body(
            response.status_code,
            decode_body(response),
            transform,
            success_upper_bound,
        )

    @classmethod
    def failure(
        cls, message: str, status_code: int | None = None
    ) -> ResultEnvelope[T]:
        return cls(success=False, message=message, data=None, status_code=status_code)

    @classmethod
    def from_json(
        cls, payload: dict[str, Any], transform: Transform | None = None
    ) -> ResultEnvelope[T]:
        """Rebuild an envelope from a previously serialized one (e.g. a cache).

        Mirrors the live defaults: ``success`` is True and ``message`` is
        ``"Success"`` when absent; ``statusCode`` is kept only if it is an int.
        """
        data = payload.get("data")
        status_code = payload.get("statusCode")
        success = payload.get("success")
        message = payload.get("message")
        return cls(
            success=success if isinstance(success, bool) else True,
            message=str(message) if message is not None else SUCCESS_MESSAGE,
            data=_apply(transform, data if data is not None else payload),
            status_code=status_code
            if isinstance(status_code, int) and not isinstance(status_code, bool)
            else None,
        )

    def to_json(self) -> dict[str, Any]:
        """Serialize with the wire key names used by ``from_json``."""
        return self.model_dump(by_alias=True)


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text or None."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
