"""Per-call request state threaded through the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class FilePart:
    """A file attached to a multipart form payload."""

    key: str
    filename: str
    content: bytes
    content_type: str | None = None

    def summary(self) -> dict[str, Any]:
        """File metadata for logging, without the raw bytes."""
        return {
            "key": self.key,
            "filename": self.filename,
            "content_type": self.content_type,
            "length": len(self.content),
        }


@dataclass
class FormPayload:
    """Multipart form body: plain fields plus file parts."""

    fields: dict[str, str] = field(default_factory=dict)
    files: list[FilePart] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "fields": dict(self.fields),
            "files": [part.summary() for part in self.files],
        }

    def to_httpx_files(self) -> list[tuple[str, tuple[str, bytes, str | None]]]:
        return [
            (part.key, (part.filename, part.content, part.content_type))
            for part in self.files
        ]


@dataclass
class RequestContext:
    """Mutable bag describing one outbound call.

    Created per call and discarded once the call resolves. ``retried`` flips
    to True at most once, when the call is replayed after a token refresh.
    ``skip_auth`` marks calls that must not carry or trigger authentication,
    such as the refresh exchange itself.
    """

    method: str
    uri: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    query: dict[str, Any] | None = None
    skip_auth: bool = False
    retried: bool = False
    sent_token: str | None = None

    def mark_retried(self) -> None:
        if self.retried:
            raise RuntimeError(f"{self.method} {self.uri} was already replayed")
        self.retried = True
