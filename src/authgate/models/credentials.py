"""Credential models shared by the store, the pipeline and the refresh flow."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TokenKind(str, Enum):
    """Persisted credential keys."""

    SESSION = "session_token"
    ACCESS = "access_token"
    REFRESH = "refresh_token"


@dataclass(frozen=True)
class Credentials:
    """Point-in-time view of the stored tokens."""

    session_token: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None

    def can_refresh(self) -> bool:
        """Check if a refresh token is available."""
        return bool(self.refresh_token)
