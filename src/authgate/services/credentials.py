"""Credential storage for session, access and refresh tokens.

The store is the only owner of credentials. The pipeline re-reads the access
token on every request; only the refresh coordinator and logout mutate it.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from authgate.models.credentials import Credentials, TokenKind

logger = logging.getLogger(__name__)


class BaseCredentialStore(ABC):
    """Key-value contract for token persistence.

    No validation of token format. Reading a missing key returns None and
    never raises.
    """

    @abstractmethod
    def get(self, kind: TokenKind) -> str | None: ...

    @abstractmethod
    def set(self, kind: TokenKind, value: str) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...

    @property
    def session_token(self) -> str | None:
        return self.get(TokenKind.SESSION)

    @property
    def access_token(self) -> str | None:
        return self.get(TokenKind.ACCESS)

    @property
    def refresh_token(self) -> str | None:
        return self.get(TokenKind.REFRESH)

    def set_tokens(
        self,
        session_token: str,
        access_token: str,
        refresh_token: str,
    ) -> None:
        """Write all three tokens at once."""
        self.set(TokenKind.SESSION, session_token)
        self.set(TokenKind.ACCESS, access_token)
        self.set(TokenKind.REFRESH, refresh_token)

    def snapshot(self) -> Credentials:
        return Credentials(
            session_token=self.session_token,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
        )


class InMemoryCredentialStore(BaseCredentialStore):
    """Process-local store. Does not survive restarts."""

    def __init__(self, credentials: Credentials | None = None):
        self._values: dict[TokenKind, str] = {}
        if credentials is not None:
            for kind, value in (
                (TokenKind.SESSION, credentials.session_token),
                (TokenKind.ACCESS, credentials.access_token),
                (TokenKind.REFRESH, credentials.refresh_token),
            ):
                if value is not None:
                    self._values[kind] = value

    def get(self, kind: TokenKind) -> str | None:
        return self._values.get(TokenKind(kind))

    def set(self, kind: TokenKind, value: str) -> None:
        self._values[TokenKind(kind)] = value

    def clear(self) -> None:
        self._values.clear()


class FileCredentialStore(BaseCredentialStore):
    """JSON-file backed store that persists tokens across process restarts.

    The file holds a flat object keyed by ``session_token``, ``access_token``
    and ``refresh_token``. Every write rewrites the whole file through a
    temporary sibling so a crash never leaves a half-written file.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._values: dict[str, str] = self._load()

    def get(self, kind: TokenKind) -> str | None:
        value = self._values.get(TokenKind(kind).value)
        return value if isinstance(value, str) else None

    def set(self, kind: TokenKind, value: str) -> None:
        self._values[TokenKind(kind).value] = value
        self._save()

    def clear(self) -> None:
        for kind in TokenKind:
            self._values.pop(kind.value, None)
        self._save()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable credential file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring credential file {self.path}: not an object")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._values, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
