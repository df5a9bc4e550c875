"""Gateway configuration, built once at startup and injected everywhere."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import httpx
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PRODUCTION_ENVIRONMENTS = ("production", "prod", "release")


class AuthMode(str, Enum):
    """How the private client renews its bearer token."""

    BACKEND_JWT = "backend_jwt"  # refresh-token exchange against our backend
    IDENTITY_PROVIDER = "identity_provider"  # external provider renews directly


@dataclass(frozen=True)
class RefreshConfig:
    """Refresh endpoint settings for ``AuthMode.BACKEND_JWT``."""

    path: str = "/api/v1/refresh-token/"
    token_field: str = "refresh"


def _default_headers() -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


@dataclass(frozen=True)
class ApiConfig:
    """Settings shared by the public and private clients."""

    base_url: str
    connect_timeout: float = 10.0
    receive_timeout: float = 10.0
    default_headers: dict[str, str] = field(default_factory=_default_headers)
    success_status_upper_bound: int = 400
    auth_mode: AuthMode = AuthMode.BACKEND_JWT
    refresh: RefreshConfig = field(default_factory=RefreshConfig)

    def __post_init__(self) -> None:
        if self.connect_timeout <= 0 or self.receive_timeout <= 0:
            raise ValueError("Timeouts must be positive")
        if not (200 < self.success_status_upper_bound <= 600):
            raise ValueError("success_status_upper_bound must be in (200, 600]")

    @property
    def timeout(self) -> httpx.Timeout:
        """Finite connect/receive timeouts for both clients."""
        return httpx.Timeout(
            self.receive_timeout,
            connect=self.connect_timeout,
            read=self.receive_timeout,
        )

    @classmethod
    def from_env(
        cls,
        env_file: str | Path | None = None,
        production: bool | None = None,
    ) -> ApiConfig:
        """Build configuration from the environment and an optional dotenv file.

        Production builds read ``BASE_URL``; everything else reads ``DEV_URL``.

        Args:
            env_file: Dotenv file to load before reading variables
            production: Force the environment instead of reading ``APP_ENV``

        Returns:
            ApiConfig: Resolved configuration

        Raises:
            ValueError: If AUTH_MODE or a timeout is invalid
        """
        load_dotenv(env_file)

        if production is None:
            app_env = os.getenv("APP_ENV", "development").strip().lower()
            production = app_env in PRODUCTION_ENVIRONMENTS

        base_url = os.getenv("BASE_URL" if production else "DEV_URL", "")
        if not base_url:
            logger.warning(
                f"No base URL configured for "
                f"{'production' if production else 'development'} build"
            )

        auth_mode_raw = os.getenv("AUTH_MODE", AuthMode.BACKEND_JWT.value)
        try:
            auth_mode = AuthMode(auth_mode_raw.strip().lower())
        except ValueError as e:
            raise ValueError(f"Unknown AUTH_MODE: {auth_mode_raw!r}") from e

        refresh = RefreshConfig(
            path=os.getenv("REFRESH_PATH", RefreshConfig.path),
            token_field=os.getenv("REFRESH_TOKEN_FIELD", RefreshConfig.token_field),
        )

        return cls(
            base_url=base_url,
            connect_timeout=_float_env("CONNECT_TIMEOUT", 10.0),
            receive_timeout=_float_env("RECEIVE_TIMEOUT", 10.0),
            auth_mode=auth_mode,
            refresh=refresh,
        )


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from e
