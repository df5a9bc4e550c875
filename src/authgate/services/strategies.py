"""Token renewal strategies used by the refresh coordinator.

Exactly one strategy is active per deployment, selected by
``ApiConfig.auth_mode``:

- ``RefreshTokenExchange`` trades the stored refresh token for a new access
  token at a configured backend endpoint.
- ``IdentityProviderRenewal`` asks an external identity provider for a fresh
  bearer token directly.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Protocol

import httpx

from authgate.models.config import ApiConfig, AuthMode
from authgate.models.context import RequestContext
from authgate.models.credentials import TokenKind
from authgate.models.envelope import decode_body
from authgate.models.errors import (
    GatewayError,
    MalformedResponseError,
    RefreshFailure,
)
from authgate.services.credentials import BaseCredentialStore

logger = logging.getLogger(__name__)

ExchangeSender = Callable[[RequestContext], Awaitable[httpx.Response]]
TokenRenewer = Callable[[], Awaitable[str | None]]


class RefreshStrategy(Protocol):
    """Protocol for obtaining a new access token.

    Implementations write the new credentials to the store and return the new
    access token, or raise ``RefreshFailure``.
    """

    async def renew(
        self, store: BaseCredentialStore, send: ExchangeSender
    ) -> str:
        """Renew the access token.

        Args:
            store: Credential store to read from and update
            send: Sends an unauthenticated request through the private client

        Returns:
            The new access token

        Raises:
            RefreshFailure: If no new access token could be obtained
        """
        ...


def _first_present(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return str(value)
    return ""


class RefreshTokenExchange:
    """Exchanges the stored refresh token at the backend refresh endpoint.

    The response must be a JSON object carrying ``access_token`` or
    ``access``, and may rotate the refresh token via ``refresh_token`` or
    ``refresh`` and replace the session token via ``session_token``.
    """

    def __init__(self, path: str, token_field: str = "refresh"):
        self.path = path
        self.token_field = token_field

    async def renew(
        self, store: BaseCredentialStore, send: ExchangeSender
    ) -> str:
        refresh_token = store.refresh_token
        if not refresh_token:
            logger.error("Missing refresh token, cannot refresh")
            raise RefreshFailure("Missing refresh token")

        logger.warning(
            f"Refresh call starting: path={self.path}, field={self.token_field}"
        )

        context = RequestContext(
            method="POST",
            uri=self.path,
            body={self.token_field: refresh_token},
            skip_auth=True,
        )

        try:
            response = await send(context)
        except GatewayError as e:
            raise RefreshFailure(
                f"Refresh request failed: {e.message}", e.status_code, e.body
            ) from e
        except httpx.HTTPError as e:
            raise RefreshFailure(f"Refresh request failed: {e}") from e

        body = decode_body(response)
        logger.warning(f"Refresh response status: {response.status_code}")

        if not 200 <= response.status_code < 300:
            raise RefreshFailure(
                "Refresh token failed", status_code=response.status_code, body=body
            )

        if not isinstance(body, dict):
            raise MalformedResponseError(
                "Invalid refresh response format",
                status_code=response.status_code,
                body=body,
            )

        new_access = _first_present(body, "access_token", "access")
        if not new_access:
            raise MalformedResponseError(
                "Refresh succeeded but access token missing",
                status_code=response.status_code,
                body=body,
            )

        new_refresh = _first_present(body, "refresh_token", "refresh")
        new_session = _first_present(body, "session_token")

        store.set(TokenKind.ACCESS, new_access)
        store.set(TokenKind.REFRESH, new_refresh or refresh_token)
        if new_session:
            store.set(TokenKind.SESSION, new_session)

        logger.warning("Refresh success, tokens updated")
        return new_access


class IdentityProviderRenewal:
    """Delegates renewal to an external identity provider.

    The provider returns a fresh bearer token directly; no local refresh
    token is involved.
    """

    def __init__(self, renew_token: TokenRenewer):
        self._renew_token = renew_token

    async def renew(
        self, store: BaseCredentialStore, send: ExchangeSender
    ) -> str:
        try:
            token = await self._renew_token()
        except Exception as e:
            raise RefreshFailure(f"Identity provider renewal failed: {e}") from e

        if not token:
            raise RefreshFailure("Identity provider returned no token")

        store.set(TokenKind.ACCESS, token)
        logger.info("Identity provider token renewed")
        return token


def build_refresh_strategy(
    config: ApiConfig, token_renewer: TokenRenewer | None = None
) -> RefreshStrategy:
    """Select the renewal strategy configured for this deployment.

    Raises:
        ValueError: If identity provider mode is configured without a renewer
    """
    if config.auth_mode is AuthMode.IDENTITY_PROVIDER:
        if token_renewer is None:
            raise ValueError("identity_provider auth mode requires a token_renewer")
        return IdentityProviderRenewal(token_renewer)

    return RefreshTokenExchange(config.refresh.path, config.refresh.token_field)
