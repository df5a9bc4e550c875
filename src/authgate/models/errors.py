"""Exception hierarchy for the authenticated HTTP gateway.

Provides specific exception types for each failure mode so the pipeline,
the refresh coordinator and the service facade can decide between retry,
logout and surfacing an error envelope.
"""

from __future__ import annotations

from typing import Any

NO_INTERNET_MESSAGE = "No internet connection"
CONNECTION_ERROR_MESSAGE = "Check your internet or try again later"
GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again"


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        return self.message


class ConnectivityError(GatewayError):
    """Raised on transport failures: connect errors, DNS lookups, timeouts.

    Never retried automatically.
    """

    def __init__(self, message: str = CONNECTION_ERROR_MESSAGE):
        super().__init__(message)


class UnauthorizedError(GatewayError):
    """Raised when a request is rejected as unauthenticated.

    Transient on the private client: triggers a single refresh and replay.
    """

    pass


class ServerError(GatewayError):
    """Raised for 4xx/5xx responses that are not authentication failures."""

    pass


class RefreshFailure(GatewayError):
    """Raised when the token refresh cannot produce a new access token.

    Terminal: the coordinator clears credentials and triggers logout.
    """

    pass


class MalformedResponseError(RefreshFailure):
    """Raised when the refresh endpoint returns an unexpected body shape."""

    pass
