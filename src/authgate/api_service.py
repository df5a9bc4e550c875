"""Service facade combining the connectivity guard, pipeline and envelopes.

``ApiService`` is constructed once at startup and passed to every caller. It
never raises for request failures: every outcome is a ``ResultEnvelope``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx

from authgate.models.config import ApiConfig
from authgate.models.envelope import ResultEnvelope, Transform
from authgate.models.errors import (
    CONNECTION_ERROR_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    NO_INTERNET_MESSAGE,
    ConnectivityError,
    GatewayError,
)
from authgate.primitives.classification import (
    UnauthorizedDetector,
    default_unauthorized_detector,
)
from authgate.services.connectivity import ConnectivityProbe
from authgate.services.credentials import BaseCredentialStore
from authgate.services.pipeline import ClientKind, RequestPipeline
from authgate.services.refresh import LogoutHook, RefreshCoordinator
from authgate.services.strategies import TokenRenewer, build_refresh_strategy

logger = logging.getLogger(__name__)


class ApiService:
    """Authenticated HTTP gateway returning normalized result envelopes.

    Wires together the credential store, the connectivity probe, the refresh
    coordinator (with the strategy selected by ``config.auth_mode``) and the
    dual-client request pipeline.
    """

    def __init__(
        self,
        config: ApiConfig,
        store: BaseCredentialStore,
        probe: ConnectivityProbe | None = None,
        logout_hook: LogoutHook | None = None,
        token_renewer: TokenRenewer | None = None,
        unauthorized_detector: UnauthorizedDetector = default_unauthorized_detector,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize API service.

        Args:
            config: Gateway configuration
            store: Credential store shared by all requests
            probe: Connectivity probe used as a pre-flight guard
            logout_hook: Called with no arguments on terminal auth failure
            token_renewer: Identity provider renewal call, required for
                ``AuthMode.IDENTITY_PROVIDER``
            unauthorized_detector: Pluggable 401/403 classification
            transport: Optional httpx transport for both clients
        """
        self.config = config
        self.store = store
        self.probe = probe or ConnectivityProbe()
        self.coordinator = RefreshCoordinator(
            store,
            build_refresh_strategy(config, token_renewer),
            logout_hook,
        )
        self.pipeline = RequestPipeline(
            config,
            store,
            coordinator=self.coordinator,
            unauthorized_detector=unauthorized_detector,
            transport=transport,
        )

    @classmethod
    def from_env(
        cls,
        store: BaseCredentialStore,
        env_file: str | Path | None = None,
        production: bool | None = None,
        **kwargs: Any,
    ) -> ApiService:
        """Build the service from ``ApiConfig.from_env``."""
        config = ApiConfig.from_env(env_file=env_file, production=production)
        return cls(config, store, **kwargs)

    # ================================
    # Guarded execution
    # ================================

    async def safe_request(
        self,
        operation: str,
        request: Callable[[], Awaitable[httpx.Response]],
        transform: Transform | None = None,
    ) -> ResultEnvelope[Any]:
        """Run an HTTP call and normalize its outcome into an envelope.

        Args:
            operation: Label used in logs
            request: Zero-argument coroutine function performing the call
            transform: Optional callable applied to the response payload

        Returns:
            ResultEnvelope: Normalized result; never raises for call failures
        """
        if not await self.probe.refresh_status():
            logger.warning(f"[{operation}] Blocked: no internet")
            return ResultEnvelope.failure(NO_INTERNET_MESSAGE)

        try:
            logger.info(f"[{operation}] Starting request...")
            response = await request()
            result = ResultEnvelope.from_http(
                response, transform, self.config.success_status_upper_bound
            )
        except ConnectivityError as e:
            logger.error(f"[{operation}] Connection error: {e.__cause__!r}")
            return ResultEnvelope.failure(CONNECTION_ERROR_MESSAGE)
        except GatewayError as e:
            logger.error(
                f"[{operation}] {type(e).__name__}: {e.message} "
                f"(status={e.status_code})"
            )
            return ResultEnvelope.failure(e.message, e.status_code)
        except Exception:
            logger.exception(f"[{operation}] Unknown error")
            return ResultEnvelope.failure(GENERIC_ERROR_MESSAGE)

        logger.info(
            f"[{operation}] Completed with success={result.success} "
            f"(status={result.status_code})"
        )
        return result

    async def safe_async(
        self,
        operation: str,
        task: Callable[[], Awaitable[ResultEnvelope[Any]]],
    ) -> ResultEnvelope[Any]:
        """Guard any coroutine that already produces an envelope."""
        if not await self.probe.refresh_status():
            logger.warning(f"[{operation}] Blocked: no internet")
            return ResultEnvelope.failure(NO_INTERNET_MESSAGE)

        try:
            logger.info(f"[{operation}] Starting async task...")
            result = await task()
        except Exception:
            logger.exception(f"[{operation}] Unknown error in async task")
            return ResultEnvelope.failure(GENERIC_ERROR_MESSAGE)

        logger.info(
            f"[{operation}] Completed with success={result.success} "
            f"(status={result.status_code})"
        )
        return result

    # ================================
    # HTTP Methods
    # ================================

    async def call(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        query: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        client_kind: ClientKind = ClientKind.PRIVATE,
        base_url_override: str | None = None,
        transform: Transform | None = None,
        operation: str | None = None,
    ) -> ResultEnvelope[Any]:
        """Send a request through the pipeline and return its envelope."""

        async def send() -> httpx.Response:
            return await self.pipeline.request(
                method,
                path,
                body=body,
                query=query,
                headers=headers,
                client_kind=client_kind,
                base_url_override=base_url_override,
            )

        return await self.safe_request(
            operation or f"{method.upper()} {path}", send, transform
        )

    async def get(self, path: str, **kwargs: Any) -> ResultEnvelope[Any]:
        return await self.call("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> ResultEnvelope[Any]:
        return await self.call("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> ResultEnvelope[Any]:
        return await self.call("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> ResultEnvelope[Any]:
        return await self.call("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> ResultEnvelope[Any]:
        return await self.call("DELETE", path, **kwargs)

    # ================================
    # Lifecycle
    # ================================

    async def logout(self) -> None:
        """Explicit logout: clear credentials and invoke the logout hook."""
        await self.coordinator.logout()

    async def close(self) -> None:
        await self.pipeline.close()

    async def __aenter__(self) -> ApiService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
