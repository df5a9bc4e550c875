"""Dual-client request pipeline.

Two independently configured ``httpx.AsyncClient`` instances:

- public: never attaches credentials and never refreshes, but still logs and
  classifies errors;
- private: attaches ``Authorization: Bearer <token>`` read from the credential
  store on every send, and on an unauthorized response refreshes once through
  the ``RefreshCoordinator`` and replays the request.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx

from authgate.models.config import ApiConfig
from authgate.models.context import FormPayload, RequestContext
from authgate.models.envelope import decode_body, is_success_status
from authgate.models.errors import (
    ConnectivityError,
    RefreshFailure,
    ServerError,
    UnauthorizedError,
)
from authgate.primitives.classification import (
    ErrorKind,
    UnauthorizedDetector,
    classify_status,
    default_unauthorized_detector,
    extract_server_message,
    is_connection_error,
)
from authgate.services.credentials import BaseCredentialStore
from authgate.services.refresh import RefreshCoordinator
from authgate.services.request_logger import RequestLogger

logger = logging.getLogger(__name__)


class ClientKind(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class RequestPipeline:
    """Sends requests through the public or private client.

    Successful responses (status in ``[200, success_status_upper_bound)``)
    are returned as-is. Failures raise ``ConnectivityError``,
    ``UnauthorizedError`` or ``ServerError``.
    """

    def __init__(
        self,
        config: ApiConfig,
        store: BaseCredentialStore,
        coordinator: RefreshCoordinator | None = None,
        unauthorized_detector: UnauthorizedDetector = default_unauthorized_detector,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize request pipeline.

        Args:
            config: Shared gateway configuration
            store: Credential store read on every private request
            coordinator: Refresh coordinator. Without one, unauthorized
                responses on the private client surface directly.
            unauthorized_detector: Decides which statuses/bodies mean the
                token was rejected
            transport: Optional httpx transport, used for both clients
        """
        self.config = config
        self._store = store
        self._coordinator = coordinator
        self._detector = unauthorized_detector
        self._clients = {
            ClientKind.PUBLIC: self._create_client(transport),
            ClientKind.PRIVATE: self._create_client(transport),
        }
        self._loggers = {
            ClientKind.PUBLIC: RequestLogger("PUBLIC"),
            ClientKind.PRIVATE: RequestLogger("PRIVATE"),
        }

    def _create_client(
        self, transport: httpx.AsyncBaseTransport | None
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            transport=transport,
        )

    # ================================
    # HTTP Methods
    # ================================

    async def get(
        self,
        path: str,
        *,
        query: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        client_kind: ClientKind = ClientKind.PRIVATE,
        base_url_override: str | None = None,
    ) -> httpx.Response:
        return await self.request(
            "GET",
            path,
            query=query,
            headers=headers,
            client_kind=client_kind,
            base_url_override=base_url_override,
        )

    async def post(
        self,
        path: str,
        *,
        body: Any = None,
        query: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        client_kind: ClientKind = ClientKind.PRIVATE,
        base_url_override: str | None = None,
    ) -> httpx.Response:
        return await self.request(
            "POST",
            path,
            body=body,
            query=query,
            headers=headers,
            client_kind=client_kind,
            base_url_override=base_url_override,
        )

    async def put(
        self,
        path: str,
        *,
        body: Any = None,
        query: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        client_kind: ClientKind = ClientKind.PRIVATE,
        base_url_override: str | None = None,
    ) -> httpx.Response:
        return await self.request(
            "PUT",
            path,
            body=body,
            query=query,
            headers=headers,
            client_kind=client_kind,
            base_url_override=base_url_override,
        )

    async def patch(
        self,
        path: str,
        *,
        body: Any = None,
        query: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        client_kind: ClientKind = ClientKind.PRIVATE,
        base_url_override: str | None = None,
    ) -> httpx.Response:
        return await self.request(
            "PATCH",
            path,
            body=body,
            query=query,
            headers=headers,
            client_kind=client_kind,
            base_url_override=base_url_override,
        )

    async def delete(
        self,
        path: str,
        *,
        body: Any = None,
        query: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        client_kind: ClientKind = ClientKind.PRIVATE,
        base_url_override: str | None = None,
    ) -> httpx.Response:
        return await self.request(
            "DELETE",
            path,
            body=body,
            query=query,
            headers=headers,
            client_kind=client_kind,
            base_url_override=base_url_override,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        query: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        client_kind: ClientKind = ClientKind.PRIVATE,
        base_url_override: str | None = None,
        skip_auth: bool = False,
    ) -> httpx.Response:
        """Build a request context and run it through the pipeline.

        Args:
            method: HTTP method
            path: Path relative to the base URL, or an absolute URL
            body: JSON value, ``FormPayload``, str or bytes
            query: Query parameters
            headers: Headers merged over the configured defaults
            client_kind: Public or private client
            base_url_override: Base URL to use instead of the configured one
            skip_auth: Send without credentials and never refresh

        Returns:
            httpx.Response: Response with a success status

        Raises:
            ConnectivityError: On transport failure or timeout
            UnauthorizedError: If authentication failed and could not recover
            ServerError: On any other error status
        """
        context = RequestContext(
            method=method.upper(),
            uri=self._resolve_uri(path, base_url_override),
            headers=self._merge_headers(headers, body),
            body=body,
            query=query,
            skip_auth=skip_auth,
        )
        return await self.execute(context, ClientKind(client_kind))

    # ================================
    # Request / Response / Error phases
    # ================================

    async def execute(
        self, context: RequestContext, client_kind: ClientKind
    ) -> httpx.Response:
        """Send a context, recovering once from an unauthorized response."""
        while True:
            response = await self.dispatch(context, client_kind)

            if is_success_status(
                response.status_code, self.config.success_status_upper_bound
            ):
                return response

            body = decode_body(response)
            kind = classify_status(response.status_code, body, self._detector)

            if kind is ErrorKind.UNAUTHORIZED and self._can_refresh(
                context, client_kind
            ):
                await self._recover_unauthorized(context, response.status_code, body)
                continue

            message = extract_server_message(body)
            self._loggers[client_kind].log_error(
                f"{context.method} {context.uri} failed with "
                f"{response.status_code}: {message}"
            )
            if kind is ErrorKind.UNAUTHORIZED:
                raise UnauthorizedError(message, response.status_code, body)
            raise ServerError(message, response.status_code, body)

    async def dispatch(
        self, context: RequestContext, client_kind: ClientKind
    ) -> httpx.Response:
        """Attach credentials, log and send one attempt of a request.

        No status handling happens here. Transport failures are raised as
        ``ConnectivityError``.
        """
        client = self._clients[client_kind]
        request_logger = self._loggers[client_kind]

        if client_kind is ClientKind.PRIVATE and not context.skip_auth:
            # Always re-read: a concurrent refresh may have rotated the token
            token = self._store.access_token
            context.sent_token = token
            if token:
                context.headers["Authorization"] = f"Bearer {token}"

        request_logger.log_request(
            context.method, context.uri, context.headers, context.body
        )

        try:
            response = await client.request(
                context.method,
                context.uri,
                params=context.query,
                headers=context.headers,
                **self._body_kwargs(context.body),
            )
        except Exception as e:
            if not is_connection_error(e):
                raise
            request_logger.log_error(f"Connection Error: {e!r}")
            raise ConnectivityError() from e

        request_logger.log_response(response.status_code, decode_body(response))
        return response

    def _can_refresh(self, context: RequestContext, client_kind: ClientKind) -> bool:
        return (
            client_kind is ClientKind.PRIVATE
            and not context.skip_auth
            and self._coordinator is not None
        )

    async def _recover_unauthorized(
        self, context: RequestContext, status_code: int, body: Any
    ) -> None:
        """Refresh credentials and mark the context for its single replay.

        Raises:
            UnauthorizedError: If the context was already replayed or the
                refresh failed. Logout has run in both cases.
        """
        error = UnauthorizedError(extract_server_message(body), status_code, body)

        if context.retried:
            self._loggers[ClientKind.PRIVATE].log_error(
                "Unauthorized even after retry, logging out"
            )
            await self._coordinator.logout()
            raise error

        try:
            await self._coordinator.refresh(
                self._send_refresh_exchange, stale_token=context.sent_token
            )
        except RefreshFailure as e:
            raise error from e

        context.mark_retried()
        logger.info(f"Replaying {context.method} {context.uri} with refreshed token")

    async def _send_refresh_exchange(self, context: RequestContext) -> httpx.Response:
        context.uri = self._resolve_uri(context.uri, None)
        context.headers = self._merge_headers(context.headers, context.body)
        return await self.dispatch(context, ClientKind.PRIVATE)

    # ================================
    # Helper Methods
    # ================================

    def _resolve_uri(self, path: str, base_url_override: str | None) -> str:
        if path.startswith(("http://", "https://")):
            return path
        base = base_url_override or self.config.base_url
        if not base:
            return path
        return f"{base.rstrip('/')}/{path.lstrip('/')}"

    def _merge_headers(
        self, headers: dict[str, str] | None, body: Any
    ) -> dict[str, str]:
        merged = dict(self.config.default_headers)
        if isinstance(body, FormPayload):
            # httpx sets the multipart boundary itself
            merged = {k: v for k, v in merged.items() if k.lower() != "content-type"}
        if headers:
            merged.update(headers)
        return merged

    @staticmethod
    def _body_kwargs(body: Any) -> dict[str, Any]:
        if body is None:
            return {}
        if isinstance(body, FormPayload):
            kwargs: dict[str, Any] = {"data": body.fields}
            if body.files:
                kwargs["files"] = body.to_httpx_files()
            return kwargs
        if isinstance(body, (str, bytes, bytearray)):
            return {"content": bytes(body) if isinstance(body, bytearray) else body}
        return {"json": body}

    async def close(self) -> None:
        """Close both HTTP clients."""
        for client in self._clients.values():
            if not client.is_closed:
                await client.aclose()
        logger.debug("HTTP clients closed")

    async def __aenter__(self) -> RequestPipeline:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
