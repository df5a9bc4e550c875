"""End-to-end tests for the ApiService facade.

Every outcome is a ResultEnvelope: connectivity guard, success
normalization, error mapping and the identity provider refresh mode.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from authgate.api_service import ApiService
from authgate.models.config import ApiConfig, AuthMode
from authgate.models.envelope import ResultEnvelope
from authgate.services.connectivity import ConnectivityProbe
from authgate.services.pipeline import ClientKind
from tests.conftest import BASE_URL, EXPIRED_TOKEN, FRESH_TOKEN, FakeBackend


def online_probe():
    return ConnectivityProbe(checker=AsyncMock(return_value=True))


def offline_probe():
    return ConnectivityProbe(checker=AsyncMock(return_value=False))


class TestConnectivityGuard:
    async def test_offline_short_circuits_without_network_io(self, config, store):
        """No request is sent when the probe reports offline."""
        # Arrange
        backend = FakeBackend()
        service = ApiService(
            config, store, probe=offline_probe(), transport=backend.transport
        )

        # Act
        result = await service.get("/private/profile")

        # Assert
        assert result.success is False
        assert result.message == "No internet connection"
        assert result.data is None
        assert result.status_code is None
        assert backend.requests == []

    async def test_safe_async_is_guarded_too(self, config, store):
        task = AsyncMock()
        service = ApiService(config, store, probe=offline_probe())

        result = await service.safe_async("load-cache", task)

        assert result.message == "No internet connection"
        task.assert_not_awaited()


class TestEnvelopes:
    def setup_method(self):
        # Arrange
        self.logout = MagicMock()

    def make_service(self, config, store, transport):
        return ApiService(
            config,
            store,
            probe=online_probe(),
            logout_hook=self.logout,
            transport=transport,
        )

    async def test_refreshed_request_returns_wrapped_envelope(
        self, config, store, backend
    ):
        service = self.make_service(config, store, backend.transport)

        result = await service.get("/private/profile")

        assert result == ResultEnvelope(
            success=True,
            message="ok",
            data={"path": "/private/profile"},
            status_code=200,
        )
        assert backend.refresh_calls == 1
        self.logout.assert_not_called()

    async def test_transform_is_applied(self, config, store):
        def handler(request):
            return httpx.Response(200, json=[{"id": 1}, {"id": 2}])

        service = self.make_service(config, store, httpx.MockTransport(handler))

        result = await service.get(
            "/items",
            client_kind=ClientKind.PUBLIC,
            transform=lambda items: [item["id"] for item in items],
        )

        assert result.success is True
        assert result.message == "Success"
        assert result.data == [1, 2]

    async def test_server_error_becomes_failed_envelope(self, config, store):
        def handler(request):
            return httpx.Response(422, json={"errors": {"name": ["Required"]}})

        service = self.make_service(config, store, httpx.MockTransport(handler))

        result = await service.post("/items", body={}, client_kind=ClientKind.PUBLIC)

        assert result.success is False
        assert result.message == "Required"
        assert result.status_code == 422

    async def test_connection_error_uses_fixed_message(self, config, store):
        def handler(request):
            raise httpx.ConnectError("Failed host lookup")

        service = self.make_service(config, store, httpx.MockTransport(handler))

        result = await service.delete("/items/1")

        assert result.success is False
        assert result.message == "Check your internet or try again later"
        assert result.status_code is None

    async def test_terminal_refresh_failure_becomes_failed_envelope(
        self, config, store
    ):
        backend = FakeBackend(refresh_body={"detail": "no tokens here"})
        service = self.make_service(config, store, backend.transport)

        result = await service.put("/private/profile", body={"name": "x"})

        assert result.success is False
        assert result.status_code == 401
        self.logout.assert_called_once_with()
        assert store.access_token is None

    async def test_unexpected_error_uses_generic_message(self, config, store):
        def handler(request):
            raise RuntimeError("bug in transport")

        service = self.make_service(config, store, httpx.MockTransport(handler))

        result = await service.patch("/items/1", body={"a": 1})

        assert result == ResultEnvelope.failure(
            "Something went wrong. Please try again"
        )

    async def test_safe_async_maps_exceptions(self, config, store):
        service = self.make_service(config, store, None)

        result = await service.safe_async(
            "sync-profile", AsyncMock(side_effect=ValueError("boom"))
        )

        assert result.success is False
        assert result.message == "Something went wrong. Please try again"

    async def test_safe_async_returns_task_envelope(self, config, store):
        service = self.make_service(config, store, None)
        envelope = ResultEnvelope(success=True, message="cached", data=[1])

        result = await service.safe_async(
            "load-cache", AsyncMock(return_value=envelope)
        )

        assert result is envelope


class TestIdentityProviderMode:
    async def test_provider_renewal_replays_request(self, store):
        """Identity provider mode renews without a refresh-token exchange."""
        # Arrange
        config = ApiConfig(base_url=BASE_URL, auth_mode=AuthMode.IDENTITY_PROVIDER)
        backend = FakeBackend()
        renewer = AsyncMock(return_value=FRESH_TOKEN)
        service = ApiService(
            config,
            store,
            probe=online_probe(),
            token_renewer=renewer,
            transport=backend.transport,
        )

        # Act
        result = await service.get("/private/profile")

        # Assert
        assert result.success is True
        renewer.assert_awaited_once()
        assert backend.refresh_calls == 0
        assert store.access_token == FRESH_TOKEN


class TestLifecycle:
    async def test_explicit_logout_clears_store_and_calls_hook(self, config, store):
        logout = AsyncMock()
        service = ApiService(config, store, probe=online_probe(), logout_hook=logout)

        await service.logout()

        logout.assert_awaited_once_with()
        assert store.snapshot().access_token is None

    async def test_from_env(self, monkeypatch, store, tmp_path):
        monkeypatch.setenv("APP_ENV", "development")
        monkeypatch.setenv("DEV_URL", "https://dev.example.com")
        monkeypatch.delenv("AUTH_MODE", raising=False)

        async with ApiService.from_env(
            store, env_file=tmp_path / "missing.env", probe=online_probe()
        ) as service:
            assert service.config.base_url == "https://dev.example.com"
            assert store.access_token == EXPIRED_TOKEN

        assert all(c.is_closed for c in service.pipeline._clients.values())

    def test_identity_provider_mode_without_renewer_is_rejected(self, store):
        config = ApiConfig(base_url=BASE_URL, auth_mode=AuthMode.IDENTITY_PROVIDER)

        with pytest.raises(ValueError):
            ApiService(config, store, probe=online_probe())
