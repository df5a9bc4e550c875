import asyncio
from typing import Any

import httpx
import pytest

from authgate.models.config import ApiConfig
from authgate.models.credentials import Credentials
from authgate.services.credentials import InMemoryCredentialStore

BASE_URL = "https://api.example.com"
REFRESH_PATH = "/api/v1/refresh-token/"
EXPIRED_TOKEN = "expired-access-token-0001"
FRESH_TOKEN = "fresh-access-token-0002"


class FakeBackend:
    """In-process API behind httpx.MockTransport.

    Paths under /private require ``Bearer <valid_token>``; the refresh path
    counts exchanges and answers with ``refresh_status``/``refresh_body``.
    """

    def __init__(
        self,
        valid_token: str = FRESH_TOKEN,
        refresh_status: int = 200,
        refresh_body: Any = None,
        refresh_delay: float = 0.01,
    ):
        self.valid_token = valid_token
        self.refresh_status = refresh_status
        self.refresh_body = (
            refresh_body
            if refresh_body is not None
            else {"access": FRESH_TOKEN, "refresh": "rotated-refresh-token"}
        )
        self.refresh_delay = refresh_delay
        self.requests: list[httpx.Request] = []
        self.refresh_calls = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path == REFRESH_PATH:
            self.refresh_calls += 1
            await asyncio.sleep(self.refresh_delay)
            return httpx.Response(self.refresh_status, json=self.refresh_body)

        if request.url.path.startswith("/private"):
            if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
                return httpx.Response(
                    401,
                    json={
                        "detail": "Given token not valid for any token type",
                        "code": "token_not_valid",
                    },
                )

        return httpx.Response(
            200,
            json={"success": True, "message": "ok", "data": {"path": request.url.path}},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def config() -> ApiConfig:
    return ApiConfig(base_url=BASE_URL)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore(
        Credentials(
            session_token="session-abc",
            access_token=EXPIRED_TOKEN,
            refresh_token="refresh-token-abc",
        )
    )
