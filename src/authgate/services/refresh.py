"""Single-flight token refresh for the private client.

At most one refresh runs per coordinator. Requests that hit an unauthorized
response while a refresh is in flight await the same task and share its
outcome. A terminal failure clears the credential store and invokes the
logout hook once.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Awaitable, Callable

from authgate.models.errors import RefreshFailure
from authgate.services.credentials import BaseCredentialStore
from authgate.services.strategies import ExchangeSender, RefreshStrategy

logger = logging.getLogger(__name__)

LogoutHook = Callable[[], None | Awaitable[None]]


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class RefreshCoordinator:
    """Deduplicates concurrent refresh attempts and handles logout.

    State machine: IDLE -> REFRESHING -> (SUCCESS | FAILURE) -> IDLE. The
    in-flight refresh is a single ``asyncio.Task`` every waiter awaits, so
    success and failure are broadcast to all of them.
    """

    def __init__(
        self,
        store: BaseCredentialStore,
        strategy: RefreshStrategy,
        logout_hook: LogoutHook | None = None,
    ):
        """Initialize refresh coordinator.

        Args:
            store: Credential store shared with the request pipeline
            strategy: Renewal strategy selected from configuration
            logout_hook: Called with no arguments on terminal auth failure
        """
        self._store = store
        self._strategy = strategy
        self._logout_hook = logout_hook
        self._pending: asyncio.Task[str] | None = None
        self.last_outcome: RefreshOutcome | None = None
        self.refresh_count = 0

    @property
    def state(self) -> RefreshState:
        if self._pending is not None:
            return RefreshState.REFRESHING
        return RefreshState.IDLE

    async def refresh(
        self, send: ExchangeSender, stale_token: str | None = None
    ) -> str:
        """Obtain a fresh access token, joining any refresh already in flight.

        Args:
            send: Sends the refresh exchange through the private client
            stale_token: Access token the rejected request was sent with. If
                the store already holds a different token, it has been
                rotated since and is returned without a new refresh. If the
                store holds no token at all, a logout already ran and
                ``RefreshFailure`` is raised without refreshing again.

        Returns:
            The current access token after refresh

        Raises:
            RefreshFailure: If the refresh failed; logout has already run
        """
        if self._pending is None:
            current = self._store.access_token
            if stale_token and not current:
                # Cleared by a logout after the rejected request was sent
                raise RefreshFailure("Credentials were revoked by logout")
            if stale_token and current != stale_token:
                logger.debug("Access token already rotated, skipping refresh")
                return current

            self._pending = asyncio.ensure_future(self._run(send))
            self._pending.add_done_callback(_consume_exception)
        else:
            logger.debug("Refresh in flight, waiting on shared result")

        return await asyncio.shield(self._pending)

    async def _run(self, send: ExchangeSender) -> str:
        self.refresh_count += 1
        logger.warning("Unauthorized, attempting token refresh")

        try:
            token = await self._strategy.renew(self._store, send)
        except RefreshFailure as e:
            logger.error(f"Refresh failed, logging out: {e}")
            self.last_outcome = RefreshOutcome.FAILURE
            await self.logout()
            raise
        except Exception as e:
            logger.exception("Unexpected error during token refresh, logging out")
            self.last_outcome = RefreshOutcome.FAILURE
            await self.logout()
            raise RefreshFailure(f"Token refresh failed: {e}") from e
        finally:
            self._pending = None

        self.last_outcome = RefreshOutcome.SUCCESS
        return token

    async def logout(self) -> None:
        """Clear all credentials and invoke the logout hook."""
        logger.info("Logging out")
        self._store.clear()

        if self._logout_hook is not None:
            try:
                result = self._logout_hook()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Logout hook raised: {e}")

        logger.info("Logged out")


def _consume_exception(task: asyncio.Task[str]) -> None:
    # Waiters may all be cancelled; the failure is already logged in _run
    if not task.cancelled():
        task.exception()
