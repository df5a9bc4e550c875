"""Network reachability probe used as a pre-flight guard."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

ConnectivityChecker = Callable[[], Awaitable[bool]]
ConnectivityListener = Callable[[bool], None | Awaitable[None]]


class ConnectivityProbe:
    """Reports network reachability on demand.

    ``refresh_status`` re-checks and caches the result; ``is_connected`` reads
    the last known value. Listeners are notified with the new value only when
    the status flips. The initial status is online.
    """

    def __init__(
        self,
        checker: ConnectivityChecker | None = None,
        host: str = "1.1.1.1",
        port: int = 53,
        timeout: float = 3.0,
    ):
        """Initialize connectivity probe.

        Args:
            checker: Coroutine function returning reachability. Defaults to a
                TCP connect to ``host:port``.
            host: Host used by the default checker
            port: Port used by the default checker
            timeout: Connect timeout in seconds for the default checker
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self._checker = checker or self._tcp_check
        self._is_online = True
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_connected(self) -> bool:
        return self._is_online

    def add_listener(self, listener: ConnectivityListener) -> None:
        """Register a callback invoked with the new status on every flip."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def refresh_status(self) -> bool:
        """Re-check reachability, cache it and return it."""
        try:
            connected = bool(await self._checker())
        except Exception as e:
            logger.warning(f"Connectivity check failed: {e}")
            connected = False
        await self.update_status(connected)
        return self._is_online

    async def update_status(self, connected: bool) -> None:
        if connected == self._is_online:
            return

        self._is_online = connected
        logger.info(f"Connectivity changed: {'online' if connected else 'offline'}")

        for listener in list(self._listeners):
            try:
                result = listener(connected)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Connectivity listener raised: {e}")

    async def _tcp_check(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True
