"""Online/offline state of the process.

ConnectivitySignal holds the current state and replays it to each new
subscriber before any later update. ConnectivityProbe keeps it current by
pinging the market API: any HTTP answer counts as online, a transport
failure as offline.
"""

import asyncio
from collections.abc import Awaitable, Callable

import httpx

from cryptotracker.events import Broadcast, Subscription
from cryptotracker.logging import get_logger

logger = get_logger(__name__)


class ConnectivitySignal:
    """Boolean "is online" stream with current-value replay.

    Every published value is forwarded, including repeats of the current
    state; consumers decide what counts as a transition.
    """

    def __init__(self, initial: bool = True) -> None:
        self._online = initial
        self._channel: Broadcast[bool] = Broadcast("connectivity")

    @property
    def is_online(self) -> bool:
        return self._online

    def publish(self, online: bool) -> None:
        if online != self._online:
            logger.info("connectivity_changed", online=online)
        self._online = online
        self._channel.publish(online)

    def subscribe(self) -> Subscription[bool]:
        subscription = self._channel.subscribe()
        subscription._deliver(self._online)
        return subscription

    def close(self) -> None:
        self._channel.close()


class ConnectivityProbe:
    """Periodically checks reachability of an HTTP endpoint.

    Runs as a background task; start/stop follow the same pattern as the
    sync loops.
    """

    def __init__(
        self,
        signal: ConnectivitySignal,
        url: str,
        probe_interval: float = 15.0,
        timeout: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._signal = signal
        self._url = url
        self._probe_interval = probe_interval
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Begin probing in the background."""
        if self.is_running:
            logger.warning("connectivity_probe_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._probe_loop())
        logger.info("connectivity_probe_started", url=self._url, interval=self._probe_interval)

    async def stop(self) -> None:
        """Stop probing. Safe to call when not running."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("connectivity_probe_stopped")

    async def close(self) -> None:
        """Stop probing and release the HTTP client if we created it."""
        await self.stop()
        if self._owns_client:
            await self._http.aclose()

    async def probe_once(self) -> bool:
        """Ping the endpoint once and publish the result."""
        try:
            await self._http.get(self._url)
            online = True
        except httpx.TransportError as e:
            logger.debug("connectivity_probe_failed", error=str(e))
            online = False
        self._signal.publish(online)
        return online

    async def _probe_loop(self) -> None:
        while self._running:
            try:
                await self.probe_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("connectivity_probe_error", exc_info=True)
            if self._running:
                await self._sleep(self._probe_interval)
