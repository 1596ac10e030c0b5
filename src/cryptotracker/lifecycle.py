"""Lifecycle controller -- drives the background loops from connectivity.

Owns the single "am I online" view of the process and the UI-facing flags
derived from it:

- is_loading: True until the first preloader iteration settles (page
  stored, page failed, offline, or end of catalog).
- is_offline: mirrors the last connectivity state seen.
- show_offline_message: raised on every drop of connectivity and cleared
  again after ``offline_banner_seconds``. A UI affordance only.

Reactions happen only on genuine transitions. The process starts out
assumed online, so a stream of [True, True, False, True] triggers two
reactions, not four:

  connected    -> restart the preloader from page 1, start the monitor
  disconnected -> stop the monitor; the preloader throttles itself
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from cryptotracker.logging import get_logger
from cryptotracker.sync.preloader import SyncEvent

if TYPE_CHECKING:
    from cryptotracker.connectivity import ConnectivitySignal
    from cryptotracker.sync.preloader import CatalogSynchronizer
    from cryptotracker.sync.price_monitor import PriceAlertMonitor

logger = get_logger(__name__)


class LifecycleController:
    """Starts and stops the preloader and price monitor on connectivity changes.

    All state lives on the event loop: the listener callbacks and the watch
    task run there, so readers never observe a half-applied transition.

    Args:
        connectivity: Online/offline signal to follow.
        synchronizer: Catalog preloader.
        monitor: Favourite price alert monitor.
        start_page: Page the preloader restarts from on reconnect.
        offline_banner_seconds: How long show_offline_message stays raised.
        sleep: Injected delay function (tests pass a controllable clock).
    """

    def __init__(
        self,
        connectivity: ConnectivitySignal,
        synchronizer: CatalogSynchronizer,
        monitor: PriceAlertMonitor,
        start_page: int = 1,
        offline_banner_seconds: float = 1.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._connectivity = connectivity
        self._synchronizer = synchronizer
        self._monitor = monitor
        self._start_page = start_page
        self._offline_banner_seconds = offline_banner_seconds
        self._sleep = sleep

        self._previous_online = True
        self._is_loading = True
        self._is_offline = False
        self._show_offline_message = False
        self._transitions = 0
        self._running = False

        self._watch_task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._banner_task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._transition_lock = asyncio.Lock()

        self._synchronizer.add_listener(self._on_sync_event)

    # ──────────────────────────────────────────────
    # UI-facing state
    # ──────────────────────────────────────────────

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_offline(self) -> bool:
        return self._is_offline

    @property
    def show_offline_message(self) -> bool:
        return self._show_offline_message

    @property
    def transitions(self) -> int:
        """Number of connectivity transitions reacted to."""
        return self._transitions

    @property
    def is_running(self) -> bool:
        return self._running

    def get_status(self) -> dict:
        return {
            "running": self._running,
            "is_loading": self._is_loading,
            "is_offline": self._is_offline,
            "show_offline_message": self._show_offline_message,
            "transitions": self._transitions,
            "preloader": self._synchronizer.get_status(),
            "monitor": self._monitor.get_status(),
        }

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    async def start(self) -> None:
        """Start the loops and begin following connectivity."""
        if self._running:
            logger.warning("lifecycle_already_running")
            return
        self._running = True
        self._previous_online = True
        self._is_loading = True

        await self._synchronizer.start(self._start_page)
        if self._connectivity.is_online:
            await self._monitor.start()

        subscription = self._connectivity.subscribe()
        self._watch_task = asyncio.create_task(self._watch(subscription))
        logger.info("lifecycle_started", online=self._connectivity.is_online)

    async def stop(self) -> None:
        """Stop following connectivity and stop both loops. Idempotent."""
        self._running = False
        for task in (self._watch_task, self._banner_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._watch_task = None
        self._banner_task = None
        self._show_offline_message = False

        await self._monitor.stop()
        await self._synchronizer.stop()
        logger.info("lifecycle_stopped", transitions=self._transitions)

    async def restart_sync(self) -> None:
        """Restart the preloader from the configured start page."""
        await self._synchronizer.start(self._start_page)

    # ──────────────────────────────────────────────
    # Connectivity handling
    # ──────────────────────────────────────────────

    async def _watch(self, subscription) -> None:  # type: ignore[no-untyped-def]
        structlog.contextvars.bind_contextvars(loop="lifecycle")
        with subscription:
            async for online in subscription:
                try:
                    await self.handle_connectivity(online)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.error("lifecycle_transition_failed", online=online, exc_info=True)

    async def handle_connectivity(self, online: bool) -> bool:
        """Apply one connectivity value. Returns True when it was a transition."""
        async with self._transition_lock:
            if online == self._previous_online:
                return False
            self._previous_online = online
            self._transitions += 1
            self._is_offline = not online

            if online:
                logger.info("connectivity_restored_restarting_loops")
                await self._synchronizer.start(self._start_page)
                await self._monitor.start()
            else:
                logger.info("connectivity_lost_stopping_monitor")
                await self._monitor.stop()
                self._raise_offline_banner()
            return True

    def _raise_offline_banner(self) -> None:
        self._show_offline_message = True
        if self._banner_task is not None and not self._banner_task.done():
            self._banner_task.cancel()
        self._banner_task = asyncio.create_task(self._clear_banner_later())

    async def _clear_banner_later(self) -> None:
        await self._sleep(self._offline_banner_seconds)
        self._show_offline_message = False

    # ──────────────────────────────────────────────
    # Preloader progress
    # ──────────────────────────────────────────────

    def _on_sync_event(self, event: SyncEvent, page: int) -> None:
        if event is SyncEvent.OFFLINE:
            self._is_offline = True
            self._is_loading = False
        elif event is SyncEvent.PAGE_STORED:
            self._is_offline = False
            self._is_loading = False
        else:
            self._is_loading = False
