"""Catalog preloader -- walks the remote catalog page by page into the local store.

One background task fetches page N, upserts it, waits ``page_delay`` and moves
on to N+1, until a page comes back empty (end of catalog). Pages are strictly
sequential, so the store never sees two pages racing for the same coin.

Failure policy:
- Offline: sleep ``offline_wait`` and re-check; the page cursor stays put.
- Fetch or store error: log it, skip the page, wait ``page_delay``. Bounded
  retries already happened inside the catalog client.
- Empty page: normal termination, the preloader goes back to IDLE.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

import structlog

from cryptotracker.catalog.client import CatalogClient
from cryptotracker.connectivity import ConnectivitySignal
from cryptotracker.data.store import AssetStore
from cryptotracker.exceptions import NoDataError
from cryptotracker.logging import get_logger
from cryptotracker.models import SortOption

logger = get_logger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"  # offline, waiting for connectivity


class SyncEvent(str, Enum):
    PAGE_STORED = "page_stored"
    PAGE_FAILED = "page_failed"
    OFFLINE = "offline"
    COMPLETED = "completed"


SyncListener = Callable[[SyncEvent, int], None]


class CatalogSynchronizer:
    """Background preloader for the full remote catalog.

    ``start()`` always supersedes the previous run: the old task is cancelled
    and awaited before the new one is created, so at most one loop ever
    advances the cursor.

    Args:
        client: Remote catalog client.
        store: Local asset store written to after each page.
        connectivity: Online/offline signal checked before every fetch.
        page_delay: Seconds between pages (success or failure).
        offline_wait: Seconds between connectivity re-checks while offline.
        initial_delay: Seconds to wait before the first fetch of a run.
        sort_by: Catalog ordering used for pagination.
        sleep: Injected delay function (tests pass a controllable clock).
        on_complete: Awaited after a run reaches the end of the catalog.
    """

    def __init__(
        self,
        client: CatalogClient,
        store: AssetStore,
        connectivity: ConnectivitySignal,
        page_delay: float = 60.0,
        offline_wait: float = 10.0,
        initial_delay: float = 0.0,
        sort_by: SortOption = SortOption.MARKET_CAP,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_complete: Callable[[int], Awaitable[None]] | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._connectivity = connectivity
        self._page_delay = page_delay
        self._offline_wait = offline_wait
        self._initial_delay = initial_delay
        self._sort_by = SortOption(sort_by)
        self._sleep = sleep
        self._on_complete = on_complete
        self._listeners: list[SyncListener] = []

        self._state = SyncState.IDLE
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._current_page = 0
        self._pages_stored = 0
        self._pages_failed = 0
        self._records_stored = 0
        self._runs = 0

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    async def start(self, from_page: int = 1) -> None:
        """Start a run from ``from_page``, cancelling any run in progress.

        Non-positive pages are clamped to 1.
        """
        if from_page < 1:
            logger.warning("preloader_invalid_start_page", from_page=from_page, clamped_to=1)
            from_page = 1

        await self.stop()

        self._runs += 1
        self._current_page = from_page
        self._pages_stored = 0
        self._pages_failed = 0
        self._records_stored = 0
        self._state = SyncState.RUNNING
        self._task = asyncio.create_task(self._run(from_page, self._runs))
        logger.info(
            "preloader_started",
            from_page=from_page,
            sort_by=self._sort_by.value,
            page_delay=self._page_delay,
        )

    async def stop(self) -> None:
        """Cancel the active run, if any. Idempotent."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("preloader_stopped", page=self._current_page)
        self._state = SyncState.IDLE

    async def wait(self) -> None:
        """Wait for the current run to finish on its own."""
        if self._task is not None:
            await asyncio.shield(self._task)

    def add_listener(self, listener: SyncListener) -> None:
        """Register a callback invoked with (event, page) as the run progresses."""
        self._listeners.append(listener)

    # ──────────────────────────────────────────────
    # Introspection
    # ──────────────────────────────────────────────

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def current_page(self) -> int:
        """Next page the run will fetch (or the last one it tried)."""
        return self._current_page

    @property
    def pages_stored(self) -> int:
        return self._pages_stored

    @property
    def records_stored(self) -> int:
        return self._records_stored

    def get_status(self) -> dict:
        return {
            "state": self._state.value,
            "current_page": self._current_page,
            "pages_stored": self._pages_stored,
            "pages_failed": self._pages_failed,
            "records_stored": self._records_stored,
            "sort_by": self._sort_by.value,
        }

    # ──────────────────────────────────────────────
    # Loop
    # ──────────────────────────────────────────────

    async def _run(self, from_page: int, run_id: int) -> None:
        structlog.contextvars.bind_contextvars(loop="preloader", run=run_id)
        page = from_page
        try:
            if self._initial_delay > 0:
                await self._sleep(self._initial_delay)

            while True:
                if not self._connectivity.is_online:
                    self._state = SyncState.PAUSED
                    self._emit(SyncEvent.OFFLINE, page)
                    logger.debug("preloader_waiting_for_network", page=page)
                    await self._sleep(self._offline_wait)
                    continue

                self._state = SyncState.RUNNING
                stored = await self._sync_page(page)
                if stored == 0:
                    logger.info(
                        "preloader_reached_end",
                        empty_page=page,
                        pages_stored=self._pages_stored,
                        records_stored=self._records_stored,
                    )
                    self._emit(SyncEvent.COMPLETED, page)
                    break

                page += 1
                self._current_page = page
                await self._sleep(self._page_delay)
        finally:
            if self._task is None or self._task is asyncio.current_task():
                self._state = SyncState.IDLE
            structlog.contextvars.unbind_contextvars("loop", "run")

        if self._on_complete is not None:
            try:
                await self._on_complete(page)
            except Exception:
                logger.error("preloader_on_complete_failed", exc_info=True)

    async def _sync_page(self, page: int) -> int:
        """Fetch and store one page.

        Returns the number of records stored, 0 for an empty page, or -1
        when the page failed and was skipped.
        """
        try:
            records = await self._client.fetch_page(page, self._sort_by)
            if not records:
                return 0
            await self._store.upsert_many(records)
        except asyncio.CancelledError:
            raise
        except NoDataError:
            return 0
        except Exception as e:
            self._pages_failed += 1
            logger.warning(
                "preloader_page_failed",
                page=page,
                error_type=type(e).__name__,
                error=str(e),
            )
            self._emit(SyncEvent.PAGE_FAILED, page)
            return -1

        self._pages_stored += 1
        self._records_stored += len(records)
        logger.info("preloader_page_stored", page=page, count=len(records))
        self._emit(SyncEvent.PAGE_STORED, page)
        return len(records)

    def _emit(self, event: SyncEvent, page: int) -> None:
        for listener in self._listeners:
            try:
                listener(event, page)
            except Exception:
                logger.error("preloader_listener_failed", event=event.value, exc_info=True)
