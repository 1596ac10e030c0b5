"""Tests for CatalogSynchronizer.

The catalog client and store are mocked; a StepClock replaces asyncio.sleep
so the loop advances without waiting and can be frozen between pages.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from cryptotracker.catalog.coingecko_client import CoinGeckoClient
from cryptotracker.config import CatalogSettings
from cryptotracker.connectivity import ConnectivitySignal
from cryptotracker.data.database import CatalogDatabase
from cryptotracker.data.store import AssetStore
from cryptotracker.exceptions import NoDataError, TransportError
from cryptotracker.models import SortOption
from cryptotracker.sync.preloader import CatalogSynchronizer, SyncEvent, SyncState
from helpers import StepClock, make_record, spin


def paged_client(last_page: int) -> AsyncMock:
    """Client whose pages 1..last_page hold two records each, then empty."""

    async def fetch_page(page: int, sort_by: SortOption = SortOption.MARKET_CAP):
        if page > last_page:
            return []
        return [make_record(f"coin-{page}-a"), make_record(f"coin-{page}-b")]

    client = AsyncMock()
    client.fetch_page = AsyncMock(side_effect=fetch_page)
    return client


@pytest.fixture
def mock_store() -> AsyncMock:
    store = AsyncMock()
    store.upsert_many = AsyncMock(side_effect=lambda records: len(records))
    return store


def fetched_pages(client: AsyncMock) -> list[int]:
    return [c.args[0] for c in client.fetch_page.await_args_list]


class TestRun:
    @pytest.mark.asyncio
    async def test_stores_pages_until_empty_page(self, mock_store: AsyncMock) -> None:
        client = paged_client(last_page=3)
        clock = StepClock()
        sync = CatalogSynchronizer(
            client, mock_store, ConnectivitySignal(True), page_delay=60.0, sleep=clock
        )

        await sync.start(1)
        await sync.wait()

        assert fetched_pages(client) == [1, 2, 3, 4]
        assert mock_store.upsert_many.await_count == 3
        assert sync.pages_stored == 3
        assert sync.records_stored == 6
        assert clock.delays == [60.0, 60.0, 60.0]
        assert sync.state is SyncState.IDLE
        assert not sync.is_running

    @pytest.mark.asyncio
    async def test_starts_from_requested_page(self, mock_store: AsyncMock) -> None:
        client = paged_client(last_page=5)
        sync = CatalogSynchronizer(
            client, mock_store, ConnectivitySignal(True), sleep=StepClock()
        )

        await sync.start(4)
        await sync.wait()

        assert fetched_pages(client) == [4, 5, 6]
        assert sync.pages_stored == 2

    @pytest.mark.asyncio
    async def test_non_positive_start_page_clamped(self, mock_store: AsyncMock) -> None:
        client = paged_client(last_page=1)
        sync = CatalogSynchronizer(
            client, mock_store, ConnectivitySignal(True), sleep=StepClock()
        )

        await sync.start(-3)
        await sync.wait()

        assert fetched_pages(client) == [1, 2]

    @pytest.mark.asyncio
    async def test_no_data_error_ends_run(self, mock_store: AsyncMock) -> None:
        client = AsyncMock()
        client.fetch_page = AsyncMock(side_effect=[[make_record("a")], NoDataError()])
        sync = CatalogSynchronizer(
            client, mock_store, ConnectivitySignal(True), sleep=StepClock()
        )

        await sync.start(1)
        await sync.wait()

        assert fetched_pages(client) == [1, 2]
        assert sync.pages_stored == 1

    @pytest.mark.asyncio
    async def test_failed_page_is_skipped(self, mock_store: AsyncMock) -> None:
        client = AsyncMock()
        client.fetch_page = AsyncMock(
            side_effect=[[make_record("a")], TransportError(status_code=503), [make_record("c")], []]
        )
        events: list[tuple[SyncEvent, int]] = []
        clock = StepClock()
        sync = CatalogSynchronizer(
            client, mock_store, ConnectivitySignal(True), page_delay=60.0, sleep=clock
        )
        sync.add_listener(lambda event, page: events.append((event, page)))

        await sync.start(1)
        await sync.wait()

        assert fetched_pages(client) == [1, 2, 3, 4]
        assert sync.pages_stored == 2
        assert sync.get_status()["pages_failed"] == 1
        assert events == [
            (SyncEvent.PAGE_STORED, 1),
            (SyncEvent.PAGE_FAILED, 2),
            (SyncEvent.PAGE_STORED, 3),
            (SyncEvent.COMPLETED, 4),
        ]
        # Failed pages still wait before the next page
        assert clock.delays == [60.0, 60.0, 60.0]

    @pytest.mark.asyncio
    async def test_store_failure_counts_as_failed_page(self, mock_store: AsyncMock) -> None:
        client = paged_client(last_page=2)
        mock_store.upsert_many = AsyncMock(side_effect=[RuntimeError("disk full"), 2])
        sync = CatalogSynchronizer(
            client, mock_store, ConnectivitySignal(True), sleep=StepClock()
        )

        await sync.start(1)
        await sync.wait()

        assert fetched_pages(client) == [1, 2, 3]
        assert sync.pages_stored == 1

    @pytest.mark.asyncio
    async def test_on_complete_called_with_empty_page(self, mock_store: AsyncMock) -> None:
        on_complete = AsyncMock()
        sync = CatalogSynchronizer(
            paged_client(last_page=2),
            mock_store,
            ConnectivitySignal(True),
            sleep=StepClock(),
            on_complete=on_complete,
        )

        await sync.start(1)
        await sync.wait()

        on_complete.assert_awaited_once_with(3)

    @pytest.mark.asyncio
    async def test_initial_delay(self, mock_store: AsyncMock) -> None:
        clock = StepClock()
        sync = CatalogSynchronizer(
            paged_client(last_page=0),
            mock_store,
            ConnectivitySignal(True),
            initial_delay=5.0,
            sleep=clock,
        )

        await sync.start(1)
        await sync.wait()

        assert clock.delays == [5.0]


class TestOffline:
    @pytest.mark.asyncio
    async def test_waits_without_fetching_then_resumes_same_page(
        self, mock_store: AsyncMock
    ) -> None:
        connectivity = ConnectivitySignal(False)
        client = paged_client(last_page=1)

        class ReconnectingClock(StepClock):
            async def __call__(self, delay: float) -> None:
                if len(self.delays) == 2:
                    connectivity.publish(True)
                await super().__call__(delay)

        clock = ReconnectingClock()
        listener = MagicMock()
        sync = CatalogSynchronizer(
            client, mock_store, connectivity, page_delay=60.0, offline_wait=10.0, sleep=clock
        )
        sync.add_listener(listener)

        await sync.start(1)
        await sync.wait()

        assert clock.delays == [10.0, 10.0, 10.0, 60.0]
        assert fetched_pages(client) == [1, 2]
        offline_events = [c for c in listener.call_args_list if c.args[0] is SyncEvent.OFFLINE]
        assert len(offline_events) == 3
        assert all(c.args[1] == 1 for c in offline_events)

    @pytest.mark.asyncio
    async def test_state_is_paused_while_offline(self, mock_store: AsyncMock) -> None:
        clock = StepClock(free=0)
        sync = CatalogSynchronizer(
            paged_client(last_page=1), mock_store, ConnectivitySignal(False), sleep=clock
        )

        await sync.start(1)
        await clock.wait_parked()

        assert sync.state is SyncState.PAUSED
        assert sync.is_running
        await sync.stop()
        assert sync.state is SyncState.IDLE


class TestSingleActiveLoop:
    @pytest.mark.asyncio
    async def test_restart_cancels_previous_run(self, mock_store: AsyncMock) -> None:
        client = paged_client(last_page=100)
        clock = StepClock(free=0)
        sync = CatalogSynchronizer(client, mock_store, ConnectivitySignal(True), sleep=clock)

        await sync.start(1)
        await clock.wait_parked(1)
        first_task = sync._task

        await sync.start(10)
        await clock.wait_parked(2)

        assert first_task is not None and first_task.cancelled()
        assert fetched_pages(client) == [1, 10]
        assert sync.current_page == 11
        await sync.stop()

    @pytest.mark.asyncio
    async def test_cursor_advances_one_page_per_iteration(self, mock_store: AsyncMock) -> None:
        client = paged_client(last_page=100)
        clock = StepClock(free=4)
        sync = CatalogSynchronizer(client, mock_store, ConnectivitySignal(True), sleep=clock)

        await sync.start(7)
        await clock.wait_parked()

        assert fetched_pages(client) == [7, 8, 9, 10, 11]
        assert sync.current_page == 12
        await sync.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, mock_store: AsyncMock) -> None:
        sync = CatalogSynchronizer(
            paged_client(last_page=1), mock_store, ConnectivitySignal(True), sleep=StepClock()
        )

        await sync.stop()
        await sync.start(1)
        await sync.stop()
        await sync.stop()
        await spin()

        assert sync.state is SyncState.IDLE
        assert not sync.is_running


class TestUnpricedPages:
    @pytest.mark.asyncio
    async def test_null_price_keeps_cached_baseline(self, database: CatalogDatabase) -> None:
        pages = {
            "1": [
                {"id": "alpha", "name": "Alpha", "symbol": "a", "current_price": None},
                {"id": "beta", "name": "Beta", "symbol": "b", "current_price": 2.0},
            ],
            "2": [{"id": "gamma", "name": "Gamma", "symbol": "g", "current_price": None}],
            "3": [{"id": "delta", "name": "Delta", "symbol": "d", "current_price": 4.0}],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            payload = pages.get(request.url.params["page"], [])
            return httpx.Response(200, content=json.dumps(payload).encode())

        settings = CatalogSettings(base_url="https://api.test/api/v3", max_retries=0)
        http = httpx.AsyncClient(base_url=settings.base_url, transport=httpx.MockTransport(handler))
        client = CoinGeckoClient(settings, http_client=http, sleep=StepClock())
        store = AssetStore(database)
        await store.upsert_many([make_record("alpha", 100.0)])
        sync = CatalogSynchronizer(client, store, ConnectivitySignal(True), sleep=StepClock())

        await sync.start(1)
        await sync.wait()

        # Page 2 held only unpriced coins: skipped, not read as the end
        status = sync.get_status()
        assert status["pages_stored"] == 2
        assert status["pages_failed"] == 1
        cached = {r.id: r.current_price for r in await store.fetch_all()}
        assert cached == {"alpha": 100.0, "beta": 2.0, "delta": 4.0}
        await client.close()
