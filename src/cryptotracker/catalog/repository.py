"""Stale-tolerant read path for catalog consumers.

Prefers live data and writes it through to the local store. When the
network is down, or the live fetch fails, it serves whatever the store holds
and tags the result CACHED. Only when the store is empty as well does the
caller get an UNAVAILABLE result, which is distinct from an error.
"""

from cryptotracker.catalog.client import CatalogClient
from cryptotracker.connectivity import ConnectivitySignal
from cryptotracker.data.store import AssetStore
from cryptotracker.exceptions import CatalogError, InvalidInputError, NotFoundError
from cryptotracker.logging import get_logger
from cryptotracker.models import (
    AssetRecord,
    CatalogResult,
    DataSource,
    PricePoint,
    SortOption,
    TimePeriod,
)

logger = get_logger(__name__)

NO_DATA_MESSAGE = "No internet connection and no cached data available."


def _descending(value: float | None) -> tuple[bool, float]:
    # Unknown values sort after every known one
    return (value is None, -(value or 0.0))


def sort_records(records: list[AssetRecord], sort_by: SortOption) -> list[AssetRecord]:
    """Client-side equivalent of the server ordering."""
    sort_by = SortOption(sort_by)
    if sort_by is SortOption.PRICE_ASC:
        return sorted(records, key=lambda r: r.current_price)
    if sort_by is SortOption.PRICE:
        return sorted(records, key=lambda r: -r.current_price)
    if sort_by is SortOption.VOLUME:
        return sorted(records, key=lambda r: _descending(r.total_volume))
    if sort_by is SortOption.PRICE_CHANGE:
        return sorted(records, key=lambda r: _descending(r.price_change_percentage_24h))
    return sorted(records, key=lambda r: _descending(r.market_cap))


class CatalogRepository:
    """Read access to the catalog with offline fallback to the local store."""

    def __init__(
        self,
        client: CatalogClient,
        store: AssetStore,
        connectivity: ConnectivitySignal,
        per_page: int = 50,
    ) -> None:
        self._client = client
        self._store = store
        self._connectivity = connectivity
        self._per_page = per_page

    async def load_page(
        self, page: int = 1, sort_by: SortOption = SortOption.MARKET_CAP
    ) -> CatalogResult:
        """Return one catalog page, live when possible."""
        if page < 1:
            raise InvalidInputError(f"Page must be positive, got {page}")

        if self._connectivity.is_online:
            try:
                records = await self._client.fetch_page(page, sort_by)
                await self._store.upsert_many(records)
                return CatalogResult(records=records, source=DataSource.LIVE)
            except InvalidInputError:
                raise
            except CatalogError as e:
                logger.warning("live_page_failed_serving_cache", page=page, error=str(e))

        cached = await self._store.fetch_all()
        if not cached:
            return self._unavailable()

        start = (page - 1) * self._per_page
        window = sort_records(cached, sort_by)[start : start + self._per_page]
        return CatalogResult(records=window, source=DataSource.CACHED)

    async def load_favorites(self, ids: list[str] | set[str]) -> CatalogResult:
        """Return records for the given favourite ids, live when possible."""
        ids = sorted(ids)
        if not ids:
            return CatalogResult(records=[], source=DataSource.LIVE)

        if self._connectivity.is_online:
            try:
                records = await self._client.fetch_by_ids(ids)
                await self._store.upsert_many(records)
                return CatalogResult(records=records, source=DataSource.LIVE)
            except CatalogError as e:
                logger.warning("live_favorites_failed_serving_cache", count=len(ids), error=str(e))

        if await self._store.count() == 0:
            return self._unavailable()
        cached = await self._store.fetch_by_ids(ids)
        return CatalogResult(records=sort_records(cached, SortOption.MARKET_CAP), source=DataSource.CACHED)

    async def search(self, query: str) -> CatalogResult:
        """Find coins by id online, or by name/symbol substring in the cache.

        Raises:
            InvalidInputError: The query is blank.
            NotFoundError: Online search matched nothing.
        """
        trimmed = query.strip()
        if not trimmed:
            raise InvalidInputError("Search query is empty")

        if self._connectivity.is_online:
            try:
                records = await self._client.search(trimmed)
                return CatalogResult(records=records, source=DataSource.LIVE)
            except (InvalidInputError, NotFoundError):
                raise
            except CatalogError as e:
                logger.warning("live_search_failed_serving_cache", query=trimmed, error=str(e))

        cached = await self._store.fetch_all()
        if not cached:
            return self._unavailable()
        needle = trimmed.lower()
        matches = [
            r for r in cached
            if needle in r.name.lower() or needle in r.symbol.lower() or needle == r.id
        ]
        return CatalogResult(records=matches, source=DataSource.CACHED)

    async def price_history(
        self, coin_id: str, period: TimePeriod | str = TimePeriod.DAY
    ) -> list[PricePoint]:
        """Chart data is never cached; this always goes to the network."""
        days = period.value if isinstance(period, TimePeriod) else str(period)
        return await self._client.fetch_price_history(coin_id, days)

    @staticmethod
    def _unavailable() -> CatalogResult:
        logger.info("catalog_unavailable_offline_no_cache")
        return CatalogResult(records=[], source=DataSource.UNAVAILABLE, message=NO_DATA_MESSAGE)
