"""Abstract market catalog client interface.

Defines the contract for all catalog implementations. The sync loops and the
read path depend only on this interface, keeping CoinGecko-specific details
isolated in the concrete implementation.
"""

from abc import ABC, abstractmethod

from cryptotracker.models import AssetRecord, PricePoint, SortOption


class CatalogClient(ABC):
    """Abstract base class for remote market catalog clients."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        ...

    @abstractmethod
    async def fetch_page(
        self, page: int = 1, sort_by: SortOption = SortOption.MARKET_CAP
    ) -> list[AssetRecord]:
        """Fetch one page of the catalog.

        An empty list means the page lies past the end of the catalog.
        """
        ...

    @abstractmethod
    async def fetch_by_ids(self, ids: list[str]) -> list[AssetRecord]:
        """Fetch current records for the given ids in one batched request.

        Returns an empty list without a request when ``ids`` is empty.
        """
        ...

    @abstractmethod
    async def search(self, query: str) -> list[AssetRecord]:
        """Look up records by coin id. Raises NotFoundError when nothing matches."""
        ...

    @abstractmethod
    async def fetch_price_history(self, coin_id: str, days: str) -> list[PricePoint]:
        """Fetch a historical price series sorted ascending by timestamp."""
        ...
