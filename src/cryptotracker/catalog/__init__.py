"""Market catalog layer -- CoinGecko integration via httpx and the stale-tolerant read path."""

from cryptotracker.catalog.client import CatalogClient
from cryptotracker.catalog.coingecko_client import CoinGeckoClient
from cryptotracker.catalog.repository import CatalogRepository

__all__ = ["CatalogClient", "CatalogRepository", "CoinGeckoClient"]
