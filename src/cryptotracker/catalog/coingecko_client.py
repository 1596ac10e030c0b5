"""CoinGecko catalog client implementation via httpx.

Wraps an ``httpx.AsyncClient`` with status-code classification into the
tracker's error taxonomy and a bounded retry wrapper for recoverable errors.

Retry policy:
- Only TransportError (5xx, bad envelope, connection failures) and
  RateLimitedError (HTTP 429) are retried.
- Delay before retry N is ``min(cap, retry_base_delay * N)`` where the cap is
  ``rate_limit_delay`` after a 429 and ``server_error_delay`` otherwise.
- Everything else (400-class input errors, 404, decode failures) is raised
  immediately.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from cryptotracker.catalog.client import CatalogClient
from cryptotracker.catalog.parsing import parse_assets, parse_price_history
from cryptotracker.config import CatalogSettings
from cryptotracker.exceptions import (
    CatalogError,
    DecodeError,
    InvalidInputError,
    NoDataError,
    NotFoundError,
    RateLimitedError,
    TransportError,
    UnpricedAssetError,
)
from cryptotracker.logging import get_logger
from cryptotracker.models import AssetRecord, PricePoint, SortOption

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def classify_status(status_code: int) -> CatalogError | None:
    """Map an HTTP status code to a catalog error, or None for success."""
    if 200 <= status_code < 300:
        return None
    if status_code == 404:
        return NotFoundError(status_code=status_code)
    if status_code == 429:
        return RateLimitedError(status_code=status_code)
    # 400, 5xx and anything unexpected: the server did not give us a usable answer
    return TransportError(status_code=status_code)


class CoinGeckoClient(CatalogClient):
    """Concrete catalog client for the public CoinGecko v3 API."""

    def __init__(
        self,
        settings: CatalogSettings,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._sleep = sleep

        headers = {"accept": "application/json"}
        api_key = settings.api_key.get_secret_value()
        if api_key:
            headers["x-cg-demo-api-key"] = api_key

        self._http = http_client or httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout,
            headers=headers,
        )

    async def close(self) -> None:
        """Close the connection pool. Must be called on shutdown."""
        await self._http.aclose()
        logger.info("coingecko_client_closed")

    # ──────────────────────────────────────────────
    # Public methods
    # ──────────────────────────────────────────────

    async def fetch_page(
        self, page: int = 1, sort_by: SortOption = SortOption.MARKET_CAP
    ) -> list[AssetRecord]:
        """Fetch one page of ``/coins/markets`` in the requested order."""
        if page < 1:
            raise InvalidInputError(f"Page must be positive, got {page}")

        params = {
            "vs_currency": self._settings.vs_currency,
            "order": SortOption(sort_by).value,
            "per_page": self._settings.per_page,
            "page": page,
        }
        try:
            payload = await self._get_json("/coins/markets", params)
        except NoDataError:
            return []
        records = parse_assets(payload)
        if payload and not records:
            # Only a zero-length page marks the end of the catalog
            raise UnpricedAssetError(f"Page {page} has no priced assets")
        return records

    async def fetch_by_ids(self, ids: list[str]) -> list[AssetRecord]:
        """Fetch current market data for a set of coin ids in one request."""
        cleaned = [i.strip() for i in ids if i and i.strip()]
        if not cleaned:
            return []

        params = {
            "vs_currency": self._settings.vs_currency,
            "ids": ",".join(cleaned),
        }
        try:
            payload = await self._get_json("/coins/markets", params)
        except NoDataError:
            return []
        return parse_assets(payload)

    async def search(self, query: str) -> list[AssetRecord]:
        """Look up coins whose id matches the query."""
        trimmed = query.strip()
        if not trimmed:
            raise InvalidInputError("Search query is empty")

        params = {
            "vs_currency": self._settings.vs_currency,
            "ids": trimmed.lower(),
        }
        payload = await self._get_json("/coins/markets", params)
        results = parse_assets(payload)
        if not results:
            raise NotFoundError(f"No coin matches {trimmed!r}")
        return results

    async def fetch_price_history(self, coin_id: str, days: str) -> list[PricePoint]:
        """Fetch ``/coins/{id}/market_chart`` and parse it into chart points."""
        coin_id = coin_id.strip()
        days = str(days).strip()
        if not coin_id or not days:
            raise InvalidInputError("Coin id and day range are required")

        params = {"vs_currency": self._settings.vs_currency, "days": days}
        payload = await self._get_json(f"/coins/{coin_id}/market_chart", params)
        return parse_price_history(coin_id, payload)

    # ──────────────────────────────────────────────
    # Request plumbing
    # ──────────────────────────────────────────────

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        """GET a path with retry and return the decoded JSON body."""
        body = await self._request_with_retry(path, params)
        try:
            return json.loads(body)
        except ValueError as e:
            raise DecodeError(f"Response from {path} is not valid JSON") from e

    async def _request_once(self, path: str, params: dict[str, Any]) -> bytes:
        """Perform a single GET, classifying failures into catalog errors."""
        try:
            response = await self._http.get(path, params=params)
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {path} failed: {e}") from e

        error = classify_status(response.status_code)
        if error is not None:
            raise error

        if not response.content:
            raise NoDataError(f"Empty response from {path}")
        return response.content

    async def _request_with_retry(self, path: str, params: dict[str, Any]) -> bytes:
        """Execute a request, retrying recoverable errors up to max_retries times.

        Re-raises the last error once attempts are exhausted.
        """
        max_retries = self._settings.max_retries

        for attempt in range(max_retries + 1):
            try:
                return await self._request_once(path, params)
            except CatalogError as e:
                if not e.recoverable or attempt == max_retries:
                    if e.recoverable:
                        logger.error(
                            "catalog_request_failed_permanently",
                            path=path,
                            error=str(e),
                            attempts=attempt + 1,
                        )
                    raise

                delay = self._retry_delay(e, attempt)
                logger.warning(
                    "rate_limit_exceeded" if isinstance(e, RateLimitedError) else "catalog_retry",
                    path=path,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=delay,
                    error=str(e),
                )
                await self._sleep(delay)

        raise TransportError(f"Request to {path} failed")  # unreachable

    def _retry_delay(self, error: CatalogError, attempt: int) -> float:
        if isinstance(error, RateLimitedError):
            cap = self._settings.rate_limit_delay
        else:
            cap = self._settings.server_error_delay
        return min(cap, self._settings.retry_base_delay * (attempt + 1))
