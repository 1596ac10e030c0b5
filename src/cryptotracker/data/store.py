"""Typed SQLite read/write abstraction for cached asset records.

All SQL is isolated behind AssetStore. Each record is upserted by id, so a
later fetch of the same coin replaces every column of the earlier one,
NULLs included.
"""

import time

from cryptotracker.data.database import CatalogDatabase
from cryptotracker.logging import get_logger
from cryptotracker.models import AssetRecord

logger = get_logger(__name__)

_COLUMNS = (
    "id",
    "name",
    "symbol",
    "image",
    "current_price",
    "market_cap",
    "total_volume",
    "price_change_percentage_24h",
    "high_24h",
    "low_24h",
    "circulating_supply",
    "max_supply",
)

_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM assets"

_UPSERT_SQL = (
    f"INSERT INTO assets ({', '.join(_COLUMNS)}, updated_at) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)}, ?) "
    "ON CONFLICT(id) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS[1:])
    + ", updated_at = excluded.updated_at"
)

# SQLite's default limit on bound parameters is 999
_MAX_IDS_PER_QUERY = 500


def _row_to_record(row: tuple) -> AssetRecord:
    return AssetRecord(**dict(zip(_COLUMNS, row)))


class AssetStore:
    """Async SQLite store for asset records.

    Wraps CatalogDatabase with typed read/write methods.

    Usage:
        async with CatalogDatabase("data/catalog.db") as database:
            store = AssetStore(database)
            await store.upsert_many(records)
    """

    def __init__(self, database: CatalogDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def upsert_many(self, records: list[AssetRecord]) -> int:
        """Insert or replace records keyed by id, committing once per batch.

        When the batch holds the same id twice, the last one wins.
        Returns the number of records written.
        """
        if not records:
            return 0

        now_ms = int(time.time() * 1000)
        data = [
            tuple(getattr(r, c) for c in _COLUMNS) + (now_ms,)
            for r in records
        ]

        await self._database.db.executemany(_UPSERT_SQL, data)
        await self._database.db.commit()

        logger.debug("upserted_assets", count=len(data))
        return len(data)

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def fetch_all(self) -> list[AssetRecord]:
        """Return every cached record, largest market cap first."""
        cursor = await self._database.db.execute(
            f"{_SELECT} ORDER BY market_cap IS NULL, market_cap DESC, id ASC"
        )
        rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def fetch_by_ids(self, ids: list[str]) -> list[AssetRecord]:
        """Return cached records whose id is in ``ids``. Unknown ids are skipped."""
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []

        records: list[AssetRecord] = []
        for start in range(0, len(unique_ids), _MAX_IDS_PER_QUERY):
            chunk = unique_ids[start : start + _MAX_IDS_PER_QUERY]
            placeholders = ", ".join("?" for _ in chunk)
            cursor = await self._database.db.execute(
                f"{_SELECT} WHERE id IN ({placeholders})",
                chunk,
            )
            rows = await cursor.fetchall()
            records.extend(_row_to_record(row) for row in rows)
        return records

    async def count(self) -> int:
        cursor = await self._database.db.execute("SELECT COUNT(*) FROM assets")
        return (await cursor.fetchone())[0]

    async def get_data_status(self) -> dict:
        """Aggregate cache status for the dashboard.

        Returns dict with total_assets, oldest_update_ms, latest_update_ms.
        """
        cursor = await self._database.db.execute(
            "SELECT COUNT(*), MIN(updated_at), MAX(updated_at) FROM assets"
        )
        total, oldest, latest = await cursor.fetchone()
        return {
            "total_assets": total,
            "oldest_update_ms": oldest,
            "latest_update_ms": latest,
        }
