"""User-selected favourite coin ids, stored in the catalog database.

The ``favorites`` table is the source of truth; an in-memory copy serves
the synchronous queries. Mutations commit the row change before updating
the copy, then publish one FavoritesChange to every subscriber. Adding an
id that is already a favourite, or removing one that is not, changes
nothing and publishes nothing.

Ids are stripped of surrounding whitespace on every path in and out, so
``" btc "`` and ``"btc"`` name the same favourite.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum

from cryptotracker.data.database import CatalogDatabase
from cryptotracker.events import Broadcast, Subscription
from cryptotracker.exceptions import InvalidInputError
from cryptotracker.logging import get_logger

logger = get_logger(__name__)


class FavoriteAction(str, Enum):
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class FavoritesChange:
    """Emitted after each mutating call."""

    action: FavoriteAction
    coin_id: str
    favorites: frozenset[str]


def normalize_coin_id(coin_id: str) -> str:
    """Strip a coin id, rejecting anything that is not a non-blank string."""
    if not isinstance(coin_id, str) or not coin_id.strip():
        raise InvalidInputError("Coin id must be a non-empty string")
    return coin_id.strip()


class FavoritesSet:
    """Persisted set of favourite coin ids with a change stream.

    Usage:
        async with CatalogDatabase("data/catalog.db") as database:
            favorites = FavoritesSet(database)
            await favorites.load()
            await favorites.add("bitcoin")
    """

    def __init__(self, database: CatalogDatabase) -> None:
        self._database = database
        self._ids: set[str] = set()
        self._changes: Broadcast[FavoritesChange] = Broadcast("favorites")
        # Keeps row writes and published changes in the same order
        self._write_lock = asyncio.Lock()

    async def load(self) -> int:
        """Replace the in-memory copy with the stored rows. Returns the count."""
        cursor = await self._database.db.execute("SELECT id FROM favorites")
        rows = await cursor.fetchall()
        ids = {row[0].strip() for row in rows if isinstance(row[0], str)}
        self._ids = {i for i in ids if i}
        logger.debug("favorites_loaded", total=len(self._ids))
        return len(self._ids)

    # ──────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────

    def is_favorite(self, coin_id: str) -> bool:
        if not isinstance(coin_id, str):
            return False
        return coin_id.strip() in self._ids

    def list(self) -> set[str]:
        """Return a copy of the current favourite ids."""
        return set(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    # ──────────────────────────────────────────────
    # Mutations
    # ──────────────────────────────────────────────

    async def add(self, coin_id: str) -> bool:
        """Mark a coin as favourite. Returns False when it already was."""
        coin_id = normalize_coin_id(coin_id)
        async with self._write_lock:
            db = self._database.db
            cursor = await db.execute(
                "INSERT OR IGNORE INTO favorites (id, added_at) VALUES (?, ?)",
                (coin_id, int(time.time() * 1000)),
            )
            await db.commit()
            self._ids.add(coin_id)
            if cursor.rowcount == 0:
                return False
            self._publish(FavoriteAction.ADDED, coin_id)
        return True

    async def remove(self, coin_id: str) -> bool:
        """Unmark a coin. Returns False when it was not a favourite."""
        coin_id = normalize_coin_id(coin_id)
        async with self._write_lock:
            db = self._database.db
            cursor = await db.execute("DELETE FROM favorites WHERE id = ?", (coin_id,))
            await db.commit()
            self._ids.discard(coin_id)
            if cursor.rowcount == 0:
                return False
            self._publish(FavoriteAction.REMOVED, coin_id)
        return True

    async def toggle(self, coin_id: str) -> bool:
        """Flip favourite status. Returns the new status."""
        coin_id = normalize_coin_id(coin_id)
        if self.is_favorite(coin_id):
            await self.remove(coin_id)
            return False
        await self.add(coin_id)
        return True

    def subscribe(self) -> Subscription[FavoritesChange]:
        """Open an independent stream of future changes."""
        return self._changes.subscribe()

    def _publish(self, action: FavoriteAction, coin_id: str) -> None:
        logger.info("favorites_changed", action=action.value, coin_id=coin_id, total=len(self._ids))
        self._changes.publish(
            FavoritesChange(action=action, coin_id=coin_id, favorites=frozenset(self._ids))
        )
