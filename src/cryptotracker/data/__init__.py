"""Local persistence layer.

Provides the SQLite asset cache (database manager and typed store) and the
favourites set stored alongside it.
"""

from cryptotracker.data.database import CatalogDatabase
from cryptotracker.data.favorites import FavoritesChange, FavoritesSet
from cryptotracker.data.store import AssetStore

__all__ = ["AssetStore", "CatalogDatabase", "FavoritesChange", "FavoritesSet"]
