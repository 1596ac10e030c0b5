"""Background loops -- catalog preloading and favourite price alerts."""

from cryptotracker.sync.preloader import CatalogSynchronizer, SyncEvent, SyncState
from cryptotracker.sync.price_monitor import PriceAlertMonitor

__all__ = ["CatalogSynchronizer", "PriceAlertMonitor", "SyncEvent", "SyncState"]
