"""Shared data models for the crypto tracker.

Prices are plain floats as delivered by the market API. Optional market
fields stay ``None`` when the API does not know them; ``0`` is a real value
(a coin can trade zero volume in a day) and must never stand in for "unknown".
"""

import time
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum


class SortOption(str, Enum):
    """Server-side ordering of the markets endpoint."""

    MARKET_CAP = "market_cap_desc"
    PRICE = "price_desc"
    PRICE_ASC = "price_asc"
    VOLUME = "volume_desc"
    PRICE_CHANGE = "price_change_24h_desc"


class TimePeriod(str, Enum):
    """Chart ranges, expressed as the ``days`` query value."""

    DAY = "1"
    WEEK = "7"
    MONTH = "30"


class DataSource(str, Enum):
    """Where a read-path result came from."""

    LIVE = "live"
    CACHED = "cached"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, eq=False)
class AssetRecord:
    """Market snapshot of a single cryptocurrency.

    Identity is ``id``: two records with the same id compare equal and hash
    alike, whatever their prices. Use ``same_values`` to compare every field.
    """

    id: str
    name: str
    symbol: str
    image: str
    current_price: float
    market_cap: float | None = None
    total_volume: float | None = None
    price_change_percentage_24h: float | None = None
    high_24h: float | None = None
    low_24h: float | None = None
    circulating_supply: float | None = None
    max_supply: float | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AssetRecord):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def same_values(self, other: "AssetRecord") -> bool:
        """True when every field, not just the id, matches."""
        return all(
            getattr(self, f.name) == getattr(other, f.name) for f in fields(self)
        )

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class PricePoint:
    """One sample of a historical price series, ready for charting."""

    coin_id: str
    index: int
    price: float
    timestamp: datetime | None = None


@dataclass
class PriceAlert:
    """A favourite moved by at least the alert threshold between two checks."""

    coin_id: str
    name: str
    symbol: str
    baseline_price: float
    current_price: float
    change: float  # fraction, e.g. 0.06 for 6%
    created_at: float = field(default_factory=time.time)

    @property
    def change_text(self) -> str:
        return f"{self.change * 100:.2f}%"

    @property
    def title(self) -> str:
        return f"{self.name} Price Alert"

    @property
    def body(self) -> str:
        return f"{self.symbol.upper()} changed by {self.change_text}"

    def to_dict(self) -> dict:
        return {
            "coin_id": self.coin_id,
            "name": self.name,
            "symbol": self.symbol,
            "baseline_price": self.baseline_price,
            "current_price": self.current_price,
            "change": self.change_text,
            "title": self.title,
            "body": self.body,
            "created_at": self.created_at,
        }


@dataclass
class CatalogResult:
    """Records returned by the read path, tagged with where they came from."""

    records: list[AssetRecord]
    source: DataSource
    message: str | None = None

    @property
    def is_offline(self) -> bool:
        return self.source is not DataSource.LIVE
