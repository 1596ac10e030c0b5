"""Decoding of CoinGecko payloads into AssetRecord and PricePoint values.

Both parsers raise DecodeError when the payload does not have the expected
shape. Individual bad entries in a price series are dropped instead.
"""

import math
from datetime import datetime, timezone
from typing import Any

from cryptotracker.exceptions import DecodeError, NoDataError, UnpricedAssetError
from cryptotracker.logging import get_logger
from cryptotracker.models import AssetRecord, PricePoint

logger = get_logger(__name__)

_OPTIONAL_FIELDS = (
    "market_cap",
    "total_volume",
    "price_change_percentage_24h",
    "high_24h",
    "low_24h",
    "circulating_supply",
    "max_supply",
)


def _optional_float(raw: Any, field_name: str) -> float | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise DecodeError(f"Field {field_name} is not numeric: {raw!r}")
    return float(raw)


def parse_asset(raw: Any) -> AssetRecord:
    """Decode one entry of the ``/coins/markets`` array."""
    if not isinstance(raw, dict):
        raise DecodeError(f"Expected an object, got {type(raw).__name__}")

    try:
        coin_id = raw["id"]
        name = raw["name"]
        symbol = raw["symbol"]
        image = raw.get("image") or ""
        price = raw["current_price"]
    except KeyError as e:
        raise DecodeError(f"Missing field {e.args[0]}") from e

    if not all(isinstance(v, str) for v in (coin_id, name, symbol, image)):
        raise DecodeError(f"Text field has the wrong type in {coin_id!r}")

    # Freshly listed coins can come back without a price yet; unknown is not zero
    current_price = _optional_float(price, "current_price")
    if current_price is None or not math.isfinite(current_price) or current_price < 0:
        raise UnpricedAssetError(f"No usable price for {coin_id!r}: {price!r}")

    optional = {name_: _optional_float(raw.get(name_), name_) for name_ in _OPTIONAL_FIELDS}

    return AssetRecord(
        id=coin_id,
        name=name,
        symbol=symbol,
        image=image,
        current_price=current_price,
        **optional,
    )


def parse_assets(payload: Any) -> list[AssetRecord]:
    """Decode the ``/coins/markets`` array response.

    Entries without a usable price are dropped; any other bad entry fails
    the whole payload.
    """
    if not isinstance(payload, list):
        raise DecodeError(f"Expected a list of assets, got {type(payload).__name__}")

    records: list[AssetRecord] = []
    for item in payload:
        try:
            records.append(parse_asset(item))
        except UnpricedAssetError as e:
            logger.debug("asset_dropped_unpriced", error=str(e))
    return records


def _usable_point(entry: Any) -> tuple[float, float] | None:
    """Return (timestamp_ms, price) when the entry is chartable, else None."""
    if not isinstance(entry, (list, tuple)) or len(entry) < 2:
        return None
    timestamp_ms, price = entry[0], entry[1]
    if timestamp_ms is None or price is None:
        return None
    try:
        timestamp_ms = float(timestamp_ms)
        price = float(price)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(timestamp_ms) or timestamp_ms <= 0:
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return timestamp_ms, price


def parse_price_history(coin_id: str, payload: Any) -> list[PricePoint]:
    """Decode a ``/market_chart`` response into chart points.

    Entries with a missing or non-positive timestamp, or a price that is not
    a finite positive number, are dropped. The ``index`` of each surviving
    point is its position in the raw series. Points are returned sorted
    ascending by timestamp.

    Raises:
        DecodeError: The payload has no ``prices`` array.
        NoDataError: Every entry was dropped.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("prices"), list):
        raise DecodeError("Price history payload has no 'prices' array")

    raw_prices: list = payload["prices"]
    points: list[PricePoint] = []
    for index, entry in enumerate(raw_prices):
        usable = _usable_point(entry)
        if usable is None:
            continue
        timestamp_ms, price = usable
        points.append(
            PricePoint(
                coin_id=coin_id,
                index=index,
                price=price,
                timestamp=datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc),
            )
        )

    dropped = len(raw_prices) - len(points)
    if dropped:
        logger.debug("price_points_dropped", coin_id=coin_id, dropped=dropped)

    if not points:
        raise NoDataError(f"No usable price points for {coin_id}")

    return sorted(points, key=lambda p: p.timestamp)
