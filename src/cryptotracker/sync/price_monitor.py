"""Price alert monitor -- flags sharp moves in favourite coins.

Every ``interval`` seconds the monitor compares fresh prices for the user's
favourites against the prices last written to the local store (the
baseline) and sends one notification per coin whose relative move reaches
the threshold.

The baseline read is not isolated from the preloader: if the preloader
refreshes a price between our read and our fetch, the alert simply fires
(or not) one cycle later.
"""

import asyncio
import math
from collections.abc import Awaitable, Callable

import structlog

from cryptotracker.catalog.client import CatalogClient
from cryptotracker.data.favorites import FavoritesSet
from cryptotracker.data.store import AssetStore
from cryptotracker.logging import get_logger
from cryptotracker.models import PriceAlert
from cryptotracker.notifications import AlertSink

logger = get_logger(__name__)

DEFAULT_ALERT_THRESHOLD = 0.05


def relative_change(baseline: float, current: float) -> float:
    """Absolute relative move from ``baseline`` to ``current``. Baseline must be > 0."""
    return abs((current - baseline) / baseline)


class PriceAlertMonitor:
    """Periodic diff of favourite prices against cached baselines.

    Args:
        client: Remote catalog client (one batched fetch per cycle).
        store: Local asset store holding the baselines.
        favorites: The user's favourite coin ids.
        sink: Where alerts are delivered.
        interval: Seconds between cycles.
        threshold: Minimum relative change (fraction) that raises an alert.
        check_on_start: Run the first cycle immediately instead of after
            one interval.
        sleep: Injected delay function (tests pass a controllable clock).
    """

    def __init__(
        self,
        client: CatalogClient,
        store: AssetStore,
        favorites: FavoritesSet,
        sink: AlertSink,
        interval: float = 300.0,
        threshold: float = DEFAULT_ALERT_THRESHOLD,
        check_on_start: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if threshold <= 0:
            raise ValueError(f"Alert threshold must be positive, got {threshold}")
        self._client = client
        self._store = store
        self._favorites = favorites
        self._sink = sink
        self._interval = interval
        self._threshold = threshold
        self._check_on_start = check_on_start
        self._sleep = sleep
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._cycles = 0
        self._alerts_sent = 0
        self._last_error: str | None = None

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_status(self) -> dict:
        return {
            "running": self.is_running,
            "interval": self._interval,
            "threshold": self._threshold,
            "cycles": self._cycles,
            "alerts_sent": self._alerts_sent,
            "last_error": self._last_error,
        }

    async def start(self) -> None:
        """Start monitoring, replacing any loop already running."""
        await self.stop()
        self._task = asyncio.create_task(self._monitor_loop())
        logger.info("price_monitor_started", interval=self._interval, threshold=self._threshold)

    async def stop(self) -> None:
        """Cancel the monitoring loop. Safe to call when not running."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("price_monitor_stopped")

    async def _monitor_loop(self) -> None:
        structlog.contextvars.bind_contextvars(loop="price_monitor")
        first = True
        while True:
            if not (first and self._check_on_start):
                await self._sleep(self._interval)
            first = False
            try:
                await self.check_prices()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._last_error = str(e)
                logger.warning(
                    "price_check_failed",
                    error_type=type(e).__name__,
                    error=str(e),
                )

    async def check_prices(self) -> list[PriceAlert]:
        """Run one cycle and return the alerts it emitted.

        Catalog and store errors propagate to the caller; the loop logs them
        and tries again next interval.
        """
        ids = sorted(self._favorites.list())
        if not ids:
            logger.debug("price_check_skipped_no_favorites")
            return []

        self._cycles += 1
        cached = await self._store.fetch_by_ids(ids)
        baselines = {r.id: r.current_price for r in cached if r.current_price > 0}

        fresh = await self._client.fetch_by_ids(ids)

        alerts: list[PriceAlert] = []
        for record in fresh:
            baseline = baselines.get(record.id)
            if baseline is None:
                continue
            if not math.isfinite(record.current_price) or record.current_price <= 0:
                logger.debug("price_check_skipped_unpriced", coin_id=record.id)
                continue
            change = relative_change(baseline, record.current_price)
            if change < self._threshold:
                continue
            alert = PriceAlert(
                coin_id=record.id,
                name=record.name,
                symbol=record.symbol,
                baseline_price=baseline,
                current_price=record.current_price,
                change=change,
            )
            self._deliver(alert)
            alerts.append(alert)

        self._last_error = None
        logger.debug(
            "price_check_complete",
            favorites=len(ids),
            compared=len(baselines),
            alerts=len(alerts),
        )
        return alerts

    def _deliver(self, alert: PriceAlert) -> None:
        try:
            self._sink.notify(alert.title, alert.body)
        except Exception:
            logger.error("alert_delivery_failed", coin_id=alert.coin_id, exc_info=True)
            return
        self._alerts_sent += 1
        logger.info(
            "price_alert_sent",
            coin_id=alert.coin_id,
            change=alert.change_text,
            baseline=alert.baseline_price,
            current=alert.current_price,
        )
