"""Entry point for the crypto tracker service.

Wires all components together, optionally embeds the FastAPI dashboard,
and starts the background loops. When the dashboard is enabled (default),
the loops and dashboard share a single asyncio event loop via uvicorn's
programmatic API and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. CatalogDatabase + AssetStore (local store)
2. FavoritesSet (persisted favourites)
3. ConnectivitySignal + ConnectivityProbe
4. CoinGeckoClient (remote catalog)
5. Alert sinks (log, in-memory history, optional webhook)
6. CatalogSynchronizer (preloader)
7. PriceAlertMonitor
8. LifecycleController
9. CatalogRepository (dashboard read path)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from cryptotracker.catalog.coingecko_client import CoinGeckoClient
from cryptotracker.catalog.repository import CatalogRepository
from cryptotracker.config import AppSettings
from cryptotracker.connectivity import ConnectivityProbe, ConnectivitySignal
from cryptotracker.data.database import CatalogDatabase
from cryptotracker.data.favorites import FavoritesSet
from cryptotracker.data.store import AssetStore
from cryptotracker.lifecycle import LifecycleController
from cryptotracker.logging import get_logger, setup_logging
from cryptotracker.models import SortOption
from cryptotracker.notifications import (
    AlertHistory,
    AlertSink,
    FanoutAlertSink,
    LogAlertSink,
    WebhookAlertSink,
)
from cryptotracker.sync.preloader import CatalogSynchronizer
from cryptotracker.sync.price_monitor import PriceAlertMonitor


async def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Note: Does NOT open the database or start any loop -- that happens in
    the lifespan (dashboard mode) or run() (non-dashboard mode).

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("cryptotracker.main")

    # 1. Local store
    database = CatalogDatabase(settings.storage.db_path)
    store = AssetStore(database)

    # 2. Favourites
    favorites = FavoritesSet(database)

    # 3. Connectivity
    connectivity = ConnectivitySignal(initial=True)
    probe = ConnectivityProbe(
        connectivity,
        url=settings.catalog.base_url.rstrip("/") + "/ping",
        probe_interval=settings.connectivity.probe_interval,
        timeout=settings.connectivity.probe_timeout,
    )

    # 4. Remote catalog
    client = CoinGeckoClient(settings.catalog)

    # 5. Alert sinks
    alert_history = AlertHistory(max_size=settings.monitor.history_size)
    sinks: list[AlertSink] = [LogAlertSink(), alert_history]
    webhook_sink: WebhookAlertSink | None = None
    if settings.monitor.webhook_url:
        webhook_sink = WebhookAlertSink(settings.monitor.webhook_url)
        sinks.append(webhook_sink)
    sink = FanoutAlertSink(sinks)

    # 6. Preloader
    synchronizer = CatalogSynchronizer(
        client=client,
        store=store,
        connectivity=connectivity,
        page_delay=settings.sync.page_delay,
        offline_wait=settings.sync.offline_wait,
        initial_delay=settings.sync.initial_delay,
        sort_by=SortOption(settings.sync.sort_by),
    )

    # 7. Price monitor
    monitor = PriceAlertMonitor(
        client=client,
        store=store,
        favorites=favorites,
        sink=sink,
        interval=settings.monitor.interval,
        threshold=settings.monitor.alert_threshold,
        check_on_start=settings.monitor.check_on_start,
    )

    # 8. Lifecycle
    lifecycle = LifecycleController(
        connectivity=connectivity,
        synchronizer=synchronizer,
        monitor=monitor,
        start_page=settings.sync.start_page,
        offline_banner_seconds=settings.connectivity.offline_banner_seconds,
    )

    # 9. Read path
    repository = CatalogRepository(
        client=client,
        store=store,
        connectivity=connectivity,
        per_page=settings.catalog.per_page,
    )

    logger.info(
        "components_built",
        db_path=settings.storage.db_path,
        webhook=webhook_sink is not None,
    )

    return {
        "database": database,
        "store": store,
        "favorites": favorites,
        "connectivity": connectivity,
        "probe": probe,
        "client": client,
        "alert_history": alert_history,
        "webhook_sink": webhook_sink,
        "synchronizer": synchronizer,
        "monitor": monitor,
        "lifecycle": lifecycle,
        "repository": repository,
    }


async def _start_components(components: dict[str, Any]) -> None:
    await components["database"].connect()
    await components["favorites"].load()
    await components["lifecycle"].start()
    await components["probe"].start()


async def _stop_components(components: dict[str, Any]) -> None:
    """Stop loops first, then release network and database resources."""
    await components["probe"].close()
    await components["lifecycle"].stop()
    if components["webhook_sink"] is not None:
        await components["webhook_sink"].close()
    await components["client"].close()
    components["connectivity"].close()
    await components["database"].close()


def _setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """Register SIGINT/SIGTERM to set ``stop_event``.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("cryptotracker.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: stores components on app.state, opens the database, starts
    the loops and the dashboard update loop.

    On shutdown: cancels the update loop, stops the loops, releases clients
    and the database.
    """
    from cryptotracker.dashboard.update_loop import dashboard_update_loop

    logger = get_logger("cryptotracker.main")
    settings = app.state.settings
    components = app.state.components

    # Store all components on app.state for route handler access
    app.state.lifecycle = components["lifecycle"]
    app.state.repository = components["repository"]
    app.state.store = components["store"]
    app.state.favorites = components["favorites"]
    app.state.monitor = components["monitor"]
    app.state.alert_history = components["alert_history"]
    app.state.update_interval = settings.dashboard.update_interval

    await _start_components(components)

    update_task = asyncio.create_task(dashboard_update_loop(app))

    logger.info("lifespan_started", db_path=settings.storage.db_path)

    yield

    update_task.cancel()
    try:
        await update_task
    except asyncio.CancelledError:
        pass

    await _stop_components(components)

    logger.info("crypto_tracker_stopped")


async def run() -> None:
    """Run the crypto tracker.

    When dashboard is enabled (DASHBOARD_ENABLED=true, the default):
    - Creates the FastAPI dashboard app with lifespan
    - Runs loops and dashboard in a single asyncio event loop via uvicorn
    - Lifespan manages all component startup/shutdown; uvicorn handles signals

    When dashboard is disabled (DASHBOARD_ENABLED=false):
    - Runs the loops directly until SIGINT/SIGTERM
    """
    # Load settings
    settings = AppSettings()

    # Setup logging
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("cryptotracker.main")

    components = await _build_components(settings)

    if settings.dashboard.enabled:
        from cryptotracker.dashboard.app import create_dashboard_app

        app = create_dashboard_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_with_dashboard",
            host=settings.dashboard.host,
            port=settings.dashboard.port,
        )

        config = uvicorn.Config(
            app,
            host=settings.dashboard.host,
            port=settings.dashboard.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        stop_event = asyncio.Event()
        _setup_signal_handlers(stop_event)

        logger.info(
            "starting_without_dashboard",
            page_delay=settings.sync.page_delay,
            monitor_interval=settings.monitor.interval,
            alert_threshold=settings.monitor.alert_threshold,
        )

        try:
            await _start_components(components)
            await stop_event.wait()
        finally:
            await _stop_components(components)
            logger.info("crypto_tracker_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
