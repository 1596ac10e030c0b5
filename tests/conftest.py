"""Shared test fixtures for the crypto tracker."""

import pytest
import pytest_asyncio

from cryptotracker.config import AppSettings, CatalogSettings, MonitorSettings, SyncSettings
from cryptotracker.data.database import CatalogDatabase
from helpers import StepClock


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (no API key, fast retries)."""
    return AppSettings(
        log_level="DEBUG",
        catalog=CatalogSettings(
            base_url="https://api.test/api/v3",
            per_page=3,
            max_retries=2,
            retry_base_delay=1.0,
            rate_limit_delay=60.0,
            server_error_delay=5.0,
        ),
        sync=SyncSettings(page_delay=60.0, offline_wait=10.0),
        monitor=MonitorSettings(interval=300.0, alert_threshold=0.05),
    )


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest_asyncio.fixture
async def database(tmp_path):
    """Connected CatalogDatabase backed by a file in the test's temp dir."""
    async with CatalogDatabase(str(tmp_path / "catalog.db")) as db:
        yield db
