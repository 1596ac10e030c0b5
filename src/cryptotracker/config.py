"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

SortName = Literal[
    "market_cap_desc",
    "price_desc",
    "price_asc",
    "volume_desc",
    "price_change_24h_desc",
]


class CatalogSettings(BaseSettings):
    """CoinGecko REST API connection settings."""

    model_config = SettingsConfigDict(env_prefix="COINGECKO_")

    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: SecretStr = SecretStr("")  # optional demo key
    vs_currency: str = "usd"
    per_page: int = 50
    timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    rate_limit_delay: float = 60.0  # cap on wait after HTTP 429
    server_error_delay: float = 5.0  # cap on wait after 5xx / transport errors


class SyncSettings(BaseSettings):
    """Catalog preloader cadence.

    The preloader walks the remote catalog one page at a time. The inter-page
    delay keeps us well under the public API's rate limit.
    """

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    start_page: int = 1
    page_delay: float = 60.0  # seconds between pages
    offline_wait: float = 10.0  # seconds between connectivity re-checks
    initial_delay: float = 0.0  # seconds before the first fetch
    sort_by: SortName = "market_cap_desc"


class MonitorSettings(BaseSettings):
    """Favourite price alert settings."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_")

    interval: float = 300.0  # seconds between checks
    alert_threshold: float = 0.05  # 5% relative move
    check_on_start: bool = False
    webhook_url: str = ""  # empty = webhook alerts disabled
    history_size: int = 100


class StorageSettings(BaseSettings):
    """Local persistence location (asset cache and favourites share one file)."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    db_path: str = "data/catalog.db"


class ConnectivitySettings(BaseSettings):
    """Reachability probing and offline banner behaviour."""

    model_config = SettingsConfigDict(env_prefix="CONNECTIVITY_")

    probe_interval: float = 15.0
    probe_timeout: float = 5.0
    offline_banner_seconds: float = 1.5


class DashboardSettings(BaseSettings):
    """Dashboard server configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")

    host: str = "127.0.0.1"
    port: int = 8080
    enabled: bool = True
    update_interval: int = 5  # seconds between WebSocket pushes


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    catalog: CatalogSettings = CatalogSettings()
    sync: SyncSettings = SyncSettings()
    monitor: MonitorSettings = MonitorSettings()
    storage: StorageSettings = StorageSettings()
    connectivity: ConnectivitySettings = ConnectivitySettings()
    dashboard: DashboardSettings = DashboardSettings()
