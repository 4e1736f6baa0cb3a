"""Configuration: YAML defaults plus environment overrides."""

from pool_orderbook.config.settings import (
    AssetSettings,
    LoggingSettings,
    MetricsSettings,
    NodeSettings,
    OrderBookSettings,
    Settings,
    SupervisorSettings,
    get_settings,
)

__all__ = [
    "Settings",
    "NodeSettings",
    "OrderBookSettings",
    "AssetSettings",
    "LoggingSettings",
    "SupervisorSettings",
    "MetricsSettings",
    "get_settings",
]
