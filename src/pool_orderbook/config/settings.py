"""
Settings management using Pydantic.

Loads configuration from YAML files and environment variables.
Environment variables override YAML values.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from pool_orderbook.domain.errors import InvalidAssetPairError
from pool_orderbook.domain.models import AssetPair

logger = logging.getLogger(__name__)

NODE_ADDRESS_ENV = "CHAINFLIP_NODE_ADDR"


class NodeSettings(BaseModel):
    """Connection settings for the remote node (websocket + unary RPC)."""

    address: str = Field(default="", description="host:port of the node, shared by both transports")
    ws_scheme: str = "ws"
    http_scheme: str = "http"

    ping_interval: float = 20.0
    ping_timeout: float = 20.0
    # 0 disables the HTTP timeout (unary calls wait as long as the node takes)
    http_timeout_seconds: float = 0.0

    # Reconnect policy. With reconnect disabled a dropped socket is fatal to the provider.
    reconnect_enabled: bool = True
    reconnect_delay_initial: float = 2.0
    reconnect_delay_max: float = 120.0
    reconnect_jitter_factor: float = 0.15
    circuit_breaker_threshold: int = 10
    circuit_breaker_cooldown_seconds: float = 60.0

    @property
    def ws_url(self) -> str:
        return f"{self.ws_scheme}://{self.address}"

    @property
    def http_url(self) -> str:
        return f"{self.http_scheme}://{self.address}"


class OrderBookSettings(BaseModel):
    """Which pools to follow and how often to rebuild their books."""

    pairs: list[str] = Field(default_factory=lambda: ["BTC-USDC", "FLIP-USDC", "DOT-USDC", "ETH-USDC"])
    poll_interval_seconds: float = 15.0
    # Fixed delay between attempts to obtain a price stream at builder startup
    stream_poll_delay_seconds: float = 5.0

    def asset_pairs(self) -> list[AssetPair]:
        return [AssetPair.parse(p) for p in self.pairs]


class AssetSettings(BaseModel):
    """Static per-asset metadata."""

    decimals: dict[str, int] = Field(
        default_factory=lambda: {
            "DOT": 10,
            "ETH": 18,
            "FLIP": 18,
            "BTC": 8,
            "USDC": 6,
        }
    )


class LoggingSettings(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    file_enabled: bool = True
    log_dir: str = "logs"
    json_enabled: bool = False
    json_file: str = "logs/pool_orderbook_json.jsonl"
    # JSON log rotation; 0 in either field keeps a single growing file
    json_max_bytes: int = 50_000_000
    json_backup_count: int = 3


class SupervisorSettings(BaseModel):
    """Task supervision settings."""

    restart_enabled: bool = True
    restart_delay_max_seconds: float = 60.0


class MetricsSettings(BaseModel):
    """Prometheus exporter settings."""

    enabled: bool = False
    port: int = 9108


class Settings(BaseSettings):
    """
    Main settings container.

    Loads from YAML file based on environment, then applies env var overrides.
    """

    # Environment
    env: str = Field(default="development", alias="POOLBOOK_ENV")

    # Sub-settings
    node: NodeSettings = Field(default_factory=NodeSettings)
    orderbook: OrderBookSettings = Field(default_factory=OrderBookSettings)
    assets: AssetSettings = Field(default_factory=AssetSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

    model_config = {
        "env_prefix": "POOLBOOK_",
        "env_nested_delimiter": "__",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def validate_for_startup(self) -> list[str]:
        """
        Validate that the settings describe a runnable service.

        Returns:
            List of validation error messages. Empty list means all validations passed.
        """
        errors: list[str] = []

        if not self.node.address:
            errors.append(f"node.address is required (or set {NODE_ADDRESS_ENV})")

        if self.orderbook.poll_interval_seconds <= 0:
            errors.append("orderbook.poll_interval_seconds must be positive")
        if self.orderbook.stream_poll_delay_seconds <= 0:
            errors.append("orderbook.stream_poll_delay_seconds must be positive")

        if not self.orderbook.pairs:
            errors.append("orderbook.pairs must list at least one pair")

        known = {k.upper() for k in self.assets.decimals}
        for raw in self.orderbook.pairs:
            try:
                pair = AssetPair.parse(raw)
            except InvalidAssetPairError as e:
                errors.append(e.message)
                continue
            for symbol in (pair.base, pair.quote):
                if symbol not in known:
                    errors.append(f"{pair}: no decimals configured for {symbol} (assets.decimals)")

        return errors

    @classmethod
    def from_yaml(cls, env: str = "development", config_dir: Path | None = None) -> Settings:
        """
        Build settings from the YAML files in ``config_dir`` (the package dir by default).

        ``config.yaml`` is used as-is when present. Otherwise ``default.yaml``
        is layered under ``{env}.yaml``. ``CHAINFLIP_NODE_ADDR`` beats both.
        """
        config_dir = config_dir or Path(__file__).parent

        single = config_dir / "config.yaml"
        if single.exists():
            data = _read_yaml(single)
        else:
            data = _overlay(_read_yaml(config_dir / "default.yaml"), _read_yaml(config_dir / f"{env}.yaml"))

        address = os.getenv(NODE_ADDRESS_ENV)
        if address:
            data = _overlay(data, {"node": {"address": address}})
        data["env"] = env

        unknown = _unknown_keys(data, cls)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys (typo or stale config?): {sorted(unknown)}")

        return cls(**data)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _overlay(base: dict[str, Any], top: dict[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; values from ``top`` win, nested sections merge key by key."""
    merged = dict(base)
    for key, value in top.items():
        below = merged.get(key)
        merged[key] = _overlay(below, value) if isinstance(below, dict) and isinstance(value, dict) else value
    return merged


# Maps whose keys are data (asset symbols), not settings names
_FREE_FORM_SECTIONS = frozenset({"assets.decimals"})


def _dotted_keys(data: dict[str, Any], prefix: str = "") -> set[str]:
    keys: set[str] = set()
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        keys.add(dotted)
        if isinstance(value, dict) and dotted not in _FREE_FORM_SECTIONS:
            keys |= _dotted_keys(value, f"{dotted}.")
    return keys


def _model_keys(model: type[BaseModel], prefix: str = "") -> set[str]:
    keys: set[str] = set()
    for name, info in model.model_fields.items():
        dotted = f"{prefix}{name}"
        keys.add(dotted)
        if isinstance(info.annotation, type) and issubclass(info.annotation, BaseModel):
            keys |= _model_keys(info.annotation, f"{dotted}.")
    return keys


def _unknown_keys(data: dict[str, Any], model: type[BaseModel]) -> set[str]:
    """YAML keys (dot notation) that no settings field would pick up."""
    return _dotted_keys(data) - _model_keys(model)


@lru_cache(maxsize=4)
def get_settings(env: str | None = None) -> Settings:
    """Settings for ``env`` (or ``$POOLBOOK_ENV``), loaded once per process."""
    return Settings.from_yaml(env=env or os.getenv("POOLBOOK_ENV", "development"))
