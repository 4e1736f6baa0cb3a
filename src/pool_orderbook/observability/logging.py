"""
Logging setup for the order book service.

Three outputs, all fed from the root logger:
- console on stderr, coloured per level or per log tag ([BOOK], [PRICE], [HEALTH]);
- a plain text file per run;
- optional JSON lines (rotating) carrying pair/request/trigger extras.

stdout is left alone so ``book --json`` can be piped.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from pool_orderbook.config.settings import LoggingSettings, Settings

# =============================================================================
# Constants
# =============================================================================

LOG_TAG_BOOK = "[BOOK]"
LOG_TAG_PRICE = "[PRICE]"
LOG_TAG_HEALTH = "[HEALTH]"

_TAGS = (LOG_TAG_BOOK, LOG_TAG_PRICE, LOG_TAG_HEALTH)

__all__ = [
    "setup_logging",
    "get_logger",
    "JSONFormatter",
    "PoolLogFormatter",
    "LOG_TAG_BOOK",
    "LOG_TAG_PRICE",
    "LOG_TAG_HEALTH",
]

# Attributes copied from `extra=` into JSON lines
_JSON_EXTRA_KEYS = ("pair", "error_code", "subscription_id", "request_id", "task", "trigger")

_TIME_FORMAT = "%H:%M:%S"
_NOISY_LOGGERS = ("websockets", "asyncio", "aiohttp")


def _find_tag(message: str) -> str | None:
    for tag in _TAGS:
        if tag in message:
            return tag
    return None


# =============================================================================
# Formatters
# =============================================================================


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    # AssetPair, subscription ids and the like render as text
    return str(obj)


class JSONFormatter(logging.Formatter):
    """One JSON object per record; the log tag, if any, becomes a field."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        tag = _find_tag(message)
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message.replace(tag, "").strip() if tag else message,
        }
        if tag:
            entry["tag"] = tag.strip("[]").lower()
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key in _JSON_EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value

        return json.dumps(entry, default=_json_default)


class PoolLogFormatter(logging.Formatter):
    """
    Console formatter.

    A log tag in the message takes precedence over the level: the tag is
    moved into the label and coloured (book cyan, price dimmed, health blue).
    """

    RESET = "\033[0m"

    # label, colour, colour the whole line?
    _STYLES: dict[str, tuple[str, str, bool]] = {
        "DEBUG": ("DEBUG", "\033[90m", True),
        "INFO": ("INFO", "\033[92m", False),
        "WARNING": ("WARN", "\033[93m", True),
        "ERROR": ("ERROR", "\033[91m", True),
        "CRITICAL": ("CRITICAL", "\033[1;91m", True),
        LOG_TAG_BOOK: ("BOOK", "\033[96m", False),
        LOG_TAG_PRICE: ("PRICE", "\033[90m", True),
        LOG_TAG_HEALTH: ("HEALTH", "\033[94m", False),
    }

    def __init__(self, use_color: bool = True):
        super().__init__(datefmt=_TIME_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        tag = _find_tag(message)
        if tag:
            message = message.replace(tag, "").strip()
        label, color, whole_line = self._STYLES.get(tag or record.levelname, self._STYLES["INFO"])

        line = f"{self.formatTime(record, self.datefmt)} [{label}]"
        if self.use_color:
            line = f"{color}{line}" if whole_line else f"{color}{line}{self.RESET}"
        line = f"{line} {message}"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        if self.use_color and whole_line:
            line = f"{line}{self.RESET}"
        return line


# =============================================================================
# Handlers
# =============================================================================


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(PoolLogFormatter(use_color=sys.stderr.isatty()))
    return handler


def _text_file_handler(cfg: LoggingSettings, level: int) -> logging.Handler:
    logs_dir = Path(cfg.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    started = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    handler = logging.FileHandler(logs_dir / f"pool_orderbook_{started}.log", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    return handler


def _json_handler(cfg: LoggingSettings, level: int) -> logging.Handler:
    path = Path(cfg.json_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler: logging.Handler
    if cfg.json_max_bytes > 0 and cfg.json_backup_count > 0:
        handler = RotatingFileHandler(
            path, maxBytes=cfg.json_max_bytes, backupCount=cfg.json_backup_count, encoding="utf-8"
        )
    else:
        handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(settings: Settings | None = None) -> logging.Logger:
    """
    Replace the root logger's handlers according to ``settings.logging``.

    Unknown level names fall back to INFO. Returns the root logger.
    """
    if settings is None:
        from pool_orderbook.config.settings import get_settings

        settings = get_settings()

    cfg = settings.logging
    level = logging.getLevelName(cfg.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.addHandler(_console_handler(level))
    if cfg.file_enabled:
        root_logger.addHandler(_text_file_handler(cfg, level))
    if cfg.json_enabled:
        root_logger.addHandler(_json_handler(cfg, level))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
