"""
Entry points for CLI commands.

Each command sets up the environment and runs the appropriate logic.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from collections.abc import AsyncIterator
from pathlib import Path

# Load .env file BEFORE importing settings
from dotenv import load_dotenv

for env_path in [
    Path.cwd() / ".env",  # Current working directory
    Path(__file__).parent.parent.parent.parent / ".env",  # Project root
]:
    if env_path.exists():
        load_dotenv(env_path)
        break
else:
    load_dotenv()  # Fallback: search default locations

from pool_orderbook.adapters.node.handle import PoolInfoProviderHandle  # noqa: E402
from pool_orderbook.adapters.node.provider import PoolInfoProvider  # noqa: E402
from pool_orderbook.adapters.node.rpc import NodeRpcClient  # noqa: E402
from pool_orderbook.config.settings import Settings, get_settings  # noqa: E402
from pool_orderbook.domain.errors import DomainError, LiquidityUnavailableError  # noqa: E402
from pool_orderbook.domain.models import AssetPair, PriceUpdate  # noqa: E402
from pool_orderbook.domain.orderbook import build_order_book  # noqa: E402
from pool_orderbook.domain.pricing import freeze_decimals  # noqa: E402
from pool_orderbook.observability.logging import get_logger, setup_logging  # noqa: E402
from pool_orderbook.utils.json_parser import dumps as json_dumps  # noqa: E402


def load_settings(
    env: str,
    *,
    address: str | None = None,
    pairs: list[str] | None = None,
) -> Settings:
    """Cached settings for ``env`` with CLI overrides applied on a copy."""
    settings = get_settings(env)
    if address:
        settings = settings.model_copy(update={"node": settings.node.model_copy(update={"address": address})})
    if pairs:
        settings = settings.model_copy(
            update={"orderbook": settings.orderbook.model_copy(update={"pairs": list(pairs)})}
        )
    return settings


def _log_startup_banner(logger, *, env: str, settings: Settings) -> None:
    logger.info("========================================================")
    logger.info(f"env={env} | node={settings.node.address} | reconnect={settings.node.reconnect_enabled}")
    logger.info(
        f"pairs={', '.join(settings.orderbook.pairs)} | "
        f"poll_interval={settings.orderbook.poll_interval_seconds}s | "
        f"metrics={'on :' + str(settings.metrics.port) if settings.metrics.enabled else 'off'}"
    )
    logger.info("========================================================")


async def run_service(
    env: str = "development",
    *,
    address: str | None = None,
    pairs: list[str] | None = None,
) -> int:
    """
    Long-running service.

    Starts the supervisor and waits for SIGINT/SIGTERM.

    Returns:
        Exit code: 0 = success, 1 = fatal error, 2 = configuration error.
    """
    settings = load_settings(env, address=address, pairs=pairs)

    setup_logging(settings)
    logger = get_logger(__name__)

    errors = settings.validate_for_startup()
    if errors:
        for error in errors:
            logger.error(error)
        logger.error("Aborting startup due to configuration errors.")
        return 2

    _log_startup_banner(logger, env=env, settings=settings)

    # Import here to avoid circular imports
    from pool_orderbook.app.supervisor import Supervisor

    supervisor = Supervisor(settings)

    shutdown_event = asyncio.Event()
    received_signal: list[str] = []

    def handle_signal(sig: signal.Signals) -> None:
        received_signal.append(sig.name)
        shutdown_event.set()

    if sys.platform == "win32":
        # Windows: signal.signal runs in the main thread only; no logging in the handler
        def win_handler(signum: int, frame) -> None:
            received_signal.append(f"signal-{signum}")
            shutdown_event.set()

        signal.signal(signal.SIGINT, win_handler)
        signal.signal(signal.SIGTERM, win_handler)
    else:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await supervisor.start()
        await shutdown_event.wait()

        if received_signal:
            logger.info(f"Received {received_signal[0]}, initiating shutdown...")

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutdown signal received, shutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1
    finally:
        await supervisor.stop()

    logger.info("Service stopped cleanly")
    return 0


# =============================================================================
# One-shot commands
# =============================================================================


@contextlib.asynccontextmanager
async def _one_shot_provider(settings: Settings) -> AsyncIterator[PoolInfoProviderHandle]:
    """Run a provider for the duration of the block."""
    rpc = NodeRpcClient(settings.node)
    await rpc.initialize()
    provider = PoolInfoProvider(settings.node, rpc=rpc)
    task = asyncio.create_task(provider.run(), name="provider")
    try:
        yield provider.get_handle()
    finally:
        provider.close()
        with contextlib.suppress(DomainError):
            await task
        await rpc.close()


async def _first_price(handle: PoolInfoProviderHandle, pair: AssetPair) -> PriceUpdate:
    stream = await handle.get_streaming_pool_price_updates(pair)
    if stream is None:
        raise DomainError(f"No price stream for {pair}", pair=str(pair))
    latest = stream.borrow_and_update()
    while latest is None:
        await stream.changed()
        latest = stream.borrow_and_update()
    return latest


async def _subscribe_and_wait(handle: PoolInfoProviderHandle, pair: AssetPair, wait: float) -> PriceUpdate:
    """Subscribe and wait up to ``wait`` seconds, stream lookup included, for a price."""
    handle.subscribe_pool_price_updates(pair)
    return await asyncio.wait_for(_first_price(handle, pair), timeout=wait)


def _one_shot_settings(env: str, address: str | None, pair: str) -> tuple[Settings, list[str]]:
    settings = load_settings(env, address=address, pairs=[pair])
    # One-shot commands do not need a log file per invocation
    settings = settings.model_copy(
        update={"logging": settings.logging.model_copy(update={"file_enabled": False, "json_enabled": False})}
    )
    return settings, settings.validate_for_startup()


async def run_book(
    env: str = "development",
    *,
    pair: str = "BTC-USDC",
    address: str | None = None,
    wait: float = 30.0,
    as_json: bool = False,
    depth: int = 10,
) -> int:
    """Print one order book for ``pair`` and exit."""
    settings, errors = _one_shot_settings(env, address, pair)
    setup_logging(settings)
    logger = get_logger(__name__)
    if errors:
        for error in errors:
            logger.error(error)
        return 2
    asset_pair = AssetPair.parse(pair)

    try:
        async with _one_shot_provider(settings) as handle:
            price = await _subscribe_and_wait(handle, asset_pair, wait)
            snapshot = await handle.get_pool_liquidity(asset_pair)
            if snapshot is None:
                raise LiquidityUnavailableError(f"No liquidity returned for {asset_pair}", pair=str(asset_pair))
            book = build_order_book(asset_pair, price, snapshot, freeze_decimals(settings.assets.decimals))
    except TimeoutError:
        logger.error(f"No price for {asset_pair} within {wait}s")
        return 1
    except DomainError as e:
        logger.error(f"{e.error_code}: {e.message}")
        return 1

    if as_json:
        print(json_dumps(book.to_dict(), indent=2, separators=(",", ": ")))
    else:
        from pool_orderbook.ui.book_view import render_order_book

        render_order_book(book, depth=depth)
    return 0


async def run_price(
    env: str = "development",
    *,
    pair: str = "BTC-USDC",
    address: str | None = None,
    wait: float = 30.0,
    as_json: bool = False,
) -> int:
    """Print the latest pool price for ``pair`` and exit."""
    settings, errors = _one_shot_settings(env, address, pair)
    setup_logging(settings)
    logger = get_logger(__name__)
    if errors:
        for error in errors:
            logger.error(error)
        return 2
    asset_pair = AssetPair.parse(pair)

    try:
        async with _one_shot_provider(settings) as handle:
            await _subscribe_and_wait(handle, asset_pair, wait)
            price = await handle.get_latest_pool_price(asset_pair)
    except TimeoutError:
        logger.error(f"No price for {asset_pair} within {wait}s")
        return 1
    except DomainError as e:
        logger.error(f"{e.error_code}: {e.message}")
        return 1

    if price is None:
        logger.error(f"No price for {asset_pair}")
        return 1

    if as_json:
        print(
            json_dumps(
                {"pair": str(price.pair), "price": price.price, "sqrt_price": price.sqrt_price, "tick": price.tick},
                indent=2,
                separators=(",", ": "),
            )
        )
    else:
        from pool_orderbook.ui.book_view import render_price

        render_price(price)
    return 0
