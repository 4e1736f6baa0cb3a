"""
Entry point for running pool_orderbook as a module.

Usage:
    python -m pool_orderbook [command] [options]

Commands:
    run         Start the service (default)
    book        Print one order book and exit
    price       Print the latest pool price and exit

Options:
    --env ENV           Environment (development/production)
    --address HOST:PORT Node address (overrides CHAINFLIP_NODE_ADDR / config)
    --pair PAIR         Pair to query (book/price) or follow (run, repeatable)
    --wait SECONDS      How long book/price wait for the first price
    --json              Print JSON instead of tables
"""

from __future__ import annotations

import argparse
import asyncio
import sys


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Pool order book service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "book", "price"],
        help="Command to execute (default: run)",
    )
    parser.add_argument(
        "--env",
        default="development",
        help="Environment (development/production)",
    )
    parser.add_argument(
        "--address",
        default=None,
        help="Node host:port",
    )
    parser.add_argument(
        "--pair",
        action="append",
        default=None,
        help="Asset pair such as BTC-USDC (repeatable for run)",
    )
    parser.add_argument(
        "--wait",
        type=float,
        default=30.0,
        help="Seconds to wait for the first price (book/price)",
    )
    parser.add_argument(
        "--depth",
        type=int,
        default=10,
        help="Rows per table when rendering a book",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print JSON output (book/price)",
    )

    args = parser.parse_args(argv)

    # Import here to avoid slow startup for --help
    from pool_orderbook.app.run import run_book, run_price, run_service

    pair = args.pair[0] if args.pair else "BTC-USDC"

    try:
        if args.command == "run":
            return asyncio.run(run_service(env=args.env, address=args.address, pairs=args.pair))
        elif args.command == "book":
            return asyncio.run(
                run_book(
                    env=args.env,
                    pair=pair,
                    address=args.address,
                    wait=args.wait,
                    as_json=args.json,
                    depth=args.depth,
                )
            )
        elif args.command == "price":
            return asyncio.run(
                run_price(env=args.env, pair=pair, address=args.address, wait=args.wait, as_json=args.json)
            )
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
