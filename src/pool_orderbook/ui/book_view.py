"""
Console rendering of order books and prices with rich.
"""

from __future__ import annotations

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from pool_orderbook.domain.models import LimitOrder, OrderBook, PriceUpdate


def _format_amount(value: int) -> str:
    return f"{value:,}"


def _limit_table(title: str, orders: tuple[LimitOrder, ...], *, style: str, depth: int) -> Table:
    t = Table(title=title, box=box.MINIMAL_DOUBLE_HEAD, expand=True, title_style=style)
    t.add_column("Tick", justify="right")
    t.add_column("Amount", justify="right")
    for order in orders[:depth]:
        t.add_row(str(order.tick), Text(_format_amount(order.amount), style=style))
    if not orders:
        t.add_row("-", "-")
    elif len(orders) > depth:
        t.add_row("...", f"+{len(orders) - depth} more")
    return t


def _range_table(book: OrderBook, *, depth: int) -> Table:
    t = Table(title="Range liquidity", box=box.MINIMAL_DOUBLE_HEAD, expand=True)
    t.add_column("From tick", justify="right")
    t.add_column("To tick", justify="right")
    t.add_column("Liquidity", justify="right")
    in_range_style = "bold yellow"
    for bracket in book.range_orders[:depth]:
        style = in_range_style if bracket.start_tick <= book.tick < bracket.end_tick else ""
        t.add_row(
            str(bracket.start_tick),
            str(bracket.end_tick),
            Text(_format_amount(bracket.liquidity), style=style),
        )
    if not book.range_orders:
        t.add_row("-", "-", "-")
    elif len(book.range_orders) > depth:
        t.add_row("...", "...", f"+{len(book.range_orders) - depth} more")
    return t


def build_order_book_view(book: OrderBook, *, depth: int = 10) -> Panel:
    header = Text()
    header.append(f"{book.pair}  ", style="bold")
    header.append(f"price {book.tick_price:.8g}  ", style="cyan")
    header.append(f"tick {book.tick}  ")
    header.append(f"sqrt_price {book.sqrt_price}\n", style="dim")
    header.append(f"built {book.built_at.strftime('%H:%M:%S')} UTC on {book.trigger.value.lower()} trigger", style="dim")

    limits = Table.grid(expand=True)
    limits.add_column(ratio=1)
    limits.add_column(ratio=1)
    limits.add_row(
        _limit_table("Bids (buy)", book.bids, style="green", depth=depth),
        _limit_table("Asks (sell)", book.asks, style="red", depth=depth),
    )

    return Panel(
        Group(header, limits, _range_table(book, depth=depth)),
        title="Order book",
        border_style="blue",
        box=box.ROUNDED,
    )


def render_order_book(book: OrderBook, console: Console | None = None, *, depth: int = 10) -> None:
    """Print ``book`` as a panel with bid/ask and range tables."""
    (console or Console()).print(build_order_book_view(book, depth=depth))


def render_price(update: PriceUpdate, console: Console | None = None) -> None:
    body = Text()
    body.append(f"{update.pair}\n", style="bold")
    body.append(f"price      {update.price}\n", style="cyan")
    body.append(f"sqrt_price {update.sqrt_price}\n")
    body.append(f"tick       {update.tick}")
    (console or Console()).print(Panel(body, title="Pool price", border_style="green", box=box.ROUNDED))
