"""
Console UI components.
"""

from pool_orderbook.ui.book_view import build_order_book_view, render_order_book, render_price

__all__ = ["build_order_book_view", "render_order_book", "render_price"]
