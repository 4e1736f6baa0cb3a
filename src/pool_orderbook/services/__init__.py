"""Services: order book building."""
