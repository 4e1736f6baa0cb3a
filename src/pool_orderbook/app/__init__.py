"""Application layer: entry points and supervision."""
