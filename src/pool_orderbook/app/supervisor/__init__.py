"""Supervisor: owns the provider, the per-pair pipelines and their restarts."""

from pool_orderbook.app.supervisor.manager import Supervisor

__all__ = ["Supervisor"]
