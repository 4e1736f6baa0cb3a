"""
Websocket reconnect policy: exponential backoff with jitter plus a circuit breaker.
"""

from __future__ import annotations

import logging
import random
import time

logger = logging.getLogger(__name__)


class ReconnectCircuitBreaker:
    """
    Circuit breaker for the provider's websocket.

    Stops reconnect attempts after repeated failures and lets them through
    again once the cooldown has elapsed.
    """

    def __init__(self, threshold: int = 10, cooldown_seconds: float = 60.0):
        self.failure_count = 0
        self.threshold = threshold
        self.cooldown = cooldown_seconds
        self.last_failure_time = 0.0
        self.circuit_open = False

    def record_failure(self) -> bool:
        """
        Record a connection failure.

        Returns True if the circuit opened.
        """
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        if self.failure_count >= self.threshold and not self.circuit_open:
            self.circuit_open = True
            logger.warning(
                f"Node websocket circuit breaker OPEN after {self.failure_count} failures. Cooldown: {self.cooldown}s"
            )
            return True
        return False

    def record_success(self) -> None:
        """Reset circuit on successful connection."""
        if self.circuit_open:
            logger.info("Node websocket circuit breaker RESET - connection recovered")
        self.failure_count = 0
        self.circuit_open = False

    def cooldown_remaining(self) -> float:
        """Seconds until a connection attempt is allowed (0 when closed or cooled down)."""
        if not self.circuit_open:
            return 0.0
        remaining = self.cooldown - (time.monotonic() - self.last_failure_time)
        if remaining <= 0:
            logger.info("Node websocket circuit breaker COOLDOWN elapsed - allowing reconnection")
            self.circuit_open = False
            self.failure_count = 0
            return 0.0
        return remaining


def reconnect_delay(
    attempt: int,
    base_delay: float = 2.0,
    max_delay: float = 120.0,
    jitter_factor: float = 0.15,
) -> float:
    """
    Exponential backoff with jitter.

    Args:
        attempt: Reconnection attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay cap in seconds
        jitter_factor: Random jitter as fraction of delay

    Returns:
        Delay in seconds before the next attempt
    """
    delay = min(max_delay, base_delay * (2 ** min(attempt, 32)))
    jitter = delay * jitter_factor * (random.random() * 2 - 1)
    return max(0.0, delay + jitter)
