"""
Unit tests for websocket reconnect backoff and the circuit breaker.
"""

import pytest

from pool_orderbook.adapters.node import reconnect
from pool_orderbook.adapters.node.reconnect import ReconnectCircuitBreaker, reconnect_delay


class TestReconnectDelay:
    @pytest.mark.parametrize(
        ("attempt", "expected"),
        [(0, 2.0), (1, 4.0), (2, 8.0), (5, 64.0), (6, 120.0), (10_000, 120.0)],
    )
    def test_exponential_with_cap(self, attempt, expected):
        assert reconnect_delay(attempt, 2.0, 120.0, jitter_factor=0.0) == expected

    def test_jitter_bounds(self, monkeypatch):
        monkeypatch.setattr(reconnect.random, "random", lambda: 1.0)
        assert reconnect_delay(0, 10.0, 100.0, jitter_factor=0.1) == pytest.approx(11.0)

        monkeypatch.setattr(reconnect.random, "random", lambda: 0.0)
        assert reconnect_delay(0, 10.0, 100.0, jitter_factor=0.1) == pytest.approx(9.0)

    def test_never_negative(self, monkeypatch):
        monkeypatch.setattr(reconnect.random, "random", lambda: 0.0)
        assert reconnect_delay(0, 1.0, 10.0, jitter_factor=5.0) == 0.0


class TestReconnectCircuitBreaker:
    @pytest.fixture
    def clock(self, monkeypatch):
        now = {"t": 1000.0}
        monkeypatch.setattr(reconnect.time, "monotonic", lambda: now["t"])
        return now

    def test_opens_at_threshold(self, clock):
        breaker = ReconnectCircuitBreaker(threshold=3, cooldown_seconds=30.0)

        assert breaker.record_failure() is False
        assert breaker.record_failure() is False
        assert breaker.record_failure() is True
        assert breaker.circuit_open
        assert breaker.cooldown_remaining() == pytest.approx(30.0)

    def test_cooldown_elapses(self, clock):
        """
        GIVEN: an open breaker
        WHEN: the cooldown has passed
        THEN: attempts are allowed again and the failure count is reset
        """
        breaker = ReconnectCircuitBreaker(threshold=1, cooldown_seconds=30.0)
        breaker.record_failure()

        clock["t"] += 10.0
        assert breaker.cooldown_remaining() == pytest.approx(20.0)

        clock["t"] += 25.0
        assert breaker.cooldown_remaining() == 0.0
        assert not breaker.circuit_open
        assert breaker.failure_count == 0

    def test_success_resets(self, clock):
        breaker = ReconnectCircuitBreaker(threshold=2, cooldown_seconds=30.0)
        breaker.record_failure()
        breaker.record_failure()

        breaker.record_success()

        assert breaker.cooldown_remaining() == 0.0
        assert breaker.failure_count == 0
