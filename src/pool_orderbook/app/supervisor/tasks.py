"""
Task supervision helpers for restart/backoff behavior.

Only failures flagged transient are restarted. Anything else leaves the task
dead and raises an alert.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

from pool_orderbook.domain.errors import ChannelClosedError, DomainError, is_transient
from pool_orderbook.domain.events import AlertEvent
from pool_orderbook.observability.logging import LOG_TAG_HEALTH, get_logger
from pool_orderbook.observability.metrics import record_task_restart

if TYPE_CHECKING:
    from pool_orderbook.app.supervisor.manager import Supervisor

logger = get_logger(__name__)

TaskFactory = Callable[[], Coroutine[Any, Any, None]]

PROVIDER_TASK = "provider"


def _register_task(self: Supervisor, name: str, factory: TaskFactory) -> asyncio.Task:
    """Remember how to (re)create ``name`` and start it."""
    self._task_factories[name] = factory
    self._task_restart_attempts.pop(name, None)
    self._failed_tasks.pop(name, None)
    pending_restart = self._task_restart_jobs.pop(name, None)
    if pending_restart and not pending_restart.done():
        pending_restart.cancel()
    existing = self._tasks.get(name)
    if existing and not existing.done():
        existing.cancel()
    task = self._create_task(factory(), name=name)
    self._tasks[name] = task
    return task


def _create_task(self: Supervisor, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
    """Create a supervised task with proper exception handling."""
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(lambda t: self._handle_task_done(t, name))
    return task


def _handle_task_done(self: Supervisor, task: asyncio.Task, name: str) -> None:
    """Handle task completion/failure."""
    if task.cancelled():
        logger.debug(f"Task {name} cancelled")
        return

    exc = task.exception()

    # If shutdown is in progress, don't attempt restarts.
    if self._stopping or self._shutdown_event.is_set():
        if exc:
            logger.debug(f"Task {name} ended during shutdown: {exc}")
        return

    # A newer incarnation already replaced this one.
    if self._tasks.get(name) is not task:
        return

    if exc is None:
        logger.info(f"Task {name} finished")
        return

    # Pair tasks lose their handle when the provider ends; the provider task decides what happens next.
    if isinstance(exc, ChannelClosedError) and name != PROVIDER_TASK:
        logger.warning(f"{LOG_TAG_HEALTH} Task {name} stopped: provider closed")
        return

    if not (self.settings.supervisor.restart_enabled and is_transient(exc)):
        logger.error(f"Task {name} failed permanently: {exc}", exc_info=None if isinstance(exc, DomainError) else exc)
        self._failed_tasks[name] = exc
        self._spawn_background(
            self._publish_alert(
                "CRITICAL",
                f"Task failed: {name}",
                {"reason": f"{type(exc).__name__}: {exc}", **_error_details(exc)},
            ),
            name=f"alert_{name}",
        )
        return

    logger.warning(f"{LOG_TAG_HEALTH} Task {name} failed with transient error: {exc}")
    reason = f"exception: {type(exc).__name__}: {exc}"

    attempts = self._task_restart_attempts.get(name, 0) + 1
    self._task_restart_attempts[name] = attempts
    delay = min(self.settings.supervisor.restart_delay_max_seconds, 2.0 ** min(attempts, 6))

    # Cancel any scheduled restart for this task (keep latest reason/delay).
    existing = self._task_restart_jobs.get(name)
    if existing and not existing.done():
        existing.cancel()

    self._task_restart_jobs[name] = asyncio.get_running_loop().create_task(
        self._restart_task_after_delay(name=name, delay_seconds=delay, reason=reason),
        name=f"restart_{name}",
    )


async def _restart_task_after_delay(self: Supervisor, name: str, delay_seconds: float, reason: str) -> None:
    """Restart a supervised task with backoff, if still running."""
    await asyncio.sleep(delay_seconds)

    if self._stopping or self._shutdown_event.is_set():
        return

    factory = self._task_factories.get(name)
    if not factory:
        logger.error(f"No task factory registered for {name}; cannot restart")
        return

    logger.warning(f"Restarting task {name} after {delay_seconds:.1f}s (reason={reason})")
    record_task_restart(name)

    await self._publish_alert(
        "ERROR",
        f"Task restarted: {name}",
        {
            "delay_seconds": delay_seconds,
            "attempts": self._task_restart_attempts.get(name, 0),
            "reason": reason,
        },
    )

    self._tasks[name] = self._create_task(factory(), name=name)


async def _publish_alert(self: Supervisor, level: str, message: str, details: dict[str, Any]) -> None:
    if self.event_bus:
        await self.event_bus.publish(AlertEvent(level=level, message=message, details=details))


def _spawn_background(self: Supervisor, coro: Coroutine[Any, Any, None], name: str) -> None:
    task = asyncio.get_running_loop().create_task(coro, name=name)
    self._background_jobs.add(task)
    task.add_done_callback(self._background_jobs.discard)


async def _cancel_all_tasks(self: Supervisor) -> None:
    """Cancel all running tasks safely."""
    # Cancel any scheduled restart jobs to avoid resurrecting loops during shutdown.
    for job in [*self._task_restart_jobs.values(), *self._background_jobs]:
        if not job.done():
            job.cancel()
    self._task_restart_jobs.clear()
    self._background_jobs.clear()

    if not self._tasks:
        return

    logger.info(f"Cancelling {len(self._tasks)} tasks...")

    for task in self._tasks.values():
        if not task.done():
            task.cancel()

    results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    # Log any unexpected exceptions (not CancelledError)
    for name, result in zip(self._tasks.keys(), results, strict=True):
        if isinstance(result, Exception) and name not in self._failed_tasks:
            logger.error(f"Task {name} exception during cancel: {result}")

    self._tasks.clear()


def _error_details(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, DomainError):
        return {"error_code": exc.error_code, "pair": exc.pair}
    return {}
