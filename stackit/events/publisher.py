"""
Event publishing.

Producers call :func:`publish_event_fire_and_forget` *after* their unit of
work committed.  Delivery happens in a tracked asyncio task, so:

1. The producing operation never waits on (or fails because of) consumers
2. An event is never delivered before the transaction that caused it
3. Tasks are tracked so shutdown and tests can wait for them to finish
"""

import asyncio
import logging
from typing import Optional

from .event_bus import EventBus
from .event_bus import event_bus

logger = logging.getLogger(__name__)

# Track fire-and-forget tasks to prevent resource leaks
_active_tasks: set = set()


async def publish_event(event, bus: Optional[EventBus] = None) -> None:
    """Deliver *event* and wait for every subscriber to finish.

    Delivery failures are logged, never raised.
    """
    try:
        await (bus or event_bus).publish(event)
    except Exception as e:
        logger.error(f"Failed to publish event {event.event_type.value}: {e!r}")


def publish_event_fire_and_forget(event, bus: Optional[EventBus] = None) -> None:
    """
    Schedule delivery of *event* without waiting for it.

    Must be called from inside a running event loop.

    Usage:
        publish_event_fire_and_forget(AnswerPosted(...), bus)
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No running loop - this is a programming error
        logger.error(f"Cannot publish fire-and-forget event {event.event_type.value} - no running event loop")
        return

    task = loop.create_task(publish_event(event, bus))

    # Track the task to prevent resource leaks
    _active_tasks.add(task)
    task.add_done_callback(_cleanup_task)


def _cleanup_task(task: asyncio.Task) -> None:
    """Remove task from tracking and log any exceptions."""
    _active_tasks.discard(task)

    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Fire-and-forget event publishing task failed: {task.exception()!r}")


async def drain_pending_events(timeout: Optional[float] = None) -> None:
    """
    Wait for in-flight deliveries, including ones scheduled while waiting.

    Call this during application shutdown (and in tests) so no notification
    write is left half-done.  Tasks still running after *timeout* seconds are
    cancelled.
    """
    if timeout is None:
        from stackit.config import get_settings

        timeout = get_settings().event_drain_timeout

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while _active_tasks:
        pending = list(_active_tasks)
        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.warning(f"Timeout waiting for {len(pending)} event publishing tasks, cancelling them")
            for task in pending:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            return

        await asyncio.wait(pending, timeout=remaining)


def get_active_task_count() -> int:
    """Get the number of active fire-and-forget tasks (for monitoring/debugging)."""
    return len(_active_tasks)
