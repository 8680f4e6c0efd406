"""
Save Scheduling

Debounced automatic saves are modelled as one scheduled task per period
with cancel-and-reschedule semantics. The controller only sees the
SaveScheduler interface, so tests can inject a scheduler that fires on
demand instead of waiting on the wall clock.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import structlog


SaveAction = Callable[[], Awaitable[None]]


class SaveHandle(ABC):
    """A scheduled save that may still be cancelled."""

    @abstractmethod
    def cancel(self) -> None:
        """Cancel the save if it has not started yet."""
        pass


class SaveScheduler(ABC):
    """Runs an async action after a delay."""

    @abstractmethod
    def schedule(self, delay: float, action: SaveAction) -> SaveHandle:
        """
        Run action() once, `delay` seconds from now.

        Returns a handle whose cancel() prevents the run.
        """
        pass


class _AsyncioSaveHandle(SaveHandle):

    def __init__(self, timer: Optional[asyncio.TimerHandle] = None):
        self.timer = timer

    def cancel(self) -> None:
        if self.timer is not None:
            self.timer.cancel()


class AsyncioSaveScheduler(SaveScheduler):
    """
    Production scheduler on the running asyncio event loop.

    Started saves are kept referenced until they finish so the loop does
    not garbage-collect them mid-flight.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()
        self._logger = structlog.get_logger(__name__)

    def schedule(self, delay: float, action: SaveAction) -> SaveHandle:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called outside an event loop: no autosave, explicit saves still work
            self._logger.warning("autosave_unavailable", reason="no running event loop")
            return _AsyncioSaveHandle()

        def fire() -> None:
            task = loop.create_task(action())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return _AsyncioSaveHandle(loop.call_later(delay, fire))

    @property
    def running(self) -> int:
        return len(self._tasks)
