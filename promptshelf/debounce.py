"""Cancelable debounce timer.

A small state machine around ``threading.Timer``: ``idle`` -> ``pending`` on
``schedule``, back to ``idle`` when the call fires or is cancelled, and
``closed`` for good after ``close``. Every schedule bumps a generation
counter, so a timer that fires after being superseded does nothing.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger("promptshelf.debounce")

TimerFactory = Callable[[float, Callable[[], None]], Any]


class DebounceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    CLOSED = "closed"


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class Debouncer:
    """Delay calls to ``func`` until input has been quiet for ``delay_ms``."""

    def __init__(
        self,
        func: Callable[..., Any],
        delay_ms: int = 300,
        timer_factory: TimerFactory = thread_timer,
    ):
        self.func = func
        self.delay_ms = delay_ms
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Any = None
        self._generation = 0
        self._pending: Optional[Tuple[tuple, dict]] = None
        self._state = DebounceState.IDLE

    @property
    def state(self) -> DebounceState:
        with self._lock:
            return self._state

    @property
    def pending(self) -> bool:
        return self.state == DebounceState.PENDING

    def schedule(self, *args: Any, **kwargs: Any) -> bool:
        """(Re)start the timer for a call with these arguments.

        Returns:
            False if the debouncer has been closed
        """
        with self._lock:
            if self._state == DebounceState.CLOSED:
                return False
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._pending = (args, kwargs)
            self._state = DebounceState.PENDING
            self._timer = self._timer_factory(self.delay_ms / 1000.0, lambda: self._fire(generation))
            self._timer.start()
        return True

    def _take_pending(self, generation: Optional[int]) -> Optional[Tuple[tuple, dict]]:
        with self._lock:
            if self._state != DebounceState.PENDING:
                return None
            if generation is not None and generation != self._generation:
                return None
            call = self._pending
            self._pending = None
            self._timer = None
            self._state = DebounceState.IDLE
            return call

    def _fire(self, generation: int) -> None:
        call = self._take_pending(generation)
        if call is None:
            logger.debug("Ignoring stale debounce timer (generation %d)", generation)
            return
        args, kwargs = call
        self.func(*args, **kwargs)

    def flush(self) -> bool:
        """Run the pending call immediately. Returns False if nothing was pending."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
        call = self._take_pending(None)
        if call is None:
            return False
        args, kwargs = call
        self.func(*args, **kwargs)
        return True

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None
            self._generation += 1
            if self._state == DebounceState.PENDING:
                self._state = DebounceState.IDLE

    def close(self) -> None:
        """Cancel and refuse any further scheduling."""
        self.cancel()
        with self._lock:
            self._state = DebounceState.CLOSED
