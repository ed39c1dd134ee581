"""Cancellable delayed task with arm/disarm semantics."""

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class DebouncedTask:
    """Runs ``fn(value)`` once ``delay`` seconds pass without a re-arm.

    Each ``arm()`` cancels the pending call and schedules a new one with
    the latest value. A timer that fires after being superseded does
    nothing, so only the most recent value is ever delivered.
    """

    def __init__(self, fn: Callable[[Any], None], delay: float, name: str = "debounced-task"):
        self._fn = fn
        self._delay = delay
        self._name = name
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending_value: Any = None
        self._generation = 0
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def arm(self, value: Any) -> None:
        """Schedule ``fn(value)``, replacing any pending call."""
        with self._lock:
            if self._closed:
                return
            self._cancel_locked()
            self._generation += 1
            self._pending_value = value
            timer = threading.Timer(self._delay, self._fire, args=(self._generation,))
            timer.daemon = True
            timer.name = self._name
            self._timer = timer
            timer.start()

    def disarm(self) -> bool:
        """Cancel the pending call. Returns True if one was pending."""
        with self._lock:
            had_pending = self._timer is not None
            self._cancel_locked()
            self._generation += 1
            return had_pending

    def flush(self) -> bool:
        """Run the pending call now instead of waiting. Returns True if it ran."""
        with self._lock:
            if self._timer is None:
                return False
            value = self._pending_value
            self._cancel_locked()
            self._generation += 1
        self._run(value)
        return True

    def close(self) -> None:
        """Disarm and refuse further arming."""
        self.disarm()
        with self._lock:
            self._closed = True

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            value = self._pending_value
            self._timer = None
            self._pending_value = None
        self._run(value)

    def _run(self, value: Any) -> None:
        try:
            self._fn(value)
        except Exception:
            logger.warning("%s failed", self._name, exc_info=True)

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending_value = None
