"""Frame tasks, eased transitions and the debounced timer."""

import logging
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)


def ease_in_out_quad(t: float) -> float:
    """Quadratic ease-in-out on [0, 1]."""
    if t < 0.5:
        return 2 * t * t
    return -1 + (4 - 2 * t) * t


class FrameTask(Protocol):
    def tick(self, now: float) -> bool:
        """Advance to the given frame time. Return False once finished."""


class Transition:
    """Interpolates a tuple of floats from start to end over a duration.

    The first tick fixes the start time, so a transition created between
    frames begins on the next frame rather than jumping ahead.
    """

    def __init__(self, start: Sequence[float], end: Sequence[float], duration: float,
                 on_update: Callable[[Tuple[float, ...]], None],
                 easing: Callable[[float], float] = ease_in_out_quad,
                 on_done: Optional[Callable[[], None]] = None):
        self.start = tuple(start)
        self.end = tuple(end)
        self.duration = duration
        self.on_update = on_update
        self.easing = easing
        self.on_done = on_done
        self.started_at: Optional[float] = None
        self.finished = False

    def value_at(self, progress: float) -> Tuple[float, ...]:
        eased = self.easing(max(0.0, min(1.0, progress)))
        return tuple(a + (b - a) * eased for a, b in zip(self.start, self.end))

    def tick(self, now: float) -> bool:
        if self.finished:
            return False
        if self.started_at is None:
            self.started_at = now
        if self.duration <= 0:
            progress = 1.0
        else:
            progress = (now - self.started_at) / self.duration
        self.on_update(self.value_at(progress))
        if progress >= 1.0:
            self.finished = True
            if self.on_done:
                self.on_done()
            return False
        return True

    def cancel(self):
        self.finished = True


class CallbackTask:
    """Runs a callback on the next frame only."""

    def __init__(self, callback: Callable[[], None]):
        self.callback = callback
        self.cancelled = False

    def tick(self, now: float) -> bool:
        if not self.cancelled:
            self.callback()
        return False

    def cancel(self):
        self.cancelled = True


class FrameScheduler:
    """Runs frame tasks once per rendered frame until they finish.

    The host calls ``tick(now)`` from its frame clock while ``active`` is
    true; ``on_wake`` tells it that work arrived after it went idle.
    """

    def __init__(self):
        self._tasks: List[Any] = []
        self.on_wake: Optional[Callable[[], None]] = None

    @property
    def active(self) -> bool:
        return bool(self._tasks)

    def add(self, task):
        """Queue a task and return it."""
        was_idle = not self._tasks
        self._tasks.append(task)
        if was_idle and self.on_wake:
            self.on_wake()
        return task

    def cancel(self, task):
        if task in self._tasks:
            self._tasks.remove(task)
        if hasattr(task, "cancel"):
            task.cancel()

    def cancel_all(self):
        """Drop every queued task, e.g. when the canvas is switched."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            if hasattr(task, "cancel"):
                task.cancel()
        if tasks:
            logger.debug("Cancelled %d frame tasks", len(tasks))

    def tick(self, now: float):
        """Advance every task; finished ones are dropped."""
        for task in list(self._tasks):
            if task not in self._tasks:
                continue
            if not task.tick(now):
                if task in self._tasks:
                    self._tasks.remove(task)


class Timer(Protocol):
    """One-shot timer source, e.g. GLib.timeout_add."""

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> Any:
        """Call callback once after delay_ms; return a cancel handle."""

    def cancel(self, handle: Any):
        """Cancel a pending call."""


class Debouncer:
    """Coalesces bursts of triggers into one call after a quiet period."""

    def __init__(self, timer: Timer, delay_ms: int, callback: Callable[[], None]):
        self.timer = timer
        self.delay_ms = delay_ms
        self.callback = callback
        self._handle: Any = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self):
        """Restart the quiet period."""
        self.cancel()
        self._handle = self.timer.schedule(self.delay_ms, self._fire)

    def _fire(self):
        self._handle = None
        self.callback()

    def cancel(self):
        if self._handle is not None:
            self.timer.cancel(self._handle)
            self._handle = None

    def flush(self):
        """Run a pending call now."""
        if self._handle is not None:
            self.cancel()
            self.callback()


class ManualTimer:
    """Timer whose calls run only when ``run_pending`` is invoked.

    Used where no event loop drives time, such as headless sessions.
    """

    def __init__(self):
        self._next = 0
        self._calls = {}

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> int:
        self._next += 1
        self._calls[self._next] = callback
        return self._next

    def cancel(self, handle: int):
        self._calls.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._calls)

    def run_pending(self):
        calls, self._calls = self._calls, {}
        for callback in calls.values():
            callback()
