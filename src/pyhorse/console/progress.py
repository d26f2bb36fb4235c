from __future__ import annotations

import threading
from typing import Any

from rich.console import Console
from rich.status import Status

# rich's "dots" spinner is the braille cycle at 80 ms per frame.
SPINNER = "dots"
REFRESH_PER_SECOND = 1000 / 80


class ProgressHandle:
    """An active indicator. Release it exactly once; extra releases are no-ops.

    Use as a context manager so the indicator stops on every exit path:

        with tracker.begin_progress("Processing"):
            ...
    """

    def __init__(self, tracker: "ProgressTracker", label: str) -> None:
        self._tracker = tracker
        self.label = label
        self._released = False

    @property
    def active(self) -> bool:
        return not self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._tracker._release(self)

    def __enter__(self) -> "ProgressHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class ProgressTracker:
    """Owns the single spinner line and serializes terminal writes around it.

    At most one indicator runs at a time; beginning a new one stops the
    current one first. ``print`` clears the indicator before writing.
    """

    def __init__(self, console: Console, *, enabled: bool = True) -> None:
        self.console = console
        self.enabled = enabled
        self._lock = threading.RLock()
        self._handle: ProgressHandle | None = None
        self._status: Status | None = None

    @property
    def active(self) -> ProgressHandle | None:
        with self._lock:
            return self._handle

    def begin_progress(self, label: str) -> ProgressHandle:
        with self._lock:
            self._stop_locked()
            handle = ProgressHandle(self, label)
            self._handle = handle
            if self.enabled:
                self._status = Status(
                    label,
                    console=self.console,
                    spinner=SPINNER,
                    spinner_style="cyan",
                    refresh_per_second=REFRESH_PER_SECOND,
                )
                self._status.start()
            return handle

    def stop(self) -> None:
        """Stop whatever indicator is running (its handle becomes inert)."""
        with self._lock:
            self._stop_locked()

    def print(self, *objects: Any, **kwargs: Any) -> None:
        with self._lock:
            self.stop()
            self.console.print(*objects, **kwargs)

    def _release(self, handle: ProgressHandle) -> None:
        with self._lock:
            # A handle superseded by a newer one has nothing left to stop.
            if handle is self._handle:
                self._stop_locked()

    def _stop_locked(self) -> None:
        status, self._status = self._status, None
        if self._handle is not None:
            self._handle._released = True
            self._handle = None
        if status is not None:
            # Joins the refresh thread and clears the line before returning.
            status.stop()
