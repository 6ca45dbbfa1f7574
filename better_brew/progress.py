"""
Thread-safe progress state and its console renderer.

Worker threads only ever touch a ProgressSink. Listeners registered on the
sink (normally a ConsoleProgress) turn those updates into terminal output.
"""

from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, TextIO

from .common import is_ci_environment
from .logging_config import get_logger


class ProgressListener(Protocol):
    """Anything that wants to hear about ProgressSink updates."""

    def on_label(self, label: str) -> None: ...

    def on_advance(self, completed: int, total: int) -> None: ...

    def on_message(self, line: str) -> None: ...


@dataclass
class ProgressSink:
    """
    Shared completion counter plus a current-label field.

    The counter only grows. The label holds whatever the most recently
    started unit wrote; with several units finishing close together there is
    no guarantee which one is shown.

    Attributes:
        total: Number of items expected
        _lock: Guards counter, label and listener list
        _completed: Items finished so far
        _label: Current label
        _listeners: Registered listeners
    """
    total: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _completed: int = 0
    _label: str = ""
    _listeners: list[ProgressListener] = field(default_factory=list)

    def register(self, listener: ProgressListener) -> None:
        """Register a listener for progress updates."""
        with self._lock:
            self._listeners.append(listener)

    def set_label(self, label: str) -> None:
        """Replace the current label."""
        with self._lock:
            self._label = label
            listeners = list(self._listeners)
        self._notify(listeners, "on_label", label)

    def advance(self, count: int = 1) -> int:
        """
        Increment the completed counter.

        Returns:
            The counter value after the increment
        """
        if count < 0:
            raise ValueError("progress counter cannot go backwards")
        with self._lock:
            self._completed += count
            completed = self._completed
            listeners = list(self._listeners)
        self._notify(listeners, "on_advance", completed, self.total)
        return completed

    def println(self, line: str) -> None:
        """Forward a one-off result line (e.g. '✓ Fetched: wget') to listeners."""
        with self._lock:
            listeners = list(self._listeners)
        self._notify(listeners, "on_message", line)

    @staticmethod
    def _notify(listeners: list[ProgressListener], method: str, *args) -> None:
        # Called without the lock held; a broken display never fails the work
        for listener in listeners:
            try:
                getattr(listener, method)(*args)
            except Exception as e:
                get_logger().warning(f"Progress listener {type(listener).__name__}.{method} failed: {e}")

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def label(self) -> str:
        with self._lock:
            return self._label


# Fill, head and empty characters
BAR_WIDTH = 40
BAR_CHARS = "#>-"


def render_bar(completed: int, total: int, width: int = BAR_WIDTH, chars: str = BAR_CHARS) -> str:
    """
    Render a fixed-width bar such as ``#####>----``.

    Args:
        completed: Items finished
        total: Items expected (0 renders an empty bar)
        width: Number of cells
        chars: Fill, head and empty characters
    """
    fill, head, empty = chars
    if total <= 0:
        return empty * width
    filled = min(width, completed * width // total)
    if filled >= width:
        return fill * width
    return fill * filled + head + empty * (width - filled - 1)


def format_elapsed(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class ConsoleProgress:
    """
    Progress renderer writing to a text stream.

    On an interactive terminal the bar is redrawn in place; otherwise (pipes,
    CI logs) each label change is printed on its own ``# [n/total]`` line.
    Every method takes the renderer lock, so workers may call it directly.
    """

    def __init__(
        self,
        total: int,
        stream: TextIO | None = None,
        live: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total = total
        self.stream = stream if stream is not None else sys.stderr
        if live is None:
            live = bool(getattr(self.stream, "isatty", lambda: False)()) and not is_ci_environment()
        self.live = live
        self._clock = clock
        self._start = clock()
        self._lock = threading.Lock()
        self._completed = 0
        self._label = ""
        self._finished = False

    def attach(self, sink: ProgressSink) -> ConsoleProgress:
        """Register on a sink and return self for chaining."""
        sink.register(self)
        return self

    def on_label(self, label: str) -> None:
        with self._lock:
            self._label = label
            if self.live:
                self._redraw()
            else:
                self._write(f"# [{self._completed}/{self.total}] {label}\n")

    def on_advance(self, completed: int, total: int) -> None:
        with self._lock:
            self._completed = max(self._completed, completed)
            if self.live:
                self._redraw()

    def on_message(self, line: str) -> None:
        with self._lock:
            if self.live:
                # Clear the bar, print the line, draw the bar again underneath
                self._write("\r\033[2K" + line + "\n")
                self._redraw()
            else:
                self._write(line + "\n")

    def finish(self, message: str) -> None:
        """Draw the final state with a closing message and end the line."""
        with self._lock:
            if self._finished:
                return
            self._finished = True
            self._label = message
            if self.live:
                self._redraw()
                self._write("\n")
            else:
                self._write(f"# [{self._completed}/{self.total}] {message}\n")

    def status_line(self) -> str:
        """The single line the live renderer draws."""
        elapsed = format_elapsed(self._clock() - self._start)
        bar = render_bar(self._completed, self.total)
        return f"[{elapsed}] [{bar}] {self._completed}/{self.total} {self._label}".rstrip()

    def _redraw(self) -> None:
        self._write("\r\033[2K" + self.status_line())

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()
