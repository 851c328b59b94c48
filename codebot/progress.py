"""
Single-line progress display.

While a run is in flight the terminal shows one line, rewritten in place
every second:

    Writing your code...(12s elapsed)

`ElapsedTicker` owns the background thread that advances the counter.
`InPlaceLogHandler` lets ordinary log records through without tearing
that line apart: it erases the line, prints the record, then redraws it.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import IO, Optional

CLEAR_LINE = "\r\033[2K"
PROGRESS_TEMPLATE = "Writing your code...({elapsed}s elapsed)"


class ProgressLine:
    """The in-place line; all writes go through its lock."""

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.lock = threading.RLock()
        self.message: Optional[str] = None

    def show(self, message: str) -> None:
        with self.lock:
            self.message = message
            self.stream.write(CLEAR_LINE + message)
            self.stream.flush()

    def erase(self) -> None:
        """Blank the line on screen but remember it for `redraw`."""
        with self.lock:
            if self.message is not None:
                self.stream.write(CLEAR_LINE)
                self.stream.flush()

    def redraw(self) -> None:
        with self.lock:
            if self.message is not None:
                self.stream.write(CLEAR_LINE + self.message)
                self.stream.flush()

    def clear(self) -> None:
        with self.lock:
            self.erase()
            self.message = None


class ElapsedTicker:
    """Counts whole seconds since `start` and renders them on a ProgressLine."""

    def __init__(self, line: ProgressLine, interval: float = 1.0, template: str = PROGRESS_TEMPLATE) -> None:
        self.line = line
        self.interval = interval
        self.template = template
        self.elapsed = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stopped

    def _render(self) -> None:
        self.line.show(self.template.format(elapsed=self.elapsed))

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            with self.line.lock:
                if self._stop.is_set():
                    return
                self.elapsed += 1
                self._render()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("ticker already started")
        self._render()
        self._thread = threading.Thread(target=self._run, name="codebot-ticker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Cancel the timer and clear the line.  Later calls do nothing."""
        if self._thread is None or self._stopped:
            return
        self._stopped = True
        self._stop.set()
        self._thread.join()
        self.line.clear()

    def __enter__(self) -> "ElapsedTicker":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


class InPlaceLogHandler(logging.StreamHandler):
    """Stream handler that keeps the progress line intact."""

    def __init__(self, line: ProgressLine, stream: Optional[IO[str]] = None) -> None:
        super().__init__(stream if stream is not None else sys.stderr)
        self.line = line

    def emit(self, record: logging.LogRecord) -> None:
        with self.line.lock:
            self.line.erase()
            super().emit(record)
            self.line.redraw()
