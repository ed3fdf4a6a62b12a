"""
optremarks/callback.py
══════════════════════

Progress callbacks for the loader and the renderer.

Both phases call ``start(total)`` once before fanning out, ``advance()``
once per finished unit (from worker threads) and ``finish()`` once after
all workers are done.  Callbacks are a side channel only: they never
influence what is loaded or rendered.
"""

from __future__ import annotations

import sys
import threading
from typing import Optional, Protocol, TextIO, runtime_checkable

from termcolor import colored


@runtime_checkable
class LoadCallback(Protocol):
    """Observer of a parallel phase."""

    def start(self, count: int) -> None: ...
    def advance(self) -> None: ...
    def finish(self) -> None: ...


class NullCallback:
    """Callback that ignores every event."""

    def start(self, count: int) -> None:
        pass

    def advance(self) -> None:
        pass

    def finish(self) -> None:
        pass


class ProgressBarCallback:
    """
    Single-line terminal progress bar.

    ``advance()`` may be called concurrently from many worker threads; all
    state changes and redraws happen under one lock.
    """

    def __init__(
        self,
        label: str = "",
        stream: Optional[TextIO] = None,
        width: int = 40,
        colour: Optional[bool] = None,
    ) -> None:
        self.label = label
        self.width = width
        self._stream = stream if stream is not None else sys.stderr
        self._lock = threading.Lock()
        self._total = 0
        self._done = 0
        if colour is None:
            colour = hasattr(self._stream, "isatty") and self._stream.isatty()
        self._colour = colour

    @property
    def done(self) -> int:
        return self._done

    @property
    def total(self) -> int:
        return self._total

    def start(self, count: int) -> None:
        with self._lock:
            self._total = count
            self._done = 0
            self._draw()

    def advance(self) -> None:
        with self._lock:
            self._done += 1
            self._draw()

    def finish(self) -> None:
        with self._lock:
            self._draw()
            self._stream.write("\n")
            self._stream.flush()

    # ── rendering ───────────────────────────────────────────────────

    def _draw(self) -> None:
        total = max(self._total, 1)
        filled = min(self.width, self.width * self._done // total)
        bar = "#" * filled + "-" * (self.width - filled)
        if self._colour:
            bar = colored("#" * filled, "green", attrs=["bold"]) + colored(
                "-" * (self.width - filled), "blue"
            )
        prefix = f"{self.label} " if self.label else ""
        self._stream.write(f"\r{prefix}[{bar}] {self._done}/{self._total}")
        self._stream.flush()


__all__ = ["LoadCallback", "NullCallback", "ProgressBarCallback"]
