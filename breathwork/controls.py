"""Keyboard commands for terminal sessions.

``breathwork run`` reads one command per line from stdin while the Qt event
loop drives the engine:

    p        pause, or resume when paused/holding
    h        start a hold, or end the current one
    r N      resume at phase N (1-based)
    q        finish and save the session
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from .session import BreathingSessionEngine, SessionMode

log = logging.getLogger(__name__)

HELP_LINE = "Commands (then Enter): p pause/resume, h hold, r N resume at phase N, q finish"


class SessionControls:
    """Maps typed commands onto engine transitions."""

    def __init__(self, engine: BreathingSessionEngine, out=None):
        self.engine = engine
        self.out = out or sys.stdout
        self._pending = ""

    def feed(self, chunk: str) -> None:
        """Buffer raw input and handle every complete line."""
        self._pending += chunk
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            self.handle(line)

    def handle(self, line: str) -> bool:
        """Run one command. Returns True if the engine changed state."""
        words = line.strip().lower().split()
        if not words:
            return False
        command, rest = words[0], words[1:]
        engine = self.engine

        if command in ("p", "pause") and not rest:
            if engine.mode is SessionMode.RUNNING:
                return engine.pause()
            return engine.resume()
        if command in ("h", "hold") and not rest:
            if engine.is_holding:
                return engine.end_hold()
            return engine.start_hold()
        if command in ("r", "resume") and len(rest) <= 1:
            if not rest:
                return engine.resume()
            try:
                number = int(rest[0])
            except ValueError:
                number = 0
            if number < 1:
                self._write(f"resume: expected a phase number from 1, got {rest[0]!r}")
                return False
            return engine.resume(phase=number - 1)
        if command in ("q", "quit") and not rest:
            return engine.end() is not None

        log.debug("[controls] Unknown command %r", line)
        self._write(HELP_LINE)
        return False

    def _write(self, text: str) -> None:
        print(text, file=self.out, flush=True)


def attach_stdin(controls: SessionControls, stream=None):
    """Deliver lines typed on *stream* (default: stdin) to *controls*.

    Uses a QSocketNotifier, so commands arrive on the running Qt event loop.
    Returns the notifier (keep a reference), or None when the stream cannot
    be watched, e.g. on Windows consoles or without a real file descriptor.
    """
    stream = sys.stdin if stream is None else stream
    if os.name == "nt" or stream is None:
        log.info("[controls] Keyboard commands unavailable on this platform")
        return None
    try:
        fd = stream.fileno()
    except (AttributeError, OSError, ValueError):
        log.info("[controls] stdin has no file descriptor; keyboard commands disabled")
        return None

    from PyQt6.QtCore import QSocketNotifier

    notifier = QSocketNotifier(fd, QSocketNotifier.Type.Read)

    def _on_ready(*_args) -> None:
        try:
            data = os.read(fd, 1024)
        except OSError as exc:
            log.warning("[controls] Reading stdin failed: %s", exc)
            data = b""
        if not data:
            # EOF
            notifier.setEnabled(False)
            return
        controls.feed(data.decode("utf-8", errors="replace"))

    notifier.activated.connect(_on_ready)
    return notifier
