"""Single-key input from the controlling terminal.

Puts stdin into cbreak mode so "r" and "q" act without Enter, and restores
the original terminal attributes on stop. When stdin is not a TTY the
reader does nothing.
"""

from __future__ import annotations

import logging
import os
import select
import sys
import threading
from typing import Callable, TextIO

log = logging.getLogger(__name__)

try:
    import termios
    import tty
except ImportError:  # Windows: no termios, keys are disabled
    termios = None
    tty = None


class KeyReader:
    """Background thread that forwards each keypress to a callback."""

    def __init__(self, on_key: Callable[[str], None], stream: TextIO | None = None) -> None:
        self._on_key = on_key
        self._stream = stream or sys.stdin
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._saved_attrs = None

    @property
    def enabled(self) -> bool:
        if termios is None:
            return False
        try:
            return self._stream.isatty()
        except (AttributeError, ValueError):
            return False

    def start(self) -> None:
        if not self.enabled:
            log.info("stdin is not a terminal; keyboard shortcuts disabled")
            return
        fd = self._stream.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._thread = threading.Thread(target=self._run, args=(fd,), daemon=True, name="KeyReader")
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=1)
        if self._saved_attrs is not None:
            try:
                termios.tcsetattr(self._stream.fileno(), termios.TCSADRAIN, self._saved_attrs)
            except (termios.error, ValueError, OSError):
                log.debug("Could not restore terminal attributes", exc_info=True)
            self._saved_attrs = None

    def _run(self, fd: int) -> None:
        while not self._stop_event.is_set():
            try:
                ready, _, _ = select.select([fd], [], [], 0.1)
            except (OSError, ValueError):
                break
            if not ready:
                continue
            try:
                data = os.read(fd, 32)
            except OSError:
                break
            if not data:
                break
            for ch in data.decode("utf-8", "ignore"):
                try:
                    self._on_key(ch)
                except Exception:
                    log.debug("Key handler error", exc_info=True)
