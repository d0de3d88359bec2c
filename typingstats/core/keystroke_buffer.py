"""Thread-safe accumulation of input events between drains."""

import threading

from typingstats.core.gcounter import saturating_add


class KeystrokeBuffer:
    """Pending keystroke and word deltas.

    Written by the input-capture thread, drained periodically by the stats
    worker. Every recorded event is returned by exactly one drain.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keystrokes = 0
        self._words = 0

    def record_keystroke(self, count: int = 1) -> None:
        """Record observed keystrokes."""
        if count <= 0:
            return
        with self._lock:
            self._keystrokes = saturating_add(self._keystrokes, count)

    def record_word(self, count: int = 1) -> None:
        """Record observed word boundaries."""
        if count <= 0:
            return
        with self._lock:
            self._words = saturating_add(self._words, count)

    def drain(self) -> tuple[int, int]:
        """Take and reset the pending counts.

        Returns:
            Tuple of (keystroke_delta, word_delta)
        """
        with self._lock:
            deltas = (self._keystrokes, self._words)
            self._keystrokes = 0
            self._words = 0
        return deltas

    @property
    def pending(self) -> tuple[int, int]:
        """Current pending counts without draining."""
        with self._lock:
            return self._keystrokes, self._words
