"""Background worker driving the stats repository."""

import logging
import threading
import time
from queue import Empty, Queue

from typingstats.core.keystroke_buffer import KeystrokeBuffer
from typingstats.core.remote_store import RecordBatch
from typingstats.core.repository import StatsRepository

log = logging.getLogger("typingstats.stats_service")


class StatsService:
    """Drains input deltas and remote changes into the repository on one thread.

    Every ``drain_interval_ms`` the worker moves pending keystrokes from the
    buffer into today's record and merges any queued remote batches; every
    ``save_interval_sec`` it flushes dirty records to both stores, and every
    ``pull_interval_sec`` it merges the full remote store. Stopping
    joins the worker, then drains and saves one final time on the caller's
    thread.
    """

    def __init__(
        self,
        repository: StatsRepository,
        buffer: KeystrokeBuffer,
        change_feed: "Queue[RecordBatch] | None" = None,
        drain_interval_ms: int = 100,
        save_interval_sec: float = 30.0,
        pull_interval_sec: float = 300.0,
    ):
        """Initialize stats service.

        Args:
            repository: Repository receiving all mutations
            buffer: Buffer filled by the input-capture thread
            change_feed: Queue of remote record batches (see RemoteSyncStore.changes)
            drain_interval_ms: Period between buffer drains
            save_interval_sec: Period between flushes to the stores
            pull_interval_sec: Period between full pulls from the remote store,
                which picks up changes whose notification was missed
        """
        if drain_interval_ms <= 0:
            raise ValueError("drain_interval_ms must be positive")
        if save_interval_sec <= 0:
            raise ValueError("save_interval_sec must be positive")
        if pull_interval_sec <= 0:
            raise ValueError("pull_interval_sec must be positive")

        self.repository = repository
        self.buffer = buffer
        self.change_feed = change_feed
        self.drain_interval_ms = drain_interval_ms
        self.save_interval_sec = save_interval_sec
        self.pull_interval_sec = pull_interval_sec

        self.running = False
        self.thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._last_save = time.monotonic()
        self._last_pull = time.monotonic()

    def start(self) -> None:
        """Start the worker thread."""
        if self.running:
            return

        self.running = True
        self._stop_event.clear()
        self._last_save = time.monotonic()
        self._last_pull = time.monotonic()
        self.thread = threading.Thread(target=self._run, name="typingstats-worker", daemon=True)
        self.thread.start()
        log.info(
            f"Stats service started: drain={self.drain_interval_ms}ms, "
            f"save={self.save_interval_sec}s, pull={self.pull_interval_sec}s"
        )

    def stop(self) -> None:
        """Stop the worker and save synchronously."""
        if self.running:
            self.running = False
            self._stop_event.set()
            if self.thread:
                self.thread.join()
                self.thread = None

        self.tick()
        self.repository.force_save()
        log.info("Stats service stopped")

    def tick(self) -> tuple[int, int]:
        """Drain the input buffer and apply queued remote batches once.

        Returns:
            Tuple of (keystrokes drained, remote records applied)
        """
        keystrokes, _ = self.repository.drain(self.buffer)

        applied = 0
        if self.change_feed is not None:
            while True:
                try:
                    batch = self.change_feed.get_nowait()
                except Empty:
                    break
                applied += self.repository.apply_remote_changes(batch)

        return keystrokes, applied

    def _run(self) -> None:
        interval = self.drain_interval_ms / 1000.0
        while not self._stop_event.wait(interval):
            try:
                self.tick()
                now = time.monotonic()
                if now - self._last_pull >= self.pull_interval_sec:
                    self._last_pull = now
                    self.repository.pull_remote()
                if now - self._last_save >= self.save_interval_sec:
                    self._last_save = now
                    self.repository.flush()
            except Exception as e:
                log.error(f"Error in stats worker: {e}")
