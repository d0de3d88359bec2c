#!/usr/bin/env python3
"""typingstats - keystroke and word counter with multi-device sync."""

import argparse
import logging
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from typingstats.core.errors import RemoteStoreError
from typingstats.core.keystroke_buffer import KeystrokeBuffer
from typingstats.core.local_store import LocalStore
from typingstats.core.remote_store import RemoteSyncStore
from typingstats.core.repository import StatsRepository
from typingstats.core.stats_service import StatsService
from typingstats.utils.config import Config
from typingstats.utils.device_id import resolve_device_id
from typingstats.utils.formatting import format_number
from typingstats.utils.paths import get_data_dir, get_state_dir

log = logging.getLogger("typingstats")

SETTINGS_FILENAME = "settings.db"


def setup_logging(verbose: bool = False, log_dir: Optional[Path] = None) -> None:
    """Log to a rotating file in the state directory and to stderr."""
    log_dir = log_dir or get_state_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    # 5MB per file, keep 5 backups
    file_handler = RotatingFileHandler(
        log_dir / "typingstats.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
    )

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[file_handler, logging.StreamHandler()],
    )


def create_remote_store(config: Config, device_id: str) -> Optional[RemoteSyncStore]:
    """Build the remote store from settings, or None when sync is off or unreachable."""
    settings = config.settings()
    if not settings.remote_sync_enabled:
        log.info("Remote sync disabled")
        return None

    if not settings.postgres_host or not settings.postgres_user:
        log.warning("Remote sync enabled but PostgreSQL is not configured")
        return None

    from typingstats.core.postgres_kv import PostgresKeyValueBackend

    backend = PostgresKeyValueBackend(
        host=settings.postgres_host,
        port=settings.postgres_port,
        database=settings.postgres_database,
        user=settings.postgres_user,
        password=settings.postgres_password,
        origin=device_id,
        sslmode=settings.postgres_sslmode,
        channel=settings.postgres_channel,
    )
    try:
        backend.initialize()
    except RemoteStoreError as e:
        log.error(f"Remote store unavailable, continuing with local history only: {e}")
        backend.close()
        return None

    return RemoteSyncStore(backend, key_prefix=settings.remote_key_prefix)


class Application:
    """Wires input capture, the stats worker and both stores together."""

    def __init__(self, data_dir: Path, capture_input: bool = True):
        """Initialize application.

        Args:
            data_dir: Directory holding stats.json and settings.db
            capture_input: Whether to start the evdev keyboard listener
        """
        self.data_dir = data_dir
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.capture_input = capture_input
        self._stop_event = threading.Event()

        self.config = Config(self.data_dir / SETTINGS_FILENAME)
        self.device_id = resolve_device_id(self.config)
        log.info(f"Data directory: {self.data_dir}")
        log.info(f"Device id: {self.device_id}")

        self.buffer = KeystrokeBuffer()
        self.local_store = LocalStore(self.data_dir)
        self.remote_store = create_remote_store(self.config, self.device_id)
        self.repository = StatsRepository(self.device_id, self.local_store, self.remote_store)

        settings = self.config.settings()
        change_feed = None
        if self.remote_store is not None:
            change_feed = self.remote_store.changes()
            self.repository.pull_remote()

        self.service = StatsService(
            self.repository,
            self.buffer,
            change_feed=change_feed,
            drain_interval_ms=settings.drain_interval_ms,
            save_interval_sec=settings.save_interval_sec,
            pull_interval_sec=settings.remote_pull_interval_sec,
        )
        self.input_handler = None

    def _start_input(self) -> None:
        from typingstats.core.evdev_handler import EVDEV_AVAILABLE, EvdevHandler

        if not EVDEV_AVAILABLE:
            log.warning("evdev not installed; keystrokes will not be captured")
            return

        handler = EvdevHandler(self.buffer, count_words=self.config.get_bool("count_words", True))
        try:
            handler.start()
        except RuntimeError as e:
            log.error(f"Keyboard capture unavailable: {e}")
            return
        self.input_handler = handler

    def start(self) -> None:
        self.service.start()
        if self.capture_input:
            self._start_input()

    def request_stop(self, signum=None, frame=None) -> None:
        self._stop_event.set()

    def run(self) -> None:
        """Run until SIGINT/SIGTERM, then flush and shut down."""
        signal.signal(signal.SIGINT, self.request_stop)
        signal.signal(signal.SIGTERM, self.request_stop)

        self.start()
        log.info("typingstats running")
        self._stop_event.wait()
        self.shutdown()

    def shutdown(self) -> None:
        """Stop capture, then the worker (which performs the final save)."""
        if self.input_handler:
            self.input_handler.stop()
        self.service.stop()
        if self.remote_store is not None:
            self.remote_store.backend.close()

        summary = self.repository.summary()
        log.info(
            f"Shutdown complete: today={format_number(summary.today_keystrokes)} keystrokes, "
            f"{format_number(summary.today_words)} words"
        )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Count keystrokes and words, synced across devices"
    )
    parser.add_argument("--data-dir", type=Path, default=None, help="Data directory")
    parser.add_argument(
        "--no-input", action="store_true", help="Do not capture keyboard input (sync only)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        app = Application(args.data_dir or get_data_dir(), capture_input=not args.no_input)
    except (OSError, ValueError) as e:
        log.error(f"Failed to start: {e}")
        sys.exit(1)

    app.run()


if __name__ == "__main__":
    main()
