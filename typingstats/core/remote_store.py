"""Mirror of daily records through a remote key-value backend."""

import logging
import threading
from queue import Queue
from typing import Callable

from pydantic import ValidationError

from typingstats.core.daily_record import DailyRecord
from typingstats.core.errors import RemoteStoreError
from typingstats.core.kv_backend import KeyValueBackend

log = logging.getLogger("typingstats.remote_store")

DEFAULT_KEY_PREFIX = "stats_"

RecordBatch = list[DailyRecord]


class RemoteSyncStore:
    """Stores each DailyRecord under ``<prefix><date key>`` in a key-value backend.

    Undecodable entries are skipped, never raised. Writes are fire-and-forget:
    backend failures are logged and reported as a False return value.

    Externally changed records reach consumers in batches, either through a
    callback (:meth:`observe_changes`) or a queue channel (:meth:`changes`).
    """

    def __init__(self, backend: KeyValueBackend, key_prefix: str = DEFAULT_KEY_PREFIX):
        """Initialize remote store.

        Args:
            backend: Key-value backend holding the serialized records
            key_prefix: Namespace prefix for this store's keys
        """
        if not key_prefix:
            raise ValueError("key_prefix must not be empty")
        self.backend = backend
        self.key_prefix = key_prefix
        self._handlers: list[Callable[[RecordBatch], None]] = []
        self._handlers_lock = threading.Lock()
        self.backend.add_change_listener(self._on_external_change)

    def key_for(self, date_key: str) -> str:
        return self.key_prefix + date_key

    def save(self, record: DailyRecord) -> bool:
        """Write a record and request a flush from the backend.

        Returns:
            True if the backend accepted the write, False otherwise
        """
        try:
            self.backend.set(self.key_for(record.id), record.to_json())
            self.backend.synchronize()
        except RemoteStoreError as e:
            log.error(f"Failed to save {record.id} to remote store: {e}")
            return False
        return True

    def load(self, date_key: str) -> DailyRecord | None:
        """Load the record for ``date_key``; None if absent, corrupt or unreachable."""
        try:
            payload = self.backend.get(self.key_for(date_key))
        except RemoteStoreError as e:
            log.error(f"Failed to load {date_key} from remote store: {e}")
            return None
        if payload is None:
            return None

        try:
            record = DailyRecord.from_json(payload)
        except ValidationError as e:
            log.warning(f"Skipping undecodable remote record {date_key}: {e.error_count()} error(s)")
            return None

        if record.id != date_key:
            log.warning(f"Skipping remote record under {date_key} with id {record.id}")
            return None
        return record

    def load_all(self) -> dict[str, DailyRecord]:
        """Load every decodable record in this store's namespace."""
        try:
            keys = self.backend.keys()
        except RemoteStoreError as e:
            log.error(f"Failed to list remote keys: {e}")
            return {}

        result: dict[str, DailyRecord] = {}
        for key in keys:
            if not key.startswith(self.key_prefix):
                continue
            date_key = key[len(self.key_prefix):]
            record = self.load(date_key)
            if record is not None:
                result[date_key] = record
        return result

    def delete_all(self) -> int:
        """Remove every key in this store's namespace.

        Returns:
            Number of keys removed
        """
        removed = 0
        try:
            for key in self.backend.keys():
                if key.startswith(self.key_prefix):
                    self.backend.remove(key)
                    removed += 1
            self.backend.synchronize()
        except RemoteStoreError as e:
            log.error(f"Failed to delete remote records: {e}")
        log.info(f"Removed {removed} remote record(s)")
        return removed

    def observe_changes(self, handler: Callable[[RecordBatch], None]) -> None:
        """Register a handler called with each non-empty batch of changed records."""
        with self._handlers_lock:
            self._handlers.append(handler)

    def changes(self) -> "Queue[RecordBatch]":
        """Subscribe to changed-record batches through a queue channel."""
        channel: Queue[RecordBatch] = Queue()
        self.observe_changes(channel.put)
        return channel

    def _on_external_change(self, changed_keys: list[str]) -> None:
        records: RecordBatch = []
        for key in changed_keys:
            if not key.startswith(self.key_prefix):
                continue
            record = self.load(key[len(self.key_prefix):])
            if record is not None:
                records.append(record)

        if not records:
            return

        log.debug(f"{len(records)} record(s) changed externally")
        with self._handlers_lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(list(records))
