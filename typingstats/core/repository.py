"""Stats repository: owns the daily records and reconciles local and remote copies."""

import logging
import threading
from datetime import datetime
from typing import Callable

from typingstats.core.daily_record import (
    DailyRecord,
    date_key_days_ago,
    display_string,
    short_display_string,
    today_key,
)
from typingstats.core.errors import LocalStoreError
from typingstats.core.keystroke_buffer import KeystrokeBuffer
from typingstats.core.local_store import LocalStore
from typingstats.core.models import HistoryEntry, StatsSummary
from typingstats.core.remote_store import RemoteSyncStore

log = logging.getLogger("typingstats.repository")


def _local_now() -> datetime:
    return datetime.now().astimezone()


class StatsRepository:
    """Owns the in-memory date-key -> DailyRecord map.

    Increments from this device land in today's record. Records changed on
    other devices are merged in one direction, into the local copy, and
    persisted locally. Dirty records are flushed to both stores on
    :meth:`flush`.

    All mutations are serialized by one lock, so local writes never race
    with merges.
    """

    def __init__(
        self,
        device_id: str,
        local_store: LocalStore,
        remote_store: RemoteSyncStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize repository and load local history.

        Args:
            device_id: Stable identifier of this device
            local_store: Local file store (authoritative copy)
            remote_store: Optional remote mirror shared with other devices
            clock: Function returning the current time (for tests)

        Raises:
            ValueError: If device_id is empty
        """
        if not device_id:
            raise ValueError("device_id must not be empty")

        self.device_id = device_id
        self.local_store = local_store
        self.remote_store = remote_store
        self._clock = clock or _local_now
        self._lock = threading.RLock()

        self._records: dict[str, DailyRecord] = self.local_store.load_all()
        self._local_dirty: set[str] = set()
        self._remote_dirty: set[str] = set()
        self._today_key = today_key(self._clock())

        log.info(f"Loaded {len(self._records)} day(s) of history for device {device_id}")

    # ========== Increments ==========

    def _today_record(self) -> DailyRecord:
        """Today's record, created on first use. Caller must hold the lock."""
        now = self._clock()
        key = today_key(now)
        if key != self._today_key:
            log.info(f"Day changed from {self._today_key} to {key}")
            previous = self._today_key
            self._today_key = key
            if previous in self._local_dirty or previous in self._remote_dirty:
                self.flush()

        record = self._records.get(key)
        if record is None:
            record = DailyRecord.new(now)
            self._records[key] = record
        return record

    def record_input(self, keystrokes: int, words: int = 0) -> None:
        """Apply externally counted keystroke and word deltas to today's record.

        Raises:
            ValueError: If a delta is negative
        """
        if keystrokes < 0 or words < 0:
            raise ValueError(f"Deltas must be non-negative (keystrokes={keystrokes}, words={words})")
        if keystrokes == 0 and words == 0:
            return

        with self._lock:
            record = self._today_record()
            if keystrokes:
                record.increment(self.device_id, keystrokes)
            if words:
                record.add_words(self.device_id, words)
            self._local_dirty.add(record.id)
            self._remote_dirty.add(record.id)

    def drain(self, buffer: KeystrokeBuffer) -> tuple[int, int]:
        """Drain pending deltas from ``buffer`` into today's record."""
        keystrokes, words = buffer.drain()
        self.record_input(keystrokes, words)
        return keystrokes, words

    # ========== Reconciliation ==========

    def apply_remote_changes(self, records: list[DailyRecord]) -> int:
        """Merge records changed on other devices into the local copies.

        Unknown days are adopted as-is; known days are merged (per-device
        maximum). Merged results are persisted locally only.

        Returns:
            Number of records adopted or merged
        """
        if not records:
            return 0

        with self._lock:
            for incoming in records:
                local = self._records.get(incoming.id)
                if local is None:
                    self._records[incoming.id] = incoming.model_copy(deep=True)
                    log.debug(f"Adopted remote record {incoming.id}")
                else:
                    local.merge(incoming)
                    log.debug(f"Merged remote record {incoming.id}")
                self._local_dirty.add(incoming.id)
            self._persist_local()

        log.info(f"Applied {len(records)} remote record(s)")
        return len(records)

    def pull_remote(self) -> int:
        """Merge every record currently in the remote store."""
        if self.remote_store is None:
            return 0
        return self.apply_remote_changes(list(self.remote_store.load_all().values()))

    def push_all(self) -> int:
        """Write every local record to the remote store.

        Returns:
            Number of records the remote store accepted
        """
        if self.remote_store is None:
            return 0
        with self._lock:
            snapshot = [r.model_copy(deep=True) for r in self._records.values()]
        pushed = sum(1 for record in snapshot if self.remote_store.save(record))
        log.info(f"Pushed {pushed}/{len(snapshot)} record(s) to remote store")
        return pushed

    # ========== Persistence ==========

    def _persist_local(self) -> bool:
        """Write dirty records to the local store. Caller must hold the lock."""
        if not self._local_dirty:
            return True
        keys = sorted(self._local_dirty)
        try:
            self.local_store.save_many(self._records[k] for k in keys if k in self._records)
        except LocalStoreError as e:
            log.error(f"Local save failed, will retry on next flush: {e}")
            return False
        self._local_dirty.difference_update(keys)
        return True

    def flush(self) -> bool:
        """Write dirty records to the local store and the remote store.

        Failed writes keep their records dirty so the next flush retries them.

        Returns:
            True if every write succeeded
        """
        with self._lock:
            local_ok = self._persist_local()
            remote_keys = sorted(self._remote_dirty) if self.remote_store else []
            snapshot = [
                self._records[k].model_copy(deep=True) for k in remote_keys if k in self._records
            ]

            # Snapshots must reach the backend in the order they were taken.
            # Keys leave the dirty set only once their save succeeded.
            saved: list[str] = []
            try:
                for record in snapshot:
                    if self.remote_store.save(record):
                        saved.append(record.id)
            finally:
                self._remote_dirty.difference_update(saved)

        if snapshot:
            log.debug(f"Flushed {len(saved)}/{len(snapshot)} record(s) to remote store")
        return local_ok and len(saved) == len(snapshot)

    def force_save(self) -> bool:
        """Synchronously flush everything; used at shutdown."""
        ok = self.flush()
        if ok:
            log.info("Final save completed")
        else:
            log.error("Final save incomplete")
        return ok

    def reset(self, include_remote: bool = False) -> None:
        """Delete all history (explicit user reset).

        Args:
            include_remote: Also remove this account's records from the remote store
        """
        with self._lock:
            self.local_store.delete_all()
            self._records.clear()
            self._local_dirty.clear()
            self._remote_dirty.clear()
            if include_remote and self.remote_store is not None:
                self.remote_store.delete_all()
        log.info(f"History reset (remote={include_remote})")

    # ========== Snapshots and aggregates ==========

    def today(self) -> DailyRecord:
        """Copy of today's record (empty if nothing was typed yet)."""
        with self._lock:
            now = self._clock()
            record = self._records.get(today_key(now))
            return record.model_copy(deep=True) if record else DailyRecord.new(now)

    def get(self, date_key: str) -> DailyRecord | None:
        with self._lock:
            record = self._records.get(date_key)
            return record.model_copy(deep=True) if record else None

    def _total(self, date_key: str) -> int:
        record = self._records.get(date_key)
        return record.total_keystrokes if record else 0

    def yesterday_count(self) -> int:
        with self._lock:
            return self._total(date_key_days_ago(1, self._clock()))

    def average(self, days: int) -> int:
        """Mean keystrokes over today and the previous ``days - 1`` days.

        Missing days count as zero.
        """
        if days <= 0:
            raise ValueError(f"days must be positive, got {days}")
        with self._lock:
            now = self._clock()
            total = sum(self._total(date_key_days_ago(i, now)) for i in range(days))
        return total // days

    def record(self) -> tuple[int, str | None]:
        """Best day so far as (keystrokes, date key); (0, None) without history.

        Ties go to the earliest day.
        """
        best, best_key = 0, None
        with self._lock:
            for key in sorted(self._records):
                total = self._records[key].total_keystrokes
                if total > best:
                    best, best_key = total, key
        return best, best_key

    def get_all_stats(self) -> list[DailyRecord]:
        """Copies of all records, newest first."""
        with self._lock:
            return [
                self._records[key].model_copy(deep=True)
                for key in sorted(self._records, reverse=True)
            ]

    def history(self, days: int | None = None) -> list[HistoryEntry]:
        """History entries, newest first, optionally limited to ``days`` entries.

        Raises:
            ValueError: If days is not positive
        """
        if days is not None and days <= 0:
            raise ValueError(f"days must be positive, got {days}")
        records = self.get_all_stats()
        if days is not None:
            records = records[:days]
        return [
            HistoryEntry(
                date=r.id,
                display_date=display_string(r.id),
                short_date=short_display_string(r.id),
                keystrokes=r.total_keystrokes,
                words=r.total_words,
                device_count=len(r.counter.device_ids | r.words.device_ids),
            )
            for r in records
        ]

    def summary(self) -> StatsSummary:
        """Aggregate statistics snapshot."""
        today = self.today()
        record_count, record_date = self.record()
        return StatsSummary(
            date=today.id,
            device_id=self.device_id,
            today_keystrokes=today.total_keystrokes,
            today_words=today.total_words,
            yesterday_keystrokes=self.yesterday_count(),
            seven_day_avg=self.average(7),
            thirty_day_avg=self.average(30),
            record_keystrokes=record_count,
            record_date=record_date,
        )
