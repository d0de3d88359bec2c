"""Local JSON file persistence for daily records."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from typingstats.core.daily_record import DailyRecord
from typingstats.core.errors import LocalStoreError

log = logging.getLogger("typingstats.local_store")

STATS_FILENAME = "stats.json"


class LocalStore:
    """Stores the full date-key -> DailyRecord map in one JSON file.

    Every write replaces the whole file atomically, so a crash mid-write
    leaves the previous snapshot in place.
    """

    def __init__(self, data_dir: Path, filename: str = STATS_FILENAME):
        """Initialize local store.

        Args:
            data_dir: Directory holding the stats file (created if missing)
            filename: Name of the stats file
        """
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / filename

    def save(self, record: DailyRecord) -> None:
        """Upsert a single record.

        Raises:
            LocalStoreError: If the file cannot be written
        """
        self.save_many([record])

    def save_many(self, records: Iterable[DailyRecord]) -> None:
        """Upsert several records with a single file rewrite.

        Raises:
            LocalStoreError: If the file cannot be written
        """
        stored = self.load_all()
        for record in records:
            stored[record.id] = record
        self.save_all(stored)

    def load_all(self) -> dict[str, DailyRecord]:
        """Load every stored record.

        Returns:
            Map of date key to record; empty if the file is missing or unreadable
        """
        if not self.path.exists():
            return {}

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            log.warning(f"Ignoring unreadable stats file {self.path}: {e}")
            return {}

        if not isinstance(raw, dict):
            log.warning(f"Ignoring stats file {self.path}: expected an object")
            return {}

        records: dict[str, DailyRecord] = {}
        for key, payload in raw.items():
            try:
                record = DailyRecord.model_validate(payload)
            except ValidationError as e:
                log.warning(f"Skipping undecodable record {key!r}: {e.error_count()} error(s)")
                continue
            if record.id != key:
                log.warning(f"Record stored under {key!r} has id {record.id!r}, using id")
            records[record.id] = record
        return records

    def save_all(self, records: dict[str, DailyRecord]) -> None:
        """Atomically replace the stats file with ``records``.

        Serializes to a temporary file in the same directory, then renames it
        over the target. On failure the temporary file is removed and the
        previous file is left intact.

        Raises:
            LocalStoreError: If the file cannot be written
        """
        payload = {key: record.to_payload() for key, record in sorted(records.items())}

        tmp_path: Path | None = None
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.data_dir,
                prefix=".stats-",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_path = Path(f.name)
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            log.error(f"Failed to write stats file {self.path}: {e}")
            raise LocalStoreError(f"Failed to write {self.path}: {e}") from e

        log.debug(f"Wrote {len(records)} record(s) to {self.path}")

    def delete_all(self) -> None:
        """Remove the stats file. Safe to call when no file exists."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise LocalStoreError(f"Failed to delete {self.path}: {e}") from e
        log.info(f"Deleted stats file {self.path}")
