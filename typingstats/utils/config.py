"""Configuration management for typingstats."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

log = logging.getLogger("typingstats.config")


class AppSettings(BaseModel):
    """Application settings with validation."""

    # Worker timing
    drain_interval_ms: int = Field(
        default=100, gt=0, description="Period between keystroke buffer drains (ms)"
    )
    save_interval_sec: int = Field(
        default=30, ge=1, description="Period between saves to local and remote stores (sec)"
    )

    # Input
    count_words: bool = Field(
        default=True, description="Count words from separator keys"
    )

    # Remote sync
    remote_sync_enabled: bool = Field(
        default=False, description="Mirror records through the remote key-value store"
    )
    remote_pull_interval_sec: int = Field(
        default=300, ge=1, description="Period between full pulls from the remote store (sec)"
    )
    remote_key_prefix: str = Field(
        default="stats_", min_length=1, description="Namespace prefix for remote keys"
    )
    postgres_host: str = Field(default="", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, gt=0, le=65535, description="PostgreSQL port")
    postgres_database: str = Field(default="typingstats", description="PostgreSQL database")
    postgres_user: str = Field(default="", description="PostgreSQL user")
    postgres_password: str = Field(default="", description="PostgreSQL password")
    postgres_sslmode: str = Field(default="prefer", description="PostgreSQL SSL mode")
    postgres_channel: str = Field(
        default="typingstats_kv", min_length=1, description="LISTEN/NOTIFY channel"
    )

    # Device identity
    device_id: str = Field(
        default="", description="Explicit device identifier (overrides hardware UUID)"
    )
    device_uuid: str = Field(
        default="", description="Random identifier used when no hardware UUID exists"
    )

    model_config = ConfigDict(extra="ignore")


class Config:
    """Configuration manager using SQLite for persistence with Pydantic validation."""

    def __init__(self, db_path: Path):
        """Initialize config with database connection.

        Args:
            db_path: Path to SQLite settings database (created if missing)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_settings_table()
        self._ensure_defaults()

    @contextmanager
    def _get_connection(self):
        """Open a connection, commit on success and always close it."""
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_settings_table(self) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

    def _ensure_defaults(self) -> None:
        """Insert defaults for settings not stored yet."""
        defaults = AppSettings().model_dump()
        with self._get_connection() as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
                [(key, self._serialize_value(value)) for key, value in defaults.items()],
            )

    def _serialize_value(self, value: Any) -> str:
        if isinstance(value, bool):
            return "True" if value else "False"
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        return str(value)

    def _parse_value(self, value: str) -> Any:
        """Best-effort parsing of a stored string for keys outside AppSettings."""
        if value.startswith("[") or value.startswith("{"):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        return value

    def _coerce(self, key: str, raw: str) -> Any:
        """Type a stored value through AppSettings when the key is known."""
        if key in AppSettings.model_fields:
            try:
                return getattr(AppSettings(**{key: raw}), key)
            except ValidationError:
                log.warning(f"Stored value for {key} is invalid, using default")
                return AppSettings.model_fields[key].default
        return self._parse_value(raw)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Get configuration value.

        Args:
            key: Setting key
            default: Default value if not found

        Returns:
            Setting value
        """
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()

        if row:
            return self._coerce(key, row[0])
        if default is not None:
            return default
        if key in AppSettings.model_fields:
            return AppSettings.model_fields[key].default
        return None

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        value = self.get(key, default)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        try:
            return int(value)
        except (ValueError, TypeError):
            return default if default is not None else 0

    def get_bool(self, key: str, default: Optional[bool] = None) -> bool:
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return bool(value)
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value) if value else False

    def set(self, key: str, value: Any) -> None:
        """Set configuration value with pydantic validation.

        Raises:
            ValueError: If value fails validation
        """
        if key in AppSettings.model_fields:
            try:
                value = getattr(AppSettings(**{key: value}), key)
            except ValidationError as e:
                raise ValueError(f"Invalid value for {key}: {e}") from e

        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, self._serialize_value(value)),
            )

    def get_all(self) -> dict[str, Any]:
        """Get all settings as dictionary."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT key, value FROM settings").fetchall()
        return {key: self._coerce(key, value) for key, value in rows}

    def settings(self) -> AppSettings:
        """All known settings as a validated model."""
        stored = {k: v for k, v in self.get_all().items() if k in AppSettings.model_fields}
        return AppSettings(**stored)

    def reset_to_defaults(self) -> None:
        """Restore every AppSettings key to its default, keeping the device identity."""
        keep = ("device_id", "device_uuid")
        defaults = AppSettings().model_dump()
        with self._get_connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                [
                    (key, self._serialize_value(value))
                    for key, value in defaults.items()
                    if key not in keep
                ],
            )
