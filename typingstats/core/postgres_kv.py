"""PostgreSQL-backed key-value space for syncing records between devices.

Values live in a single table. Every write also sends a NOTIFY carrying the
writer's origin and the key, so the other devices listening on the channel
learn about external changes without polling the table.
"""

import json
import logging
import select
import threading
import time
from contextlib import contextmanager

import psycopg2
from psycopg2 import pool, sql

from typingstats.core.errors import RemoteConnectionError, RemoteStoreError
from typingstats.core.kv_backend import KeyValueBackend

log = logging.getLogger("typingstats.postgres_kv")

DEFAULT_TABLE = "typingstats_kv"
DEFAULT_CHANNEL = "typingstats_kv"


class PostgresKeyValueBackend(KeyValueBackend):
    """Key-value backend on a PostgreSQL table with LISTEN/NOTIFY change feed."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        origin: str,
        sslmode: str = "prefer",
        channel: str = DEFAULT_CHANNEL,
        table: str = DEFAULT_TABLE,
        min_connections: int = 1,
        max_connections: int = 4,
        poll_interval: float = 1.0,
    ):
        """Initialize PostgreSQL backend.

        Args:
            host: Database host address
            port: Database port
            database: Database name
            user: Database user
            password: Database password
            origin: Identifier of this device; its own writes are not reported back
            sslmode: SSL mode (disable, allow, prefer, require, verify-ca, verify-full)
            channel: NOTIFY channel name
            table: Table holding the key-value pairs
            min_connections: Minimum number of connections in pool
            max_connections: Maximum number of connections in pool
            poll_interval: Seconds the listener waits per select() call
        """
        super().__init__()
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.origin = origin
        self.sslmode = sslmode
        self.channel = channel
        self.table = table
        self.min_connections = min_connections
        self.max_connections = max_connections
        self.poll_interval = poll_interval

        self._connection_pool: pool.ThreadedConnectionPool | None = None
        self._stop_event = threading.Event()
        self.listener_thread: threading.Thread | None = None

    def _connect_kwargs(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
            "sslmode": self.sslmode,
            "connect_timeout": 10,
        }

    def initialize(self) -> None:
        """Create the connection pool and table, then start listening.

        Raises:
            RemoteConnectionError: If the database cannot be reached
            RemoteStoreError: If the table cannot be created
        """
        try:
            # Used concurrently by the worker and listener threads
            self._connection_pool = pool.ThreadedConnectionPool(
                minconn=self.min_connections,
                maxconn=self.max_connections,
                **self._connect_kwargs(),
            )
            log.info(f"Created PostgreSQL connection pool: {self.host}:{self.port}/{self.database}")
        except psycopg2.Error as e:
            raise RemoteConnectionError(f"Failed to create connection pool: {e}") from e

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                sql.SQL(
                    """
                    CREATE TABLE IF NOT EXISTS {} (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        origin TEXT NOT NULL,
                        updated_at BIGINT NOT NULL
                    )
                    """
                ).format(sql.Identifier(self.table))
            )

        self._stop_event.clear()
        self.listener_thread = threading.Thread(
            target=self._run_listener, name="typingstats-pg-listener", daemon=True
        )
        self.listener_thread.start()

    @contextmanager
    def get_connection(self):
        """Get a pooled connection; commits on success, rolls back on error.

        Raises:
            RemoteConnectionError: If the backend was not initialized
            RemoteStoreError: If a query fails
        """
        if self._connection_pool is None:
            raise RemoteConnectionError("PostgreSQL backend is not initialized")

        try:
            conn = self._connection_pool.getconn()
        except psycopg2.Error as e:
            raise RemoteConnectionError(f"Failed to get connection: {e}") from e

        try:
            yield conn
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise RemoteStoreError(f"PostgreSQL query failed: {e}") from e
        finally:
            self._connection_pool.putconn(conn)

    def _notify_payload(self, key: str) -> str:
        return json.dumps({"origin": self.origin, "key": key})

    def get(self, key: str) -> str | None:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                sql.SQL("SELECT value FROM {} WHERE key = %s").format(
                    sql.Identifier(self.table)
                ),
                (key,),
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                sql.SQL(
                    """
                    INSERT INTO {} (key, value, origin, updated_at)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (key) DO UPDATE SET
                        value = EXCLUDED.value,
                        origin = EXCLUDED.origin,
                        updated_at = EXCLUDED.updated_at
                    """
                ).format(sql.Identifier(self.table)),
                (key, value, self.origin, int(time.time() * 1000)),
            )
            cursor.execute(
                "SELECT pg_notify(%s, %s)", (self.channel, self._notify_payload(key))
            )

    def remove(self, key: str) -> None:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                sql.SQL("DELETE FROM {} WHERE key = %s").format(sql.Identifier(self.table)),
                (key,),
            )
            if cursor.rowcount:
                cursor.execute(
                    "SELECT pg_notify(%s, %s)", (self.channel, self._notify_payload(key))
                )

    def keys(self) -> list[str]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                sql.SQL("SELECT key FROM {} ORDER BY key").format(sql.Identifier(self.table))
            )
            return [row[0] for row in cursor.fetchall()]

    def synchronize(self) -> None:
        # Writes are committed immediately; nothing is buffered client-side.
        log.debug("synchronize() requested; writes are already committed")

    def close(self) -> None:
        """Stop the listener and close all pooled connections."""
        self._stop_event.set()
        if self.listener_thread:
            self.listener_thread.join(timeout=self.poll_interval * 2 + 1)
            self.listener_thread = None
        if self._connection_pool is not None:
            self._connection_pool.closeall()
            self._connection_pool = None
        log.info("PostgreSQL key-value backend closed")

    def _parse_notification(self, payload: str) -> str | None:
        """Extract the changed key from a NOTIFY payload written by another device."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            log.warning(f"Ignoring malformed notification payload: {payload!r}")
            return None
        if not isinstance(data, dict):
            return None
        if data.get("origin") == self.origin:
            return None
        key = data.get("key")
        return key if isinstance(key, str) and key else None

    def _report_all_keys(self) -> None:
        """Report every stored key as changed.

        Called after each LISTEN (re)connect, since notifications sent while
        the listener was disconnected are lost.
        """
        try:
            keys = self.keys()
        except RemoteStoreError as e:
            log.error(f"Failed to list keys after connecting: {e}")
            return
        self._notify_external_change(keys)

    def _run_listener(self) -> None:
        """Background thread receiving NOTIFY messages and reporting changed keys."""
        while not self._stop_event.is_set():
            conn = None
            try:
                conn = psycopg2.connect(**self._connect_kwargs())
                conn.set_session(autocommit=True)
                conn.cursor().execute(
                    sql.SQL("LISTEN {}").format(sql.Identifier(self.channel))
                )
                log.info(f"Listening for changes on channel {self.channel}")
                self._report_all_keys()

                while not self._stop_event.is_set():
                    readable, _, _ = select.select([conn], [], [], self.poll_interval)
                    if not readable:
                        continue
                    conn.poll()
                    changed: list[str] = []
                    while conn.notifies:
                        notification = conn.notifies.pop(0)
                        key = self._parse_notification(notification.payload)
                        if key and key not in changed:
                            changed.append(key)
                    self._notify_external_change(changed)

            except (psycopg2.Error, OSError) as e:
                log.error(f"Change listener lost connection: {e}")
                self._stop_event.wait(self.poll_interval * 5)
            finally:
                if conn is not None:
                    conn.close()
