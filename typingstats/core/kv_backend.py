"""Key-value backend abstraction for remote sync.

Provides a pluggable backend system for the cloud key-value space the
daily records are mirrored through. A backend stores string values under
string keys and reports keys changed by *other* devices.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable

log = logging.getLogger("typingstats.kv_backend")

ChangeListener = Callable[[list[str]], None]


class KeyValueBackend(ABC):
    """Abstract base class for remote key-value backends."""

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []
        self._listeners_lock = threading.Lock()

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Get the value stored under ``key``, or None if absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove ``key``. Removing a missing key is a no-op."""
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """List every key currently stored."""
        pass

    def synchronize(self) -> None:
        """Ask the backend to push pending writes. No delivery confirmation."""
        pass

    def close(self) -> None:
        """Release backend resources."""
        pass

    def add_change_listener(self, listener: ChangeListener) -> None:
        """Register a callback for keys changed externally (by another device)."""
        with self._listeners_lock:
            self._listeners.append(listener)

    def _notify_external_change(self, changed_keys: list[str]) -> None:
        """Deliver a batch of externally changed keys to every listener."""
        if not changed_keys:
            return
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(list(changed_keys))
            except Exception as e:
                log.error(f"Change listener failed: {e}")


class MemoryCloud:
    """In-process shared key space connecting several memory backends.

    A write through one attached backend is seen by every other attached
    backend as an external change, the way a cloud key-value store reports
    writes made on other devices.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()
        self._members: list["MemoryKeyValueBackend"] = []

    def attach(self, backend: "MemoryKeyValueBackend") -> None:
        with self._lock:
            self._members.append(backend)

    def detach(self, backend: "MemoryKeyValueBackend") -> None:
        with self._lock:
            if backend in self._members:
                self._members.remove(backend)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def write(self, origin: "MemoryKeyValueBackend", key: str, value: str | None) -> None:
        """Write (or remove, when ``value`` is None) and notify the other members."""
        with self._lock:
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value
            others = [m for m in self._members if m is not origin]

        for member in others:
            member._notify_external_change([key])


class MemoryKeyValueBackend(KeyValueBackend):
    """Key-value backend living in a :class:`MemoryCloud`."""

    def __init__(self, cloud: MemoryCloud | None = None):
        super().__init__()
        self.cloud = cloud or MemoryCloud()
        self.cloud.attach(self)
        self.sync_requests = 0

    def get(self, key: str) -> str | None:
        return self.cloud.get(key)

    def set(self, key: str, value: str) -> None:
        self.cloud.write(self, key, value)

    def remove(self, key: str) -> None:
        self.cloud.write(self, key, None)

    def keys(self) -> list[str]:
        return self.cloud.keys()

    def synchronize(self) -> None:
        self.sync_requests += 1

    def close(self) -> None:
        self.cloud.detach(self)
