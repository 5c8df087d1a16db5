"""In-process key-value backend for tests and single-process deployments."""

from __future__ import annotations

import threading
from collections.abc import Iterator

from course_rag.retrieval.base import Key, KeyValueBackend


class MemoryBackend(KeyValueBackend):
    """Thread-safe dict-backed store.

    Nothing survives a restart; use :class:`~course_rag.retrieval.redis_store.RedisBackend`
    for durability.  :meth:`scan` iterates over a snapshot taken under the
    lock, so concurrent writers never break an in-flight scan.
    """

    def __init__(self) -> None:
        self._data: dict[Key, str] = {}
        self._lock = threading.Lock()

    def get(self, key: Key) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: Key, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: Key) -> None:
        with self._lock:
            self._data.pop(key, None)

    def scan(self, prefix: Key) -> Iterator[tuple[Key, str]]:
        size = len(prefix)
        with self._lock:
            snapshot = [(k, v) for k, v in self._data.items() if k[:size] == prefix]
        yield from snapshot

    def health_check(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
