"""Abstract base class for key-value backends.

The vector store persists three record kinds (``meta``, ``chunk``, ``vec``)
under tuple keys such as ``("lec", "<doc id>", "vec", 3)``.  A backend only
has to provide per-key get / set / delete and an order-agnostic prefix
scan; the rest of the retrieval stack is backend-agnostic.

Adding a new backend (SQLite, DynamoDB, Deno KV …) only requires
subclassing :class:`KeyValueBackend` and implementing the abstract methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator

Key = tuple[str | int, ...]


class KeyValueBackend(ABC):
    """Backend-agnostic durable key-value interface.

    Values are opaque strings (the vector store stores JSON).  Writes are
    last-write-wins per exact key and no ordering is promised across keys.
    All methods raise :class:`~course_rag.errors.StoreError` on backend
    failure.
    """

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def get(self, key: Key) -> str | None:
        """Return the value stored under *key*, or ``None`` when absent."""
        ...

    @abstractmethod
    def set(self, key: Key, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""
        ...

    @abstractmethod
    def delete(self, key: Key) -> None:
        """Remove *key*.  Deleting an absent key is a no-op."""
        ...

    @abstractmethod
    def scan(self, prefix: Key) -> Iterator[tuple[Key, str]]:
        """Lazily yield every ``(key, value)`` whose key starts with *prefix*.

        Order is unspecified.  Entries written or deleted while the scan is
        running may or may not be observed.
        """
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...
