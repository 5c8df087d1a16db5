"""Redis implementation of the key-value backend abstraction."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from urllib.parse import quote, unquote

import redis

from course_rag.config import settings
from course_rag.errors import StoreError
from course_rag.retrieval.base import Key, KeyValueBackend

logger = logging.getLogger(__name__)

_SEP = "/"


def _encode_key(key: Key) -> str:
    """Flatten a tuple key into a Redis key.

    Each segment is tagged with its type (``i`` for int, ``s`` for str) and
    string segments are percent-encoded, so the result never contains the
    separator or glob metacharacters and decodes back to the same tuple.
    """
    parts: list[str] = []
    for part in key:
        if isinstance(part, int):
            parts.append(f"i{part}")
        else:
            parts.append("s" + quote(part, safe=""))
    return _SEP.join(parts)


def _decode_key(raw: str) -> Key:
    parts: list[str | int] = []
    for part in raw.split(_SEP):
        tag, body = part[:1], part[1:]
        if tag == "i":
            parts.append(int(body))
        elif tag == "s":
            parts.append(unquote(body))
        else:
            raise ValueError(f"Unrecognised key segment: {part!r}")
    return tuple(parts)


class RedisBackend(KeyValueBackend):
    """Redis-backed durable store.

    Parameters
    ----------
    url:
        Redis connection URL, e.g. ``redis://localhost:6379/0``.
    client:
        Pre-built client; overrides *url* (handy for tests and pooling).
    scan_count:
        ``COUNT`` hint passed to ``SCAN``.
    """

    def __init__(
        self,
        url: str = settings.redis_url,
        *,
        client: redis.Redis | None = None,
        scan_count: int = 500,
    ) -> None:
        self._client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_keepalive=True,
            health_check_interval=30,
        )
        self._scan_count = scan_count

    def get(self, key: Key) -> str | None:
        try:
            return self._client.get(_encode_key(key))
        except redis.RedisError as exc:
            raise StoreError(f"Redis get failed for {key!r}", detail=str(exc)) from exc

    def set(self, key: Key, value: str) -> None:
        try:
            self._client.set(_encode_key(key), value)
        except redis.RedisError as exc:
            raise StoreError(f"Redis set failed for {key!r}", detail=str(exc)) from exc

    def delete(self, key: Key) -> None:
        try:
            self._client.delete(_encode_key(key))
        except redis.RedisError as exc:
            raise StoreError(f"Redis delete failed for {key!r}", detail=str(exc)) from exc

    def scan(self, prefix: Key) -> Iterator[tuple[Key, str]]:
        """Walk the keyspace with ``SCAN`` and fetch each page with one ``MGET``."""
        pattern = _encode_key(prefix) + _SEP + "*" if prefix else "*"
        cursor = 0
        try:
            while True:
                cursor, raw_keys = self._client.scan(
                    cursor=cursor, match=pattern, count=self._scan_count
                )
                values = self._client.mget(raw_keys) if raw_keys else []
                for raw_key, value in zip(raw_keys, values):
                    if value is None:
                        # Deleted between SCAN and MGET.
                        continue
                    try:
                        key = _decode_key(raw_key)
                    except ValueError:
                        logger.warning("Skipping foreign Redis key %r", raw_key)
                        continue
                    yield key, value
                if cursor == 0:
                    break
        except redis.RedisError as exc:
            raise StoreError(f"Redis scan failed for prefix {prefix!r}", detail=str(exc)) from exc

    def health_check(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            logger.warning("Redis health-check failed", exc_info=True)
            return False
