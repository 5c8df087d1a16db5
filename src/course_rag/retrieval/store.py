"""Typed record layer over a :class:`KeyValueBackend`.

Key layout (``prefix`` defaults to ``"lec"``)::

    (prefix, doc_id, "meta")          -> DocumentMeta   {"title", "n"}
    (prefix, doc_id, "chunk", index)  -> ChunkRecord    {"text"}
    (prefix, doc_id, "vec", index)    -> VectorRecord   {"e"}

Visibility rule: a vector is only yielded by :meth:`VectorStore.scan_vectors`
when its document's ``meta`` record exists and ``index < meta.n``.  Ingestion
writes ``meta`` last, so partially ingested documents and stale trailing
records of a shrunk document are never observed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from course_rag.config import Settings, settings
from course_rag.errors import InvalidInput, NotFound, StoreError
from course_rag.retrieval.base import Key, KeyValueBackend
from course_rag.retrieval.models import ChunkRecord, DocumentMeta, VectorRecord

logger = logging.getLogger(__name__)

META = "meta"
CHUNK = "chunk"
VEC = "vec"

_R = TypeVar("_R", bound=BaseModel)


class VectorStore:
    """Persistent mapping of documents, chunks and embeddings.

    Parameters
    ----------
    backend:
        Key-value backend doing the actual persistence.
    prefix:
        Root key segment; lets several corpora share one backend.
    max_value_bytes:
        Upper bound for one serialised record.  Writes above it raise
        :class:`StoreError` instead of being truncated by the backend.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        *,
        prefix: str = settings.key_prefix,
        max_value_bytes: int = settings.max_value_bytes,
    ) -> None:
        self._backend = backend
        self.prefix = prefix
        self.max_value_bytes = max_value_bytes

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    # -- writes ---------------------------------------------------------------

    def put_meta(self, doc_id: str, meta: DocumentMeta) -> None:
        self._put(self._key(doc_id, META), meta)

    def put_chunk(self, doc_id: str, index: int, chunk: ChunkRecord) -> None:
        self._put(self._key(doc_id, CHUNK, index), chunk)

    def put_vector(self, doc_id: str, index: int, vector: VectorRecord) -> None:
        self._put(self._key(doc_id, VEC, index), vector)

    def prune_document(self, doc_id: str, n: int) -> int:
        """Delete chunk and vector records of *doc_id* with ``index >= n``.

        Returns the number of deleted records.
        """
        stale = [
            key
            for key, _ in self._backend.scan((self.prefix, doc_id))
            if len(key) == 4 and key[2] in (CHUNK, VEC) and isinstance(key[3], int) and key[3] >= n
        ]
        for key in stale:
            self._backend.delete(key)
        if stale:
            logger.info("Pruned %d stale records of %r (kept indices < %d)", len(stale), doc_id, n)
        return len(stale)

    # -- reads ----------------------------------------------------------------

    def get_meta(self, doc_id: str) -> DocumentMeta | None:
        return self._get(self._key(doc_id, META), DocumentMeta)

    def get_chunk(self, doc_id: str, index: int) -> ChunkRecord | None:
        return self._get(self._key(doc_id, CHUNK, index), ChunkRecord)

    def get_vector(self, doc_id: str, index: int) -> VectorRecord | None:
        return self._get(self._key(doc_id, VEC, index), VectorRecord)

    def require_meta(self, doc_id: str) -> DocumentMeta:
        """Like :meth:`get_meta` but raise :class:`NotFound` when absent."""
        meta = self.get_meta(doc_id)
        if meta is None:
            raise NotFound(f"Document {doc_id!r} not found")
        return meta

    def scan_vectors(self) -> Iterator[tuple[str, int, list[float]]]:
        """Lazily yield ``(doc_id, index, embedding)`` for every visible vector.

        This is a full scan: O(number of records).  An indexed store can
        replace it without changing the retriever, which only consumes
        this iterator.
        """
        metas: dict[str, DocumentMeta | None] = {}
        for key, raw in self._backend.scan((self.prefix,)):
            if len(key) != 4 or key[2] != VEC:
                continue
            doc_id, index = key[1], key[3]
            if not isinstance(doc_id, str) or not isinstance(index, int):
                continue

            if doc_id not in metas:
                try:
                    metas[doc_id] = self.get_meta(doc_id)
                except StoreError as exc:
                    logger.warning("Hiding %r, metadata unreadable: %s", doc_id, exc)
                    metas[doc_id] = None
            meta = metas[doc_id]
            if meta is None or index >= meta.n:
                continue

            try:
                record = VectorRecord.model_validate_json(raw)
            except ValidationError:
                logger.warning("Skipping corrupt vector record %r", key)
                continue
            yield doc_id, index, record.embedding

    # -- internals ------------------------------------------------------------

    def _key(self, doc_id: str, kind: str, index: int | None = None) -> Key:
        if not doc_id:
            raise InvalidInput("document id must be non-empty")
        if index is None:
            return (self.prefix, doc_id, kind)
        return (self.prefix, doc_id, kind, index)

    def _put(self, key: Key, record: BaseModel) -> None:
        payload = record.model_dump_json(by_alias=True)
        size = len(payload.encode("utf-8"))
        if size > self.max_value_bytes:
            raise StoreError(
                f"Value for {key!r} is {size} bytes, limit is {self.max_value_bytes}",
                detail="reduce chunk_max_len or the embedding dimension",
            )
        self._backend.set(key, payload)

    def _get(self, key: Key, model: type[_R]) -> _R | None:
        raw = self._backend.get(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as exc:
            raise StoreError(f"Corrupt record at {key!r}", detail=str(exc)) from exc


def build_store(cfg: Settings = settings) -> VectorStore:
    """Build a :class:`VectorStore` on the configured backend."""
    if cfg.store_backend == "memory":
        from course_rag.retrieval.memory_store import MemoryBackend

        backend: KeyValueBackend = MemoryBackend()
    elif cfg.store_backend == "redis":
        from course_rag.retrieval.redis_store import RedisBackend

        backend = RedisBackend(cfg.redis_url)
    else:
        raise InvalidInput(f"Unsupported store_backend: {cfg.store_backend!r}")

    return VectorStore(backend, prefix=cfg.key_prefix, max_value_bytes=cfg.max_value_bytes)
