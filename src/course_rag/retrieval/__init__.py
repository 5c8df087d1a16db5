"""
Retrieval — vector storage and nearest-neighbour search.

The vector store sits on a pluggable key-value backend so that the
retriever never needs to know which database persists the records.

Public surface
--------------
- :class:`Retriever` — embeds a query and returns ranked chunks with titles.
- :class:`VectorStore` — typed meta / chunk / vec records over a backend.
- :class:`KeyValueBackend` — abstract backend (subclass for other stores).
- :class:`MemoryBackend` — in-process backend.
- :class:`RedisBackend` — durable Redis backend.
- :class:`RetrievalResult`, :class:`DocumentMeta`, … — data models.
"""

from course_rag.retrieval.base import KeyValueBackend
from course_rag.retrieval.memory_store import MemoryBackend
from course_rag.retrieval.models import (
    ChunkRecord,
    DocumentInput,
    DocumentMeta,
    IngestOutcome,
    RetrievalResult,
    RetrievedChunk,
    SearchHit,
    VectorRecord,
)
from course_rag.retrieval.retriever import Retriever, cosine_similarity
from course_rag.retrieval.store import VectorStore, build_store

__all__ = [
    "ChunkRecord",
    "DocumentInput",
    "DocumentMeta",
    "IngestOutcome",
    "KeyValueBackend",
    "MemoryBackend",
    "RedisBackend",
    "RetrievalResult",
    "RetrievedChunk",
    "Retriever",
    "SearchHit",
    "VectorRecord",
    "VectorStore",
    "build_store",
    "cosine_similarity",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import RedisBackend to avoid pulling in redis at import time."""
    if name == "RedisBackend":
        from course_rag.retrieval.redis_store import RedisBackend

        return RedisBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
