"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence

import pytest

from course_rag.errors import ProviderError
from course_rag.ingestion.embedder import EmbeddingProvider
from course_rag.ingestion.pipeline import IngestionPipeline
from course_rag.retrieval.memory_store import MemoryBackend
from course_rag.retrieval.retriever import Retriever
from course_rag.retrieval.store import VectorStore


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class FakeEmbedder(EmbeddingProvider):
    """Deterministic embedder for tests.

    Texts found in *vectors* get that vector; anything else gets a 26-dim
    letter-count vector.  Texts in *fail_on* raise :class:`ProviderError`.
    """

    def __init__(
        self,
        vectors: Mapping[str, Sequence[float]] | None = None,
        *,
        fail_on: Iterable[str] = (),
        transient: bool = False,
    ) -> None:
        self.vectors = dict(vectors or {})
        self.fail_on = set(fail_on)
        self.transient = transient
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(text)
        if text in self.fail_on:
            raise ProviderError(f"Embedding error for {text[:16]!r}", transient=self.transient)
        if text in self.vectors:
            return [float(x) for x in self.vectors[text]]
        vec = [0.0] * 26
        for ch in text.lower():
            if "a" <= ch <= "z":
                vec[ord(ch) - ord("a")] += 1.0
        return vec


@pytest.fixture()
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture()
def store(backend: MemoryBackend) -> VectorStore:
    return VectorStore(backend, prefix="lec", max_value_bytes=65536)


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def pipeline(store: VectorStore, embedder: FakeEmbedder) -> IngestionPipeline:
    return IngestionPipeline(store, embedder, max_len=1700, overlap=200, max_workers=1)


@pytest.fixture()
def retriever(store: VectorStore, embedder: FakeEmbedder) -> Retriever:
    return Retriever(store, embedder, default_k=3)


@pytest.fixture()
def make_embedder() -> type[FakeEmbedder]:
    """Factory for embedders with custom vectors or failures."""
    return FakeEmbedder
