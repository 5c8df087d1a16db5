"""Retrieval engine — brute-force cosine search with citation titles.

The retriever embeds the query, scores every visible vector in the store,
keeps the top *k* and resolves them to chunk text and document title.  The
corpus is a single course, so a linear scan is the intended strategy.

Usage::

    from course_rag.retrieval import Retriever, build_store
    from course_rag.ingestion.embedder import get_embedding_provider

    retriever = Retriever(build_store(), get_embedding_provider())
    result = retriever.retrieve("When is the midterm?", k=3)
    print(result.chunk_texts, result.titles)
"""

from __future__ import annotations

import heapq
import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from course_rag.config import settings
from course_rag.errors import InvalidInput, ProviderError, StoreError
from course_rag.retrieval.models import RetrievalResult, RetrievedChunk, SearchHit
from course_rag.retrieval.store import VectorStore

if TYPE_CHECKING:
    from course_rag.ingestion.embedder import EmbeddingProvider

logger = logging.getLogger(__name__)

EPSILON = 1e-8


def cosine_similarity(a: Any, b: Any) -> float:
    """``dot(a, b) / (|a| * |b| + EPSILON)``; a zero vector scores 0."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    return float(np.dot(va, vb) / (np.linalg.norm(va) * np.linalg.norm(vb) + EPSILON))


class Retriever:
    """Top-*k* semantic search over a :class:`VectorStore`.

    Parameters
    ----------
    store:
        The vector store to scan.
    embedder:
        Provider used to embed queries.  Must be the same model that
        produced the stored vectors.
    default_k:
        Number of results when ``k`` is not given.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingProvider,
        *,
        default_k: int = settings.top_k,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.default_k = default_k

    # -- public API -----------------------------------------------------------

    def retrieve(self, query: str, k: int | None = None) -> RetrievalResult:
        """Return the *k* chunks most similar to *query* and their titles.

        Raises
        ------
        InvalidInput
            Empty query or negative *k*.
        ProviderError
            The query could not be embedded.
        StoreError
            The store could not be scanned.
        """
        k = self.default_k if k is None else k
        if k < 0:
            raise InvalidInput(f"k must be >= 0, got {k}")
        if not query or not query.strip():
            raise InvalidInput("query must be non-empty")

        query_vec = np.asarray(self._embedder.embed(query), dtype=np.float64)
        hits = self.rank(query_vec, k)
        result = self._hydrate(hits)
        logger.info(
            "Retrieved %d/%d chunks from %d documents",
            len(result.chunks), len(hits), len(result.titles),
        )
        return result

    def retrieve_with_fallback(self, query: str, k: int | None = None) -> RetrievalResult:
        """Like :meth:`retrieve`, but provider/store failures yield an
        *unavailable* empty result so callers can answer without context.
        """
        try:
            return self.retrieve(query, k)
        except (ProviderError, StoreError) as exc:
            logger.warning("Retrieval unavailable, continuing without context: %s", exc)
            return RetrievalResult.unavailable()

    def rank(self, query_vec: Any, k: int) -> list[SearchHit]:
        """Score every visible vector against *query_vec* and keep the top *k*.

        Ordering is by descending score, ties broken by ``(doc_id, index)``
        so identical data always ranks identically.
        """
        query_vec = np.asarray(query_vec, dtype=np.float64)
        dim = query_vec.shape[0]

        candidates: list[SearchHit] = []
        for doc_id, index, embedding in self._store.scan_vectors():
            vec = np.asarray(embedding, dtype=np.float64)
            if vec.shape[0] != dim:
                logger.warning(
                    "Skipping %s#%d: dimension %d != query dimension %d",
                    doc_id, index, vec.shape[0], dim,
                )
                continue
            candidates.append(
                SearchHit(score=cosine_similarity(query_vec, vec), doc_id=doc_id, index=index)
            )

        return heapq.nsmallest(k, candidates, key=SearchHit.sort_key)

    # -- LangChain compat -----------------------------------------------------

    def as_langchain_retriever(self, k: int | None = None) -> Any:
        """Return a thin LangChain-compatible retriever wrapper.

        LangChain is imported only here so the rest of the retrieval
        package has no LangChain dependency.
        """
        from langchain_core.callbacks import CallbackManagerForRetrieverRun
        from langchain_core.documents import Document
        from langchain_core.retrievers import BaseRetriever

        outer = self

        class _LCRetriever(BaseRetriever):
            """Adapter that satisfies LangChain's retriever protocol."""

            def _get_relevant_documents(
                self, query: str, *, run_manager: CallbackManagerForRetrieverRun
            ) -> list[Document]:
                result = outer.retrieve(query, k)
                return [
                    Document(
                        page_content=c.text,
                        metadata={
                            "title": c.title,
                            "doc_id": c.doc_id,
                            "chunk_index": c.index,
                            "score": c.score,
                        },
                    )
                    for c in result.chunks
                ]

        return _LCRetriever()

    # -- internals ------------------------------------------------------------

    def _hydrate(self, hits: list[SearchHit]) -> RetrievalResult:
        """Resolve hits to text and titles, skipping any that cannot be read."""
        chunks: list[RetrievedChunk] = []
        titles: list[str] = []
        title_cache: dict[str, str | None] = {}

        for hit in hits:
            try:
                chunk = self._store.get_chunk(hit.doc_id, hit.index)
                if chunk is not None and hit.doc_id not in title_cache:
                    meta = self._store.get_meta(hit.doc_id)
                    title_cache[hit.doc_id] = meta.title if meta else None
            except StoreError as exc:
                logger.warning("Skipping hit %s#%d: %s", hit.doc_id, hit.index, exc)
                continue
            if chunk is None:
                logger.warning("Skipping hit %s#%d: chunk missing", hit.doc_id, hit.index)
                continue

            title = title_cache[hit.doc_id]
            chunks.append(
                RetrievedChunk(
                    doc_id=hit.doc_id,
                    index=hit.index,
                    score=hit.score,
                    text=chunk.text,
                    title=title,
                )
            )
            if title and title not in titles:
                titles.append(title)

        return RetrievalResult(chunks=chunks, titles=titles)
