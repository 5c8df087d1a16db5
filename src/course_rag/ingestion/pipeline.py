"""Ingestion pipeline — chunk, embed and persist documents.

Write order for one document::

    chunk[i], vec[i]   for i in 0..n-1   (index order)
    meta {title, n}                      (last, gates visibility)
    prune indices >= n                   (already invisible)

If the provider fails for any chunk the document is aborted before
``meta`` is written.  Partially written chunk / vector records may remain
but are never visible; re-running :meth:`IngestionPipeline.ingest`
overwrites them.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

from course_rag.config import settings
from course_rag.errors import InvalidInput, ProviderError, RagError, StoreError
from course_rag.ingestion.chunker import chunk_text
from course_rag.ingestion.embedder import EmbeddingProvider
from course_rag.retrieval.models import (
    ChunkRecord,
    DocumentInput,
    DocumentMeta,
    IngestOutcome,
    VectorRecord,
)
from course_rag.retrieval.store import VectorStore

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Adds or replaces documents in a :class:`VectorStore`.

    Parameters
    ----------
    store:
        Destination store.
    embedder:
        Provider used for every chunk.
    max_len / overlap:
        Chunker window size and overlap, in characters.  Keep ``max_len``
        small enough that one chunk's text fits the store's value limit.
    max_workers:
        Concurrent embedding calls per document.  ``1`` embeds sequentially.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingProvider,
        *,
        max_len: int = settings.chunk_max_len,
        overlap: int = settings.chunk_overlap,
        max_workers: int = settings.embedding_concurrency,
    ) -> None:
        if max_workers < 1:
            raise InvalidInput(f"max_workers must be >= 1, got {max_workers}")
        self._store = store
        self._embedder = embedder
        self.max_len = max_len
        self.overlap = overlap
        self.max_workers = max_workers

    def ingest(self, doc_id: str, title: str, text: str) -> DocumentMeta:
        """Chunk, embed and store one document, replacing any previous version.

        Returns
        -------
        DocumentMeta
            The metadata record that was written.

        Raises
        ------
        InvalidInput
            Empty *doc_id* or invalid chunker parameters.
        ProviderError
            An embedding call failed; no metadata was written.
        StoreError
            A chunk, vector or metadata write failed.  A failed prune
            after the metadata write is only logged.
        """
        if not doc_id or not doc_id.strip():
            raise InvalidInput("document id must be non-empty")

        t0 = time.monotonic()
        parts = chunk_text(text, self.max_len, self.overlap)
        self._write_chunks(doc_id, parts)

        meta = DocumentMeta(title=title, n=len(parts))
        self._store.put_meta(doc_id, meta)
        try:
            self._store.prune_document(doc_id, meta.n)
        except StoreError as exc:
            # Already published; the scan hides indices >= n.
            logger.warning("Could not prune stale records of %r: %s", doc_id, exc)

        logger.info(
            "Ingested %r (%r): %d chunks in %.1fs",
            doc_id, title, meta.n, time.monotonic() - t0,
        )
        return meta

    def ingest_batch(self, items: Iterable[DocumentInput]) -> list[IngestOutcome]:
        """Ingest *items* one at a time, in order.

        A failing item is reported in its outcome and does not stop the
        batch.
        """
        outcomes: list[IngestOutcome] = []
        for item in items:
            try:
                meta = self.ingest(item.id, item.title, item.text)
            except RagError as exc:
                logger.warning("Ingestion of %r failed: %s: %s", item.id, exc.kind, exc)
                outcomes.append(
                    IngestOutcome(
                        id=item.id,
                        ok=False,
                        error=exc.kind,
                        detail=exc.detail or exc.message,
                    )
                )
                continue
            outcomes.append(IngestOutcome(id=item.id, ok=True, chunks=meta.n))

        failed = sum(1 for o in outcomes if not o.ok)
        logger.info("Batch ingestion: %d ok, %d failed", len(outcomes) - failed, failed)
        return outcomes

    # -- internals ------------------------------------------------------------

    def _write_chunks(self, doc_id: str, parts: list[str]) -> None:
        """Embed *parts* concurrently and write chunk + vector per index, in order."""
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(self._embedder.embed, part) for part in parts]
            try:
                dim: int | None = None
                for index, (part, future) in enumerate(zip(parts, futures)):
                    embedding = future.result()
                    if dim is None:
                        dim = len(embedding)
                    elif len(embedding) != dim:
                        raise ProviderError(
                            f"Inconsistent embedding dimension for {doc_id!r}",
                            detail=f"chunk {index} has {len(embedding)}, expected {dim}",
                        )
                    self._store.put_chunk(doc_id, index, ChunkRecord(text=part))
                    self._store.put_vector(doc_id, index, VectorRecord(embedding=embedding))
            except Exception:
                for future in futures:
                    future.cancel()
                raise
