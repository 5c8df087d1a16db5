"""Domain models for stored records, search hits and ingestion outcomes."""

from __future__ import annotations

from pydantic import BaseModel, Field


# ── Persisted records ──────────────────────────────────────────────────


class DocumentMeta(BaseModel):
    """Per-document metadata, written last during ingestion.

    Attributes
    ----------
    title:
        Human-readable title, used for citations.
    n:
        Number of chunk / vector records that make up the document.
        Indices ``0..n-1`` are guaranteed to exist once this record is
        visible.
    """

    title: str
    n: int = Field(ge=0)


class ChunkRecord(BaseModel):
    """Literal text of one chunk."""

    text: str


class VectorRecord(BaseModel):
    """Embedding of one chunk; serialised under the key ``e`` to keep values small."""

    embedding: list[float] = Field(alias="e")

    model_config = {"populate_by_name": True}


# ── Transient search types ─────────────────────────────────────────────


class SearchHit(BaseModel):
    """A scored ``(document id, chunk index)`` candidate from the scan."""

    score: float
    doc_id: str
    index: int

    def sort_key(self) -> tuple[float, str, int]:
        """Descending score, ties broken by document id then index."""
        return (-self.score, self.doc_id, self.index)


class RetrievedChunk(BaseModel):
    """A search hit resolved to its chunk text and document title."""

    doc_id: str
    index: int
    score: float
    text: str
    title: str | None = None


class RetrievalResult(BaseModel):
    """Output of a retrieval call.

    Attributes
    ----------
    chunks:
        Hydrated hits, best first.
    titles:
        Distinct document titles in order of first appearance among ``chunks``.
    available:
        ``False`` when retrieval could not run (provider or store failure)
        and the result is empty for that reason rather than because
        nothing matched.
    """

    chunks: list[RetrievedChunk] = Field(default_factory=list)
    titles: list[str] = Field(default_factory=list)
    available: bool = True

    @property
    def chunk_texts(self) -> list[str]:
        return [c.text for c in self.chunks]

    @classmethod
    def unavailable(cls) -> RetrievalResult:
        return cls(available=False)


# ── Ingestion I/O ──────────────────────────────────────────────────────


class DocumentInput(BaseModel):
    """One ``{id, title, text}`` item of an ingestion batch."""

    id: str = Field(min_length=1)
    title: str
    text: str


class IngestOutcome(BaseModel):
    """Per-item result of batch ingestion."""

    id: str
    ok: bool
    chunks: int = 0
    error: str | None = None
    detail: str | None = None
