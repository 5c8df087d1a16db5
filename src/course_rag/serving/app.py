"""FastAPI application exposing ingestion and retrieval as a REST API."""

from __future__ import annotations

import hmac
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from course_rag.config import settings
from course_rag.errors import (
    InvalidInput,
    NotFound,
    ProviderError,
    RagError,
    StoreError,
    Unauthorized,
)
from course_rag.ingestion.embedder import EmbeddingProvider, get_embedding_provider
from course_rag.ingestion.pipeline import IngestionPipeline
from course_rag.retrieval.models import DocumentInput, DocumentMeta, IngestOutcome, RetrievedChunk
from course_rag.retrieval.retriever import Retriever
from course_rag.retrieval.store import VectorStore, build_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=settings.log_level)
    yield


app = FastAPI(
    title="Course RAG API",
    version="0.1.0",
    description="Ingestion and retrieval of private course material.",
    lifespan=lifespan,
)

_STATUS_BY_ERROR: list[tuple[type[RagError], int]] = [
    (InvalidInput, 400),
    (Unauthorized, 401),
    (NotFound, 404),
    (ProviderError, 502),
    (StoreError, 503),
]


# ── Request / Response schemas ────────────────────────────────────────
class IngestRequest(BaseModel):
    """Batch of documents to add or replace."""

    items: list[DocumentInput] = []


class IngestResponse(BaseModel):
    """One outcome per submitted item, in submission order."""

    results: list[IngestOutcome]


class RetrieveRequest(BaseModel):
    """Query from the answer-generation surface."""

    query: str = Field(min_length=1)
    k: int | None = Field(default=None, ge=0)
    strict: bool = Field(
        default=False,
        description="Fail with 502/503 instead of returning available=false.",
    )


class RetrieveResponse(BaseModel):
    """Ranked chunks plus distinct titles for citation."""

    chunks: list[RetrievedChunk]
    titles: list[str]
    available: bool


# ── Dependencies ──────────────────────────────────────────────────────
@lru_cache
def get_store() -> VectorStore:
    return build_store(settings)


@lru_cache
def get_embedder() -> EmbeddingProvider:
    return get_embedding_provider(settings)


def get_admin_token() -> str:
    return settings.admin_token


def get_pipeline(
    store: VectorStore = Depends(get_store),
    embedder: EmbeddingProvider = Depends(get_embedder),
) -> IngestionPipeline:
    return IngestionPipeline(store, embedder)


def get_retriever(
    store: VectorStore = Depends(get_store),
    embedder: EmbeddingProvider = Depends(get_embedder),
) -> Retriever:
    return Retriever(store, embedder)


def check_admin_token(authorization: str | None, secret: str) -> None:
    """Raise :class:`Unauthorized` unless *authorization* is ``Bearer <secret>``.

    An empty *secret* rejects everything rather than accepting an empty token.
    """
    if not secret:
        raise Unauthorized(detail="ingestion is disabled: ADMIN_TOKEN is not configured")
    expected = f"Bearer {secret}"
    if authorization is None or not hmac.compare_digest(
        authorization.encode("utf-8"), expected.encode("utf-8")
    ):
        raise Unauthorized()


def require_admin(
    authorization: str | None = Header(default=None),
    secret: str = Depends(get_admin_token),
) -> None:
    check_admin_token(authorization, secret)


# ── Error mapping ─────────────────────────────────────────────────────
@app.exception_handler(RagError)
async def rag_error_handler(request: Request, exc: RagError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content=exc.to_dict())


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
def health(store: VectorStore = Depends(get_store)) -> dict[str, str]:
    """Liveness check; reports ``degraded`` when the store is unreachable."""
    return {"status": "ok" if store.backend.health_check() else "degraded"}


@app.post("/ingest", response_model=IngestResponse, dependencies=[Depends(require_admin)])
def ingest(
    request: IngestRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestResponse:
    """Ingest a batch of documents (admin only)."""
    return IngestResponse(results=pipeline.ingest_batch(request.items))


@app.post("/retrieve", response_model=RetrieveResponse)
def retrieve(
    request: RetrieveRequest,
    retriever: Retriever = Depends(get_retriever),
) -> RetrieveResponse:
    """Return the most relevant chunks for a query."""
    if request.strict:
        result = retriever.retrieve(request.query, request.k)
    else:
        result = retriever.retrieve_with_fallback(request.query, request.k)
    return RetrieveResponse(chunks=result.chunks, titles=result.titles, available=result.available)


@app.get("/documents/{doc_id}", response_model=DocumentMeta)
def get_document(doc_id: str, store: VectorStore = Depends(get_store)) -> DocumentMeta:
    """Return a document's metadata, or 404 if it is not (yet) visible."""
    return store.require_meta(doc_id)
