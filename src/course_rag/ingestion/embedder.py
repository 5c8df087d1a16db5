"""Embedding providers — text → fixed-length float vector.

Every provider raises :class:`~course_rag.errors.ProviderError` on failure,
never the underlying SDK exception, so ingestion and retrieval only have to
handle one error type.  :class:`RetryingEmbeddingProvider` wraps any provider
with bounded exponential backoff for transient failures.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import openai
from langchain_openai import OpenAIEmbeddings

from course_rag.config import Settings, settings
from course_rag.errors import InvalidInput, ProviderError

logger = logging.getLogger(__name__)

_TRANSIENT_OPENAI_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,  # includes APITimeoutError
    openai.InternalServerError,
)


def _as_vector(raw: Any) -> list[float]:
    """Validate a provider response and coerce it to ``list[float]``."""
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ProviderError(
            "Malformed embedding response",
            detail=f"expected non-empty list, got {type(raw).__name__}",
        )
    try:
        return [float(x) for x in raw]
    except (TypeError, ValueError) as exc:
        raise ProviderError("Malformed embedding response", detail=str(exc)) from exc


class EmbeddingProvider(ABC):
    """Converts text into a vector.

    The same model (and therefore dimension) must be used for ingestion
    and for queries, otherwise similarity scores are meaningless.
    """

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Return the embedding of *text* or raise :class:`ProviderError`."""
        ...


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI (or OpenAI-compatible) embeddings via ``langchain_openai``.

    The SDK's own retries are disabled; retrying is the job of
    :class:`RetryingEmbeddingProvider`.
    """

    def __init__(
        self,
        model: str = settings.embedding_model,
        *,
        api_key: str = settings.openai_api_key,
        base_url: str = settings.openai_base_url,
        timeout: float = settings.embedding_timeout,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._client: OpenAIEmbeddings | None = None

    def _get_client(self) -> OpenAIEmbeddings:
        if not self._api_key:
            raise ProviderError("Missing OpenAI API key")
        if self._client is None:
            kwargs: dict = {
                "model": self.model,
                "api_key": self._api_key,
                "timeout": self._timeout,
                "max_retries": 0,
            }
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = OpenAIEmbeddings(**kwargs)
        return self._client

    def embed(self, text: str) -> list[float]:
        client = self._get_client()
        try:
            raw = client.embed_query(text)
        except _TRANSIENT_OPENAI_ERRORS as exc:
            raise ProviderError(f"Embedding error: {exc}", transient=True) from exc
        except openai.APIError as exc:
            raise ProviderError(f"Embedding error: {exc}") from exc
        except Exception as exc:
            # tiktoken downloads, langchain validation and the like.
            raise ProviderError(f"Embedding error: {exc}") from exc
        return _as_vector(raw)


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    """Local sentence-transformer embeddings.

    Requires the ``huggingface`` extra; the import is deferred so the
    OpenAI-only install never pulls in torch.
    """

    def __init__(self, model: str = "sentence-transformers/all-MiniLM-L6-v2") -> None:
        from langchain_huggingface import HuggingFaceEmbeddings

        self.model = model
        self._client = HuggingFaceEmbeddings(model_name=model)

    def embed(self, text: str) -> list[float]:
        try:
            raw = self._client.embed_query(text)
        except Exception as exc:
            raise ProviderError(f"Embedding error: {exc}") from exc
        return _as_vector(raw)


class RetryingEmbeddingProvider(EmbeddingProvider):
    """Retry transient :class:`ProviderError` failures with exponential backoff.

    Parameters
    ----------
    inner:
        Provider to delegate to.
    max_attempts:
        Total attempts including the first call.
    backoff_base:
        Wait before the second attempt; doubles on every further attempt.
    backoff_max:
        Upper bound for a single wait.
    """

    def __init__(
        self,
        inner: EmbeddingProvider,
        *,
        max_attempts: int = settings.embedding_max_attempts,
        backoff_base: float = settings.embedding_backoff_base,
        backoff_max: float = settings.embedding_backoff_max,
    ) -> None:
        if max_attempts < 1:
            raise InvalidInput(f"max_attempts must be >= 1, got {max_attempts}")
        self._inner = inner
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

    def embed(self, text: str) -> list[float]:
        last_exc: ProviderError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._inner.embed(text)
            except ProviderError as exc:
                if not exc.transient:
                    raise
                last_exc = exc
                if attempt < self.max_attempts:
                    wait = min(self.backoff_base * 2 ** (attempt - 1), self.backoff_max)
                    logger.warning(
                        "Embedding retry %d/%d (wait %.1fs): %s",
                        attempt, self.max_attempts, wait, exc,
                    )
                    time.sleep(wait)

        raise ProviderError(
            f"Embedding failed after {self.max_attempts} attempts",
            detail=str(last_exc),
            transient=True,
        ) from last_exc


def get_embedding_provider(cfg: Settings = settings) -> EmbeddingProvider:
    """Build the configured provider, wrapped with retries."""
    if cfg.embedding_backend == "openai":
        base: EmbeddingProvider = OpenAIEmbeddingProvider(
            cfg.embedding_model,
            api_key=cfg.openai_api_key,
            base_url=cfg.openai_base_url,
            timeout=cfg.embedding_timeout,
        )
    elif cfg.embedding_backend == "huggingface":
        base = HuggingFaceEmbeddingProvider(cfg.embedding_model)
    else:
        raise InvalidInput(f"Unsupported embedding_backend: {cfg.embedding_backend!r}")

    return RetryingEmbeddingProvider(
        base,
        max_attempts=cfg.embedding_max_attempts,
        backoff_base=cfg.embedding_backoff_base,
        backoff_max=cfg.embedding_backoff_max,
    )
