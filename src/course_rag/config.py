"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding provider
    openai_api_key: str = Field(default="", description="OpenAI API key used for embeddings")
    openai_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible embeddings API. "
            "Leave empty to use OpenAI cloud."
        ),
    )
    embedding_backend: str = Field(default="openai", description="'openai' or 'huggingface'")
    embedding_model: str = "text-embedding-3-small"
    embedding_timeout: float = 30.0
    embedding_max_attempts: int = 3
    embedding_backoff_base: float = 1.0
    embedding_backoff_max: float = 30.0
    embedding_concurrency: int = 4

    # Chunking
    chunk_max_len: int = 1700
    chunk_overlap: int = 200

    # Retrieval
    top_k: int = 3

    # Vector store
    store_backend: str = Field(default="memory", description="'memory' or 'redis'")
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "lec"
    # Deno KV and similar stores cap a single value at 64 KiB.
    max_value_bytes: int = 65536

    # Ingestion auth
    admin_token: str = Field(
        default="",
        description="Shared secret for ingestion. Empty disables ingestion entirely.",
    )

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import `settings` wherever defaults are needed.
settings = Settings()
