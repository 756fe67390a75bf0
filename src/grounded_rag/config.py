"""Shared configuration loaded from environment / ``.env``."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Chunking
    chunk_size: int = Field(default=600, description="Characters per chunk window")
    chunk_overlap: int = Field(default=100, description="Characters shared by consecutive windows")

    # Embedding
    embedding_backend: str = Field(default="http", description="'http' or 'huggingface'")
    embedding_model: str = "text-embedding-004"
    embedding_base_url: str = Field(
        default="http://localhost:8081/v1/embed",
        description="Endpoint accepting POST {model, text} and answering {vector}",
    )
    embedding_api_key: str = ""
    embedding_dimension: int | None = Field(
        default=None,
        description="Expected vector length; leave unset to accept whatever the model returns",
    )
    embedding_max_retries: int = 3
    embedding_backoff_seconds: float = Field(
        default=2.0,
        description="First retry delay; doubles on every further attempt (2s, 4s, 8s)",
    )
    embedding_pacing_delay: float = Field(
        default=0.1,
        description="Pause before each request of a batch, to stay under rate limits",
    )
    embedding_timeout: float = 30.0

    # Retrieval
    retrieval_top_k: int = 10
    retrieval_score_threshold: float = 0.30

    # Storage
    store_backend: str = Field(default="memory", description="'memory' or 'chroma'")
    store_page_size: int = 1000
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection_prefix: str = "grounded_rag"
    chroma_persist_path: str = Field(
        default="",
        description="When set, use an on-disk PersistentClient instead of the HTTP client",
    )

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-4o-mini", description="LLM model identifier")
    llm_base_url: str = Field(
        default="",
        description="Base URL for an OpenAI-compatible API. Leave empty to use OpenAI cloud.",
    )
    llm_temperature: float = 0.3

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import `settings` wherever needed.
settings = Settings()
