"""Embedding backends — the raw calls behind :class:`EmbeddingClient`.

A backend only knows how to turn one string into one vector. Retry,
backoff, and pacing live in :mod:`grounded_rag.ingestion.embedder`, so a
backend must raise on failure and let the client classify the error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from grounded_rag.config import settings
from grounded_rag.errors import ConfigurationError, EmbeddingServiceError

logger = logging.getLogger(__name__)


class EmbeddingBackend(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class HttpEmbeddingBackend:
    """Client for an HTTP embedding service.

    The service receives ``POST {"model": ..., "text": ...}`` and answers
    ``{"vector": [...]}``. Any non-2xx response raises
    :class:`EmbeddingServiceError` carrying the status code.

    Parameters
    ----------
    base_url:
        Full URL of the embed endpoint.
    model:
        Embedding model identifier forwarded with every request.
    api_key:
        Sent as a bearer token when non-empty.
    timeout:
        Per-request timeout in seconds.
    client:
        Pre-built ``httpx.AsyncClient`` (tests pass one with a mock transport).
    """

    def __init__(
        self,
        base_url: str = settings.embedding_base_url,
        *,
        model: str = settings.embedding_model,
        api_key: str = settings.embedding_api_key,
        timeout: float = settings.embedding_timeout,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url
        self.model = model
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def embed(self, text: str) -> list[float]:
        response = await self._client.post(self.base_url, json={"model": self.model, "text": text})
        if response.is_error:
            raise EmbeddingServiceError(
                f"Embedding service answered {response.status_code}: {response.text[:200]}",
                status=_error_status(response),
            )

        payload: dict[str, Any] = response.json()
        vector = payload.get("vector")
        if vector is None:
            vector = payload.get("embedding")
        if isinstance(vector, dict):
            vector = vector.get("values")
        return list(vector or [])

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_status(response: httpx.Response) -> int | str:
    """Prefer a symbolic ``error.status`` from the body, else the HTTP code."""
    try:
        body = response.json()
    except ValueError:
        return response.status_code
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and isinstance(error.get("status"), str):
        return error["status"]
    return response.status_code


class HuggingFaceEmbeddingBackend:
    """Local sentence-transformer backend.

    Inference is CPU/GPU bound, so it runs in a worker thread to keep the
    event loop free. Local models never fail transiently.
    """

    def __init__(self, model_name: str = settings.embedding_model) -> None:
        from langchain_huggingface import HuggingFaceEmbeddings

        self._model = HuggingFaceEmbeddings(model_name=model_name)

    async def embed(self, text: str) -> list[float]:
        return await asyncio.to_thread(self._model.embed_query, text)


def get_embedding_backend(name: str = settings.embedding_backend) -> EmbeddingBackend:
    """Return the configured embedding backend."""
    if name == "http":
        logger.info("Using HTTP embedding service: %s", settings.embedding_base_url)
        return HttpEmbeddingBackend()
    if name == "huggingface":
        logger.info("Using local HuggingFace embeddings: %s", settings.embedding_model)
        return HuggingFaceEmbeddingBackend()
    raise ConfigurationError(
        f"Unsupported embedding_backend={name!r}. Choose from: http, huggingface."
    )
