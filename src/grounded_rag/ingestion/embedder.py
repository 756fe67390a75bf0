"""Embedding client — retries, backoff, and paced batch embedding.

The client wraps any :class:`~grounded_rag.ingestion.backends.EmbeddingBackend`
and adds the failure policy the rest of the engine relies on:

* blank input is rejected before any network call;
* transient failures (5xx / ``INTERNAL``) are retried with exponential
  backoff, suspending the coroutine rather than blocking a thread;
* terminal failures (validation, auth) surface at once;
* batches run strictly one request at a time with a pacing delay, and a
  chunk that cannot be embedded is dropped instead of failing the batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING

import httpx

from grounded_rag.config import settings
from grounded_rag.errors import EmbeddingError, EmbeddingServiceError, EmptyInputError
from grounded_rag.models import BatchEmbedding, Chunk

if TYPE_CHECKING:
    from grounded_rag.ingestion.backends import EmbeddingBackend

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` when *exc* is a server-side failure worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    if isinstance(exc, httpx.TransportError):
        return True

    status = exc.status if isinstance(exc, EmbeddingServiceError) else None
    if status is None:
        status = getattr(exc, "status", None) or getattr(exc, "code", None)
    if isinstance(status, int) and status >= 500:
        return True
    if isinstance(status, str) and status.upper() == "INTERNAL":
        return True
    return "Internal error" in str(exc)


class EmbeddingClient:
    """Turns text into fixed-dimension vectors via an embedding backend.

    Parameters
    ----------
    backend:
        Object exposing ``async embed(text) -> list[float]``. When *None*,
        the backend named by ``settings.embedding_backend`` is built.
    max_retries:
        Retries allowed after the first transient failure.
    backoff_seconds:
        Delay before the first retry; doubled on each further retry.
    pacing_delay:
        Pause before every request of :meth:`embed_batch`.
    dimension:
        Expected vector length. ``None`` accepts any non-empty vector.
    sleep:
        Coroutine used to suspend between attempts (injectable for tests).
    """

    def __init__(
        self,
        backend: EmbeddingBackend | None = None,
        *,
        max_retries: int = settings.embedding_max_retries,
        backoff_seconds: float = settings.embedding_backoff_seconds,
        pacing_delay: float = settings.embedding_pacing_delay,
        dimension: int | None = settings.embedding_dimension,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if backend is None:
            from grounded_rag.ingestion.backends import get_embedding_backend

            backend = get_embedding_backend()
        self._backend = backend
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.pacing_delay = pacing_delay
        self.dimension = dimension
        self._sleep = sleep

    # -- public API -----------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embed *text*, retrying transient backend failures.

        Raises
        ------
        EmptyInputError
            *text* is empty or whitespace only.
        EmbeddingError
            The backend failed terminally, or kept failing transiently
            after ``max_retries`` retries.
        """
        if not text or not text.strip():
            raise EmptyInputError("Cannot embed empty text")

        retries = 0
        while True:
            try:
                vector = await self._backend.embed(text)
                break
            except Exception as exc:
                if not is_transient(exc):
                    logger.error("Embedding rejected (terminal): %s", exc)
                    raise EmbeddingError(
                        f"Embedding request rejected: {exc}", transient=False, attempts=retries + 1
                    ) from exc
                if retries >= self.max_retries:
                    logger.error("Embedding failed after %d retries: %s", retries, exc)
                    raise EmbeddingError(
                        f"Embedding service kept failing after {retries} retries: {exc}",
                        transient=True,
                        attempts=retries + 1,
                    ) from exc
                retries += 1
                delay = self.backoff_seconds * 2 ** (retries - 1)
                logger.warning(
                    "Transient embedding failure (retry %d/%d in %.1fs): %s",
                    retries, self.max_retries, delay, exc,
                )
                await self._sleep(delay)

        return self._validate(vector, attempts=retries + 1)

    async def embed_batch(self, chunks: Sequence[Chunk]) -> BatchEmbedding:
        """Embed *chunks* one after another, dropping the ones that fail.

        Returns
        -------
        BatchEmbedding
            Copies of the chunks that were embedded, in input order, plus
            the ids of the dropped ones.
        """
        result = BatchEmbedding()
        for chunk in chunks:
            if self.pacing_delay:
                await self._sleep(self.pacing_delay)
            try:
                vector = await self.embed(chunk.text)
            except (EmbeddingError, EmptyInputError) as exc:
                logger.warning("Dropping chunk %s: %s", chunk.id, exc)
                result.dropped.append(chunk.id)
                continue
            result.chunks.append(chunk.model_copy(update={"embedding": vector}))

        if result.dropped:
            logger.warning(
                "Embedded %d / %d chunks (%d dropped)",
                len(result.chunks), len(chunks), result.dropped_count,
            )
        return result

    async def aclose(self) -> None:
        """Release the backend's connections, if it holds any."""
        close = getattr(self._backend, "aclose", None)
        if close is not None:
            await close()

    # -- internals ------------------------------------------------------------

    def _validate(self, vector: Sequence[float], *, attempts: int) -> list[float]:
        if not vector:
            raise EmbeddingError("No embedding returned from the service", attempts=attempts)
        if self.dimension is not None and len(vector) != self.dimension:
            raise EmbeddingError(
                f"Expected a {self.dimension}-dimensional embedding, got {len(vector)}",
                attempts=attempts,
            )
        return [float(x) for x in vector]
