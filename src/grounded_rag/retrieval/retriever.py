"""Retrieval engine — brute-force cosine ranking with citation output.

Every query embeds once, loads all of the owner's chunk vectors, and
scores each one. Cost is O(N·D) per query (N chunks, D dimensions), which
stays fast up to tens of thousands of chunks without an approximate index.

Usage::

    engine = RetrievalEngine(store, EmbeddingClient())
    citations = await engine.retrieve("alice", "What does the dental plan cover?")
    for c in citations:
        print(c.short_ref(), round(c.score, 3), c.snippet[:80])
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import NamedTuple

from grounded_rag.config import settings
from grounded_rag.errors import ConfigurationError
from grounded_rag.ingestion.embedder import EmbeddingClient
from grounded_rag.models import Chunk, Citation
from grounded_rag.retrieval.similarity import cosine_similarity
from grounded_rag.storage.repository import VectorStore

logger = logging.getLogger(__name__)

# Chunks that cannot be compared (no, mismatched or non-finite vector) get this score,
# which no threshold >= -1 lets through.
UNSCORABLE = -1.0


class _Scored(NamedTuple):
    score: float
    chunk: Chunk


class RetrievalEngine:
    """Ranks an owner's chunks against a query.

    Parameters
    ----------
    store:
        Repository holding the owner's vectors.
    embedder:
        Client used to embed the query.
    top_k:
        Default number of citations returned.
    score_threshold:
        Default minimum score; results must be strictly above it.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingClient,
        *,
        top_k: int = settings.retrieval_top_k,
        score_threshold: float = settings.retrieval_score_threshold,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.top_k = top_k
        self.score_threshold = score_threshold

    # -- public API -----------------------------------------------------------

    async def retrieve(
        self,
        owner_id: str,
        query: str,
        *,
        top_k: int | None = None,
        threshold: float | None = None,
    ) -> list[Citation]:
        """Return up to *top_k* citations from *owner_id*'s documents.

        Embedding failures propagate: without a query vector there is no
        context to offer. An owner with no documents yields ``[]``.
        """
        query_vector = await self._embedder.embed(query)

        chunks = self._store.all_vectors_for_owner(owner_id)
        if not chunks:
            logger.info("No vectors stored for %s", owner_id)
            return []

        citations = self.rank(query_vector, chunks, top_k=top_k, threshold=threshold)
        logger.info(
            "Ranked %d chunks for %s, returning %d citations", len(chunks), owner_id, len(citations)
        )
        return citations

    def rank(
        self,
        query_vector: Sequence[float],
        chunks: Sequence[Chunk],
        *,
        top_k: int | None = None,
        threshold: float | None = None,
    ) -> list[Citation]:
        """Score, sort (stable, descending), threshold, and truncate *chunks*."""
        top_k = self.top_k if top_k is None else top_k
        threshold = self.score_threshold if threshold is None else threshold
        if top_k < 1:
            raise ConfigurationError(f"top_k must be >= 1, got {top_k}")

        scored = [_Scored(self._score(query_vector, c), c) for c in chunks]
        # list.sort is stable, so equal scores keep scan order
        scored.sort(key=lambda s: s.score, reverse=True)

        return [
            Citation(document_name=s.chunk.document_name, snippet=s.chunk.text, score=s.score)
            for s in scored
            if s.score > threshold
        ][:top_k]

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _score(query_vector: Sequence[float], chunk: Chunk) -> float:
        if chunk.embedding is None:
            return UNSCORABLE
        try:
            return cosine_similarity(query_vector, chunk.embedding)
        except ValueError as exc:
            logger.warning("Cannot score chunk %s: %s", chunk.id, exc)
            return UNSCORABLE
