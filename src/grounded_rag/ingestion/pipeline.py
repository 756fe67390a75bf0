"""Ingestion pipeline — chunk, embed, and store one document version.

Usage::

    pipeline = IngestionPipeline(VectorStore(InMemoryStore()), EmbeddingClient())
    document = await pipeline.ingest("alice", "Benefits.md", text)

Lifecycle of a document row:

    processing  ──(chunks embedded + stored)──▶  ready
        │
        └──(embedding failed / storage failed / cancelled)──▶  error

The prior version of the same ``(owner, name)`` is purged before the new
row is created, so two versions never coexist.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from pydantic import BaseModel

from grounded_rag.config import settings
from grounded_rag.errors import EmbeddingError, EmptyInputError, RAGError
from grounded_rag.ingestion.chunker import chunk_text, normalize_text, validate_window
from grounded_rag.ingestion.embedder import EmbeddingClient
from grounded_rag.ingestion.loader import TextExtractor
from grounded_rag.models import Document, DocumentStatus, file_type
from grounded_rag.storage.repository import VectorStore

logger = logging.getLogger(__name__)


class IngestOutcome(BaseModel):
    """Result of one file in a batch upload."""

    name: str
    document: Document | None = None
    error: str | None = None


class IngestionPipeline:
    """Orchestrates Chunker → EmbeddingClient → VectorStore.

    Parameters
    ----------
    store:
        Repository the documents and vectors are written to.
    embedder:
        Client used for batch embedding.
    chunk_size / chunk_overlap:
        Sliding-window parameters, validated up front.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingClient,
        *,
        chunk_size: int = settings.chunk_size,
        chunk_overlap: int = settings.chunk_overlap,
    ) -> None:
        validate_window(chunk_size, chunk_overlap)
        self._store = store
        self._embedder = embedder
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    async def ingest(
        self,
        owner_id: str,
        name: str,
        raw_text: str,
        *,
        doc_type: str | None = None,
    ) -> Document:
        """Add *name* for *owner_id*, superseding any earlier version.

        Returns
        -------
        Document
            The stored document, status ``ready``. ``dropped_chunks`` tells
            how many chunks were lost to embedding failures.

        Raises
        ------
        EmptyInputError
            *raw_text* holds no text; the store is left untouched.
        EmbeddingError
            Not a single chunk could be embedded; the row ends as ``error``.
        StorageError
            The final write failed; the row ends as ``error`` if possible.
        """
        if not normalize_text(raw_text):
            raise EmptyInputError(f"{name!r} contains no text to index")

        removed = self._store.replace_by_name(owner_id, name)
        version = max((d.version for d in removed), default=0) + 1

        document = Document(
            owner_id=owner_id,
            name=name,
            type=doc_type or file_type(name),
            version=version,
        )
        self._store.upsert(document, [])
        logger.info("Ingesting %r v%d for %s as %s", name, version, owner_id, document.id)

        try:
            chunks = chunk_text(
                raw_text, document.id, name, self.chunk_size, self.chunk_overlap
            )
            batch = await self._embedder.embed_batch(chunks)
            if not batch.chunks:
                raise EmbeddingError(f"None of the {len(chunks)} chunks of {name!r} could be embedded")

            ready = document.model_copy(
                update={
                    "content": raw_text,
                    "status": DocumentStatus.READY,
                    "chunk_count": len(batch.chunks),
                    "dropped_chunks": batch.dropped_count,
                }
            )
            self._store.upsert(ready, batch.chunks)
        except (Exception, asyncio.CancelledError) as exc:
            self._mark_failed(document, exc)
            raise

        if ready.dropped_chunks:
            logger.warning(
                "%r is ready with degraded recall: %d of %d chunks dropped",
                name, ready.dropped_chunks, len(chunks),
            )
        return ready

    async def ingest_files(
        self,
        owner_id: str,
        uploads: Iterable[tuple[str, bytes]],
        extractor: TextExtractor,
    ) -> list[IngestOutcome]:
        """Extract and ingest *uploads* strictly one after another.

        A failing file is reported in its outcome; the rest still run.
        """
        outcomes: list[IngestOutcome] = []
        for name, data in uploads:
            try:
                text = extractor.extract(data, file_type(name))
                document = await self.ingest(owner_id, name, text)
            except RAGError as exc:
                logger.error("✗ %s: %s", name, exc)
                outcomes.append(IngestOutcome(name=name, error=str(exc)))
                continue
            logger.info("✓ %s (%d chunks)", name, document.chunk_count)
            outcomes.append(IngestOutcome(name=name, document=document))
        return outcomes

    def _mark_failed(self, document: Document, exc: BaseException) -> None:
        logger.error("Ingestion of %r failed: %s", document.name, exc)
        failed = document.model_copy(update={"status": DocumentStatus.ERROR, "content": ""})
        try:
            self._store.upsert(failed, [])
        except RAGError:
            logger.exception("Could not mark document %s as failed", document.id)
