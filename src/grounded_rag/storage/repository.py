"""Vector store — owner-partitioned repository of documents and chunks.

This is the single source of truth for document state: callers never keep
their own mutable copies, they reload through :meth:`VectorStore.list_by_owner`
after each mutation. Every mutation is one :class:`Transaction`, so a
document and its vectors appear, change, and disappear together.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from grounded_rag.config import settings
from grounded_rag.errors import DimensionMismatchError, StorageError
from grounded_rag.models import Chunk, Document
from grounded_rag.storage.base import DOCUMENTS, VECTORS, Transaction, TransactionalStore

logger = logging.getLogger(__name__)


class VectorStore:
    """Documents and their chunk vectors, partitioned by owner.

    Parameters
    ----------
    backend:
        Any :class:`TransactionalStore`.
    page_size:
        Rows fetched per index page when walking a whole index.
    """

    def __init__(self, backend: TransactionalStore, *, page_size: int = settings.store_page_size) -> None:
        self._backend = backend
        self.page_size = page_size
        # serialises read-then-write mutations (delete, replace_by_name)
        self._lock = threading.RLock()

    # -- writes ---------------------------------------------------------------

    def upsert(self, document: Document, chunks: Sequence[Chunk]) -> None:
        """Write *document* and all *chunks* as one unit."""
        foreign = [c.id for c in chunks if c.document_id != document.id]
        if foreign:
            raise StorageError(f"Chunks {foreign[:3]} do not belong to document {document.id}")
        self._check_dimensions(chunks)

        with self._lock, self._backend.transaction() as txn:
            txn.put(DOCUMENTS, document.id, document.model_dump(mode="json"))
            for chunk in chunks:
                txn.put(VECTORS, chunk.id, chunk.model_dump())
        logger.info(
            "Stored document %s (%s v%d, %s) with %d chunks",
            document.id, document.name, document.version, document.status.value, len(chunks),
        )

    def delete(self, document_id: str) -> int:
        """Remove a document and every chunk referencing it.

        Returns the number of chunks removed.
        """
        with self._lock, self._backend.transaction() as txn:
            removed = self._stage_delete(txn, document_id)
        logger.info("Deleted document %s and %d chunks", document_id, removed)
        return removed

    def replace_by_name(self, owner_id: str, name: str) -> list[Document]:
        """Delete every document of *owner_id* called *name*.

        Run before a new version is written so stale and fresh vectors never
        coexist. Returns the removed documents.
        """
        with self._lock:
            stale = [d for d in self.list_by_owner(owner_id) if d.name == name]
            if not stale:
                return []
            with self._backend.transaction() as txn:
                removed = sum(self._stage_delete(txn, d.id) for d in stale)
        logger.info(
            "Replaced %d prior version(s) of %r for %s (%d chunks purged)",
            len(stale), name, owner_id, removed,
        )
        return stale

    # -- reads ----------------------------------------------------------------

    def get(self, document_id: str) -> Document | None:
        row = self._backend.get(DOCUMENTS, document_id)
        return Document.model_validate(row) if row is not None else None

    def list_by_owner(self, owner_id: str) -> list[Document]:
        with self._lock:
            rows = list(
                self._backend.iter_index(DOCUMENTS, "owner_id", owner_id, page_size=self.page_size)
            )
        return [Document.model_validate(row) for row in rows]

    def chunks_for_document(self, document_id: str) -> list[Chunk]:
        with self._lock:
            rows = list(
                self._backend.iter_index(VECTORS, "document_id", document_id, page_size=self.page_size)
            )
        return [Chunk.model_validate(row) for row in rows]

    def all_vectors_for_owner(self, owner_id: str) -> list[Chunk]:
        """Every chunk of every document *owner_id* owns, in stable scan order.

        Reads all pages under the write lock, so a concurrent delete or
        re-upload is seen either wholly or not at all.
        """
        chunks: list[Chunk] = []
        with self._lock:
            for document in self.list_by_owner(owner_id):
                chunks.extend(self.chunks_for_document(document.id))
        return chunks

    # -- internals ------------------------------------------------------------

    def _stage_delete(self, txn: Transaction, document_id: str) -> int:
        keys = [
            row["id"]
            for row in self._backend.iter_index(
                VECTORS, "document_id", document_id, page_size=self.page_size
            )
        ]
        txn.delete(DOCUMENTS, document_id)
        for key in keys:
            txn.delete(VECTORS, key)
        return len(keys)

    def _check_dimensions(self, chunks: Sequence[Chunk]) -> None:
        dims = {len(c.embedding) for c in chunks if c.embedding is not None}
        if len(dims) > 1:
            raise DimensionMismatchError(f"Chunks carry embeddings of mixed sizes {sorted(dims)}")
        if not dims:
            return
        sample = self._backend.scan(VECTORS, limit=1)
        if sample and sample[0].get("embedding") is not None:
            stored = len(sample[0]["embedding"])
            (incoming,) = dims
            if incoming != stored:
                raise DimensionMismatchError(
                    f"Store holds {stored}-dimensional vectors, got {incoming}"
                )
