"""
Storage — transactional persistence of documents and chunk vectors.

Public surface
--------------
- :class:`VectorStore` — owner-partitioned repository used by ingestion and retrieval.
- :class:`TransactionalStore` — abstract backend (subclass for other media).
- :class:`InMemoryStore` — in-process backend.
- :class:`ChromaStore` — Chroma backend (lazy import).
- :func:`get_store` — build the backend named in the settings.
"""

from grounded_rag.config import settings
from grounded_rag.errors import ConfigurationError
from grounded_rag.storage.base import DOCUMENTS, VECTORS, Transaction, TransactionalStore
from grounded_rag.storage.memory import InMemoryStore
from grounded_rag.storage.repository import VectorStore

__all__ = [
    "ChromaStore",
    "DOCUMENTS",
    "InMemoryStore",
    "Transaction",
    "TransactionalStore",
    "VECTORS",
    "VectorStore",
    "get_store",
]


def get_store(backend: str = settings.store_backend) -> TransactionalStore:
    """Return the configured storage backend."""
    if backend == "memory":
        return InMemoryStore()
    if backend == "chroma":
        from grounded_rag.storage.chroma_store import ChromaStore

        return ChromaStore()
    raise ConfigurationError(f"Unsupported store_backend={backend!r}. Choose from: memory, chroma.")


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaStore to avoid pulling in chromadb at import time."""
    if name == "ChromaStore":
        from grounded_rag.storage.chroma_store import ChromaStore

        return ChromaStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
