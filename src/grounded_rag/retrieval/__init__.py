"""
Retrieval — query embedding, cosine ranking, and citation output.

Public surface
--------------
- :class:`RetrievalEngine` — main entry point for ranked retrieval.
- :func:`cosine_similarity` — the ranking metric.
"""

from grounded_rag.retrieval.retriever import RetrievalEngine
from grounded_rag.retrieval.similarity import cosine_similarity

__all__ = [
    "RetrievalEngine",
    "cosine_similarity",
]
