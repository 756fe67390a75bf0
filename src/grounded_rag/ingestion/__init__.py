"""
Ingestion — text extraction, chunking, and embedding into the vector store.

This module is responsible for turning an uploaded file into a ``ready``
document whose chunks carry embeddings, superseding any earlier version
of the same file.
"""
