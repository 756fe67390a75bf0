"""Sliding-window text chunking."""

from __future__ import annotations

import re

from grounded_rag.errors import ConfigurationError
from grounded_rag.models import Chunk

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse every whitespace run to a single space and trim."""
    return _WHITESPACE.sub(" ", text).strip()


def validate_window(chunk_size: int, chunk_overlap: int) -> None:
    """Reject window parameters that would never advance the window."""
    if chunk_size <= 0:
        raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ConfigurationError(f"chunk_overlap must be >= 0, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ConfigurationError(
            f"chunk_overlap ({chunk_overlap}) must be < chunk_size ({chunk_size})"
        )


def chunk_text(
    text: str,
    document_id: str,
    document_name: str,
    chunk_size: int = 600,
    chunk_overlap: int = 100,
) -> list[Chunk]:
    """Split *text* into overlapping fixed-size windows.

    Parameters
    ----------
    text:
        Raw document text; normalised with :func:`normalize_text` first.
    document_id:
        Id of the owning document. Chunk ids are ``"<document_id>-<n>"``.
    document_name:
        Copied onto every chunk so citations can name their source.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Number of characters shared by consecutive chunks.

    Returns
    -------
    list[Chunk]
        Chunks in text order, embeddings unset. Empty for blank text.
    """
    validate_window(chunk_size, chunk_overlap)
    clean = normalize_text(text)
    step = chunk_size - chunk_overlap

    chunks: list[Chunk] = []
    start = 0
    while start < len(clean):
        end = min(start + chunk_size, len(clean))
        chunks.append(
            Chunk(
                id=Chunk.make_id(document_id, len(chunks)),
                document_id=document_id,
                document_name=document_name,
                text=clean[start:end],
            )
        )
        start += step
    return chunks
