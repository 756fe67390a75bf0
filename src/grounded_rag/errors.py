"""Exception hierarchy shared by every layer of the engine."""

from __future__ import annotations


class RAGError(Exception):
    """Base class for all errors raised by :mod:`grounded_rag`."""


class ConfigurationError(RAGError, ValueError):
    """Invalid parameters, e.g. a chunk overlap that is not smaller than the window."""


class EmptyInputError(RAGError, ValueError):
    """Blank text was handed to an operation that needs content."""


class EmbeddingServiceError(RAGError):
    """Raised by embedding backends when the remote service rejects a call.

    ``status`` is the HTTP status code or the service's symbolic status
    (e.g. ``"INTERNAL"``) and drives transient/terminal classification.
    """

    def __init__(self, message: str, *, status: int | str | None = None) -> None:
        super().__init__(message)
        self.status = status


class EmbeddingError(RAGError):
    """An embedding could not be produced.

    ``transient`` tells whether the last failure was retryable (and the
    retry budget ran out) or terminal. ``attempts`` counts backend calls.
    """

    def __init__(self, message: str, *, transient: bool = False, attempts: int = 1) -> None:
        super().__init__(message)
        self.transient = transient
        self.attempts = attempts


class StorageError(RAGError):
    """The backing store failed; the enclosing operation did not take effect."""


class DimensionMismatchError(StorageError):
    """A vector's length disagrees with the dimensionality already stored."""


class ExtractionError(RAGError):
    """Raw bytes could not be turned into text."""


class GenerationServiceError(RAGError):
    """The downstream answer-generation call failed."""


class DocumentNotFoundError(RAGError, LookupError):
    """No document with the given id exists for this owner."""
