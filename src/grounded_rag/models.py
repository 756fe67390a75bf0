"""Domain models for documents, chunks, and citation tracking."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePath
from uuid import uuid4

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


def file_type(name: str) -> str:
    """Return the upper-cased extension of *name*, or ``"UNKNOWN"``."""
    suffix = PurePath(name).suffix
    return suffix[1:].upper() if len(suffix) > 1 else "UNKNOWN"


class Document(BaseModel):
    """An uploaded document, scoped to its owner.

    Attributes
    ----------
    id:
        Store key, random per upload (a re-upload gets a fresh id).
    owner_id:
        Partition key; nothing belonging to another owner is ever visible.
    name:
        File name as uploaded. At most one document per ``(owner_id, name)``.
    type:
        Upper-cased file extension (``"PDF"``, ``"TXT"`` …).
    content:
        Full extracted text, empty until the document is ready.
    status:
        ``processing`` while ingesting, ``ready`` once vectors are stored,
        ``error`` when ingestion was aborted.
    version:
        Counter bumped on every re-upload of the same name.
    timestamp:
        UTC time the upload started.
    chunk_count:
        Number of chunks stored with an embedding.
    dropped_chunks:
        Chunks lost to embedding failures. Non-zero means degraded recall.
    """

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    owner_id: str
    name: str
    type: str = "UNKNOWN"
    content: str = ""
    status: DocumentStatus = DocumentStatus.PROCESSING
    version: int = 1
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    chunk_count: int = 0
    dropped_chunks: int = 0


class Chunk(BaseModel):
    """A window of a document's normalised text; the unit of embedding and retrieval."""

    id: str
    document_id: str
    document_name: str
    text: str
    embedding: list[float] | None = None

    @staticmethod
    def make_id(document_id: str, ordinal: int) -> str:
        return f"{document_id}-{ordinal}"


class Citation(BaseModel):
    """A ranked excerpt handed to the answer-generation step.

    ``score`` is the cosine similarity against the query and is always
    above the retrieval threshold that produced it.
    """

    document_name: str
    snippet: str
    score: float

    def short_ref(self) -> str:
        """Return a compact ``[name]`` reference string."""
        return f"[{self.document_name}]"


class BatchEmbedding(BaseModel):
    """Outcome of a best-effort batch embed."""

    chunks: list[Chunk] = Field(default_factory=list)
    dropped: list[str] = Field(default_factory=list, description="Ids of chunks that failed")

    @property
    def dropped_count(self) -> int:
        return len(self.dropped)


class Answer(BaseModel):
    """Generated answer together with the citations it was grounded on."""

    answer: str
    citations: list[Citation] = Field(default_factory=list)
