"""Document Q&A service — the facade the HTTP layer talks to.

Owns one of each engine component and applies the user-facing error
policy: uploads report per-file failures, and questions always get an
answer, falling back to a fixed message when retrieval or generation fails.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from grounded_rag.errors import (
    DocumentNotFoundError,
    EmbeddingError,
    EmptyInputError,
    GenerationServiceError,
    StorageError,
)
from grounded_rag.generation.llm import AnswerGenerator, LLMAnswerGenerator
from grounded_rag.ingestion.embedder import EmbeddingClient
from grounded_rag.ingestion.loader import PlainTextExtractor, TextExtractor
from grounded_rag.ingestion.pipeline import IngestionPipeline, IngestOutcome
from grounded_rag.models import Answer, Document
from grounded_rag.retrieval.retriever import RetrievalEngine
from grounded_rag.storage import VectorStore, get_store

logger = logging.getLogger(__name__)

RETRIEVAL_FALLBACK = "I couldn't search your documents right now. Please try again."
GENERATION_FALLBACK = "An error occurred while generating the response."


class DocumentQAService:
    """Upload, list, delete, and question an owner's documents."""

    def __init__(
        self,
        store: VectorStore | None = None,
        embedder: EmbeddingClient | None = None,
        generator: AnswerGenerator | None = None,
        extractor: TextExtractor | None = None,
    ) -> None:
        self.store = store or VectorStore(get_store())
        self.embedder = embedder or EmbeddingClient()
        self.generator = generator or LLMAnswerGenerator()
        self.extractor = extractor or PlainTextExtractor()
        self.pipeline = IngestionPipeline(self.store, self.embedder)
        self.retriever = RetrievalEngine(self.store, self.embedder)

    async def aclose(self) -> None:
        await self.embedder.aclose()

    async def upload_files(self, owner_id: str, uploads: Iterable[tuple[str, bytes]]) -> list[IngestOutcome]:
        return await self.pipeline.ingest_files(owner_id, uploads, self.extractor)

    def list_documents(self, owner_id: str) -> list[Document]:
        return self.store.list_by_owner(owner_id)

    def delete_document(self, owner_id: str, document_id: str) -> None:
        """Delete *document_id* if *owner_id* owns it.

        Raises
        ------
        DocumentNotFoundError
            The id is unknown or belongs to another owner.
        """
        document = self.store.get(document_id)
        if document is None or document.owner_id != owner_id:
            raise DocumentNotFoundError(f"No document {document_id!r} for {owner_id!r}")
        self.store.delete(document_id)

    async def ask(self, owner_id: str, question: str, *, top_k: int | None = None) -> Answer:
        """Answer *question* from *owner_id*'s documents.

        Raises only :class:`EmptyInputError` for a blank question; every
        downstream failure degrades to a fallback answer.
        """
        if not question.strip():
            raise EmptyInputError("Question is empty")

        try:
            citations = await self.retriever.retrieve(owner_id, question, top_k=top_k)
        except (EmbeddingError, StorageError) as exc:
            logger.error("Retrieval failed for %s: %s", owner_id, exc)
            return Answer(answer=RETRIEVAL_FALLBACK)

        try:
            text = await self.generator.generate(question, citations)
        except GenerationServiceError as exc:
            logger.error("Generation failed for %s: %s", owner_id, exc)
            return Answer(answer=GENERATION_FALLBACK, citations=citations)
        return Answer(answer=text, citations=citations)
