"""FastAPI application exposing document upload and grounded Q&A."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import Depends, FastAPI, File, HTTPException, Response, UploadFile
from pydantic import BaseModel, Field

from grounded_rag.config import settings
from grounded_rag.errors import DocumentNotFoundError, EmptyInputError
from grounded_rag.models import Citation, Document
from grounded_rag.service import DocumentQAService

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_service() -> DocumentQAService:
    """Process-wide service built from the global settings."""
    return DocumentQAService()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # only close a service that was actually built
    if get_service.cache_info().currsize:
        logger.info("Closing document service connections")
        await get_service().aclose()
        get_service.cache_clear()


app = FastAPI(
    title="Grounded RAG API",
    version="0.1.0",
    description="Upload documents and ask questions answered only from them.",
    lifespan=lifespan,
)


# ── Request / Response schemas ────────────────────────────────────────
class QueryRequest(BaseModel):
    """Incoming question from the user."""

    question: str
    top_k: int | None = Field(default=None, ge=1)


class QueryResponse(BaseModel):
    """Answer plus the ranked excerpts it was grounded on."""

    answer: str
    citations: list[Citation] = []


class UploadError(BaseModel):
    name: str
    detail: str


class UploadResponse(BaseModel):
    documents: list[Document] = []
    errors: list[UploadError] = []


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.get("/owners/{owner_id}/documents", response_model=list[Document])
async def list_documents(
    owner_id: str, service: DocumentQAService = Depends(get_service)
) -> list[Document]:
    return service.list_documents(owner_id)


@app.post("/owners/{owner_id}/documents", response_model=UploadResponse)
async def upload_documents(
    owner_id: str,
    files: list[UploadFile] = File(...),
    service: DocumentQAService = Depends(get_service),
) -> UploadResponse:
    """Ingest each file in turn; failures are reported per file."""
    uploads = [(f.filename or "untitled", await f.read()) for f in files]
    outcomes = await service.upload_files(owner_id, uploads)
    return UploadResponse(
        documents=[o.document for o in outcomes if o.document is not None],
        errors=[UploadError(name=o.name, detail=o.error) for o in outcomes if o.error is not None],
    )


@app.delete("/owners/{owner_id}/documents/{document_id}", status_code=204)
async def delete_document(
    owner_id: str, document_id: str, service: DocumentQAService = Depends(get_service)
) -> Response:
    try:
        service.delete_document(owner_id, document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.post("/owners/{owner_id}/query", response_model=QueryResponse)
async def query(
    owner_id: str, request: QueryRequest, service: DocumentQAService = Depends(get_service)
) -> QueryResponse:
    """Retrieve the owner's most relevant excerpts and answer from them."""
    try:
        answer = await service.ask(owner_id, request.question, top_k=request.top_k)
    except EmptyInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return QueryResponse(answer=answer.answer, citations=answer.citations)
