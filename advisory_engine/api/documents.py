"""API endpoints for document upload, processing, status and search."""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from advisory_engine.core.auth import AuthContext, require_user
from advisory_engine.core.errors import ProviderError
from advisory_engine.core.logging import get_logger
from advisory_engine.core.services import ServiceContainer, get_services
from advisory_engine.db.documents import Document
from advisory_engine.graphs.document_processing_graph import (
    OUTCOME_NOT_FOUND,
    OUTCOME_READY,
    OUTCOME_SKIPPED,
    process_document,
)

logger = get_logger(__name__)

router = APIRouter()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DocumentResponse(CamelModel):
    """Document status and analysis as shown in the document list."""

    id: str
    name: str
    mime_type: str
    size_bytes: int
    status: str
    summary: str | None = None
    key_points: list[str] | None = None
    entities: dict[str, list[str]] | None = None
    analysis: dict[str, Any] | None = None
    error_message: str | None = None
    processing_time_ms: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_document(cls, doc: Document) -> "DocumentResponse":
        return cls(
            id=doc.id,
            name=doc.name,
            mime_type=doc.mime_type,
            size_bytes=doc.size_bytes,
            status=doc.status.value,
            summary=doc.summary,
            key_points=doc.key_points,
            entities=doc.entities,
            analysis=doc.analysis,
            error_message=doc.error_message,
            processing_time_ms=doc.processing_time_ms,
            created_at=doc.created_at,
            updated_at=doc.updated_at,
        )


class DocumentListResponse(CamelModel):
    documents: list[DocumentResponse]
    total: int


class ProcessRequest(CamelModel):
    document_id: str


class ProcessResponse(CamelModel):
    document_id: str
    status: str
    chunk_count: int
    processing_time_ms: int


class SearchRequest(CamelModel):
    query: str = Field(..., min_length=1)
    user_id: str | None = None
    limit: int | None = Field(default=None, ge=1, le=100)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class SearchChunk(CamelModel):
    id: str | None = None
    document_id: str
    chunk_index: int
    text: str


class SearchResult(CamelModel):
    chunk: SearchChunk
    document: dict[str, Any] | None = None
    relevance_score: float


class SearchResponse(CamelModel):
    query: str
    results: list[SearchResult]
    total: int


async def _process_in_background(document_id: str, services: ServiceContainer) -> None:
    """Run the pipeline after the upload response; failures land on the document row."""
    try:
        await process_document(document_id, services)
    except Exception:
        logger.exception(f"Background processing crashed for document {document_id}")


def _owned_document(services: ServiceContainer, document_id: str, user: AuthContext) -> Document:
    doc = services.store.get_document(document_id)
    if doc is None or doc.owner_id != user.user_id:
        raise HTTPException(status_code=404, detail="Document not found")
    return doc


@router.post("/documents", response_model=DocumentResponse, status_code=201)
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile | None = File(default=None),
    user: AuthContext = Depends(require_user),
    services: ServiceContainer = Depends(get_services),
) -> DocumentResponse:
    """Upload a document and queue it for processing.

    Raises:
        HTTPException 400: If no file was sent or it exceeds the size limit
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    data = await file.read()
    max_bytes = services.settings.MAX_UPLOAD_BYTES
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File too large: {len(data)} bytes (limit {max_bytes})",
        )

    mime_type = file.content_type or "application/octet-stream"
    path = services.storage.upload(user.user_id, file.filename, data, mime_type)
    doc = services.store.create_document(
        owner_id=user.user_id,
        name=file.filename,
        mime_type=mime_type,
        size_bytes=len(data),
        storage_location=path,
    )

    background_tasks.add_task(_process_in_background, doc.id, services)
    logger.info(f"Queued document {doc.id} ({file.filename}) for processing")

    return DocumentResponse.from_document(doc)


@router.get("/documents", response_model=DocumentListResponse)
async def list_documents(
    user: AuthContext = Depends(require_user),
    services: ServiceContainer = Depends(get_services),
) -> DocumentListResponse:
    docs = services.store.list_documents(user.user_id)
    return DocumentListResponse(
        documents=[DocumentResponse.from_document(d) for d in docs],
        total=len(docs),
    )


@router.post("/documents/process", response_model=ProcessResponse)
async def process_document_endpoint(
    request: ProcessRequest,
    user: AuthContext = Depends(require_user),
    services: ServiceContainer = Depends(get_services),
) -> ProcessResponse:
    """Run the pipeline for one pending document.

    Raises:
        HTTPException 404: Unknown document
        HTTPException 409: Document is not pending (already processed or in progress)
        HTTPException 500: Processing failed; the document is marked failed
    """
    _owned_document(services, request.document_id, user)

    outcome = await process_document(request.document_id, services)

    if outcome.outcome == OUTCOME_NOT_FOUND:
        raise HTTPException(status_code=404, detail="Document not found")
    if outcome.outcome == OUTCOME_SKIPPED:
        raise HTTPException(status_code=409, detail="Document already processed or in progress")
    if outcome.outcome != OUTCOME_READY:
        raise HTTPException(status_code=500, detail=outcome.error or "Document processing failed")

    return ProcessResponse(
        document_id=outcome.document_id,
        status=outcome.outcome,
        chunk_count=outcome.chunk_count,
        processing_time_ms=outcome.processing_time_ms,
    )


@router.post("/documents/search", response_model=SearchResponse)
async def search_documents(
    request: SearchRequest,
    user: AuthContext = Depends(require_user),
    services: ServiceContainer = Depends(get_services),
) -> SearchResponse:
    """Semantic search over the caller's document chunks.

    Raises:
        HTTPException 403: userId names someone other than the caller
        HTTPException 502: The query could not be embedded
    """
    if request.user_id and request.user_id != user.user_id:
        raise HTTPException(status_code=403, detail="Forbidden")

    settings = services.settings
    limit = request.limit or settings.SEARCH_DEFAULT_LIMIT
    threshold = (
        request.threshold if request.threshold is not None else settings.SEARCH_DEFAULT_THRESHOLD
    )

    try:
        query_embedding = await services.embedder.embed(request.query)
    except ProviderError as e:
        logger.error(f"Query embedding failed: {e}")
        raise HTTPException(status_code=502, detail=f"Search unavailable: {e}") from e

    matches = services.store.query_similar(query_embedding, user.user_id, limit, threshold)
    documents = services.store.get_documents([m.document_id for m in matches])

    results = [
        SearchResult(
            chunk=SearchChunk(
                id=m.id,
                document_id=m.document_id,
                chunk_index=m.chunk_index,
                text=m.text,
            ),
            document=documents.get(m.document_id),
            relevance_score=m.similarity,
        )
        for m in matches
    ]

    services.store.log_usage(
        user.user_id,
        "semantic_search",
        {"query": request.query, "results_count": len(results)},
    )

    return SearchResponse(query=request.query, results=results, total=len(results))


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    user: AuthContext = Depends(require_user),
    services: ServiceContainer = Depends(get_services),
) -> DocumentResponse:
    return DocumentResponse.from_document(_owned_document(services, document_id, user))


@router.delete("/documents/{document_id}", status_code=204)
async def delete_document(
    document_id: str,
    user: AuthContext = Depends(require_user),
    services: ServiceContainer = Depends(get_services),
) -> None:
    _owned_document(services, document_id, user)
    services.store.delete_document(document_id)
