"""
Embeddings Routes

This module exposes endpoints for:
- Creating embeddings (optionally split into chunk groups)
- Updating and deleting embeddings, always acting on the whole chunk group
- Reading single entries, pages of entries and chunk groups
- Answering questions from stored content (RAG)

Unknown ids surface as ``RecordNotFoundError`` and are turned into 404
responses by the application's exception handler.
"""

from typing import Annotated, Optional, Union

from fastapi import APIRouter, Depends, Query

from .models import (
    CreateEmbeddingRequest,
    OperationResult,
    RelatedChunksResponse,
    UpdateEmbeddingRequest,
)
from .dependencies import get_embedding_service
from ..core.errors import RecordNotFoundError
from ..embeddings.models import MirrorRecord
from ..services.embedding_service import (
    ChunkedEmbeddingResult,
    EmbeddingPage,
    EmbeddingService,
    RagAnswer,
)

router = APIRouter(prefix="/embeddings", tags=["embeddings"])

Service = Annotated[EmbeddingService, Depends(get_embedding_service)]


# ---------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------

@router.post(
    "/create-embedding",
    response_model=MirrorRecord,
    summary="Create an embedding",
)
async def create_embedding(
    req: CreateEmbeddingRequest,
    service: Service,
) -> MirrorRecord:
    """
    Create an embedding from title and content.

    With ``autoChunk`` (or the configured default) and content longer than
    the chunk size, one entry per chunk is created and the group's anchor
    is returned.
    """
    return await service.create_embedding(
        req.data.to_document(),
        auto_chunk=req.data.auto_chunk,
    )


@router.post(
    "/create-chunked-embedding",
    response_model=ChunkedEmbeddingResult,
    summary="Create an embedding split into chunks",
)
async def create_chunked_embedding(
    req: CreateEmbeddingRequest,
    service: Service,
) -> ChunkedEmbeddingResult:
    """
    Always run the chunker and return every entry of the group.

    Content that fits in one chunk yields a single entry with
    ``wasChunked`` false.
    """
    return await service.create_chunked_embedding(req.data.to_document())


@router.put(
    "/update-embedding/{document_id}",
    response_model=MirrorRecord,
    summary="Update an embedding",
)
async def update_embedding(
    document_id: str,
    req: UpdateEmbeddingRequest,
    service: Service,
) -> MirrorRecord:
    return await service.update_embedding(
        document_id,
        title=req.data.title,
        content=req.data.content,
        metadata=req.data.metadata,
        auto_chunk=req.data.auto_chunk,
    )


@router.delete(
    "/delete-embedding/{document_id}",
    response_model=OperationResult,
    summary="Delete an embedding and its chunk group",
)
async def delete_embedding(
    document_id: str,
    service: Service,
) -> OperationResult:
    deleted = await service.delete_embedding(document_id)
    return OperationResult(
        status="deleted",
        count=len(deleted),
        details={"documentIds": [record.document_id for record in deleted]},
    )


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------

@router.get(
    "/find",
    response_model=EmbeddingPage,
    summary="List embeddings",
)
async def get_embeddings(
    service: Service,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    search: Optional[str] = Query(None),
) -> EmbeddingPage:
    """
    List entries newest first, optionally filtered by a case-insensitive
    match on title or content.
    """
    return await service.get_embeddings(
        page=page,
        page_size=page_size,
        search=search.strip() if search else None,
    )


@router.get(
    "/find/{document_id}",
    response_model=MirrorRecord,
    summary="Get one embedding",
)
async def get_embedding(
    document_id: str,
    service: Service,
) -> MirrorRecord:
    record = await service.get_embedding(document_id)
    if record is None:
        raise RecordNotFoundError(document_id)
    return record


@router.get(
    "/related/{document_id}",
    response_model=RelatedChunksResponse,
    summary="Get every chunk of the group an embedding belongs to",
)
async def get_related_chunks(
    document_id: str,
    service: Service,
) -> RelatedChunksResponse:
    members = await service.find_related_chunks(document_id)
    if not members:
        raise RecordNotFoundError(document_id)
    return RelatedChunksResponse(data=members, count=len(members))


@router.get(
    "/embeddings-query",
    response_model=None,
    summary="Answer a question from stored content",
)
async def query_embeddings(
    service: Service,
    query: Optional[str] = Query(None),
) -> Union[RagAnswer, dict]:
    if not query or not query.strip():
        return {"error": "Please provide a query"}
    return await service.query_embeddings(query.strip())
