"""
API Models

Request and response models for the embedding and sync endpoints.

Request bodies follow the ``{"data": {...}}`` envelope used by the admin UI
and keep camelCase field names on the wire through aliases.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..embeddings.models import (
    DEFAULT_COLLECTION_TYPE,
    DEFAULT_FIELD_NAME,
    LogicalDocument,
    MirrorRecord,
    Relation,
)


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["updated", "deleted", "created", "ok"]
    count: Optional[int] = Field(default=None, ge=0)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Embedding Requests
# ---------------------------------------------------------------------

class CreateEmbeddingData(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    collection_type: str = Field(default=DEFAULT_COLLECTION_TYPE, alias="collectionType")
    field_name: str = Field(default=DEFAULT_FIELD_NAME, alias="fieldName")
    metadata: Optional[Dict[str, Any]] = None
    related: Optional[Relation] = None
    auto_chunk: Optional[bool] = Field(default=None, alias="autoChunk")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def to_document(self) -> LogicalDocument:
        return LogicalDocument(
            title=self.title,
            body=self.content,
            metadata=self.metadata or {},
            relation=self.related,
            collection_type=self.collection_type,
            field_name=self.field_name,
        )


class CreateEmbeddingRequest(BaseModel):
    """
    Body of ``POST /embeddings/create-embedding``.
    """
    data: CreateEmbeddingData


class UpdateEmbeddingData(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    auto_chunk: Optional[bool] = Field(default=None, alias="autoChunk")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class UpdateEmbeddingRequest(BaseModel):
    """
    Body of ``PUT /embeddings/update-embedding/{id}``. Omitted fields are
    left unchanged.
    """
    data: UpdateEmbeddingData


class RelatedChunksResponse(BaseModel):
    data: List[MirrorRecord]
    count: int


# ---------------------------------------------------------------------
# Sync Requests
# ---------------------------------------------------------------------

class SyncExecuteRequest(BaseModel):
    remove_orphans: bool = Field(default=False, alias="removeOrphans")
    dry_run: bool = Field(default=False, alias="dryRun")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")
