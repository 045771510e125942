"""
Embedding Record Models

Canonical in-process representations of the two persisted record shapes:

- VectorRecord: one row of the authoritative vector store
- MirrorRecord: one entry of the mirror store (a chunk, or a whole document)

The stores return fresh instances on every read, so callers may hold on to
them without observing later writes. Field aliases give the camelCase JSON
shape used by the HTTP surface.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_COLLECTION_TYPE = "standalone"
DEFAULT_FIELD_NAME = "content"

# Chunk metadata keys (stored inside MirrorRecord.metadata)
IS_CHUNK = "isChunk"
CHUNK_INDEX = "chunkIndex"
TOTAL_CHUNKS = "totalChunks"
START_OFFSET = "startOffset"
END_OFFSET = "endOffset"
ORIGINAL_TITLE = "originalTitle"
PARENT_ID = "parentId"
ESTIMATED_TOKENS = "estimatedTokens"

CHUNK_METADATA_KEYS = frozenset(
    {
        IS_CHUNK,
        CHUNK_INDEX,
        TOTAL_CHUNKS,
        START_OFFSET,
        END_OFFSET,
        ORIGINAL_TITLE,
        PARENT_ID,
        ESTIMATED_TOKENS,
    }
)


class Relation(BaseModel):
    """
    Weak back-reference to an owning record elsewhere in the host system.

    Never an ownership edge: deleting the embedding leaves the owner alone.
    """

    type: str = Field(..., min_length=1)
    id: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid", frozen=True)


class VectorRecord(BaseModel):
    """
    A row of the vector store as returned by a full scan.

    ``document_id`` is the ``metadata.id`` back-reference to the owning mirror
    record; it is None when the row is missing that key (a data-integrity
    error the reconciler reports).
    """

    id: str
    content: str = ""
    document_id: Optional[str] = Field(default=None, alias="documentId")
    title: str = ""
    collection_type: str = Field(default=DEFAULT_COLLECTION_TYPE, alias="collectionType")
    field_name: str = Field(default=DEFAULT_FIELD_NAME, alias="fieldName")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class MirrorRecord(BaseModel):
    """
    A mirror store entry.

    ``embedding_id`` points at the corresponding VectorRecord; None means the
    embedding was never created or its creation failed.
    """

    document_id: str = Field(..., alias="documentId")
    title: str = ""
    content: str = ""
    collection_type: str = Field(default=DEFAULT_COLLECTION_TYPE, alias="collectionType")
    field_name: str = Field(default=DEFAULT_FIELD_NAME, alias="fieldName")
    metadata: Optional[Dict[str, Any]] = None
    embedding_id: Optional[str] = Field(default=None, alias="embeddingId")
    related: Optional[Relation] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_chunk(self) -> bool:
        return bool(self.metadata and self.metadata.get(IS_CHUNK) is True)

    @property
    def parent_id(self) -> Optional[str]:
        if not self.metadata:
            return None
        return self.metadata.get(PARENT_ID)

    @property
    def chunk_index(self) -> int:
        if not self.metadata:
            return 0
        return self.metadata.get(CHUNK_INDEX) or 0


class LogicalDocument(BaseModel):
    """
    User-supplied content before chunking.
    """

    title: str
    body: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    relation: Optional[Relation] = None
    collection_type: str = DEFAULT_COLLECTION_TYPE
    field_name: str = DEFAULT_FIELD_NAME

    model_config = ConfigDict(frozen=True)
