"""
Vector Store

PostgreSQL + pgvector row-level access to the authoritative embedding table.
Each write is committed on its own so that a failure only affects the record
being written.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from .models import EmbeddingDocument
from ..embeddings.models import (
    VectorRecord,
    DEFAULT_COLLECTION_TYPE,
    DEFAULT_FIELD_NAME,
)


class VectorStore:
    """
    PostgreSQL-backed vector store using pgvector for similarity search.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def _write(self, stmt: Any = None) -> Any:
        """
        Execute (optionally) and commit, rolling back on any failure.
        """
        try:
            result = await self._session.execute(stmt) if stmt is not None else None
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise
        return result

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(
        self,
        content: str,
        metadata: Dict[str, Any],
        embedding: List[float],
    ) -> str:
        """
        Insert one row and return its store-assigned id.
        """
        row = EmbeddingDocument(
            id=uuid.uuid4(),
            content=content,
            metadata_=metadata,
            embedding=embedding,
        )
        self._session.add(row)
        await self._write()
        return str(row.id)

    async def delete_by_document_id(self, document_id: str) -> int:
        """
        Remove every row whose ``metadata->>'id'`` equals ``document_id``.

        Returns the number of deleted rows.
        """
        stmt = delete(EmbeddingDocument).where(
            EmbeddingDocument.metadata_["id"].astext == document_id
        )
        result = await self._write(stmt)
        return result.rowcount

    async def clear(self) -> int:
        """
        Delete every row. Returns the number of deleted rows.
        """
        result = await self._write(delete(EmbeddingDocument))
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _record_columns(self):
        meta = EmbeddingDocument.metadata_
        return (
            EmbeddingDocument.id,
            EmbeddingDocument.content,
            meta["id"].astext.label("document_id"),
            meta["title"].astext.label("title"),
            meta["collectionType"].astext.label("collection_type"),
            meta["fieldName"].astext.label("field_name"),
        )

    @staticmethod
    def _to_record(row: Any) -> VectorRecord:
        return VectorRecord(
            id=str(row.id),
            content=row.content or "",
            document_id=row.document_id or None,
            title=row.title or "",
            collection_type=row.collection_type or DEFAULT_COLLECTION_TYPE,
            field_name=row.field_name or DEFAULT_FIELD_NAME,
        )

    async def list_all(self) -> List[VectorRecord]:
        """
        Full scan of the table, ordered by id.
        """
        stmt = select(*self._record_columns()).order_by(EmbeddingDocument.id)
        result = await self._session.execute(stmt)
        return [self._to_record(row) for row in result.all()]

    async def count(self) -> int:
        stmt = select(func.count()).select_from(EmbeddingDocument)
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def similarity_search(
        self,
        query_embedding: List[float],
        k: int = 4,
    ) -> List[Tuple[VectorRecord, float]]:
        """
        Return the ``k`` nearest rows as (record, cosine distance) pairs,
        ordered by ascending distance (0 = identical).
        """
        cosine_distance = EmbeddingDocument.embedding.cosine_distance(query_embedding)

        stmt = (
            select(*self._record_columns(), cosine_distance.label("distance"))
            .where(EmbeddingDocument.embedding.isnot(None))
            .order_by(cosine_distance)
            .limit(k)
        )

        result = await self._session.execute(stmt)
        return [(self._to_record(row), float(row.distance)) for row in result.all()]
