"""
Mirror Store

Document-style CRUD over the mirror table. Records are addressed by a
string ``document_id`` generated at creation time; chunk groups are
discovered through the ``parentId`` key of the JSONB metadata.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from .models import EmbeddingEntry
from ..core.errors import RecordNotFoundError
from ..embeddings.models import (
    MirrorRecord,
    Relation,
    DEFAULT_COLLECTION_TYPE,
    DEFAULT_FIELD_NAME,
    PARENT_ID,
)


# Fields callers may change through update()
_UPDATABLE_FIELDS = frozenset(
    {"title", "content", "metadata", "embedding_id", "collection_type", "field_name"}
)


def _to_record(entry: EmbeddingEntry) -> MirrorRecord:
    related = None
    if entry.related_type and entry.related_id:
        related = Relation(type=entry.related_type, id=entry.related_id)

    return MirrorRecord(
        document_id=entry.document_id,
        title=entry.title or "",
        content=entry.content or "",
        collection_type=entry.collection_type or DEFAULT_COLLECTION_TYPE,
        field_name=entry.field_name or DEFAULT_FIELD_NAME,
        metadata=dict(entry.metadata_) if entry.metadata_ is not None else None,
        embedding_id=entry.embedding_id,
        related=related,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def _matches(search: str):
    # LIKE wildcards in the search text match literally
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    return or_(
        EmbeddingEntry.title.ilike(pattern, escape="\\"),
        EmbeddingEntry.content.ilike(pattern, escape="\\"),
    )


class MirrorStore:
    """
    PostgreSQL-backed mirror of the vector store.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _commit(self) -> None:
        try:
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

    async def _load(self, document_id: str) -> Optional[EmbeddingEntry]:
        return await self._session.get(EmbeddingEntry, document_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
        self,
        title: str,
        content: str,
        collection_type: str = DEFAULT_COLLECTION_TYPE,
        field_name: str = DEFAULT_FIELD_NAME,
        metadata: Optional[Dict[str, Any]] = None,
        embedding_id: Optional[str] = None,
        related: Optional[Relation] = None,
        document_id: Optional[str] = None,
    ) -> MirrorRecord:
        """
        Insert a new entry. ``document_id`` is generated unless given
        (the reconciler re-creates entries under their original ids).
        """
        entry = EmbeddingEntry(
            document_id=document_id or uuid.uuid4().hex,
            title=title,
            content=content,
            collection_type=collection_type,
            field_name=field_name,
            metadata_=metadata,
            embedding_id=embedding_id,
            related_type=related.type if related else None,
            related_id=related.id if related else None,
        )
        self._session.add(entry)
        await self._commit()
        await self._session.refresh(entry)
        return _to_record(entry)

    async def update(self, document_id: str, **fields: Any) -> MirrorRecord:
        """
        Overwrite the given fields of an existing entry.

        Raises
        ------
        RecordNotFoundError
            If no entry has this id.
        ValueError
            If an unknown field name is passed.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        entry = await self._load(document_id)
        if entry is None:
            raise RecordNotFoundError(document_id)

        for name, value in fields.items():
            setattr(entry, "metadata_" if name == "metadata" else name, value)

        await self._commit()
        await self._session.refresh(entry)
        return _to_record(entry)

    async def delete(self, document_id: str) -> bool:
        """
        Delete an entry. Returns False if it did not exist.
        """
        stmt = delete(EmbeddingEntry).where(EmbeddingEntry.document_id == document_id)
        try:
            result = await self._session.execute(stmt)
        except Exception:
            await self._session.rollback()
            raise
        await self._commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, document_id: str) -> Optional[MirrorRecord]:
        entry = await self._load(document_id)
        return _to_record(entry) if entry is not None else None

    async def list_all(self) -> List[MirrorRecord]:
        stmt = select(EmbeddingEntry).order_by(EmbeddingEntry.created_at)
        result = await self._session.execute(stmt)
        return [_to_record(e) for e in result.scalars().all()]

    async def list_page(
        self,
        page: int = 1,
        page_size: int = 10,
        search: Optional[str] = None,
    ) -> Tuple[List[MirrorRecord], int]:
        """
        Return one page of entries plus the total count of matching entries.

        ``search`` keeps entries whose title or content contains it,
        ignoring case.
        """
        start = (max(page, 1) - 1) * page_size
        stmt = (
            select(EmbeddingEntry)
            .order_by(EmbeddingEntry.created_at.desc())
            .offset(start)
            .limit(page_size)
        )
        if search:
            stmt = stmt.where(_matches(search))
        result = await self._session.execute(stmt)
        records = [_to_record(e) for e in result.scalars().all()]
        return records, await self.count(search)

    async def count(self, search: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(EmbeddingEntry)
        if search:
            stmt = stmt.where(_matches(search))
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def find_children(self, parent_id: str) -> List[MirrorRecord]:
        """
        Return every entry whose ``metadata.parentId`` equals ``parent_id``.
        """
        stmt = select(EmbeddingEntry).where(
            EmbeddingEntry.metadata_[PARENT_ID].astext == parent_id
        )
        result = await self._session.execute(stmt)
        return [_to_record(e) for e in result.scalars().all()]

    async def find_group(self, anchor_id: str) -> List[MirrorRecord]:
        """
        Return the anchor and all entries referencing it.
        """
        stmt = select(EmbeddingEntry).where(
            or_(
                EmbeddingEntry.document_id == anchor_id,
                EmbeddingEntry.metadata_[PARENT_ID].astext == anchor_id,
            )
        )
        result = await self._session.execute(stmt)
        return [_to_record(e) for e in result.scalars().all()]
