"""
Embedding Service

Turns logical documents into mirror entries plus best-effort vector rows and
manages their lifecycle as a unit:

- create: single record, or a chunk group anchored on chunk 0
- update: in place when the edit still fits, re-materialize otherwise
- delete: always the whole group the record belongs to
- query: similarity search and retrieval-augmented answers

Writes within a group are strictly sequential by chunk index, since every
later chunk carries the anchor's id. A failed embedding never aborts a
group: the entry is kept with ``embedding_id = None`` and is repaired by the
sync service.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..chunking import (
    Chunk,
    chunk_content,
    estimate_tokens,
    format_chunk_title,
    needs_chunking,
    preprocess_content,
)
from ..config import Settings
from ..core.errors import ChunkingError, RecordNotFoundError
from ..db.mirror_store import MirrorStore
from ..db.vector_store import VectorStore
from ..embeddings.embedder import Embedder
from ..embeddings.models import (
    LogicalDocument,
    MirrorRecord,
    VectorRecord,
    CHUNK_INDEX,
    CHUNK_METADATA_KEYS,
    END_OFFSET,
    ESTIMATED_TOKENS,
    IS_CHUNK,
    ORIGINAL_TITLE,
    PARENT_ID,
    START_OFFSET,
    TOTAL_CHUNKS,
)
from ..llm.client import LLMClient

logger = logging.getLogger("embeddings.service")

_PART_SUFFIX = re.compile(r"\s*\[Part \d+/\d+\]$")

# RAG query tuning
RAG_CANDIDATES = 6
RAG_CONTEXT_DOCS = 3


# ---------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------

class ChunkedEmbeddingResult(BaseModel):
    """
    Outcome of creating or updating a (possibly) chunked document.
    """
    entity: MirrorRecord
    chunks: List[MirrorRecord]
    total_chunks: int = Field(..., alias="totalChunks")
    was_chunked: bool = Field(..., alias="wasChunked")

    model_config = ConfigDict(populate_by_name=True)


class EmbeddingPage(BaseModel):
    data: List[MirrorRecord]
    count: int
    total_count: int = Field(..., alias="totalCount")

    model_config = ConfigDict(populate_by_name=True)


class RagAnswer(BaseModel):
    text: str
    source_documents: List[VectorRecord] = Field(
        default_factory=list, alias="sourceDocuments"
    )

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------

class EmbeddingService:
    """
    Lifecycle manager for embeddings across the mirror and vector stores.

    Parameters
    ----------
    mirror_store : MirrorStore
        Secondary store holding titles, content and chunk linkage.

    vector_store : VectorStore
        Authoritative store holding embedding vectors.

    embedder : Embedder
        Embedding provider client.

    settings : Settings
        Chunking and preprocessing configuration.

    llm : Optional[LLMClient]
        Answer generator; only required by ``query_embeddings``.
    """

    def __init__(
        self,
        mirror_store: MirrorStore,
        vector_store: VectorStore,
        embedder: Embedder,
        settings: Settings,
        llm: Optional[LLMClient] = None,
    ) -> None:
        self.mirror_store = mirror_store
        self.vector_store = vector_store
        self.embedder = embedder
        self.settings = settings
        self.llm = llm

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _preprocess(self, content: str) -> str:
        if self.settings.preprocess_content:
            return preprocess_content(content)
        return content

    def _prepare(self, doc: LogicalDocument) -> LogicalDocument:
        return doc.model_copy(update={"body": self._preprocess(doc.body)})

    def _should_chunk(self, auto_chunk: Optional[bool]) -> bool:
        return self.settings.auto_chunk if auto_chunk is None else auto_chunk

    async def write_vector(self, record: MirrorRecord) -> str:
        """
        Embed a mirror entry's content and insert it into the vector store.

        Returns the new vector row id. The row's metadata carries enough to
        rebuild the mirror entry without consulting the mirror store.
        """
        vector = await self.embedder.embed_one(record.content)
        metadata = {
            "id": record.document_id,
            "title": record.title,
            "collectionType": record.collection_type,
            "fieldName": record.field_name,
        }
        return await self.vector_store.insert(record.content, metadata, vector)

    async def _attach_vector(self, record: MirrorRecord) -> MirrorRecord:
        """
        Best effort: create the vector row and store its id on the entry.
        """
        try:
            embedding_id = await self.write_vector(record)
            return await self.mirror_store.update(
                record.document_id, embedding_id=embedding_id
            )
        except Exception as exc:
            logger.error(
                "Failed to create embedding for %s: %s",
                record.document_id,
                exc,
            )
            return record

    async def _replace_vector(self, record: MirrorRecord) -> MirrorRecord:
        """
        Best effort: drop the entry's vector rows and embed it again.
        """
        try:
            await self.vector_store.delete_by_document_id(record.document_id)
        except Exception as exc:
            logger.error(
                "Failed to delete old embedding for %s: %s",
                record.document_id,
                exc,
            )
            return record

        try:
            embedding_id = await self.write_vector(record)
        except Exception as exc:
            logger.error(
                "Failed to recreate embedding for %s: %s",
                record.document_id,
                exc,
            )
            embedding_id = None

        try:
            return await self.mirror_store.update(
                record.document_id, embedding_id=embedding_id
            )
        except Exception as exc:
            logger.error(
                "Failed to store embedding id for %s: %s",
                record.document_id,
                exc,
            )
            return record

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    async def materialize(
        self,
        doc: LogicalDocument,
        chunks: List[Chunk],
    ) -> List[MirrorRecord]:
        """
        Persist chunks as mirror entries, each followed by its vector row.

        A single chunk becomes one plain entry. For a group, chunk 0 is
        written first and its id becomes ``parentId`` of every later chunk.
        Failure to write the anchor aborts the group; any other failure is
        logged and the remaining chunks are still written.

        Raises
        ------
        ChunkingError
            If ``chunks`` is empty.
        """
        if not chunks:
            raise ChunkingError("Content is empty or could not be chunked")

        if len(chunks) == 1:
            record = await self.mirror_store.create(
                title=doc.title,
                content=chunks[0].text,
                collection_type=doc.collection_type,
                field_name=doc.field_name,
                metadata=dict(doc.metadata) or None,
                related=doc.relation,
            )
            return [await self._attach_vector(record)]

        logger.info(
            "Chunking %r into %d parts (chunk_size=%d, overlap=%d)",
            doc.title,
            len(chunks),
            self.settings.chunk_size,
            self.settings.chunk_overlap,
        )

        records: List[MirrorRecord] = []
        anchor_id: Optional[str] = None

        for chunk in chunks:
            metadata: Dict[str, Any] = {
                **doc.metadata,
                IS_CHUNK: True,
                CHUNK_INDEX: chunk.chunk_index,
                TOTAL_CHUNKS: chunk.total_chunks,
                START_OFFSET: chunk.start_offset,
                END_OFFSET: chunk.end_offset,
                ORIGINAL_TITLE: doc.title,
                PARENT_ID: anchor_id,
                ESTIMATED_TOKENS: chunk.estimated_tokens,
            }
            kwargs = dict(
                title=format_chunk_title(doc.title, chunk.chunk_index, chunk.total_chunks),
                content=chunk.text,
                collection_type=doc.collection_type,
                field_name=doc.field_name,
                metadata=metadata,
                related=doc.relation if chunk.chunk_index == 0 else None,
            )

            if anchor_id is None:
                # Anchor failure propagates: later chunks would have no parent
                record = await self.mirror_store.create(**kwargs)
                anchor_id = record.document_id
            else:
                try:
                    record = await self.mirror_store.create(**kwargs)
                except Exception as exc:
                    logger.error(
                        "Failed to create chunk %d/%d of %r: %s",
                        chunk.chunk_index + 1,
                        chunk.total_chunks,
                        doc.title,
                        exc,
                    )
                    continue

            records.append(await self._attach_vector(record))

        logger.info(
            "Created %d chunks for %r, anchor %s",
            len(records),
            doc.title,
            anchor_id,
        )
        return records

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_embedding(
        self,
        doc: LogicalDocument,
        auto_chunk: Optional[bool] = None,
    ) -> MirrorRecord:
        """
        Create a single embedding, or a chunk group when ``auto_chunk`` (or
        the configured default) is on and the content exceeds the chunk size.

        Returns the entry, or the group's anchor when chunked.
        """
        return await self._create(self._prepare(doc), auto_chunk)

    async def _create(
        self,
        doc: LogicalDocument,
        auto_chunk: Optional[bool],
    ) -> MirrorRecord:
        if self._should_chunk(auto_chunk) and needs_chunking(
            doc.body, self.settings.chunk_size
        ):
            result = await self._create_chunked(doc)
            return result.entity

        return await self._create_single(doc)

    async def create_chunked_embedding(
        self,
        doc: LogicalDocument,
    ) -> ChunkedEmbeddingResult:
        """
        Create one entry per chunk of ``doc``.

        Raises
        ------
        ChunkingError
            If the content is empty.
        """
        return await self._create_chunked(self._prepare(doc))

    async def _create_single(self, doc: LogicalDocument) -> MirrorRecord:
        single = Chunk(
            text=doc.body,
            chunk_index=0,
            total_chunks=1,
            start_offset=0,
            end_offset=len(doc.body),
            estimated_tokens=estimate_tokens(doc.body),
        )
        records = await self.materialize(doc, [single])
        return records[0]

    async def _create_chunked(self, doc: LogicalDocument) -> ChunkedEmbeddingResult:
        chunks = chunk_content(
            doc.body,
            chunk_size=self.settings.chunk_size,
            chunk_overlap=self.settings.chunk_overlap,
        )
        if not chunks:
            raise ChunkingError("Content is empty or could not be chunked")

        if len(chunks) == 1:
            entity = await self._create_single(doc)
            return ChunkedEmbeddingResult(
                entity=entity,
                chunks=[entity],
                total_chunks=1,
                was_chunked=False,
            )

        records = await self.materialize(doc, chunks)
        return ChunkedEmbeddingResult(
            entity=records[0],
            chunks=records,
            total_chunks=len(records),
            was_chunked=True,
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_embedding(self, document_id: str) -> Optional[MirrorRecord]:
        return await self.mirror_store.get(document_id)

    async def get_embeddings(
        self,
        page: int = 1,
        page_size: int = 10,
        search: Optional[str] = None,
    ) -> EmbeddingPage:
        """
        One page of entries, newest first. ``search`` filters by a
        case-insensitive match on title or content; ``total_count`` counts
        the filtered entries.
        """
        data, total = await self.mirror_store.list_page(
            page=page, page_size=page_size, search=search or None
        )
        return EmbeddingPage(data=data, count=len(data), total_count=total)

    async def find_related_chunks(self, document_id: str) -> List[MirrorRecord]:
        """
        Return every member of the group ``document_id`` belongs to, sorted
        by chunk index. A standalone entry returns just itself, unless other
        entries name it as their parent.
        """
        entry = await self.mirror_store.get(document_id)
        if entry is None:
            return []

        if not entry.is_chunk and not entry.parent_id:
            children = await self.mirror_store.find_children(document_id)
            if not children:
                return [entry]
            members = [entry, *children]
        else:
            members = await self.mirror_store.find_group(entry.parent_id or document_id)

        return sorted(members, key=lambda record: record.chunk_index)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_related_chunks(self, document_id: str) -> List[MirrorRecord]:
        """
        Delete every member of the group, vector rows before mirror entries.

        Vector deletion failures are logged and do not prevent the mirror
        entry from being deleted. Returns the deleted entries.
        """
        members = await self.find_related_chunks(document_id)
        await self._delete_members(members)

        if len(members) > 1:
            logger.info("Deleted %d grouped entries for %s", len(members), document_id)
        return members

    async def _delete_members(self, members: List[MirrorRecord]) -> None:
        for member in members:
            try:
                await self.vector_store.delete_by_document_id(member.document_id)
            except Exception as exc:
                logger.error(
                    "Failed to delete chunk %s from vector store: %s",
                    member.document_id,
                    exc,
                )

            await self.mirror_store.delete(member.document_id)

    async def delete_embedding(self, document_id: str) -> List[MirrorRecord]:
        """
        Delete an entry together with its whole chunk group.

        Raises
        ------
        RecordNotFoundError
            If no entry has this id.
        """
        if await self.mirror_store.get(document_id) is None:
            raise RecordNotFoundError(document_id)
        return await self.delete_related_chunks(document_id)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_embedding(
        self,
        document_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        auto_chunk: Optional[bool] = None,
    ) -> MirrorRecord:
        """
        Update an entry's title, content and/or metadata.

        Group members are updated in place while the edit still fits the
        group's chunking. With ``auto_chunk`` (or the configured default) on,
        an edit that changes whether chunking is needed (a standalone entry
        growing past the chunk size, a chunk growing past it, or a group
        shrinking below it) builds a new group from the preprocessed content
        and then removes the old entries. If building the new group fails,
        the old entries are left untouched. Returns the updated entry or the
        new anchor.

        Raises
        ------
        RecordNotFoundError
            If no entry has this id.
        """
        if content is not None:
            content = self._preprocess(content)

        current = await self.mirror_store.get(document_id)
        if current is None:
            raise RecordNotFoundError(document_id)

        in_group = current.is_chunk or current.parent_id is not None
        content_changed = content is not None and content != current.content
        chunk_size = self.settings.chunk_size

        if in_group:
            if content_changed and self._should_chunk(auto_chunk):
                members = await self.find_related_chunks(document_id)
                body = self._reassemble(members, document_id, content)
                if len(content) > chunk_size or not needs_chunking(body, chunk_size):
                    return await self._rematerialize(
                        members, current, body, title, metadata
                    )

            result = await self.update_chunked_embedding(
                document_id, title=title, content=content, metadata=metadata
            )
            return result.entity

        if (
            content_changed
            and self._should_chunk(auto_chunk)
            and needs_chunking(content, chunk_size)
        ):
            children = await self.mirror_store.find_children(document_id)
            return await self._rematerialize(
                [current, *children], current, content, title, metadata
            )

        return await self._update_single(current, title, content, metadata)

    async def update_chunked_embedding(
        self,
        document_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChunkedEmbeddingResult:
        """
        Update one chunk in place without touching the rest of its group.

        The ``[Part i/N]`` title suffix is preserved and chunk metadata is
        merged rather than replaced.

        Raises
        ------
        RecordNotFoundError
            If no entry has this id.
        """
        current = await self.mirror_store.get(document_id)
        if current is None:
            raise RecordNotFoundError(document_id)

        content_changed = content is not None and content != current.content
        fields: Dict[str, Any] = {}

        if title is not None:
            suffix = _PART_SUFFIX.search(current.title or "")
            fields["title"] = f"{title}{suffix.group(0)}" if suffix else title

        if content is not None:
            fields["content"] = content

        if metadata is not None or content_changed:
            merged = {**(current.metadata or {}), **(metadata or {})}
            if content_changed and ESTIMATED_TOKENS in merged:
                merged[ESTIMATED_TOKENS] = estimate_tokens(content)
            fields["metadata"] = merged

        updated = await self.mirror_store.update(document_id, **fields)

        if content_changed or title is not None:
            updated = await self._replace_vector(updated)

        members = await self.find_related_chunks(document_id)
        return ChunkedEmbeddingResult(
            entity=updated,
            chunks=members,
            total_chunks=len(members),
            was_chunked=len(members) > 1,
        )

    async def _update_single(
        self,
        current: MirrorRecord,
        title: Optional[str],
        content: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> MirrorRecord:
        fields: Dict[str, Any] = {}
        if title is not None:
            fields["title"] = title
        if content is not None:
            fields["content"] = content
        if metadata is not None:
            fields["metadata"] = metadata

        updated = await self.mirror_store.update(current.document_id, **fields)

        content_changed = content is not None and content != current.content
        title_changed = title is not None and title != current.title
        if content_changed or title_changed:
            updated = await self._replace_vector(updated)
        return updated

    @staticmethod
    def _reassemble(
        members: List[MirrorRecord],
        edited_id: str,
        new_content: str,
    ) -> str:
        """
        Approximate the group's source text with one member's content replaced.

        The overlap prefix of each later chunk is dropped using its recorded
        raw span length. This is lossy (trimming is not recorded) and is only
        used to decide on, and feed, re-chunking.
        """
        parts: List[str] = []
        for index, member in enumerate(members):
            if member.document_id == edited_id:
                parts.append(new_content)
                continue

            text = member.content
            meta = member.metadata or {}
            start, end = meta.get(START_OFFSET), meta.get(END_OFFSET)
            if index > 0 and start is not None and end is not None:
                raw_len = end - start
                if 0 < raw_len < len(text):
                    text = text[-raw_len:]
            parts.append(text)
        return " ".join(part.strip() for part in parts if part.strip())

    async def _rematerialize(
        self,
        members: List[MirrorRecord],
        current: MirrorRecord,
        body: str,
        title: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> MirrorRecord:
        anchor = next((m for m in members if not m.parent_id), current)
        anchor_meta = anchor.metadata or {}

        base_title = title
        if base_title is None:
            base_title = anchor_meta.get(ORIGINAL_TITLE) or _PART_SUFFIX.sub(
                "", anchor.title
            )

        base_metadata = {
            key: value
            for key, value in anchor_meta.items()
            if key not in CHUNK_METADATA_KEYS
        }
        base_metadata.update(metadata or {})

        doc = LogicalDocument(
            title=base_title,
            body=body,
            metadata=base_metadata,
            relation=anchor.related,
            collection_type=current.collection_type,
            field_name=current.field_name,
        )

        logger.info(
            "Re-materializing %r (%d existing entries) after chunking boundary change",
            base_title,
            len(members),
        )

        # New group first; the old one is only removed once the new anchor exists
        created = await self._create(doc, auto_chunk=True)
        await self._delete_members(members)
        return created

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def similarity_search(
        self,
        query: str,
        k: int = 4,
    ) -> List[Tuple[VectorRecord, float]]:
        """
        Return the ``k`` closest vector rows as (record, cosine distance).
        """
        vector = await self.embedder.embed_one(query)
        return await self.vector_store.similarity_search(vector, k=k)

    async def query_embeddings(self, query: str) -> RagAnswer:
        """
        Answer ``query`` from the closest stored content.

        Candidates at or beyond the configured distance threshold are
        dropped; the best few form the context, and only the single best
        match is returned as a source.
        """
        if self.llm is None:
            raise RuntimeError("query_embeddings requires an LLM client")

        results = await self.similarity_search(query, k=RAG_CANDIDATES)

        for rank, (record, distance) in enumerate(results, start=1):
            logger.debug("%d. distance=%.4f title=%s", rank, distance, record.title or "N/A")

        threshold = self.settings.similarity_threshold
        relevant = [(r, d) for (r, d) in results if d < threshold][:RAG_CONTEXT_DOCS]

        logger.info(
            "Query %r: %d results, %d below threshold %.2f",
            query,
            len(results),
            len(relevant),
            threshold,
        )

        context = "\n\n".join(
            (f"Title: {record.title}\n" if record.title else "") + record.content
            for record, _ in relevant
        )
        text = await self.llm.generate(context, query)

        return RagAnswer(
            text=text,
            source_documents=[relevant[0][0]] if relevant else [],
        )
