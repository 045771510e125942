"""
Sync Service

Keeps the mirror store convergent with the authoritative vector store.

Workflow
--------
1. Load full snapshots of both stores (orphan detection needs global
   visibility, so there is no partial or streaming load).
2. Classify every record as create / update / delete-orphan. The
   classification depends only on the current snapshots, which makes a
   second run over unchanged stores a no-op.
3. Unless running dry, apply the actions phase by phase
   (create, then update, then delete-orphan). A failed action is reported
   and the remaining actions still run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..config import Settings
from ..db.mirror_store import MirrorStore
from ..db.vector_store import VectorStore
from ..embeddings.models import MirrorRecord, VectorRecord
from .embedding_service import EmbeddingService
from .report import RecreateReport, SyncReport, SyncStatus, describe

logger = logging.getLogger("embeddings.sync")


@dataclass
class SyncPlan:
    """Classified actions for one pair of snapshots."""
    to_create: List[VectorRecord] = field(default_factory=list)
    to_update: List[Tuple[MirrorRecord, VectorRecord]] = field(default_factory=list)
    orphans: List[MirrorRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def index_vectors(
    vectors: List[VectorRecord],
) -> Tuple[Dict[str, VectorRecord], List[str]]:
    """
    Map ``metadata.id`` to vector record.

    Rows without a document id are returned as error messages instead. When
    several rows share a document id, the first one (by id order) wins.
    """
    by_document_id: Dict[str, VectorRecord] = {}
    errors: List[str] = []

    for vector in vectors:
        if not vector.document_id:
            errors.append(f"Vector record {vector.id} has no document id in metadata")
            continue
        if vector.document_id in by_document_id:
            logger.warning(
                "Vector records %s and %s share document id %s; keeping the first",
                by_document_id[vector.document_id].id,
                vector.id,
                vector.document_id,
            )
            continue
        by_document_id[vector.document_id] = vector

    return by_document_id, errors


def needs_update(mirror: MirrorRecord, vector: VectorRecord) -> bool:
    return (
        mirror.content != vector.content
        or mirror.title != vector.title
        or not mirror.embedding_id
    )


def classify(
    vectors: List[VectorRecord],
    mirrors: List[MirrorRecord],
    remove_orphans: bool,
) -> SyncPlan:
    """
    Build the create / update / delete-orphan plan for two snapshots.
    """
    vector_by_document_id, errors = index_vectors(vectors)
    mirror_by_id = {mirror.document_id: mirror for mirror in mirrors}

    plan = SyncPlan(errors=errors)

    for document_id, vector in vector_by_document_id.items():
        mirror = mirror_by_id.get(document_id)
        if mirror is None:
            plan.to_create.append(vector)
        elif needs_update(mirror, vector):
            plan.to_update.append((mirror, vector))

    if remove_orphans:
        plan.orphans = [
            mirror for mirror in mirrors
            if mirror.document_id not in vector_by_document_id
        ]

    return plan


class SyncService:
    """
    Reconciler between the vector store (source of truth) and the mirror.
    """

    def __init__(
        self,
        mirror_store: MirrorStore,
        vector_store: VectorStore,
        embedding_service: EmbeddingService,
        settings: Settings,
    ) -> None:
        self.mirror_store = mirror_store
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.settings = settings

    async def _load_snapshots(self) -> Tuple[List[VectorRecord], List[MirrorRecord]]:
        vectors = await self.vector_store.list_all()
        mirrors = await self.mirror_store.list_all()
        return vectors, mirrors

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_sync_status(self) -> SyncStatus:
        """
        Compare both stores without changing anything.
        """
        vectors, mirrors = await self._load_snapshots()
        vector_by_document_id, _ = index_vectors(vectors)
        mirror_by_id = {mirror.document_id: mirror for mirror in mirrors}

        missing_in_mirror = 0
        content_differences = 0
        for document_id, vector in vector_by_document_id.items():
            mirror = mirror_by_id.get(document_id)
            if mirror is None:
                missing_in_mirror += 1
            elif mirror.content != vector.content:
                content_differences += 1

        missing_in_vector_store = sum(
            1 for mirror in mirrors if mirror.document_id not in vector_by_document_id
        )

        return SyncStatus(
            vector_count=len(vectors),
            mirror_count=len(mirrors),
            in_sync=(
                missing_in_mirror == 0
                and missing_in_vector_store == 0
                and content_differences == 0
            ),
            missing_in_mirror=missing_in_mirror,
            missing_in_vector_store=missing_in_vector_store,
            content_differences=content_differences,
        )

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_from_vector_store(
        self,
        remove_orphans: bool = False,
        dry_run: bool = False,
    ) -> SyncReport:
        """
        Bring the mirror in line with the vector store.

        Parameters
        ----------
        remove_orphans : bool
            Also delete mirror entries that have no vector row.

        dry_run : bool
            Classify and report only; issue no writes.

        Returns
        -------
        SyncReport
            Counts, per-record details and errors. Never raises for
            per-record failures.
        """
        report = SyncReport(dry_run=dry_run)

        try:
            vectors, mirrors = await self._load_snapshots()
        except Exception as exc:
            logger.error("Sync failed while loading snapshots: %s", exc)
            report.add_error(f"Sync failed: {exc}")
            return report.finish()

        report.vector_count = len(vectors)
        report.mirror_count = len(mirrors)

        plan = classify(vectors, mirrors, remove_orphans)
        for message in plan.errors:
            report.add_error(message)

        for vector in plan.to_create:
            report.count("created")
            if dry_run:
                report.record("created", vector.document_id, vector.title)
                continue
            try:
                await self.mirror_store.create(
                    document_id=vector.document_id,
                    title=vector.title,
                    content=vector.content,
                    collection_type=vector.collection_type,
                    field_name=vector.field_name,
                    embedding_id=vector.id,
                )
                report.record("created", vector.document_id, vector.title)
            except Exception as exc:
                logger.error("Failed to create mirror entry for %s: %s", vector.document_id, exc)
                report.add_error(
                    f"Failed to create mirror entry for {vector.document_id}: {exc}"
                )

        for mirror, vector in plan.to_update:
            report.count("updated")
            if dry_run:
                report.record("updated", vector.document_id, vector.title)
                continue
            try:
                await self.mirror_store.update(
                    mirror.document_id,
                    title=vector.title,
                    content=vector.content,
                    embedding_id=vector.id,
                )
                report.record("updated", vector.document_id, vector.title)
            except Exception as exc:
                logger.error("Failed to update mirror entry %s: %s", mirror.document_id, exc)
                report.add_error(
                    f"Failed to update mirror entry {mirror.document_id}: {exc}"
                )

        for orphan in plan.orphans:
            report.count("orphans_removed")
            if dry_run:
                report.record("orphans_removed", orphan.document_id, orphan.title)
                continue
            try:
                await self.mirror_store.delete(orphan.document_id)
                report.record("orphans_removed", orphan.document_id, orphan.title)
            except Exception as exc:
                logger.error("Failed to remove orphan %s: %s", orphan.document_id, exc)
                report.add_error(f"Failed to remove orphan {orphan.document_id}: {exc}")

        report.finish()
        logger.info(
            "Sync %s: created=%d updated=%d orphans_removed=%d errors=%d",
            "dry run" if dry_run else "complete",
            report.actions.created,
            report.actions.updated,
            report.actions.orphans_removed,
            len(report.errors),
        )
        return report

    # ------------------------------------------------------------------
    # Recreate
    # ------------------------------------------------------------------

    async def recreate_all_embeddings(self) -> RecreateReport:
        """
        Rebuild the vector store from the mirror.

        Clears every vector row, then embeds each mirror entry again and
        stores the new vector id on it. Use after metadata format changes or
        to repair entries whose embedding creation failed.
        """
        report = RecreateReport()

        try:
            report.deleted_from_vector_store = await self.vector_store.clear()
            logger.info(
                "Deleted %d rows from vector store", report.deleted_from_vector_store
            )
            mirrors = await self.mirror_store.list_all()
        except Exception as exc:
            logger.error("Recreate failed: %s", exc)
            report.errors.append(f"Recreate failed: {exc}")
            return report

        report.processed_from_mirror = len(mirrors)
        total = len(mirrors)

        for position, entry in enumerate(mirrors, start=1):
            progress = f"[{position}/{total}]"

            if not entry.content:
                logger.info("%s Skipping %s - no content", progress, entry.document_id)
                report.details.failed.append(f"{entry.document_id}: no content")
                continue

            try:
                embedding_id = await self.embedding_service.write_vector(entry)
                await self.mirror_store.update(entry.document_id, embedding_id=embedding_id)
                report.recreated_in_vector_store += 1
                report.details.recreated.append(describe(entry.document_id, entry.title))
            except Exception as exc:
                logger.error("%s Failed: %s", progress, exc)
                report.errors.append(f"{entry.document_id}: {exc}")
                report.details.failed.append(f"{entry.document_id}: {exc}")

            # Spread provider calls to stay under rate limits
            if position < total and self.settings.recreate_delay:
                await asyncio.sleep(self.settings.recreate_delay)

        report.success = not report.errors
        logger.info(
            "Recreate complete. Recreated: %d, Failed: %d",
            report.recreated_in_vector_store,
            len(report.details.failed),
        )
        return report
