"""
Sync Reports

Result structures returned by the sync service. They only aggregate; all
decisions are made by the service. JSON field names (via aliases) are part of
the external contract.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

DRY_RUN_PREFIX = "[DRY RUN] "

SyncAction = Literal["created", "updated", "orphans_removed"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def describe(document_id: str, title: str) -> str:
    """Human-readable ``"<id> (<title>)"`` label for report details."""
    return f"{document_id} ({title or 'untitled'})"


class SyncActionCounts(BaseModel):
    created: int = 0
    updated: int = 0
    orphans_removed: int = Field(default=0, alias="orphansRemoved")

    model_config = ConfigDict(populate_by_name=True)


class SyncActionDetails(BaseModel):
    created: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    orphans_removed: List[str] = Field(default_factory=list, alias="orphansRemoved")

    model_config = ConfigDict(populate_by_name=True)


class SyncReport(BaseModel):
    """
    Outcome of one reconciliation run.

    Counts cover every classified (dry run) or attempted action; details
    list only the ones that were classified or actually applied, failures
    go to ``errors``. ``success`` is True iff ``errors`` is empty.
    """

    success: bool = False
    timestamp: str = Field(default_factory=_now_iso)
    dry_run: bool = Field(default=False, alias="dryRun")
    vector_count: int = Field(default=0, alias="neonCount")
    mirror_count: int = Field(default=0, alias="strapiCount")
    actions: SyncActionCounts = Field(default_factory=SyncActionCounts)
    details: SyncActionDetails = Field(default_factory=SyncActionDetails)
    errors: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def count(self, action: SyncAction) -> None:
        setattr(self.actions, action, getattr(self.actions, action) + 1)

    def record(self, action: SyncAction, document_id: str, title: str) -> None:
        """
        Add the detail line of a classified (dry run) or applied action.
        """
        label = describe(document_id, title)
        if self.dry_run:
            label = DRY_RUN_PREFIX + label
        getattr(self.details, action).append(label)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def finish(self) -> "SyncReport":
        self.success = not self.errors
        return self


class SyncStatus(BaseModel):
    """
    Read-only comparison of both stores.
    """

    vector_count: int = Field(..., alias="neonCount")
    mirror_count: int = Field(..., alias="strapiCount")
    in_sync: bool = Field(..., alias="inSync")
    missing_in_mirror: int = Field(..., alias="missingInStrapi")
    missing_in_vector_store: int = Field(..., alias="missingInNeon")
    content_differences: int = Field(..., alias="contentDifferences")

    model_config = ConfigDict(populate_by_name=True)


class RecreateDetails(BaseModel):
    recreated: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class RecreateReport(BaseModel):
    """
    Outcome of rebuilding the vector store from the mirror.
    """

    success: bool = False
    timestamp: str = Field(default_factory=_now_iso)
    deleted_from_vector_store: int = Field(default=0, alias="deletedFromNeon")
    processed_from_mirror: int = Field(default=0, alias="processedFromStrapi")
    recreated_in_vector_store: int = Field(default=0, alias="recreatedInNeon")
    errors: List[str] = Field(default_factory=list)
    details: RecreateDetails = Field(default_factory=RecreateDetails)

    model_config = ConfigDict(populate_by_name=True)
