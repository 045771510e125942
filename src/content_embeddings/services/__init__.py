"""
Services Package

Domain services built on the store adapters: the embedding lifecycle
(materializer) and the store reconciler.
"""

from .embedding_service import (
    ChunkedEmbeddingResult,
    EmbeddingPage,
    EmbeddingService,
    RagAnswer,
)
from .report import RecreateReport, SyncReport, SyncStatus
from .sync_service import SyncService

__all__ = [
    "ChunkedEmbeddingResult",
    "EmbeddingPage",
    "EmbeddingService",
    "RagAnswer",
    "RecreateReport",
    "SyncReport",
    "SyncStatus",
    "SyncService",
]
