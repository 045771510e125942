"""
Database Package

Provides explicit async engine lifecycle management, model definitions and
the two store adapters (vector store, mirror store) for PostgreSQL with
pgvector.
"""

from .session import Database, create_vector_schema, create_mirror_schema
from .models import Base, EmbeddingDocument, EmbeddingEntry
from .vector_store import VectorStore
from .mirror_store import MirrorStore

__all__ = [
    "Database",
    "create_vector_schema",
    "create_mirror_schema",
    "Base",
    "EmbeddingDocument",
    "EmbeddingEntry",
    "VectorStore",
    "MirrorStore",
]
