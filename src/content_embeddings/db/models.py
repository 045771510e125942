"""
SQLAlchemy Models

Defines the database schema for:
- Vector store rows (content + JSONB metadata + pgvector embedding)
- Mirror store entries (title, content, metadata, vector back-reference)

The two tables may live in different databases; nothing here declares a
foreign key between them. The only link is ``metadata->>'id'`` on the vector
row and ``embedding_id`` on the mirror entry.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    Text,
    DateTime,
    func,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Vector Store Model
# ---------------------------------------------------------------------

class EmbeddingDocument(Base):
    """
    Authoritative embedding row.

    The vector column is declared without a width here; the width is fixed
    per deployment when the table is created (see ``create_vector_schema``).
    """
    __tablename__ = "embeddings_documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
    )
    embedding = Column(Vector(), nullable=True)


# ---------------------------------------------------------------------
# Mirror Store Model
# ---------------------------------------------------------------------

class EmbeddingEntry(Base):
    """
    Mirror of an embedding, queryable without touching the vector store.
    """
    __tablename__ = "embedding_entries"

    document_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    collection_type: Mapped[str] = mapped_column(String(255), nullable=False)
    field_name: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
    )
    embedding_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    related_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    related_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )