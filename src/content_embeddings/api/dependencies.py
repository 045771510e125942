"""
API Dependencies

FastAPI dependency providers for settings, stores, provider clients and
services. Stores are bound to a session opened per request on the
``Database`` objects the application created at startup. Every provider
here can be replaced through ``app.dependency_overrides`` in tests.
"""

from __future__ import annotations

from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends, Request

from ..config import Settings, get_settings
from ..db import Database, MirrorStore, VectorStore
from ..embeddings.embedder import Embedder
from ..llm.client import LLMClient
from ..services.embedding_service import EmbeddingService
from ..services.sync_service import SyncService


def get_app_settings() -> Settings:
    return get_settings()


async def get_vector_store(request: Request) -> AsyncGenerator[VectorStore, None]:
    db: Database = request.app.state.vector_db
    async with db.session() as session:
        yield VectorStore(session)


async def get_mirror_store(request: Request) -> AsyncGenerator[MirrorStore, None]:
    db: Database = request.app.state.mirror_db
    async with db.session() as session:
        yield MirrorStore(session)


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


def get_embedding_service(
    mirror_store: MirrorStore = Depends(get_mirror_store),
    vector_store: VectorStore = Depends(get_vector_store),
    embedder: Embedder = Depends(get_embedder),
    llm: LLMClient = Depends(get_llm_client),
    settings: Settings = Depends(get_app_settings),
) -> EmbeddingService:
    return EmbeddingService(
        mirror_store=mirror_store,
        vector_store=vector_store,
        embedder=embedder,
        settings=settings,
        llm=llm,
    )


def get_sync_service(
    mirror_store: MirrorStore = Depends(get_mirror_store),
    vector_store: VectorStore = Depends(get_vector_store),
    embedding_service: EmbeddingService = Depends(get_embedding_service),
    settings: Settings = Depends(get_app_settings),
) -> SyncService:
    return SyncService(
        mirror_store=mirror_store,
        vector_store=vector_store,
        embedding_service=embedding_service,
        settings=settings,
    )
