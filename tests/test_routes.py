"""
HTTP Route Tests

The application is driven in-process through httpx's ASGI transport, which
does not run the startup hook, so no database is touched. Services are
wired to the in-memory stores via ``dependency_overrides``.
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock
from httpx import AsyncClient, ASGITransport
from pydantic import SecretStr

from content_embeddings.api.dependencies import (
    get_app_settings,
    get_embedding_service,
    get_sync_service,
)
from content_embeddings.llm.client import LLMClient
from content_embeddings.main import create_app
from content_embeddings.services.embedding_service import EmbeddingService
from content_embeddings.services.sync_service import SyncService

ADMIN_KEY = "admin-secret"


@pytest.fixture
def llm():
    mock = AsyncMock(spec=LLMClient)
    mock.generate.return_value = "Generated answer."
    return mock


@pytest.fixture
def app(settings, mirror_store, vector_store, embedder, llm):
    admin_settings = settings.model_copy(update={"admin_api_key": SecretStr(ADMIN_KEY)})
    service = EmbeddingService(
        mirror_store=mirror_store,
        vector_store=vector_store,
        embedder=embedder,
        settings=admin_settings,
        llm=llm,
    )
    sync = SyncService(
        mirror_store=mirror_store,
        vector_store=vector_store,
        embedding_service=service,
        settings=admin_settings,
    )

    app = create_app()
    app.dependency_overrides[get_app_settings] = lambda: admin_settings
    app.dependency_overrides[get_embedding_service] = lambda: service
    app.dependency_overrides[get_sync_service] = lambda: sync
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _create(client, title="Doc", content="Some content.", **extra):
    resp = await client.post(
        "/embeddings/create-embedding",
        json={"data": {"title": title, "content": content, **extra}},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


# ---------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "vector_store": False, "mirror_store": False}


# ---------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_embedding_uses_camel_case(client, vector_store):
    body = await _create(
        client,
        metadata={"source": "test"},
        related={"type": "api::article.article", "id": "7"},
    )

    assert body["title"] == "Doc"
    assert body["collectionType"] == "standalone"
    assert body["fieldName"] == "content"
    assert body["metadata"] == {"source": "test"}
    assert body["related"] == {"type": "api::article.article", "id": "7"}
    assert body["embeddingId"] in vector_store.rows


@pytest.mark.asyncio
async def test_create_embedding_with_auto_chunk_returns_anchor(client, mirror_store, long_text):
    body = await _create(client, content=long_text(1500), autoChunk=True)

    assert body["metadata"]["isChunk"] is True
    assert body["metadata"]["chunkIndex"] == 0
    assert body["title"].startswith("Doc [Part 1/")
    assert await mirror_store.count() > 1


@pytest.mark.asyncio
async def test_create_chunked_embedding_returns_whole_group(client, long_text):
    resp = await client.post(
        "/embeddings/create-chunked-embedding",
        json={"data": {"title": "Doc", "content": long_text(1500)}},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["wasChunked"] is True
    assert body["totalChunks"] == len(body["chunks"]) > 1
    assert body["entity"]["documentId"] == body["chunks"][0]["documentId"]
    parent_ids = {c["metadata"]["parentId"] for c in body["chunks"][1:]}
    assert parent_ids == {body["entity"]["documentId"]}


@pytest.mark.asyncio
async def test_create_chunked_embedding_short_content(client):
    resp = await client.post(
        "/embeddings/create-chunked-embedding",
        json={"data": {"title": "Doc", "content": "Short."}},
    )

    body = resp.json()
    assert body["wasChunked"] is False
    assert body["totalChunks"] == 1
    assert body["entity"]["metadata"] is None


@pytest.mark.asyncio
async def test_create_chunked_embedding_rejects_blank_content(client):
    resp = await client.post(
        "/embeddings/create-chunked-embedding",
        json={"data": {"title": "Doc", "content": "   "}},
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "bad_request"


@pytest.mark.asyncio
async def test_create_embedding_validates_body(client):
    resp = await client.post("/embeddings/create-embedding", json={"data": {"content": "x"}})

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_find_one(client):
    created = await _create(client)

    resp = await client.get(f"/embeddings/find/{created['documentId']}")

    assert resp.status_code == 200
    assert resp.json()["content"] == "Some content."


@pytest.mark.asyncio
async def test_find_one_missing_is_404(client):
    resp = await client.get("/embeddings/find/missing")

    assert resp.status_code == 404
    assert resp.json() == {
        "error": "not_found",
        "detail": "Embedding with id missing not found",
    }


@pytest.mark.asyncio
async def test_find_page(client):
    for i in range(3):
        await _create(client, title=f"T{i}")

    resp = await client.get("/embeddings/find", params={"page": 1, "pageSize": 2})

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 2
    assert body["totalCount"] == 3
    assert len(body["data"]) == 2


@pytest.mark.asyncio
async def test_find_page_with_search(client):
    await _create(client, title="Release notes", content="Version 2 ships today.")
    await _create(client, title="Roadmap", content="Next RELEASE in spring.")
    await _create(client, title="Minutes", content="Nothing relevant.")

    resp = await client.get("/embeddings/find", params={"search": "release"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["totalCount"] == 2
    assert sorted(d["title"] for d in body["data"]) == ["Release notes", "Roadmap"]


@pytest.mark.asyncio
async def test_update_embedding(client):
    created = await _create(client)

    resp = await client.put(
        f"/embeddings/update-embedding/{created['documentId']}",
        json={"data": {"title": "Renamed"}},
    )

    assert resp.status_code == 200
    assert resp.json()["title"] == "Renamed"


@pytest.mark.asyncio
async def test_update_missing_is_404(client):
    resp = await client.put(
        "/embeddings/update-embedding/missing",
        json={"data": {"title": "Renamed"}},
    )

    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_embedding_removes_group(client, mirror_store, long_text):
    anchor = await _create(client, content=long_text(1500), autoChunk=True)
    total = await mirror_store.count()

    resp = await client.delete(f"/embeddings/delete-embedding/{anchor['documentId']}")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "deleted"
    assert body["count"] == total
    assert await mirror_store.count() == 0


@pytest.mark.asyncio
async def test_related_chunks(client, long_text):
    anchor = await _create(client, content=long_text(1500), autoChunk=True)

    resp = await client.get(f"/embeddings/related/{anchor['documentId']}")

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == len(body["data"]) > 1
    assert [d["metadata"]["chunkIndex"] for d in body["data"]] == list(range(body["count"]))


@pytest.mark.asyncio
async def test_query_requires_text(client, llm):
    resp = await client.get("/embeddings/embeddings-query", params={"query": "  "})

    assert resp.status_code == 200
    assert resp.json() == {"error": "Please provide a query"}
    llm.generate.assert_not_awaited()


@pytest.mark.asyncio
async def test_query_returns_answer_and_source(client, llm):
    created = await _create(client, title="Bananas", content="banana")

    resp = await client.get("/embeddings/embeddings-query", params={"query": "banana"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["text"] == "Generated answer."
    assert [s["documentId"] for s in body["sourceDocuments"]] == [created["documentId"]]
    llm.generate.assert_awaited_once_with("Title: Bananas\nbanana", "banana")


# ---------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sync_routes_require_admin_key(client):
    assert (await client.get("/sync/status")).status_code == 403
    assert (await client.get("/sync/status", params={"key": "wrong"})).status_code == 403
    assert (await client.post("/sync/recreate")).status_code == 403


@pytest.mark.asyncio
async def test_sync_status(client, vector_store):
    vector_store.add_row("Loose", {"id": "abc", "title": "Loose"})

    resp = await client.get("/sync/status", headers={"x-admin-key": ADMIN_KEY})

    assert resp.status_code == 200
    assert resp.json() == {
        "neonCount": 1,
        "strapiCount": 0,
        "inSync": False,
        "missingInStrapi": 1,
        "missingInNeon": 0,
        "contentDifferences": 0,
    }


@pytest.mark.asyncio
async def test_sync_execute_dry_run(client, vector_store, mirror_store):
    vector_store.add_row("Loose", {"id": "abc", "title": "Loose"})

    resp = await client.post(
        "/sync/execute",
        params={"key": ADMIN_KEY},
        json={"dryRun": True, "removeOrphans": True},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["dryRun"] is True
    assert body["actions"] == {"created": 1, "updated": 0, "orphansRemoved": 0}
    assert body["details"]["created"] == ["[DRY RUN] abc (Loose)"]
    assert await mirror_store.count() == 0


@pytest.mark.asyncio
async def test_sync_execute_without_body(client, vector_store, mirror_store):
    vector_store.add_row("Loose", {"id": "abc", "title": "Loose"})

    resp = await client.post("/sync/execute", headers={"x-admin-key": ADMIN_KEY})

    assert resp.status_code == 200
    assert resp.json()["actions"]["created"] == 1
    assert (await mirror_store.get("abc")).content == "Loose"


@pytest.mark.asyncio
async def test_sync_recreate(client, vector_store):
    created = await _create(client)
    vector_store.add_row("stale", {"id": "gone"})

    resp = await client.post("/sync/recreate", headers={"x-admin-key": ADMIN_KEY})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["deletedFromNeon"] == 2
    assert body["processedFromStrapi"] == 1
    assert body["recreatedInNeon"] == 1
    assert [r["metadata"]["id"] for r in vector_store.rows.values()] == [created["documentId"]]
