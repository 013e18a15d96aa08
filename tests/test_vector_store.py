"""
Tests for services/vectorstore/VectorStore.py
Store handle operations against an in-memory Qdrant behind httpx.MockTransport.
"""

import pytest

from services.vectorstore.VectorStore import VectorStore
from shared.clients.rag.models.VectorPoint import make_point_id
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.models.document import ChunkMetadata, DocumentChunk, make_chunk_id
from shared.models.errors import StoreInitializationError
from tests.fake_backends import EMBED_DIMENSIONS, FakeBackend, fake_embedding

COLLECTION = "bento__shared"


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def rag_client(backend_env, backend, helper_config):
    client = RAGClientQdrant(helper_config=helper_config)
    client.set_transport(backend.transport)
    await client.boot()
    yield client
    await client.close()


@pytest.fixture
async def store(rag_client, helper_config):
    store = VectorStore(helper_config, rag_client, "shared", COLLECTION, EMBED_DIMENSIONS)
    await store.initialize()
    return store


def make_chunks(document_id: str, texts: list[str], source: str = "notes.txt") -> list[DocumentChunk]:
    return [
        DocumentChunk(
            id=make_chunk_id(document_id, index),
            title=source,
            content=text,
            metadata=ChunkMetadata(
                source=source,
                created_at="2026-01-01T00:00:00Z",
                file_type="txt",
                chunk_index=index,
                total_chunks=len(texts),
            ),
            vector=fake_embedding(text),
        )
        for index, text in enumerate(texts)
    ]


class TestInitialize:
    async def test_creates_missing_collection(self, store, backend):
        assert COLLECTION in backend.qdrant.collections
        config = backend.qdrant.collections[COLLECTION]["config"]
        assert config == {"vectors": {"size": EMBED_DIMENSIONS, "distance": "Cosine"}}

    async def test_opens_existing_collection(self, store, rag_client, helper_config, backend):
        await store.insert(make_chunks("doc", ["kept"]))

        reopened = VectorStore(helper_config, rag_client, "shared", COLLECTION, EMBED_DIMENSIONS)
        await reopened.initialize()

        assert len(await reopened.list_all()) == 1

    async def test_failure_raises_store_initialization_error(self, rag_client, helper_config, backend):
        backend.qdrant.fail_create = True
        store = VectorStore(helper_config, rag_client, "isolated:abc", "bento__isolated__abc", EMBED_DIMENSIONS)

        with pytest.raises(StoreInitializationError) as exc_info:
            await store.initialize()
        assert exc_info.value.store_key == "isolated:abc"


class TestInsertAndSearch:
    async def test_insert_uses_deterministic_point_ids(self, store, backend):
        chunks = make_chunks("doc-1", ["alpha", "beta"])

        assert await store.insert(chunks) == 2

        stored = backend.qdrant.collections[COLLECTION]["points"]
        assert set(stored) == {make_point_id("doc-1-chunk-0"), make_point_id("doc-1-chunk-1")}
        assert stored[make_point_id("doc-1-chunk-1")]["payload"]["chunk_id"] == "doc-1-chunk-1"

    async def test_reinserting_a_chunk_overwrites_it(self, store, backend):
        await store.insert(make_chunks("doc-1", ["first version"]))
        await store.insert(make_chunks("doc-1", ["second version"]))

        chunks = await store.list_all()
        assert [c.content for c in chunks] == ["second version"]

    async def test_wrong_vector_size_is_rejected(self, store):
        chunk = make_chunks("doc-1", ["alpha"])[0]
        chunk.vector = [1.0, 2.0]

        with pytest.raises(ValueError):
            await store.insert([chunk])

    async def test_search_ranks_by_similarity(self, store):
        await store.insert(make_chunks("doc-1", ["zzzz zzzz", "aaaa bbbb", "aaaa aaaa"]))

        hits = await store.search(fake_embedding("aaaa"), limit=2)

        assert [hit.chunk.content for hit in hits] == ["aaaa aaaa", "aaaa bbbb"]
        assert hits[0].score > hits[1].score
        assert hits[0].chunk.metadata.source == "notes.txt"
        assert hits[0].chunk.vector is None

    async def test_search_in_empty_store(self, store):
        assert await store.search(fake_embedding("anything"), limit=3) == []


class TestListAndDelete:
    async def test_list_all_returns_every_point(self, store, backend, rag_client):
        texts = [f"chunk {i}" for i in range(25)]
        await store.insert(make_chunks("big", texts))

        chunks = await store.list_all()

        assert sorted(c.content for c in chunks) == sorted(texts)

    async def test_iter_points_follows_page_cursor(self, store, rag_client):
        await store.insert(make_chunks("big", [f"chunk {i}" for i in range(25)]))

        first_page = await rag_client.do_scroll(COLLECTION, limit=10)
        points = [point async for point in rag_client.iter_points(COLLECTION, page_size=10)]

        assert len(first_page.points) == 10
        assert first_page.next_offset is not None
        assert len(points) == 25
        assert len({point["id"] for point in points}) == 25

    async def test_delete_by_document_prefix_is_exact(self, store):
        await store.insert(make_chunks("doc-1", ["a", "b", "c"]))
        await store.insert(make_chunks("doc-10", ["d", "e"]))
        await store.insert(make_chunks("doc-1x", ["f"]))

        deleted = await store.delete_by_document_prefix("doc-1")

        assert deleted == 3
        remaining = sorted(c.id for c in await store.list_all())
        assert remaining == ["doc-10-chunk-0", "doc-10-chunk-1", "doc-1x-chunk-0"]

    async def test_delete_by_document_uses_payload_filter(self, store, backend):
        await store.insert(make_chunks("doc-1", ["a", "b"]))
        await store.insert(make_chunks("doc-2", ["c"]))

        deleted = await store.delete_by_document_prefix("doc-1")

        assert deleted == 2
        # the store is never read in full to find the chunks
        assert backend.qdrant.scroll_requests == []
        document_filter = {"must": [{"key": "document_id", "match": {"value": "doc-1"}}]}
        assert backend.qdrant.count_requests[-1]["filter"] == document_filter
        assert backend.qdrant.delete_requests[-1] == {"filter": document_filter}
        assert [p["payload"]["chunk_id"] for p in backend.qdrant.points(COLLECTION)] == ["doc-2-chunk-0"]

    async def test_delete_unknown_document(self, store):
        await store.insert(make_chunks("doc-1", ["a"]))

        assert await store.delete_by_document_prefix("missing") == 0
        assert len(await store.list_all()) == 1

    async def test_delete_by_id(self, store):
        await store.insert(make_chunks("doc-1", ["a", "b"]))

        await store.delete_by_id("doc-1-chunk-0")

        assert [c.id for c in await store.list_all()] == ["doc-1-chunk-1"]

    async def test_clear_empties_but_keeps_store(self, store, backend):
        await store.insert(make_chunks("doc-1", ["a", "b"]))
        collection_before = backend.qdrant.collections[COLLECTION]

        await store.clear()

        # points are removed in place, the collection is never deleted and re-created
        assert backend.qdrant.collections[COLLECTION] is collection_before
        assert backend.qdrant.delete_requests[-1] == {"filter": {"must": []}}
        assert await store.list_all() == []

    async def test_destroy_removes_collection(self, store, backend):
        await store.destroy()

        assert COLLECTION not in backend.qdrant.collections
        # a second destroy is not an error
        await store.destroy()
