"""Tests for DocumentService (ingestion, cache invalidation, listing)."""

import asyncio
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

import pytest

from rag_orchestrator.application.ports import ClockPort
from rag_orchestrator.application.services.document_service import DocumentService
from rag_orchestrator.application.services.query_cache import QueryCache
from rag_orchestrator.application.services.retrieval_engine import RetrievalEngine
from rag_orchestrator.domain.errors import IndexUnavailable, ValidationError
from rag_orchestrator.domain.models import Document, RetrievedSnippet


class FixedClock(ClockPort):
    def now(self) -> datetime:
        return datetime(2024, 3, 1, 9, 30, tzinfo=UTC)

    def monotonic(self) -> float:
        return 0.0


class FakeVectorIndex:
    """Stores documents in a dict; queries return every stored document."""

    def __init__(self) -> None:
        self.docs: dict[str, Document] = {}
        self.query_calls = 0
        # when set, a query snapshots the docs, then waits for the gate
        self.gate: asyncio.Event | None = None
        self.query_started = asyncio.Event()
        self.fail_after_write = False

    async def query(
        self,
        collection: str,
        k: int,
        query_texts: Sequence[str],
        filters: Mapping[str, Any] | None = None,
        with_vectors: bool = False,
    ) -> list[list[RetrievedSnippet]]:
        self.query_calls += 1
        hits = [
            RetrievedSnippet.from_distance(d.id, d.content, d.metadata, 0.1 * i)
            for i, d in enumerate(self.docs.values())
        ]
        self.query_started.set()
        if self.gate is not None:
            await self.gate.wait()
        return [hits[:k] for _ in query_texts]

    async def upsert(self, collection, ids, contents, metadatas) -> None:  # noqa: ANN001
        for id_, content, meta in zip(ids, contents, metadatas, strict=True):
            self.docs[id_] = Document(id=id_, content=content, metadata=meta)
        if self.fail_after_write:
            raise IndexUnavailable("upsert timed out after 10s")

    async def delete_all(self, collection: str) -> int:
        removed = len(self.docs)
        self.docs.clear()
        return removed

    async def count(self, collection: str) -> int:
        return len(self.docs)

    async def list_documents(self, collection: str, limit: int = 100) -> list[Document]:
        return list(self.docs.values())[:limit]


@pytest.fixture()
def index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture()
def service(index: FakeVectorIndex) -> DocumentService:
    engine = RetrievalEngine(index, QueryCache(), collection="docs")
    return DocumentService(index, engine, FixedClock())


class TestAddDocument:
    async def test_metadata_defaults(self, service: DocumentService) -> None:
        doc = await service.add_document("js-basics", "JavaScript is a language.", {"lang": "en"})
        assert doc.metadata["source"] == "js-basics"
        assert doc.metadata["type"] == "text"
        assert doc.metadata["lang"] == "en"
        assert doc.metadata["createdAt"] == "2024-03-01T09:30:00+00:00"
        assert await service.count() == 1

    @pytest.mark.parametrize("title,content", [("", "text"), ("t", ""), ("t", "   ")])
    async def test_rejects_empty_input(self, service: DocumentService, title: str, content: str) -> None:
        with pytest.raises(ValidationError):
            await service.add_document(title, content)

    async def test_rejects_nested_metadata(self, service: DocumentService) -> None:
        with pytest.raises(ValidationError):
            await service.add_document("t", "text", {"tags": ["a", "b"]})

    async def test_bulk(self, service: DocumentService) -> None:
        docs = await service.add_documents(
            [{"title": "a", "content": "alpha"}, {"title": "b", "content": "beta", "metadata": {"x": 1}}]
        )
        assert [d.metadata["source"] for d in docs] == ["a", "b"]
        assert len({d.id for d in docs}) == 2


class TestLargeDocument:
    async def test_chunks_carry_parent_metadata(self, service: DocumentService) -> None:
        text = " ".join(f"Sentence {i} about JavaScript closures." for i in range(60))
        docs = await service.add_large_document("guide", text, chunk_size=200)

        assert len(docs) > 1
        total = len(docs)
        for i, doc in enumerate(docs):
            assert len(doc.content) <= 200
            assert doc.metadata["parentDocument"] == "guide"
            assert doc.metadata["chunkIndex"] == i
            assert doc.metadata["totalChunks"] == total
            assert doc.metadata["source"] == f"guide [chunk {i + 1}/{total}]"


class TestCacheInvalidation:
    async def test_upsert_invalidates_cached_retrieval(self, service: DocumentService, index: FakeVectorIndex) -> None:
        await service.search("What is JavaScript?")
        await service.search("What is JavaScript?")
        assert index.query_calls == 1

        await service.add_document("d1", "JavaScript is a language.")
        result = await service.search("What is JavaScript?")

        assert index.query_calls == 2
        assert [s.content for s in result.snippets] == ["JavaScript is a language."]

    async def test_delete_all_invalidates_cached_retrieval(self, service: DocumentService, index: FakeVectorIndex) -> None:
        await service.add_document("d1", "JavaScript is a language.")
        await service.search("q")
        assert await service.delete_all() == 1

        result = await service.search("q")

        assert index.query_calls == 2
        assert result.snippets == ()

    async def test_retrieval_overlapping_a_write_is_not_cached(
        self, service: DocumentService, index: FakeVectorIndex
    ) -> None:
        index.gate = asyncio.Event()
        in_flight = asyncio.create_task(service.search("What is JavaScript?"))
        await index.query_started.wait()

        doc = await service.add_document("d1", "JavaScript is a language.")
        index.gate.set()
        stale = await in_flight
        index.gate = None

        fresh = await service.search("What is JavaScript?")

        assert stale.snippets == ()
        assert fresh.cached is False
        assert [s.document_id for s in fresh.snippets] == [doc.id]

    async def test_failed_write_still_invalidates(
        self, service: DocumentService, index: FakeVectorIndex
    ) -> None:
        await service.search("q")
        index.fail_after_write = True

        with pytest.raises(IndexUnavailable):
            await service.add_document("d1", "landed anyway")
        result = await service.search("q")

        assert result.cached is False
        assert [s.content for s in result.snippets] == ["landed anyway"]


async def test_list_documents(service: DocumentService) -> None:
    await service.add_document("a", "alpha")
    await service.add_document("b", "beta")
    assert len(await service.list_documents(limit=1)) == 1
    with pytest.raises(ValidationError):
        await service.list_documents(limit=0)
