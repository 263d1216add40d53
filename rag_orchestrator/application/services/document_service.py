"""Ingestion and maintenance of the document collection."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from rag_orchestrator.application.ports import ClockPort, VectorIndexPort
from rag_orchestrator.application.services.retrieval_engine import RetrievalEngine
from rag_orchestrator.domain.errors import ValidationError
from rag_orchestrator.domain.models import Document, RetrievalResult, Scalar
from rag_orchestrator.domain.services.chunking import chunk_by_sentences

logger = logging.getLogger(__name__)

_SCALARS = (str, int, float, bool)


def _clean_metadata(metadata: Mapping[str, Any] | None) -> dict[str, Scalar]:
    cleaned: dict[str, Scalar] = {}
    for key, value in (metadata or {}).items():
        if value is None:
            continue
        if not isinstance(value, _SCALARS):
            raise ValidationError(f"metadata value for {key!r} must be a string, number or bool")
        cleaned[str(key)] = value
    return cleaned


class DocumentService:
    """
    Adds, lists and removes documents.

    Every mutation clears the query cache so no retrieval can return a result
    computed before the change.
    """

    def __init__(self, index: VectorIndexPort, retrieval: RetrievalEngine, clock: ClockPort) -> None:
        self._index = index
        self._retrieval = retrieval
        self._clock = clock

    @property
    def collection(self) -> str:
        return self._retrieval.collection

    def _build(self, title: str, content: str, metadata: Mapping[str, Any] | None) -> Document:
        if not title or not title.strip():
            raise ValidationError("title must not be empty")
        if not content or not content.strip():
            raise ValidationError("content must not be empty")
        meta: dict[str, Scalar] = {"source": title.strip(), "type": "text"}
        meta.update(_clean_metadata(metadata))
        meta["createdAt"] = self._clock.now().isoformat()
        return Document(id=str(uuid.uuid4()), content=content, metadata=meta)

    async def _store(self, docs: Sequence[Document]) -> None:
        # a failed or timed-out write may still have landed
        try:
            await self._index.upsert(
                self.collection,
                [d.id for d in docs],
                [d.content for d in docs],
                [dict(d.metadata) for d in docs],
            )
        finally:
            self._retrieval.cache.clear()

    async def add_document(
        self, title: str, content: str, metadata: Mapping[str, Any] | None = None
    ) -> Document:
        doc = self._build(title, content, metadata)
        await self._store([doc])
        logger.info("document added", extra={"document_id": doc.id, "source": title})
        return doc

    async def add_documents(self, items: Sequence[Mapping[str, Any]]) -> list[Document]:
        """Bulk add; each item has ``title``, ``content`` and optional ``metadata``."""
        if not items:
            raise ValidationError("documents must not be empty")
        docs = [
            self._build(str(i.get("title") or ""), str(i.get("content") or ""), i.get("metadata"))
            for i in items
        ]
        await self._store(docs)
        logger.info("%d documents added", len(docs))
        return docs

    async def add_large_document(
        self,
        title: str,
        content: str,
        metadata: Mapping[str, Any] | None = None,
        chunk_size: int = 1000,
    ) -> list[Document]:
        if not content or not content.strip():
            raise ValidationError("content must not be empty")
        if chunk_size <= 0:
            raise ValidationError("chunk_size must be > 0")
        chunks = chunk_by_sentences(content, chunk_size)
        total = len(chunks)
        items = [
            {
                "title": f"{title} [chunk {i + 1}/{total}]",
                "content": chunk,
                "metadata": {
                    **dict(metadata or {}),
                    "parentDocument": title,
                    "chunkIndex": i,
                    "totalChunks": total,
                },
            }
            for i, chunk in enumerate(chunks)
        ]
        logger.info("large document %r split into %d chunks", title, total)
        return await self.add_documents(items)

    async def delete_all(self) -> int:
        try:
            removed = await self._index.delete_all(self.collection)
        finally:
            self._retrieval.cache.clear()
        logger.info("removed %d documents from %s", removed, self.collection)
        return removed

    async def count(self) -> int:
        return await self._index.count(self.collection)

    async def list_documents(self, limit: int = 100) -> list[Document]:
        if limit <= 0:
            raise ValidationError("limit must be > 0")
        return await self._index.list_documents(self.collection, limit)

    async def search(
        self, query: str, k: int | None = None, filters: Mapping[str, Any] | None = None
    ) -> RetrievalResult:
        return await self._retrieval.retrieve(query, k, filters)
