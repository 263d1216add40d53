from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from importlib import import_module
from typing import Any, TypeVar
from urllib.parse import urlparse

from rag_orchestrator.application.ports.embedding_port import EmbeddingPort
from rag_orchestrator.application.ports.vector_index_port import (
    CollectionHandle,
    Document,
    RetrievedSnippet,
    VectorIndexPort,
)
from rag_orchestrator.domain.errors import (
    DimensionMismatch,
    EmbeddingError,
    IndexUnavailable,
)
from rag_orchestrator.domain.models import Scalar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DIMENSION_KEY = "embedding_dim"


def _column(result: Mapping[str, Any], key: str, row: int = 0) -> list[Any]:
    """One row of a Chroma column; columns may be missing, None or numpy arrays."""
    outer = result.get(key)
    if outer is None or len(outer) <= row:
        return []
    inner = outer[row]
    return [] if inner is None else list(inner)


def _flat(result: Mapping[str, Any], key: str) -> list[Any]:
    value = result.get(key)
    return [] if value is None else list(value)


@dataclass
class ChromaVectorIndex(VectorIndexPort):
    """
    Chroma-backed index. Embeddings are computed here through ``EmbeddingPort``
    so the active embedding model is the single source of truth for the
    collection's dimension.

    - url set:   ``chromadb.HttpClient`` against a running server
    - url empty: ``chromadb.PersistentClient`` under ``persist_dir``

    The Chroma client is synchronous; every call runs in a worker thread and
    is bounded by ``timeout_s``.
    """

    embedder: EmbeddingPort
    url: str = ""
    persist_dir: str = "var/chroma"
    timeout_s: float = 10.0
    client_factory: Callable[[], Any] | None = None
    _collections: dict[str, tuple[Any, CollectionHandle]] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self._client: Any | None = None

    # ------------------------------------------------------------ plumbing

    def _build_client(self) -> Any:
        if self.client_factory is not None:
            return self.client_factory()
        chromadb = import_module("chromadb")
        if self.url:
            parsed = urlparse(self.url)
            return chromadb.HttpClient(
                host=parsed.hostname or "localhost",
                port=parsed.port or (443 if parsed.scheme == "https" else 8000),
                ssl=parsed.scheme == "https",
            )
        os.makedirs(self.persist_dir, exist_ok=True)
        return chromadb.PersistentClient(path=self.persist_dir)

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                self._client = self._build_client()
            except Exception as ex:  # noqa: BLE001
                target = self.url or self.persist_dir
                raise IndexUnavailable(f"Failed to init Chroma at '{target}': {ex}") from ex
        return self._client

    async def _call(self, fn: Callable[[], T], operation: str) -> T:
        try:
            async with asyncio.timeout(self.timeout_s):
                return await asyncio.to_thread(fn)
        except IndexUnavailable:
            raise
        except TimeoutError as ex:
            raise IndexUnavailable(f"Chroma {operation} timed out after {self.timeout_s}s") from ex
        except EmbeddingError as ex:
            raise IndexUnavailable(f"Chroma {operation} failed to embed: {ex}") from ex
        except Exception as ex:  # noqa: BLE001
            raise IndexUnavailable(f"Chroma {operation} failed: {ex}") from ex

    async def _collection(self, name: str) -> Any:
        if name not in self._collections:
            await self.get_or_create_collection(name)
        return self._collections[name][0]

    # ------------------------------------------------------------ port

    async def get_or_create_collection(self, name: str) -> CollectionHandle:
        if name in self._collections:
            return self._collections[name][1]

        def _open() -> tuple[Any, CollectionHandle]:
            dim = self.embedder.dimension()
            coll = self._get_client().get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "l2", DIMENSION_KEY: dim},
                embedding_function=None,
            )
            stored = (coll.metadata or {}).get(DIMENSION_KEY)
            if stored is not None and int(stored) != dim:
                raise DimensionMismatch(
                    f"collection '{name}' holds {stored}-d vectors but the embedding "
                    f"model produces {dim}-d vectors; re-index or switch models"
                )
            return coll, CollectionHandle(name=name, dimension=dim)

        coll, handle = await self._call(_open, "get_or_create_collection")
        self._collections[name] = (coll, handle)
        logger.info("collection %s ready (dim=%d)", name, handle.dimension)
        return handle

    async def query(
        self,
        collection: str,
        k: int,
        query_texts: Sequence[str],
        filters: Mapping[str, Any] | None = None,
        with_vectors: bool = False,
    ) -> list[list[RetrievedSnippet]]:
        texts = list(query_texts)
        if k <= 0 or not texts:
            return [[] for _ in texts]
        coll = await self._collection(collection)

        def _run() -> Mapping[str, Any] | None:
            total = coll.count()
            if total == 0:
                return None
            include = ["metadatas", "documents", "distances"]
            if with_vectors:
                include.append("embeddings")
            params: dict[str, Any] = {
                "query_embeddings": [self.embedder.embed_query(t) for t in texts],
                "n_results": min(k, total),
                "include": include,
            }
            # Chroma rejects an empty where clause
            if filters:
                params["where"] = dict(filters)
            return coll.query(**params)

        result = await self._call(_run, "query")
        if result is None:
            return [[] for _ in texts]
        return [self._row(result, i, with_vectors) for i in range(len(texts))]

    @staticmethod
    def _row(result: Mapping[str, Any], i: int, with_vectors: bool) -> list[RetrievedSnippet]:
        ids = _column(result, "ids", i)
        documents = _column(result, "documents", i)
        metadatas = _column(result, "metadatas", i)
        distances = _column(result, "distances", i)
        vectors = _column(result, "embeddings", i) if with_vectors else []

        snippets: list[RetrievedSnippet] = []
        for idx, doc_id in enumerate(ids):
            vector = vectors[idx] if idx < len(vectors) else None
            snippets.append(
                RetrievedSnippet.from_distance(
                    document_id=str(doc_id),
                    content=str(documents[idx] or "") if idx < len(documents) else "",
                    metadata=metadatas[idx] if idx < len(metadatas) else None,
                    distance=float(distances[idx]) if idx < len(distances) else 0.0,
                    vector=tuple(float(x) for x in vector) if vector is not None else None,
                )
            )
        snippets.sort(key=lambda s: s.distance)
        return snippets

    async def upsert(
        self,
        collection: str,
        ids: Sequence[str],
        contents: Sequence[str],
        metadatas: Sequence[Mapping[str, Scalar]],
    ) -> None:
        if not ids:
            return
        if not len(ids) == len(contents) == len(metadatas):
            raise ValueError("ids, contents and metadatas must have the same length")
        coll = await self._collection(collection)

        def _run() -> None:
            coll.upsert(
                ids=list(ids),
                embeddings=self.embedder.embed_texts(list(contents)),
                documents=list(contents),
                metadatas=[dict(m) for m in metadatas],
            )

        await self._call(_run, "upsert")

    async def delete(self, collection: str, ids: Sequence[str]) -> None:
        if not ids:
            return
        coll = await self._collection(collection)
        await self._call(lambda: coll.delete(ids=list(ids)), "delete")

    async def delete_all(self, collection: str) -> int:
        coll = await self._collection(collection)

        def _run() -> int:
            existing = _flat(coll.get(include=[]), "ids")
            if existing:
                coll.delete(ids=existing)
            return len(existing)

        return await self._call(_run, "delete_all")

    async def count(self, collection: str) -> int:
        coll = await self._collection(collection)
        return int(await self._call(coll.count, "count"))

    async def list_documents(self, collection: str, limit: int = 100) -> list[Document]:
        coll = await self._collection(collection)
        result = await self._call(
            lambda: coll.get(limit=limit, include=["documents", "metadatas"]), "list_documents"
        )
        ids = _flat(result, "ids")
        documents = _flat(result, "documents")
        metadatas = _flat(result, "metadatas")
        return [
            Document(
                id=str(doc_id),
                content=str(documents[i] or "") if i < len(documents) else "",
                metadata=dict(metadatas[i] or {}) if i < len(metadatas) else {},
            )
            for i, doc_id in enumerate(ids)
        ]
