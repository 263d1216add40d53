from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

# Import domain models and re-export for convenience
from rag_orchestrator.domain.models import Document, RetrievedSnippet, Scalar

__all__ = ["CollectionHandle", "Document", "RetrievedSnippet", "VectorIndexPort"]


@dataclass(frozen=True)
class CollectionHandle:
    name: str
    dimension: int


@runtime_checkable
class VectorIndexPort(Protocol):
    """Semantic index over Documents.

    Backend failures surface as ``IndexUnavailable``; an empty collection is
    an empty result, never an error.
    """

    async def get_or_create_collection(self, name: str) -> CollectionHandle: ...

    async def query(
        self,
        collection: str,
        k: int,
        query_texts: Sequence[str],
        filters: Mapping[str, Any] | None = None,
        with_vectors: bool = False,
    ) -> list[list[RetrievedSnippet]]:
        """Up to ``k`` nearest snippets per query text, ascending distance."""
        ...

    async def upsert(
        self,
        collection: str,
        ids: Sequence[str],
        contents: Sequence[str],
        metadatas: Sequence[Mapping[str, Scalar]],
    ) -> None: ...

    async def delete(self, collection: str, ids: Sequence[str]) -> None: ...

    async def delete_all(self, collection: str) -> int:
        """Remove every document; returns how many were removed."""
        ...

    async def count(self, collection: str) -> int: ...

    async def list_documents(self, collection: str, limit: int = 100) -> list[Document]: ...
