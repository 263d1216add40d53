# rag_orchestrator/domain/models.py
# Domain models must be pure (no I/O, no external libs)
from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]
ROLES: tuple[str, ...] = ("system", "user", "assistant")

Scalar = str | int | float | bool | None


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class Document:
    """
    A retrievable unit of knowledge, immutable once indexed.

    - id:        opaque unique identifier
    - content:   pre-chunked UTF-8 text (roughly <= 1000 chars per chunk)
    - metadata:  scalar mapping (source, type, createdAt, chunk index/total);
                 used for citation and filtering, never for ranking
    """

    id: str
    content: str
    metadata: Mapping[str, Scalar] = field(default_factory=dict)


def similarity_from_distance(distance: float) -> float:
    """Display similarity for a backend distance, assuming a 0..2 distance range."""
    return max(0.0, min(1.0, 1.0 - distance / 2.0))


@dataclass(frozen=True)
class RetrievedSnippet:
    """
    A Document projected through one query.

    - distance:    backend distance, lower = closer (L2 for the Chroma adapter)
    - similarity:  derived from distance, display / tie-break only
    - vector:      embedding when the backend returned one; only the diversity
                   filter reads it and it is never serialized
    """

    document_id: str
    content: str
    metadata: Mapping[str, Scalar]
    distance: float
    similarity: float
    vector: tuple[float, ...] | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_distance(
        cls,
        document_id: str,
        content: str,
        metadata: Mapping[str, Scalar] | None,
        distance: float,
        vector: tuple[float, ...] | None = None,
    ) -> RetrievedSnippet:
        return cls(
            document_id=document_id,
            content=content,
            metadata=dict(metadata or {}),
            distance=float(distance),
            similarity=similarity_from_distance(float(distance)),
            vector=vector,
        )

    @property
    def source(self) -> str:
        value = self.metadata.get("source")
        return str(value) if value else self.document_id

    def preview(self, limit: int = 100) -> str:
        if len(self.content) <= limit:
            return self.content
        return self.content[:limit] + "..."

    def to_record(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "content": self.content,
            "metadata": dict(self.metadata),
            "distance": self.distance,
            "similarity": self.similarity,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> RetrievedSnippet:
        return cls(
            document_id=str(record["documentId"]),
            content=str(record.get("content", "")),
            metadata=dict(record.get("metadata") or {}),
            distance=float(record.get("distance", 0.0)),
            similarity=float(record.get("similarity", 0.0)),
        )


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked snippets of one retrieval call plus how long it took."""

    snippets: tuple[RetrievedSnippet, ...]
    timing_ms: float
    cached: bool = False

    @classmethod
    def empty(cls, timing_ms: float = 0.0) -> RetrievalResult:
        return cls(snippets=(), timing_ms=timing_ms)


@dataclass(frozen=True)
class ConversationTurn:
    """One appended message of a conversation; never mutated after append."""

    role: Role
    content: str
    timestamp: datetime
    sources: tuple[RetrievedSnippet, ...] = ()
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}, got {self.role!r}")

    @classmethod
    def user(cls, content: str, timestamp: datetime | None = None) -> ConversationTurn:
        return cls(role="user", content=content, timestamp=timestamp or datetime.now(UTC))

    @classmethod
    def assistant(
        cls,
        content: str,
        sources: tuple[RetrievedSnippet, ...] = (),
        timestamp: datetime | None = None,
    ) -> ConversationTurn:
        return cls(
            role="assistant",
            content=content,
            sources=tuple(sources),
            timestamp=timestamp or datetime.now(UTC),
        )

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.sources:
            record["sources"] = [s.to_record() for s in self.sources]
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> ConversationTurn:
        return cls(
            id=str(record.get("id") or uuid.uuid4().hex),
            role=record["role"],
            content=str(record.get("content", "")),
            timestamp=datetime.fromisoformat(record["timestamp"]),
            sources=tuple(RetrievedSnippet.from_record(s) for s in record.get("sources") or ()),
        )


@dataclass(frozen=True)
class ConversationSummary:
    """Listing entry for one stored conversation."""

    id: str
    turn_count: int
    last_updated: datetime | None
    preview_title: str


@dataclass(frozen=True)
class RAGAnswer:
    """Complete answer with the snippets it was grounded on."""

    text: str
    sources: tuple[RetrievedSnippet, ...]
    conversation_id: str
    timing: Mapping[str, float] = field(default_factory=dict)
