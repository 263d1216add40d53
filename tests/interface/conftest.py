"""In-process stand-ins for the network adapters plus fixtures wiring them into a Container."""

from collections.abc import AsyncGenerator, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from rag_orchestrator.application.ports import ChatMessage, ClockPort, GenerationOptions
from rag_orchestrator.config.compose import Container
from rag_orchestrator.config.settings import AppSettings
from rag_orchestrator.domain.errors import IndexUnavailable, InferenceError
from rag_orchestrator.domain.models import Document, RetrievedSnippet
from rag_orchestrator.infrastructure.persistence.memory_conversation_store import (
    InMemoryConversationStore,
)


class FakeClock(ClockPort):
    def __init__(self) -> None:
        self.ticks = 0

    def now(self) -> datetime:
        self.ticks += 1
        return datetime(2024, 1, 1, tzinfo=UTC) + timedelta(seconds=self.ticks)

    def monotonic(self) -> float:
        return float(self.ticks)


class FakeInference:
    def __init__(self, reply: str = "JavaScript is a language.", fail: bool = False) -> None:
        self.reply = reply
        self.fail = fail
        self.healthy = True
        self.prompts: list[list[ChatMessage]] = []
        self.closed = False

    async def ensure_connection(self) -> bool:
        return self.healthy

    async def chat(self, messages: Sequence[ChatMessage], options: GenerationOptions) -> str:
        self.prompts.append(list(messages))
        if self.fail:
            raise InferenceError("backend exploded at 10.0.0.5")
        return self.reply

    async def stream_chat(
        self, messages: Sequence[ChatMessage], options: GenerationOptions
    ) -> AsyncGenerator[str, None]:
        self.prompts.append(list(messages))
        for word in self.reply.split(" "):
            yield word + " "

    async def probe(self, model: str) -> None:
        if self.fail:
            raise InferenceError("down")

    async def aclose(self) -> None:
        self.closed = True


class FakeVectorIndex:
    """Dict-backed index; every query returns all documents at distance 0.2."""

    def __init__(self) -> None:
        self.docs: dict[str, tuple[str, dict[str, Any]]] = {}
        self.down = False

    def _check(self) -> None:
        if self.down:
            raise IndexUnavailable("connection refused")

    async def get_or_create_collection(self, name: str) -> Any:
        return name

    async def query(
        self,
        collection: str,
        k: int,
        query_texts: Sequence[str],
        filters: Mapping[str, Any] | None = None,
        with_vectors: bool = False,
    ) -> list[list[RetrievedSnippet]]:
        self._check()
        hits = [
            RetrievedSnippet.from_distance(doc_id, content, meta, 0.2)
            for doc_id, (content, meta) in self.docs.items()
        ][:k]
        return [hits for _ in query_texts]

    async def upsert(self, collection, ids, contents, metadatas) -> None:  # noqa: ANN001
        self._check()
        for i, doc_id in enumerate(ids):
            self.docs[doc_id] = (contents[i], dict(metadatas[i]))

    async def delete(self, collection: str, ids: Sequence[str]) -> None:
        for doc_id in ids:
            self.docs.pop(doc_id, None)

    async def delete_all(self, collection: str) -> int:
        removed = len(self.docs)
        self.docs.clear()
        return removed

    async def count(self, collection: str) -> int:
        self._check()
        return len(self.docs)

    async def list_documents(self, collection: str, limit: int = 100) -> list[Document]:
        return [
            Document(id=doc_id, content=content, metadata=meta)
            for doc_id, (content, meta) in list(self.docs.items())[:limit]
        ]


def make_container(
    inference: FakeInference | None = None, index: FakeVectorIndex | None = None
) -> Container:
    settings = AppSettings(
        conversation_backend="memory",
        warmup_enabled=False,
        telemetry_enabled=False,
        llm_model="llama3.2",
    )
    return Container(
        settings,
        inference=inference or FakeInference(),
        vector_index=index or FakeVectorIndex(),
        conversation_store=InMemoryConversationStore(),
        clock=FakeClock(),
    )


@pytest.fixture
def inference() -> FakeInference:
    return FakeInference()


@pytest.fixture
def index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def container(inference: FakeInference, index: FakeVectorIndex) -> Container:
    return make_container(inference, index)
