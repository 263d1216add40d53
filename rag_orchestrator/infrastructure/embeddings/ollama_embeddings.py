from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from rag_orchestrator.application.ports.embedding_port import EmbeddingPort
from rag_orchestrator.domain.errors import EmbeddingError

DIMENSION_PROBE = "dimension probe"


@dataclass
class OllamaEmbeddingAdapter(EmbeddingPort):
    """Embeddings from Ollama through its OpenAI-compatible ``/v1/embeddings`` route."""

    base_url: str = "http://localhost:11434/v1"
    api_key: str = "ollama"
    model: str = "nomic-embed-text"
    timeout_s: float = 30.0
    client_factory: Callable[[], Any] | None = None

    def __post_init__(self) -> None:
        self._client: Any | None = None
        self._dim: int | None = None

    def _get_client(self) -> Any:
        if self._client is None:
            if self.client_factory is not None:
                self._client = self.client_factory()
            else:
                module = import_module("openai")
                self._client = module.OpenAI(
                    base_url=self.base_url,
                    api_key=self.api_key,
                    timeout=self.timeout_s,
                    max_retries=0,
                )
        return self._client

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            resp: Any = self._get_client().embeddings.create(model=self.model, input=list(texts))
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"Embedding via '{self.model}' failed: {ex}") from ex
        rows = sorted(resp.data, key=lambda d: d.index)
        if len(rows) != len(texts):
            raise EmbeddingError(f"expected {len(texts)} embeddings, got {len(rows)}")
        vectors = [[float(x) for x in row.embedding] for row in rows]
        self._dim = len(vectors[0])
        return vectors

    def embed_query(self, text: str) -> list[float]:
        return self.embed_texts([text])[0]

    def dimension(self) -> int:
        if self._dim is None:
            self.embed_query(DIMENSION_PROBE)
        assert self._dim is not None
        return self._dim
