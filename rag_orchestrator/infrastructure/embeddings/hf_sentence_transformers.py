from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from rag_orchestrator.application.ports.embedding_port import EmbeddingPort
from rag_orchestrator.domain.errors import EmbeddingError


def _e5_query_prefix(query: str) -> str:
    return f"query: {query}"


def _e5_passage_prefix(passage: str) -> str:
    return f"passage: {passage}"


@dataclass
class HFEmbeddingAdapter(EmbeddingPort):
    """HuggingFace Sentence-Transformers adapter; E5 models get their query/passage prefixes."""

    model_name: str = "intfloat/multilingual-e5-small"
    device: str = "cpu"  # switch to "cuda" when available
    local_files_only: bool = False  # support offline deployments
    _model: Any | None = None

    @property
    def uses_e5_prefixes(self) -> bool:
        return "e5" in self.model_name.lower()

    def _ensure_model(self) -> Any:
        if self._model is not None:
            return self._model
        try:
            module = import_module("sentence_transformers")
            self._model = module.SentenceTransformer(
                self.model_name,
                device=self.device,
                local_files_only=self.local_files_only,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(
                f"Failed to load embedding model '{self.model_name}': {ex}"
            ) from ex
        return self._model

    def _encode(self, inputs: str | list[str]) -> Any:
        model = self._ensure_model()
        try:
            return model.encode(
                inputs,
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"Embedding failed: {ex}") from ex

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        inputs = [_e5_passage_prefix(t) if self.uses_e5_prefixes else t for t in texts]
        return [list(map(float, vec)) for vec in self._encode(inputs)]

    def embed_query(self, text: str) -> list[float]:
        query = _e5_query_prefix(text) if self.uses_e5_prefixes else text
        return [float(x) for x in self._encode(query)]

    def dimension(self) -> int:
        model = self._ensure_model()
        dim = model.get_sentence_embedding_dimension()
        if not dim:
            raise EmbeddingError(f"Model '{self.model_name}' does not report its dimension")
        return int(dim)
