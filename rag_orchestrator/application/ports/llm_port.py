from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass, replace
from typing import Protocol, runtime_checkable

# Import domain model and re-export for convenience
from rag_orchestrator.domain.models import ChatMessage

__all__ = ["ChatMessage", "GenerationOptions", "InferencePort"]


@dataclass(frozen=True)
class GenerationOptions:
    model: str
    temperature: float = 0.7
    top_p: float = 0.9
    num_ctx: int = 4096
    max_tokens: int | None = None

    def with_model(self, model: str) -> "GenerationOptions":
        return replace(self, model=model)


@runtime_checkable
class InferencePort(Protocol):
    """Connection to a locally hosted chat model.

    Adapters raise ``InferenceError`` / ``InferenceTimeout`` and never leak
    client-library exceptions.
    """

    async def ensure_connection(self) -> bool:
        """Ping the handle once; drop it when unhealthy.

        Returns True when the existing handle answered, False when it was
        dropped. The next call recreates it. Never raises.
        """
        ...

    async def chat(self, messages: Sequence[ChatMessage], options: GenerationOptions) -> str: ...

    def stream_chat(
        self, messages: Sequence[ChatMessage], options: GenerationOptions
    ) -> AsyncGenerator[str, None]:
        """Async generator of content deltas; closing it closes the HTTP stream."""
        ...

    async def probe(self, model: str) -> None:
        """Smallest possible generation, used to keep a model resident."""
        ...

    async def aclose(self) -> None: ...
