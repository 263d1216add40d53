"""Domain errors (typed) for the RAG orchestration core.

Why: One error family for the application layer; adapters map their library
exceptions onto it so no infrastructure type leaks upwards. Every error
carries a stable ``kind`` string used by the HTTP and streaming surfaces, and
a ``user_message`` that is safe to show to a client.
"""

from dataclasses import dataclass
from typing import ClassVar


class DomainError(Exception):
    """Base class for domain-specific errors."""

    kind: ClassVar[str] = "domain_error"
    safe_message: ClassVar[str] = "The request could not be completed."

    @property
    def user_message(self) -> str:
        return self.safe_message


class ValidationError(DomainError):
    """Invalid caller input (empty message, missing id, bad parameter)."""

    kind = "validation_error"

    @property
    def user_message(self) -> str:
        return str(self) or "Invalid request."


class IndexUnavailable(DomainError):
    """Vector store unreachable after retries (distinct from zero results)."""

    kind = "index_unavailable"
    safe_message = "The document index is currently unavailable."


class DimensionMismatch(IndexUnavailable):
    """Collection was built with a different embedding dimension."""

    kind = "dimension_mismatch"
    safe_message = "The document index was built with a different embedding model."


class EmbeddingError(DomainError):
    """Embedding backend failed or is misconfigured."""

    kind = "embedding_error"
    safe_message = "The embedding backend failed."


class InferenceError(DomainError):
    """LLM backend call failed."""

    kind = "inference_error"
    safe_message = "The language model backend failed to answer."


class InferenceTimeout(InferenceError):
    """LLM backend call exceeded its deadline."""

    kind = "inference_timeout"
    safe_message = "The language model backend timed out."


@dataclass(frozen=True)
class GenerationFailed(DomainError):
    """Generation stage failed; wraps the classified inference error."""

    message: str
    cause_kind: str = InferenceError.kind

    kind: ClassVar[str] = "generation_failed"
    safe_message: ClassVar[str] = "The answer could not be generated. Please try again."

    def __str__(self) -> str:
        return self.message

    @property
    def user_message(self) -> str:
        return self.message or self.safe_message


@dataclass(frozen=True)
class PromptTooLarge(DomainError):
    """Prompt exceeds the size ceiling even with no history left."""

    size: int
    ceiling: int

    kind: ClassVar[str] = "prompt_too_large"

    def __str__(self) -> str:
        return f"prompt size {self.size} exceeds ceiling {self.ceiling}"

    @property
    def user_message(self) -> str:
        return (
            f"The question and its context are too long ({self.size} > {self.ceiling} "
            "characters). Shorten the message or clear the conversation history."
        )


class PersistenceError(DomainError):
    """Conversation store read/write failed."""

    kind = "persistence_error"
    safe_message = "The conversation history could not be saved."


class CacheError(DomainError):
    """Query cache failure; callers treat it as a miss."""

    kind = "cache_error"
