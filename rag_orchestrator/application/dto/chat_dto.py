# rag_orchestrator/application/dto/chat_dto.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from rag_orchestrator.domain.errors import DomainError
from rag_orchestrator.domain.models import RetrievedSnippet


class RequestStage(str, Enum):
    """Lifecycle of one chat request; stages only move forward."""

    VALIDATING = "validating"
    RETRIEVING = "retrieving"
    ASSEMBLING = "assembling"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TokenEvent:
    """One content delta, in generation order (index starts at 0)."""

    text: str
    index: int

    def to_payload(self) -> dict[str, Any]:
        return {"chunk": self.text}


@dataclass(frozen=True)
class DoneEvent:
    """Terminal success event; the assistant turn has been persisted."""

    answer: str
    sources: tuple[RetrievedSnippet, ...]
    conversation_id: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "done": True,
            "sources": [s.to_record() for s in self.sources],
            "conversation_id": self.conversation_id,
        }


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal failure event; nothing from the partial answer is persisted."""

    kind: str
    message: str

    @classmethod
    def from_error(cls, error: DomainError) -> ErrorEvent:
        return cls(kind=error.kind, message=error.user_message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": {"kind": self.kind, "message": self.message}}


StreamEvent = TokenEvent | DoneEvent | ErrorEvent
