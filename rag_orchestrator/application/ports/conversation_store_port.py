from __future__ import annotations

from abc import ABC, abstractmethod

from rag_orchestrator.domain.models import ConversationSummary, ConversationTurn


class ConversationStorePort(ABC):
    """Append-only log of turns per conversation id.

    Appends to one id are serialized; different ids proceed independently.
    Read/write failures raise ``PersistenceError``.
    """

    @abstractmethod
    async def append(self, conversation_id: str, turn: ConversationTurn) -> None: ...

    @abstractmethod
    async def history(
        self, conversation_id: str, limit: int | None = None
    ) -> list[ConversationTurn]:
        """Most recent ``limit`` turns, oldest first; unknown id → empty list."""
        ...

    @abstractmethod
    async def exists(self, conversation_id: str) -> bool: ...

    @abstractmethod
    async def clear(self, conversation_id: str) -> bool:
        """Delete one transcript; False when it did not exist."""
        ...

    @abstractmethod
    async def list_conversations(self) -> list[ConversationSummary]: ...

    @abstractmethod
    async def clear_all(self) -> int: ...
