from __future__ import annotations

from rag_orchestrator.application.ports.conversation_store_port import ConversationStorePort
from rag_orchestrator.domain.models import ConversationSummary, ConversationTurn
from rag_orchestrator.domain.services.transcripts import sort_summaries, summarize, tail
from rag_orchestrator.infrastructure.persistence.conversation_locks import ConversationLocks


class InMemoryConversationStore(ConversationStorePort):
    """Process-local transcripts; lost on restart. Used for tests and ephemeral runs."""

    def __init__(self) -> None:
        self._turns: dict[str, list[ConversationTurn]] = {}
        self._locks = ConversationLocks()

    async def append(self, conversation_id: str, turn: ConversationTurn) -> None:
        async with self._locks.hold(conversation_id):
            self._turns.setdefault(conversation_id, []).append(turn)

    async def history(
        self, conversation_id: str, limit: int | None = None
    ) -> list[ConversationTurn]:
        return tail(self._turns.get(conversation_id, ()), limit)

    async def exists(self, conversation_id: str) -> bool:
        return conversation_id in self._turns

    async def clear(self, conversation_id: str) -> bool:
        async with self._locks.hold(conversation_id):
            return self._turns.pop(conversation_id, None) is not None

    async def list_conversations(self) -> list[ConversationSummary]:
        return sort_summaries([summarize(cid, turns) for cid, turns in self._turns.items()])

    async def clear_all(self) -> int:
        removed = len(self._turns)
        self._turns.clear()
        return removed
