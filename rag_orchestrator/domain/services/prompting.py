# rag_orchestrator/domain/services/prompting.py
# Pure domain service: builds the exact message sequence sent to the LLM. No I/O.
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from rag_orchestrator.domain.errors import PromptTooLarge
from rag_orchestrator.domain.models import ChatMessage, ConversationTurn, RetrievedSnippet

BASE_INSTRUCTIONS = (
    "You are a helpful AI assistant. Answer the user's question using only the "
    "information in the provided context and the conversation so far.\n"
    "If the answer is not in the context, just say \"I don't have enough information "
    "to answer this question\" and suggest what other information would be helpful.\n"
    "When you use the context, say which part of it supports your answer."
)

CHAIN_OF_THOUGHT_INSTRUCTIONS = (
    "Think through the question step by step before answering:\n"
    "1. Restate what is being asked.\n"
    "2. List the facts from the context that are relevant.\n"
    "3. Reason from those facts to a conclusion, noting any gaps.\n"
    "Show these steps, then give the final answer on its own line prefixed with 'Answer:'."
)

CONTEXT_HEADER = "Context:\n\n"
CONTEXT_SEPARATOR = "\n\n"


def estimate_size(messages: Sequence[ChatMessage]) -> int:
    """Character count of all message contents (proxy for the token budget)."""
    return sum(len(m.content) for m in messages)


@dataclass(frozen=True)
class PromptAssembler:
    """
    Deterministic prompt builder.

    Order is fixed:
      1. system message with the base instructions
      2. optional system message with chain-of-thought instructions
      3. optional system message with every snippet, blank-line separated
      4. the trailing ``history_window`` turns of history, oldest first (system
         turns in a transcript are skipped)
      5. the new user message

    When the result exceeds ``max_prompt_chars`` the oldest history turns are
    dropped first; context and the new message are never dropped.
    """

    history_window: int = 10
    max_prompt_chars: int = 12000
    base_instructions: str = BASE_INSTRUCTIONS
    chain_of_thought_instructions: str = CHAIN_OF_THOUGHT_INSTRUCTIONS

    def __post_init__(self) -> None:
        if self.history_window < 0:
            raise ValueError("history_window must be >= 0")
        if self.max_prompt_chars <= 0:
            raise ValueError("max_prompt_chars must be > 0")

    def assemble(
        self,
        user_message: str,
        history: Sequence[ConversationTurn],
        context_snippets: Sequence[RetrievedSnippet],
        chain_of_thought: bool = False,
    ) -> list[ChatMessage]:
        head = [ChatMessage(role="system", content=self.base_instructions)]
        if chain_of_thought:
            head.append(ChatMessage(role="system", content=self.chain_of_thought_instructions))
        if context_snippets:
            context = CONTEXT_HEADER + CONTEXT_SEPARATOR.join(s.content for s in context_snippets)
            head.append(ChatMessage(role="system", content=context))
        tail = ChatMessage(role="user", content=user_message)

        minimal = estimate_size(head) + len(tail.content)
        if minimal > self.max_prompt_chars:
            raise PromptTooLarge(size=minimal, ceiling=self.max_prompt_chars)

        window = list(history[-self.history_window :]) if self.history_window else []
        turns = [ChatMessage(role=t.role, content=t.content) for t in window if t.role != "system"]

        budget = self.max_prompt_chars - minimal
        used = estimate_size(turns)
        while turns and used > budget:
            used -= len(turns.pop(0).content)

        return [*head, *turns, tail]
