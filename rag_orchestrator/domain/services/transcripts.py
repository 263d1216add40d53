# rag_orchestrator/domain/services/transcripts.py
# Pure helpers over conversation transcripts.
from __future__ import annotations

from collections.abc import Sequence

from rag_orchestrator.domain.models import ConversationSummary, ConversationTurn

DEFAULT_TITLE = "New Conversation"
TITLE_LIMIT = 30


def preview_title(turns: Sequence[ConversationTurn], limit: int = TITLE_LIMIT) -> str:
    """First user message, shortened to ``limit`` chars with a trailing ellipsis."""
    for turn in turns:
        if turn.role == "user":
            text = turn.content.strip()
            return text[:limit] + "..." if len(text) > limit else text
    return DEFAULT_TITLE


def tail(turns: Sequence[ConversationTurn], limit: int | None) -> list[ConversationTurn]:
    """Most recent ``limit`` turns, oldest first; ``None`` keeps all."""
    if limit is None:
        return list(turns)
    if limit <= 0:
        return []
    return list(turns[-limit:])


def summarize(conversation_id: str, turns: Sequence[ConversationTurn]) -> ConversationSummary:
    return ConversationSummary(
        id=conversation_id,
        turn_count=len(turns),
        last_updated=turns[-1].timestamp if turns else None,
        preview_title=preview_title(turns),
    )


def sort_summaries(summaries: Sequence[ConversationSummary]) -> list[ConversationSummary]:
    """Most recently updated first; conversations without turns go last."""
    dated = [s for s in summaries if s.last_updated is not None]
    undated = [s for s in summaries if s.last_updated is None]
    dated.sort(key=lambda s: s.last_updated, reverse=True)  # type: ignore[arg-type, return-value]
    return [*dated, *undated]
