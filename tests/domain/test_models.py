"""Tests for domain models (snippets, turns, summaries)."""

from datetime import UTC, datetime

import pytest

from rag_orchestrator.domain.models import (
    ConversationTurn,
    RetrievalResult,
    RetrievedSnippet,
    similarity_from_distance,
)


@pytest.mark.parametrize(
    "distance,expected",
    [(0.0, 1.0), (1.0, 0.5), (2.0, 0.0), (3.5, 0.0), (-0.2, 1.0)],
)
def test_similarity_from_distance_is_clamped(distance: float, expected: float) -> None:
    assert similarity_from_distance(distance) == pytest.approx(expected)


def test_snippet_from_distance_derives_similarity():
    s = RetrievedSnippet.from_distance("d1", "text", {"source": "faq.md"}, 0.4)
    assert s.similarity == pytest.approx(0.8)
    assert s.source == "faq.md"


def test_snippet_source_falls_back_to_id():
    s = RetrievedSnippet.from_distance("d1", "text", None, 0.4)
    assert s.source == "d1"
    assert s.metadata == {}


def test_snippet_preview_truncates():
    s = RetrievedSnippet.from_distance("d1", "x" * 150, {}, 0.1)
    assert s.preview(100) == "x" * 100 + "..."
    assert RetrievedSnippet.from_distance("d2", "short", {}, 0.1).preview() == "short"


def test_snippet_record_never_contains_vector():
    s = RetrievedSnippet.from_distance("d1", "text", {}, 0.2, vector=(0.1, 0.2))
    record = s.to_record()
    assert "vector" not in record
    assert record["documentId"] == "d1"
    # vectors do not take part in equality
    assert RetrievedSnippet.from_record(record) == s


def test_turn_rejects_unknown_role():
    with pytest.raises(ValueError):
        ConversationTurn(role="tool", content="x", timestamp=datetime.now(UTC))  # type: ignore[arg-type]


def test_turn_factories_use_utc():
    turn = ConversationTurn.user("hi")
    assert turn.role == "user"
    assert turn.timestamp.tzinfo is not None
    assert len(turn.id) == 32


def test_assistant_turn_record_keeps_sources():
    ts = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    source = RetrievedSnippet.from_distance("d1", "JavaScript is a language.", {"source": "js"}, 0.3)
    turn = ConversationTurn.assistant("It is a language.", (source,), timestamp=ts)

    restored = ConversationTurn.from_record(turn.to_record())

    assert restored == turn
    assert restored.sources[0].document_id == "d1"


def test_user_turn_record_omits_empty_sources():
    assert "sources" not in ConversationTurn.user("hi").to_record()


def test_empty_retrieval_result():
    empty = RetrievalResult.empty()
    assert empty.snippets == ()
    assert empty.cached is False
