# rag_orchestrator/domain/services/chunking.py
# Pure domain service: sentence-boundary chunking, no external NLP libs.
from __future__ import annotations

import re

_SENT_END = re.compile(r"(?<=[.!?])\s+")


def split_into_sentences(text: str) -> list[str]:
    """Naive sentence split on terminal punctuation followed by whitespace."""
    normalized = " ".join(text.split())
    if not normalized:
        return []
    return [s for s in _SENT_END.split(normalized) if s]


def _hard_split(sentence: str, size: int) -> list[str]:
    return [sentence[i : i + size] for i in range(0, len(sentence), size)]


def chunk_by_sentences(text: str, chunk_size: int = 1000) -> list[str]:
    """
    Greedily pack whole sentences into chunks of at most ``chunk_size`` chars.

    A sentence longer than ``chunk_size`` is cut into fixed-size pieces so no
    chunk ever exceeds the limit. Empty input yields no chunks.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")

    chunks: list[str] = []
    current = ""
    for sentence in split_into_sentences(text):
        if len(sentence) > chunk_size:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(_hard_split(sentence, chunk_size))
            continue
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= chunk_size:
            current = candidate
        else:
            chunks.append(current)
            current = sentence
    if current:
        chunks.append(current)
    return chunks
