"""Application ports package.

Re-exports every port so services can import from one place.
"""

from rag_orchestrator.application.ports.clock_port import ClockPort
from rag_orchestrator.application.ports.conversation_store_port import ConversationStorePort
from rag_orchestrator.application.ports.embedding_port import EmbeddingPort
from rag_orchestrator.application.ports.llm_port import (
    ChatMessage,
    GenerationOptions,
    InferencePort,
)
from rag_orchestrator.application.ports.telemetry_port import TelemetryPort
from rag_orchestrator.application.ports.vector_index_port import (
    CollectionHandle,
    RetrievedSnippet,
    VectorIndexPort,
)

__all__ = [
    "ChatMessage",
    "ClockPort",
    "CollectionHandle",
    "ConversationStorePort",
    "EmbeddingPort",
    "GenerationOptions",
    "InferencePort",
    "RetrievedSnippet",
    "TelemetryPort",
    "VectorIndexPort",
]
