"""Application settings with environment-driven configuration.

Why: The only place environment variables are read; every other layer gets
its values through the Container.
"""

import os
from dataclasses import dataclass, field


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _csv(name: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in os.getenv(name, "").split(",") if p.strip())


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from environment variables.

    Defaults target a local Ollama (OpenAI-compatible ``/v1``) and an embedded
    Chroma store, so a fresh checkout runs without any configuration.
    """

    # ===== LLM =====
    llm_base_url: str = field(
        default_factory=lambda: os.getenv("LLM_BASE_URL", "http://localhost:11434/v1")
    )
    llm_api_key: str = field(default_factory=lambda: os.getenv("LLM_API_KEY", "ollama"))
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "llama3.2"))
    llm_temperature: float = field(
        default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.7"))
    )
    llm_top_p: float = field(default_factory=lambda: float(os.getenv("LLM_TOP_P", "0.9")))
    llm_num_ctx: int = field(default_factory=lambda: int(os.getenv("LLM_NUM_CTX", "4096")))
    llm_timeout_s: float = field(default_factory=lambda: float(os.getenv("LLM_TIMEOUT_S", "60")))
    llm_stream_idle_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("LLM_STREAM_IDLE_TIMEOUT_S", "30"))
    )
    llm_health_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("LLM_HEALTH_TIMEOUT_S", "5"))
    )

    # ===== Vector store (Chroma) =====
    chroma_url: str = field(default_factory=lambda: os.getenv("CHROMA_URL", ""))
    # Empty = embedded PersistentClient under chroma_dir
    chroma_dir: str = field(default_factory=lambda: os.getenv("CHROMA_DIR", "var/chroma"))
    collection: str = field(
        default_factory=lambda: os.getenv("VECTOR_COLLECTION", "rag_documents")
    )
    chroma_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("CHROMA_TIMEOUT_S", "10"))
    )

    # ===== Embeddings =====
    embedding_backend: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_BACKEND", "ollama").lower()
    )
    # Supported: "ollama" | "sentence-transformers"
    embedding_model: str = field(default_factory=lambda: os.getenv("EMBEDDING_MODEL", ""))
    # Empty = backend default (nomic-embed-text / intfloat/multilingual-e5-small)
    embedding_base_url: str = field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_BASE_URL", os.getenv("LLM_BASE_URL", "http://localhost:11434/v1")
        )
    )
    embedding_device: str = field(default_factory=lambda: os.getenv("EMBEDDING_DEVICE", "cpu"))

    # ===== Prompt =====
    history_window: int = field(default_factory=lambda: int(os.getenv("HISTORY_WINDOW", "10")))
    max_prompt_chars: int = field(
        default_factory=lambda: int(os.getenv("MAX_PROMPT_CHARS", "12000"))
    )

    # ===== Retrieval =====
    max_query_chars: int = field(
        default_factory=lambda: int(os.getenv("MAX_QUERY_CHARS", "2000"))
    )
    cache_capacity: int = field(default_factory=lambda: int(os.getenv("CACHE_CAPACITY", "100")))
    cache_ttl_s: float = field(default_factory=lambda: float(os.getenv("CACHE_TTL_S", "1800")))
    retrieval_top_k: int = field(default_factory=lambda: int(os.getenv("RETRIEVAL_TOP_K", "3")))
    retry_attempts: int = field(default_factory=lambda: int(os.getenv("RETRY_ATTEMPTS", "3")))
    retry_base_delay_s: float = field(
        default_factory=lambda: float(os.getenv("RETRY_BASE_DELAY_S", "0.5"))
    )
    retry_max_delay_s: float = field(
        default_factory=lambda: float(os.getenv("RETRY_MAX_DELAY_S", "5"))
    )
    retrieval_deadline_s: float = field(
        default_factory=lambda: float(os.getenv("RETRIEVAL_DEADLINE_S", "20"))
    )

    # ===== Warmup =====
    warmup_enabled: bool = field(default_factory=lambda: _flag("WARMUP_ENABLED", "true"))
    warmup_interval_s: float = field(
        default_factory=lambda: float(os.getenv("WARMUP_INTERVAL_S", "900"))
    )
    warmup_models: tuple[str, ...] = field(default_factory=lambda: _csv("WARMUP_MODELS"))
    # Empty = warm llm_model only

    # ===== Conversations =====
    conversation_backend: str = field(
        default_factory=lambda: os.getenv("CONVERSATION_BACKEND", "json").lower()
    )
    # Supported: "json" | "memory"
    conversations_dir: str = field(
        default_factory=lambda: os.getenv("CONVERSATIONS_DIR", "var/conversations")
    )

    # ===== Telemetry / logging =====
    telemetry_enabled: bool = field(default_factory=lambda: _flag("TELEMETRY_ENABLED", "false"))
    otlp_endpoint: str = field(default_factory=lambda: os.getenv("OTLP_ENDPOINT", ""))
    telemetry_environment: str = field(
        default_factory=lambda: os.getenv("TELEMETRY_ENVIRONMENT", "production")
    )
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    @property
    def effective_warmup_models(self) -> tuple[str, ...]:
        return self.warmup_models or (self.llm_model,)
