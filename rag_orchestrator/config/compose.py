"""Dependency injection container with environment-driven wiring.

Why: Single place that turns AppSettings into adapters and services; every
other layer receives its collaborators through constructors.
"""

from __future__ import annotations

from rag_orchestrator.application.ports import (
    ClockPort,
    ConversationStorePort,
    EmbeddingPort,
    GenerationOptions,
    InferencePort,
    TelemetryPort,
    VectorIndexPort,
)
from rag_orchestrator.application.services.document_service import DocumentService
from rag_orchestrator.application.services.query_cache import QueryCache
from rag_orchestrator.application.services.retrieval_engine import RetrievalEngine
from rag_orchestrator.application.services.warmup import WarmupScheduler
from rag_orchestrator.application.use_cases.generation_orchestrator import (
    GenerationOrchestrator,
)
from rag_orchestrator.config.settings import AppSettings
from rag_orchestrator.domain.services.prompting import PromptAssembler

DEFAULT_EMBEDDING_MODELS = {
    "ollama": "nomic-embed-text",
    "sentence-transformers": "intfloat/multilingual-e5-small",
}


class Container:
    """Builds and caches every component for one process.

    Adapters may be injected (tests); anything not injected is built lazily
    from settings on first access.
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        inference: InferencePort | None = None,
        vector_index: VectorIndexPort | None = None,
        embedding: EmbeddingPort | None = None,
        conversation_store: ConversationStorePort | None = None,
        clock: ClockPort | None = None,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self._inference = inference
        self._vector_index = vector_index
        self._embedding = embedding
        self._conversation_store = conversation_store
        self._clock = clock
        self._telemetry = telemetry
        self._cache: QueryCache | None = None
        self._retrieval: RetrievalEngine | None = None
        self._documents: DocumentService | None = None
        self._orchestrator: GenerationOrchestrator | None = None
        self._warmup: WarmupScheduler | None = None

    # ===== Adapters =====

    def get_clock(self) -> ClockPort:
        if self._clock is None:
            from rag_orchestrator.infrastructure.time.system_clock import SystemClock

            self._clock = SystemClock()
        return self._clock

    def get_telemetry(self) -> TelemetryPort:
        if self._telemetry is None:
            self._telemetry = self._build_telemetry()
        return self._telemetry

    def get_inference(self) -> InferencePort:
        if self._inference is None:
            from rag_orchestrator.infrastructure.llm.openai_compatible_adapter import (
                OpenAICompatibleInference,
            )

            s = self.settings
            self._inference = OpenAICompatibleInference(
                base_url=s.llm_base_url,
                api_key=s.llm_api_key,
                timeout_s=s.llm_timeout_s,
                stream_idle_timeout_s=s.llm_stream_idle_timeout_s,
                health_timeout_s=s.llm_health_timeout_s,
            )
        return self._inference

    def get_embedding(self) -> EmbeddingPort:
        if self._embedding is None:
            self._embedding = self._build_embedding()
        return self._embedding

    def get_vector_index(self) -> VectorIndexPort:
        if self._vector_index is None:
            from rag_orchestrator.infrastructure.vectorstore.chroma_vector_index import (
                ChromaVectorIndex,
            )

            self._vector_index = ChromaVectorIndex(
                embedder=self.get_embedding(),
                url=self.settings.chroma_url,
                persist_dir=self.settings.chroma_dir,
                timeout_s=self.settings.chroma_timeout_s,
            )
        return self._vector_index

    def get_conversation_store(self) -> ConversationStorePort:
        if self._conversation_store is None:
            self._conversation_store = self._build_conversation_store()
        return self._conversation_store

    # ===== Services / use cases =====

    def get_query_cache(self) -> QueryCache:
        if self._cache is None:
            self._cache = QueryCache(
                capacity=self.settings.cache_capacity, ttl_s=self.settings.cache_ttl_s
            )
        return self._cache

    def get_retrieval_engine(self) -> RetrievalEngine:
        if self._retrieval is None:
            s = self.settings
            self._retrieval = RetrievalEngine(
                self.get_vector_index(),
                self.get_query_cache(),
                collection=s.collection,
                default_k=s.retrieval_top_k,
                max_query_chars=s.max_query_chars,
                retry_attempts=s.retry_attempts,
                retry_base_delay_s=s.retry_base_delay_s,
                retry_max_delay_s=s.retry_max_delay_s,
                deadline_s=s.retrieval_deadline_s,
                telemetry=self.get_telemetry(),
            )
        return self._retrieval

    def get_prompt_assembler(self) -> PromptAssembler:
        return PromptAssembler(
            history_window=self.settings.history_window,
            max_prompt_chars=self.settings.max_prompt_chars,
        )

    def get_generation_options(self) -> GenerationOptions:
        s = self.settings
        return GenerationOptions(
            model=s.llm_model,
            temperature=s.llm_temperature,
            top_p=s.llm_top_p,
            num_ctx=s.llm_num_ctx,
        )

    def get_orchestrator(self) -> GenerationOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = GenerationOrchestrator(
                inference=self.get_inference(),
                retrieval=self.get_retrieval_engine(),
                store=self.get_conversation_store(),
                assembler=self.get_prompt_assembler(),
                options=self.get_generation_options(),
                clock=self.get_clock(),
                default_k=self.settings.retrieval_top_k,
                telemetry=self.get_telemetry(),
            )
        return self._orchestrator

    def get_document_service(self) -> DocumentService:
        if self._documents is None:
            self._documents = DocumentService(
                self.get_vector_index(), self.get_retrieval_engine(), self.get_clock()
            )
        return self._documents

    def get_warmup_scheduler(self) -> WarmupScheduler:
        if self._warmup is None:
            self._warmup = WarmupScheduler(
                self.get_inference(),
                self.settings.effective_warmup_models,
                interval_s=self.settings.warmup_interval_s,
                telemetry=self.get_telemetry(),
            )
        return self._warmup

    async def aclose(self) -> None:
        """Stop background work and release network handles."""
        if self._warmup is not None:
            await self._warmup.stop()
        if self._inference is not None:
            await self._inference.aclose()

    # ===== Private builders =====

    def _build_embedding(self) -> EmbeddingPort:
        s = self.settings
        backend = s.embedding_backend
        if backend not in DEFAULT_EMBEDDING_MODELS:
            raise ValueError(
                f"unsupported EMBEDDING_BACKEND '{backend}', "
                f"expected one of {sorted(DEFAULT_EMBEDDING_MODELS)}"
            )
        model = s.embedding_model or DEFAULT_EMBEDDING_MODELS[backend]
        if backend == "sentence-transformers":
            from rag_orchestrator.infrastructure.embeddings.hf_sentence_transformers import (
                HFEmbeddingAdapter,
            )

            return HFEmbeddingAdapter(model_name=model, device=s.embedding_device)

        from rag_orchestrator.infrastructure.embeddings.ollama_embeddings import (
            OllamaEmbeddingAdapter,
        )

        return OllamaEmbeddingAdapter(
            base_url=s.embedding_base_url,
            api_key=s.llm_api_key,
            model=model,
            timeout_s=s.llm_timeout_s,
        )

    def _build_conversation_store(self) -> ConversationStorePort:
        backend = self.settings.conversation_backend
        if backend == "memory":
            from rag_orchestrator.infrastructure.persistence.memory_conversation_store import (
                InMemoryConversationStore,
            )

            return InMemoryConversationStore()
        if backend == "json":
            from rag_orchestrator.infrastructure.persistence.json_conversation_store import (
                JsonFileConversationStore,
            )

            return JsonFileConversationStore(self.settings.conversations_dir)
        raise ValueError(f"unsupported CONVERSATION_BACKEND '{backend}', expected json|memory")

    def _build_telemetry(self) -> TelemetryPort:
        from rag_orchestrator.infrastructure.telemetry.otel_adapter import (
            NoopTelemetry,
            OpenTelemetryAdapter,
            OtelConfig,
        )

        if not self.settings.telemetry_enabled:
            return NoopTelemetry()
        cfg = OtelConfig(
            service_name="rag-orchestrator",
            otlp_endpoint=self.settings.otlp_endpoint or None,
            environment=self.settings.telemetry_environment,
        )
        return OpenTelemetryAdapter(cfg)


def build_container(settings: AppSettings | None = None) -> Container:
    """Container for the given settings (default: read from environment)."""
    return Container(settings)
