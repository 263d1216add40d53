# rag_orchestrator/application/use_cases/generation_orchestrator.py
from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any

from rag_orchestrator.application.dto.chat_dto import (
    DoneEvent,
    ErrorEvent,
    RequestStage,
    StreamEvent,
    TokenEvent,
)
from rag_orchestrator.application.ports import (
    ChatMessage,
    ClockPort,
    ConversationStorePort,
    GenerationOptions,
    InferencePort,
    TelemetryPort,
)
from rag_orchestrator.application.services.retrieval_engine import RetrievalEngine
from rag_orchestrator.application.services.retry import Sleep, retry_async
from rag_orchestrator.domain.errors import (
    DomainError,
    GenerationFailed,
    IndexUnavailable,
    InferenceError,
    PersistenceError,
    ValidationError,
)
from rag_orchestrator.domain.models import ConversationTurn, RAGAnswer, RetrievedSnippet
from rag_orchestrator.domain.services.prompting import PromptAssembler
from rag_orchestrator.domain.types import Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Prepared:
    request_id: str
    conversation_id: str
    messages: list[ChatMessage]
    sources: tuple[RetrievedSnippet, ...]
    started: float
    timing: dict[str, float]


def _generation_failed(ex: InferenceError) -> GenerationFailed:
    return GenerationFailed(message=ex.user_message, cause_kind=ex.kind)


class GenerationOrchestrator:
    """
    Application use case answering one chat message.

    Pipeline: validate → ensure connection → retrieve (degrades to no context)
    → persist user turn → read history → assemble prompt → generate → persist
    assistant turn. Only ports are used; errors are reported via Result (sync)
    or a terminal ErrorEvent (streaming).
    """

    def __init__(
        self,
        inference: InferencePort,
        retrieval: RetrievalEngine,
        store: ConversationStorePort,
        assembler: PromptAssembler,
        options: GenerationOptions,
        clock: ClockPort,
        *,
        default_k: int = 3,
        telemetry: TelemetryPort | None = None,
        persist_attempts: int = 2,
        persist_delay_s: float = 0.1,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.inference = inference
        self.retrieval = retrieval
        self.store = store
        self.assembler = assembler
        self.options = options
        self.clock = clock
        self.default_k = default_k
        self.telemetry = telemetry
        self._persist_attempts = persist_attempts
        self._persist_delay_s = persist_delay_s
        self._sleep = sleep

    @staticmethod
    def new_conversation_id() -> str:
        return str(uuid.uuid4())

    # ------------------------------------------------------------------ sync

    async def answer(
        self,
        conversation_id: str,
        user_message: str,
        chain_of_thought: bool = False,
        k: int | None = None,
        filters: Mapping[str, Any] | None = None,
    ) -> Result[RAGAnswer, DomainError]:
        try:
            prepared = await self._prepare(conversation_id, user_message, chain_of_thought, k, filters)
        except DomainError as ex:
            self._finish("failure")
            return Result.failure(ex)

        self._stage(prepared.request_id, RequestStage.GENERATING)
        gen_started = self.clock.monotonic()
        try:
            text = await self.inference.chat(prepared.messages, self.options)
        except InferenceError as ex:
            logger.warning("generation failed [%s]: %s", ex.kind, ex)
            self._stage(prepared.request_id, RequestStage.FAILED)
            self._finish("failure")
            return Result.failure(_generation_failed(ex))

        answer = await self._complete(prepared, text, gen_started)
        return Result.success(answer)

    # ------------------------------------------------------------- streaming

    async def stream_answer(
        self,
        conversation_id: str,
        user_message: str,
        chain_of_thought: bool = False,
        k: int | None = None,
        filters: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Yield TokenEvents in order, then exactly one DoneEvent or ErrorEvent.

        Closing this generator early closes the inference stream and persists
        nothing for the assistant side.
        """
        try:
            prepared = await self._prepare(conversation_id, user_message, chain_of_thought, k, filters)
        except DomainError as ex:
            self._finish("failure")
            yield ErrorEvent.from_error(ex)
            return

        self._stage(prepared.request_id, RequestStage.GENERATING)
        gen_started = self.clock.monotonic()
        parts: list[str] = []
        try:
            async with contextlib.aclosing(
                self.inference.stream_chat(prepared.messages, self.options)
            ) as stream:
                async for chunk in stream:
                    if not chunk:
                        continue
                    parts.append(chunk)
                    yield TokenEvent(text=chunk, index=len(parts) - 1)
        except InferenceError as ex:
            logger.warning(
                "stream failed after %d chunks [%s]: %s", len(parts), ex.kind, ex
            )
            self._stage(prepared.request_id, RequestStage.FAILED)
            self._finish("failure")
            yield ErrorEvent.from_error(_generation_failed(ex))
            return

        answer = await self._complete(prepared, "".join(parts), gen_started)
        yield DoneEvent(
            answer=answer.text, sources=answer.sources, conversation_id=answer.conversation_id
        )

    # --------------------------------------------------------------- helpers

    async def _prepare(
        self,
        conversation_id: str,
        user_message: str,
        chain_of_thought: bool,
        k: int | None,
        filters: Mapping[str, Any] | None,
    ) -> _Prepared:
        request_id = uuid.uuid4().hex[:12]
        started = self.clock.monotonic()
        timing: dict[str, float] = {}

        # 1) Validate
        self._stage(request_id, RequestStage.VALIDATING)
        if not conversation_id or not conversation_id.strip():
            raise ValidationError("conversation_id must not be empty")
        if not user_message or not user_message.strip():
            raise ValidationError("message must not be empty")
        top_k = self.default_k if k is None else k
        if top_k <= 0:
            raise ValidationError("top_k must be > 0")

        # 2) Connection health (never raises)
        await self.inference.ensure_connection()

        # 3) Retrieve; an unavailable index means answering without context
        self._stage(request_id, RequestStage.RETRIEVING)
        sources: tuple[RetrievedSnippet, ...] = ()
        try:
            result = await self.retrieval.retrieve(user_message, top_k, filters)
            sources = result.snippets
            timing["retrieval_ms"] = result.timing_ms
        except IndexUnavailable as ex:
            logger.warning(
                "retrieval unavailable, answering without context: %s",
                ex,
                extra={"request_id": request_id},
            )

        # 4) Persist the user turn, then read prior history without it
        user_turn = ConversationTurn.user(user_message, timestamp=self.clock.now())
        await self._persist(conversation_id, user_turn)
        history = await self._prior_history(conversation_id, user_turn)

        # 5) Assemble; PromptTooLarge propagates to the caller
        self._stage(request_id, RequestStage.ASSEMBLING)
        messages = self.assembler.assemble(user_message, history, sources, chain_of_thought)

        return _Prepared(
            request_id=request_id,
            conversation_id=conversation_id,
            messages=messages,
            sources=sources,
            started=started,
            timing=timing,
        )

    async def _prior_history(
        self, conversation_id: str, current: ConversationTurn
    ) -> list[ConversationTurn]:
        try:
            turns = await self.store.history(conversation_id, self.assembler.history_window + 1)
        except PersistenceError as ex:
            logger.error("history read failed for %s: %s", conversation_id, ex)
            return []
        if turns and turns[-1].id == current.id:
            turns = turns[:-1]
        return turns[-self.assembler.history_window :] if self.assembler.history_window else []

    async def _complete(self, prepared: _Prepared, text: str, gen_started: float) -> RAGAnswer:
        now = self.clock.monotonic()
        timing = dict(prepared.timing)
        timing["generation_ms"] = (now - gen_started) * 1000.0
        timing["total_ms"] = (now - prepared.started) * 1000.0

        turn = ConversationTurn.assistant(text, prepared.sources, timestamp=self.clock.now())
        await self._persist(prepared.conversation_id, turn)

        self._stage(prepared.request_id, RequestStage.COMPLETED)
        if self.telemetry is not None:
            self.telemetry.observe("rag.generation.latency_ms", timing["generation_ms"], {})
        self._finish("success")
        return RAGAnswer(
            text=text,
            sources=prepared.sources,
            conversation_id=prepared.conversation_id,
            timing=timing,
        )

    async def _persist(self, conversation_id: str, turn: ConversationTurn) -> bool:
        async def _append() -> None:
            await self.store.append(conversation_id, turn)

        try:
            await retry_async(
                _append,
                attempts=self._persist_attempts,
                base_delay_s=self._persist_delay_s,
                max_delay_s=self._persist_delay_s,
                retry_on=PersistenceError,
                label="conversation append",
                sleep=self._sleep,
            )
        except PersistenceError as ex:
            logger.error(
                "could not persist %s turn for %s: %s",
                turn.role,
                conversation_id,
                ex,
                extra={"conversation_id": conversation_id},
            )
            return False
        return True

    def _stage(self, request_id: str, stage: RequestStage) -> None:
        logger.debug("request %s → %s", request_id, stage.value, extra={"request_id": request_id})

    def _finish(self, status: str) -> None:
        if self.telemetry is not None:
            self.telemetry.incr("rag.requests.total", {"status": status})
