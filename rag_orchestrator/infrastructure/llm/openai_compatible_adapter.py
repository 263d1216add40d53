from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable, Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from rag_orchestrator.application.ports.llm_port import (
    ChatMessage,
    GenerationOptions,
    InferencePort,
)
from rag_orchestrator.domain.errors import DomainError, InferenceError, InferenceTimeout

logger = logging.getLogger(__name__)

PROBE_PROMPT = "ping"


@dataclass
class OpenAICompatibleInference(InferencePort):
    """
    Chat against any OpenAI-compatible endpoint (Ollama serves one at ``/v1``).

    One pooled ``AsyncOpenAI`` handle is shared by all requests. It is created
    lazily, pinged by ``ensure_connection`` with a short timeout and dropped
    when unhealthy so the next call recreates it. The SDK's own retries are
    disabled; callers decide whether to try again.
    """

    base_url: str = "http://localhost:11434/v1"
    api_key: str = "ollama"
    timeout_s: float = 60.0
    stream_idle_timeout_s: float = 30.0
    health_timeout_s: float = 5.0
    client_factory: Callable[[], Any] | None = None

    def __post_init__(self) -> None:
        # Defer import of openai to first use to avoid a hard dependency in tests
        self._client: Any | None = None
        self._check: asyncio.Future[bool] | None = None

    # ------------------------------------------------------------ handle

    def _build_client(self) -> Any:
        if self.client_factory is not None:
            return self.client_factory()
        module = import_module("openai")
        return module.AsyncOpenAI(
            base_url=self.base_url,
            api_key=self.api_key,
            timeout=self.timeout_s,
            max_retries=0,
        )

    def _handle(self) -> Any:
        if self._client is None:
            self._client = self._build_client()
            logger.info("inference client created for %s", self.base_url)
        return self._client

    async def _discard(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.close()
        except Exception as ex:  # noqa: BLE001
            logger.debug("closing stale inference client failed: %s", ex)

    async def _ping(self, client: Any) -> None:
        async with asyncio.timeout(min(self.health_timeout_s, self.timeout_s)):
            await client.models.list()

    async def _check_connection(self) -> bool:
        client = self._handle()
        try:
            await self._ping(client)
            return True
        except Exception as ex:  # noqa: BLE001
            logger.warning("inference connection unhealthy, recreating: %s", ex)
        # the next call builds a fresh handle through _handle()
        if self._client is client:
            await self._discard()
        return False

    def _check_finished(self, _future: asyncio.Future[bool]) -> None:
        self._check = None

    async def ensure_connection(self) -> bool:
        # concurrent callers share one health check instead of queueing behind it
        if self._check is None:
            self._check = asyncio.ensure_future(self._check_connection())
            self._check.add_done_callback(self._check_finished)
        return await asyncio.shield(self._check)

    # ------------------------------------------------------------ calls

    def _translate(self, ex: BaseException) -> DomainError:
        if isinstance(ex, DomainError):
            return ex
        if isinstance(ex, TimeoutError):
            return InferenceTimeout(f"LLM call timed out: {ex}")
        timeout_type = getattr(import_module("openai"), "APITimeoutError", None)
        if timeout_type is not None and isinstance(ex, timeout_type):
            return InferenceTimeout(f"LLM call timed out: {ex}")
        return InferenceError(f"LLM communication failed: {ex}")

    @staticmethod
    def _request(
        messages: Sequence[ChatMessage], options: GenerationOptions, stream: bool = False
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": options.model,
            "messages": [m.as_dict() for m in messages],
            "temperature": options.temperature,
            "top_p": options.top_p,
            # Ollama reads runtime options (context window) from the request body
            "extra_body": {"options": {"num_ctx": options.num_ctx}},
        }
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens
        if stream:
            kwargs["stream"] = True
        return kwargs

    async def chat(self, messages: Sequence[ChatMessage], options: GenerationOptions) -> str:
        client = self._handle()
        try:
            resp: Any = await client.chat.completions.create(**self._request(messages, options))
        except Exception as ex:  # noqa: BLE001
            raise self._translate(ex) from ex
        if not resp.choices:
            raise InferenceError("LLM returned no choices")
        return resp.choices[0].message.content or ""

    async def stream_chat(
        self, messages: Sequence[ChatMessage], options: GenerationOptions
    ) -> AsyncGenerator[str, None]:
        client = self._handle()
        try:
            async with asyncio.timeout(self.timeout_s):
                stream: Any = await client.chat.completions.create(
                    **self._request(messages, options, stream=True)
                )
        except Exception as ex:  # noqa: BLE001
            raise self._translate(ex) from ex

        chunks = stream.__aiter__()
        try:
            while True:
                try:
                    async with asyncio.timeout(self.stream_idle_timeout_s):
                        chunk = await anext(chunks)
                except StopAsyncIteration:
                    break
                except TimeoutError as ex:
                    raise InferenceTimeout(
                        f"no output for {self.stream_idle_timeout_s:.0f}s"
                    ) from ex
                except Exception as ex:  # noqa: BLE001
                    raise self._translate(ex) from ex
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        finally:
            await stream.close()

    async def probe(self, model: str) -> None:
        messages = [ChatMessage(role="user", content=PROBE_PROMPT)]
        await self.chat(messages, GenerationOptions(model=model, max_tokens=1))

    async def aclose(self) -> None:
        await self._discard()
