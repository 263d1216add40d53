import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from rag_orchestrator.application.ports import ChatMessage, GenerationOptions
from rag_orchestrator.domain.errors import InferenceError, InferenceTimeout
from rag_orchestrator.infrastructure.llm.openai_compatible_adapter import (
    OpenAICompatibleInference,
)

MESSAGES = [
    ChatMessage(role="system", content="Be brief."),
    ChatMessage(role="user", content="What is JavaScript?"),
]
OPTIONS = GenerationOptions(model="llama3.2", num_ctx=2048)


def _chunk(text: str | None) -> Any:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class _FakeStream:
    def __init__(self, chunks: list[Any], hang_after: int | None = None) -> None:
        self._chunks = list(chunks)
        self._hang_after = hang_after
        self._served = 0
        self.closed = False

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> Any:
        if self._hang_after is not None and self._served == self._hang_after:
            await asyncio.sleep(10)
        if not self._chunks:
            raise StopAsyncIteration
        self._served += 1
        return self._chunks.pop(0)

    async def close(self) -> None:
        self.closed = True


class _FakeCompletions:
    def __init__(self, owner: "_FakeClient") -> None:
        self.owner = owner

    async def create(self, **kwargs: Any) -> Any:
        self.owner.requests.append(kwargs)
        if self.owner.error is not None:
            raise self.owner.error
        if kwargs.get("stream"):
            return self.owner.stream
        message = SimpleNamespace(content=self.owner.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _FakeModels:
    def __init__(self, owner: "_FakeClient") -> None:
        self.owner = owner

    async def list(self) -> list[str]:
        self.owner.pings += 1
        if self.owner.ping_error is not None:
            raise self.owner.ping_error
        return ["llama3.2"]


class _FakeClient:
    def __init__(
        self,
        reply: str = "JavaScript is a programming language.",
        error: Exception | None = None,
        ping_error: Exception | None = None,
        stream: _FakeStream | None = None,
    ) -> None:
        self.reply = reply
        self.error = error
        self.ping_error = ping_error
        self.stream = stream or _FakeStream([_chunk("Java"), _chunk("Script")])
        self.requests: list[dict[str, Any]] = []
        self.pings = 0
        self.closed = False
        self.chat = SimpleNamespace(completions=_FakeCompletions(self))
        self.models = _FakeModels(self)

    async def close(self) -> None:
        self.closed = True


def _adapter(*clients: _FakeClient, **kwargs: Any) -> OpenAICompatibleInference:
    queue = list(clients)
    return OpenAICompatibleInference(client_factory=lambda: queue.pop(0), **kwargs)


async def test_chat_sends_messages_and_runtime_options():
    client = _FakeClient()
    adapter = _adapter(client)

    text = await adapter.chat(MESSAGES, OPTIONS)

    assert text == "JavaScript is a programming language."
    req = client.requests[0]
    assert req["model"] == "llama3.2"
    assert req["messages"][1] == {"role": "user", "content": "What is JavaScript?"}
    assert req["temperature"] == 0.7 and req["top_p"] == 0.9
    assert req["extra_body"] == {"options": {"num_ctx": 2048}}
    assert "max_tokens" not in req and "stream" not in req


async def test_chat_failure_is_inference_error():
    adapter = _adapter(_FakeClient(error=RuntimeError("connection reset")))
    with pytest.raises(InferenceError) as ei:
        await adapter.chat(MESSAGES, OPTIONS)
    assert not isinstance(ei.value, InferenceTimeout)


async def test_chat_timeout_is_inference_timeout():
    adapter = _adapter(_FakeClient(error=TimeoutError("read")))
    with pytest.raises(InferenceTimeout):
        await adapter.chat(MESSAGES, OPTIONS)


async def test_stream_yields_deltas_and_closes():
    stream = _FakeStream([_chunk("Java"), _chunk(None), _chunk("Script")])
    client = _FakeClient(stream=stream)
    adapter = _adapter(client)

    parts = [p async for p in adapter.stream_chat(MESSAGES, OPTIONS)]

    assert parts == ["Java", "Script"]
    assert client.requests[0]["stream"] is True
    assert stream.closed


async def test_stream_idle_timeout():
    stream = _FakeStream([_chunk("a"), _chunk("b")], hang_after=1)
    adapter = _adapter(_FakeClient(stream=stream), stream_idle_timeout_s=0.01)

    received = []
    with pytest.raises(InferenceTimeout):
        async for part in adapter.stream_chat(MESSAGES, OPTIONS):
            received.append(part)

    assert received == ["a"]
    assert stream.closed


async def test_abandoned_stream_is_closed():
    stream = _FakeStream([_chunk("a"), _chunk("b"), _chunk("c")])
    adapter = _adapter(_FakeClient(stream=stream))

    gen = adapter.stream_chat(MESSAGES, OPTIONS)
    assert await gen.__anext__() == "a"
    await gen.aclose()

    assert stream.closed


async def test_ensure_connection_healthy():
    client = _FakeClient()
    adapter = _adapter(client)
    assert await adapter.ensure_connection() is True
    assert client.pings == 1


async def test_ensure_connection_drops_unhealthy_client():
    stale = _FakeClient(ping_error=ConnectionError("refused"))
    fresh = _FakeClient()
    adapter = _adapter(stale, fresh)

    assert await adapter.ensure_connection() is False
    assert stale.closed
    # the replacement is built lazily by the next call, not verified in a loop
    assert fresh.pings == 0
    assert await adapter.chat(MESSAGES, OPTIONS) == fresh.reply
    assert await adapter.ensure_connection() is True


async def test_ensure_connection_never_raises_when_backend_down():
    adapter = _adapter(
        _FakeClient(ping_error=ConnectionError("refused")),
        _FakeClient(ping_error=ConnectionError("refused")),
    )
    assert await adapter.ensure_connection() is False
    assert await adapter.ensure_connection() is False


async def test_ensure_connection_is_bounded_by_health_timeout():
    class _HangingModels:
        async def list(self) -> list[str]:
            await asyncio.sleep(10)
            return []

    hanging = _FakeClient()
    hanging.models = _HangingModels()
    adapter = _adapter(hanging, health_timeout_s=0.01)

    assert await asyncio.wait_for(adapter.ensure_connection(), timeout=1.0) is False
    assert hanging.closed


async def test_concurrent_ensure_connection_share_one_check():
    stale = _FakeClient(ping_error=ConnectionError("refused"))
    adapter = _adapter(stale, _FakeClient())

    results = await asyncio.wait_for(
        asyncio.gather(*(adapter.ensure_connection() for _ in range(4))), timeout=1.0
    )

    assert results == [False] * 4
    assert stale.pings == 1


async def test_warmup_request_asks_for_single_token():
    client = _FakeClient()
    await _adapter(client).probe("qwen2.5")
    req = client.requests[0]
    assert req["model"] == "qwen2.5"
    assert req["max_tokens"] == 1


async def test_aclose_closes_client():
    client = _FakeClient()
    adapter = _adapter(client)
    await adapter.chat(MESSAGES, OPTIONS)
    await adapter.aclose()
    assert client.closed
