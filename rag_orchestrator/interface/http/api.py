"""HTTP API for chat, streaming chat, documents and conversations.

Why: Consumable API without business logic; pure delegation to the
orchestrator and services wired by the Container.
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from rag_orchestrator.config.compose import Container, build_container
from rag_orchestrator.domain.errors import DomainError
from rag_orchestrator.domain.models import ConversationSummary, Document

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "validation_error": 400,
    "prompt_too_large": 413,
    "generation_failed": 502,
    "inference_error": 502,
    "inference_timeout": 504,
    "index_unavailable": 503,
    "dimension_mismatch": 503,
    "embedding_error": 503,
    "persistence_error": 500,
}


# Pydantic models for request validation
class ChatRequestModel(BaseModel):
    message: str
    conversation_id: str | None = None
    use_chain_of_thought: bool = False
    top_k: int | None = Field(default=None, ge=1, le=50)
    filters: dict[str, Any] | None = None


class DocumentRequestModel(BaseModel):
    title: str
    content: str
    metadata: dict[str, Any] | None = None
    chunk: bool = False
    chunk_size: int = Field(default=1000, ge=100)


class BulkDocumentsRequestModel(BaseModel):
    documents: list[DocumentRequestModel]


class SearchRequestModel(BaseModel):
    query: str
    top_k: int | None = Field(default=None, ge=1, le=50)
    filters: dict[str, Any] | None = None


def _error_body(error: DomainError) -> dict[str, Any]:
    return {"error": {"kind": error.kind, "message": error.user_message}}


def _document_record(doc: Document) -> dict[str, Any]:
    return {"id": doc.id, "content": doc.content, "metadata": dict(doc.metadata)}


def _summary_record(summary: ConversationSummary) -> dict[str, Any]:
    return {
        "id": summary.id,
        "title": summary.preview_title,
        "turn_count": summary.turn_count,
        "last_updated": summary.last_updated.isoformat() if summary.last_updated else None,
    }


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def create_app(container: Container | None = None) -> FastAPI:
    """Build the FastAPI app; the container is created at startup when not given."""

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.container = container or build_container()
        c: Container = app.state.container
        if c.settings.warmup_enabled:
            c.get_warmup_scheduler().start()
        try:
            yield
        finally:
            await c.aclose()

    app = FastAPI(title="RAG Orchestrator API", version="1.0.0", lifespan=lifespan)

    def get_container(request: Request) -> Container:
        c = getattr(request.app.state, "container", None)
        if c is None:
            raise HTTPException(status_code=503, detail="Service not initialized")
        return c

    @app.exception_handler(DomainError)
    async def domain_error_handler(_request: Request, exc: DomainError) -> JSONResponse:
        status = STATUS_BY_KIND.get(exc.kind, 500)
        if status >= 500:
            logger.warning("request failed [%s]: %s", exc.kind, exc)
        return JSONResponse(status_code=status, content=_error_body(exc))

    # ===== Chat =====

    @app.post("/v1/chat")
    async def chat(req: ChatRequestModel, c: Container = Depends(get_container)) -> Any:
        orchestrator = c.get_orchestrator()
        conversation_id = req.conversation_id or orchestrator.new_conversation_id()
        result = await orchestrator.answer(
            conversation_id,
            req.message,
            chain_of_thought=req.use_chain_of_thought,
            k=req.top_k,
            filters=req.filters,
        )
        answer = result.unwrap()
        return {
            "answer": answer.text,
            "sources": [s.to_record() for s in answer.sources],
            "conversation_id": answer.conversation_id,
            "timing": dict(answer.timing),
        }

    @app.get("/v1/chat/stream")
    async def chat_stream(
        request: Request,
        message: str = Query(...),
        conversation_id: str | None = Query(default=None),
        use_chain_of_thought: bool = Query(default=False),
        top_k: int | None = Query(default=None, ge=1, le=50),
        c: Container = Depends(get_container),
    ) -> StreamingResponse:
        orchestrator = c.get_orchestrator()
        cid = conversation_id or orchestrator.new_conversation_id()

        async def events() -> AsyncIterator[str]:
            async with contextlib.aclosing(
                orchestrator.stream_answer(cid, message, use_chain_of_thought, top_k)
            ) as stream:
                async for event in stream:
                    if await request.is_disconnected():
                        logger.info("client disconnected from stream %s", cid)
                        return
                    yield _sse(event.to_payload())

        return StreamingResponse(
            events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    # ===== Documents =====

    @app.post("/v1/documents", status_code=201)
    async def add_document(req: DocumentRequestModel, c: Container = Depends(get_container)) -> Any:
        service = c.get_document_service()
        if req.chunk:
            docs = await service.add_large_document(
                req.title, req.content, req.metadata, chunk_size=req.chunk_size
            )
        else:
            docs = [await service.add_document(req.title, req.content, req.metadata)]
        return {"documents": [_document_record(d) for d in docs], "count": len(docs)}

    @app.post("/v1/documents/bulk", status_code=201)
    async def add_documents(
        req: BulkDocumentsRequestModel, c: Container = Depends(get_container)
    ) -> Any:
        docs = await c.get_document_service().add_documents([d.model_dump() for d in req.documents])
        return {"documents": [_document_record(d) for d in docs], "count": len(docs)}

    @app.get("/v1/documents")
    async def list_documents(
        limit: int = Query(default=100, ge=1, le=1000), c: Container = Depends(get_container)
    ) -> Any:
        service = c.get_document_service()
        docs = await service.list_documents(limit)
        return {"documents": [_document_record(d) for d in docs], "total": await service.count()}

    @app.delete("/v1/documents")
    async def delete_documents(c: Container = Depends(get_container)) -> Any:
        removed = await c.get_document_service().delete_all()
        return {"deleted": removed}

    @app.post("/v1/search")
    async def search(req: SearchRequestModel, c: Container = Depends(get_container)) -> Any:
        result = await c.get_document_service().search(req.query, req.top_k, req.filters)
        return {
            "results": [s.to_record() for s in result.snippets],
            "count": len(result.snippets),
            "metrics": {"queryTimeMs": result.timing_ms, "cached": result.cached},
        }

    # ===== Conversations =====

    @app.get("/v1/conversations")
    async def list_conversations(c: Container = Depends(get_container)) -> Any:
        summaries = await c.get_conversation_store().list_conversations()
        return {"conversations": [_summary_record(s) for s in summaries]}

    @app.delete("/v1/conversations")
    async def clear_conversations(c: Container = Depends(get_container)) -> Any:
        return {"deleted": await c.get_conversation_store().clear_all()}

    @app.get("/v1/conversations/{conversation_id}")
    async def get_conversation(conversation_id: str, c: Container = Depends(get_container)) -> Any:
        store = c.get_conversation_store()
        if not await store.exists(conversation_id):
            raise HTTPException(status_code=404, detail="Conversation not found")
        turns = await store.history(conversation_id)
        return {"id": conversation_id, "messages": [t.to_record() for t in turns]}

    @app.delete("/v1/conversations/{conversation_id}")
    async def delete_conversation(
        conversation_id: str, c: Container = Depends(get_container)
    ) -> Any:
        if not await c.get_conversation_store().clear(conversation_id):
            raise HTTPException(status_code=404, detail="Conversation not found")
        return {"deleted": conversation_id}

    # ===== Health =====

    @app.get("/health")
    async def health(c: Container = Depends(get_container)) -> Any:
        llm_ok = await c.get_inference().ensure_connection()
        try:
            documents: int | None = await c.get_document_service().count()
        except DomainError as ex:
            logger.warning("health: index unavailable: %s", ex)
            documents = None
        status = "ok" if llm_ok and documents is not None else "degraded"
        return {"status": status, "llm": llm_ok, "documents": documents}

    return app
