"""Command line entry point: ask questions, manage documents and conversations."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from rag_orchestrator.application.dto.chat_dto import DoneEvent, ErrorEvent, TokenEvent
from rag_orchestrator.config.compose import Container, build_container
from rag_orchestrator.config.logging_setup import configure_logging
from rag_orchestrator.domain.errors import DomainError
from rag_orchestrator.domain.models import RetrievedSnippet


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rag-orchestrator")
    sub = parser.add_subparsers(dest="command", required=True)

    ask = sub.add_parser("ask", help="Answer a question from the indexed documents")
    ask.add_argument("--question", required=True)
    ask.add_argument("--conversation-id", default=None)
    ask.add_argument("--k", type=int, default=None, help="Snippets to retrieve")
    ask.add_argument("--cot", action="store_true", help="Chain-of-thought instructions")
    ask.add_argument("--stream", action="store_true", help="Print tokens as they arrive")

    ingest = sub.add_parser("ingest", help="Add a text file as a document")
    ingest.add_argument("--path", required=True)
    ingest.add_argument("--title", default=None, help="Defaults to the file name")
    ingest.add_argument("--chunk-size", type=int, default=0, help="Split by sentences when > 0")

    sub.add_parser("count", help="Number of indexed documents")
    sub.add_parser("clear-documents", help="Remove every indexed document")

    conv = sub.add_parser("conversations", help="List stored conversations")
    conv.add_argument("--clear", action="store_true", help="Delete all conversations")

    sub.add_parser("warmup", help="Probe every configured model once")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _print_sources(sources: Sequence[RetrievedSnippet]) -> None:
    if not sources:
        return
    print("\n" + "=" * 80)
    print("SOURCES:")
    print("=" * 80)
    for i, s in enumerate(sources, 1):
        print(f"[{i}] {s.source} (similarity={s.similarity:.3f})")


async def _ask(c: Container, args: argparse.Namespace) -> int:
    orchestrator = c.get_orchestrator()
    cid = args.conversation_id or orchestrator.new_conversation_id()

    if args.stream:
        async for event in orchestrator.stream_answer(cid, args.question, args.cot, args.k):
            if isinstance(event, TokenEvent):
                print(event.text, end="", flush=True)
            elif isinstance(event, DoneEvent):
                print()
                _print_sources(event.sources)
            elif isinstance(event, ErrorEvent):
                print(f"\n[ERROR] {event.kind}: {event.message}", file=sys.stderr)
                return 1
        print(f"\nconversation: {cid}")
        return 0

    result = await orchestrator.answer(cid, args.question, args.cot, args.k)
    if not result.ok or result.value is None:
        err = result.error
        kind = err.kind if err is not None else "unknown"
        message = err.user_message if err is not None else ""
        print(f"[ERROR] {kind}: {message}", file=sys.stderr)
        return 1
    print("\n" + "=" * 80)
    print("ANSWER:")
    print("=" * 80)
    print(result.value.text)
    _print_sources(result.value.sources)
    print(f"\nconversation: {result.value.conversation_id}")
    return 0


async def _ingest(c: Container, args: argparse.Namespace) -> int:
    path = Path(args.path)
    content = path.read_text(encoding="utf-8")
    title = args.title or path.name
    service = c.get_document_service()
    if args.chunk_size > 0:
        docs = await service.add_large_document(
            title, content, {"path": str(path)}, chunk_size=args.chunk_size
        )
    else:
        docs = [await service.add_document(title, content, {"path": str(path)})]
    print(f"added {len(docs)} document(s) from {path}")
    return 0


async def _conversations(c: Container, args: argparse.Namespace) -> int:
    store = c.get_conversation_store()
    if args.clear:
        print(f"deleted {await store.clear_all()} conversation(s)")
        return 0
    for s in await store.list_conversations():
        updated = s.last_updated.isoformat() if s.last_updated else "-"
        print(f"{s.id}  {s.turn_count:>3} turns  {updated}  {s.preview_title}")
    return 0


async def _warmup(c: Container) -> int:
    outcome = await c.get_warmup_scheduler().run_once()
    for model, ok in outcome.items():
        print(f"{model}: {'ok' if ok else 'failed'}")
    return 0 if all(outcome.values()) else 1


async def run(args: argparse.Namespace, container: Container | None = None) -> int:
    c = container or build_container()
    try:
        if args.command == "ask":
            return await _ask(c, args)
        if args.command == "ingest":
            return await _ingest(c, args)
        if args.command == "count":
            print(await c.get_document_service().count())
            return 0
        if args.command == "clear-documents":
            print(f"deleted {await c.get_document_service().delete_all()} document(s)")
            return 0
        if args.command == "conversations":
            return await _conversations(c, args)
        if args.command == "warmup":
            return await _warmup(c)
        raise ValueError(f"unknown command {args.command!r}")
    except DomainError as ex:
        print(f"[ERROR] {ex.kind}: {ex.user_message}", file=sys.stderr)
        return 1
    finally:
        await c.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    container = build_container()
    configure_logging(container.settings.log_level)

    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "rag_orchestrator.interface.http.api:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            log_config=None,
        )
        return 0
    return asyncio.run(run(args, container))


if __name__ == "__main__":
    sys.exit(main())
