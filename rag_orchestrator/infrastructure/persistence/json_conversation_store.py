from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from rag_orchestrator.application.ports.conversation_store_port import ConversationStorePort
from rag_orchestrator.domain.errors import PersistenceError, ValidationError
from rag_orchestrator.domain.models import ConversationSummary, ConversationTurn
from rag_orchestrator.domain.services.transcripts import sort_summaries, summarize, tail
from rag_orchestrator.infrastructure.persistence.conversation_locks import ConversationLocks

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class JsonFileConversationStore(ConversationStorePort):
    """
    One ``<id>.json`` file per conversation holding the ordered turn list.

    Writes go to a temp file in the same directory and are moved into place
    with ``os.replace`` so a reader never sees a half-written transcript.
    File I/O runs in worker threads.
    """

    def __init__(self, root: str | Path = "var/conversations") -> None:
        self.root = Path(root)
        self._locks = ConversationLocks()

    def _path(self, conversation_id: str) -> Path:
        if not _SAFE_ID.match(conversation_id or ""):
            raise ValidationError(f"invalid conversation id: {conversation_id!r}")
        return self.root / f"{conversation_id}.json"

    # ------------------------------------------------------------ file I/O

    @staticmethod
    def _read(path: Path) -> list[ConversationTurn]:
        try:
            raw: Any = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as ex:
            raise PersistenceError(f"cannot read transcript '{path.name}': {ex}") from ex
        try:
            return [ConversationTurn.from_record(r) for r in raw]
        except (KeyError, TypeError, ValueError) as ex:
            raise PersistenceError(f"corrupt transcript '{path.name}': {ex}") from ex

    def _write(self, path: Path, turns: list[ConversationTurn]) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump([t.to_record() for t in turns], fh, ensure_ascii=False, indent=2)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as ex:
            raise PersistenceError(f"cannot write transcript '{path.name}': {ex}") from ex

    def _append_sync(self, path: Path, turn: ConversationTurn) -> None:
        turns = self._read(path)
        turns.append(turn)
        self._write(path, turns)

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as ex:
            raise PersistenceError(f"cannot delete transcript '{path.name}': {ex}") from ex
        return True

    def _transcripts(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(self.root.glob("*.json"))

    # ------------------------------------------------------------ port

    async def append(self, conversation_id: str, turn: ConversationTurn) -> None:
        path = self._path(conversation_id)
        async with self._locks.hold(conversation_id):
            await asyncio.to_thread(self._append_sync, path, turn)

    async def history(
        self, conversation_id: str, limit: int | None = None
    ) -> list[ConversationTurn]:
        turns = await asyncio.to_thread(self._read, self._path(conversation_id))
        return tail(turns, limit)

    async def exists(self, conversation_id: str) -> bool:
        return await asyncio.to_thread(self._path(conversation_id).is_file)

    async def clear(self, conversation_id: str) -> bool:
        path = self._path(conversation_id)
        async with self._locks.hold(conversation_id):
            return await asyncio.to_thread(self._unlink, path)

    async def list_conversations(self) -> list[ConversationSummary]:
        def _scan() -> list[ConversationSummary]:
            summaries: list[ConversationSummary] = []
            for path in self._transcripts():
                try:
                    turns = self._read(path)
                except PersistenceError as ex:
                    logger.warning("skipping unreadable transcript: %s", ex)
                    continue
                summaries.append(summarize(path.stem, turns))
            return summaries

        return sort_summaries(await asyncio.to_thread(_scan))

    async def clear_all(self) -> int:
        def _wipe() -> int:
            return sum(1 for path in self._transcripts() if self._unlink(path))

        removed = await asyncio.to_thread(_wipe)
        logger.info("cleared %d conversations", removed)
        return removed
