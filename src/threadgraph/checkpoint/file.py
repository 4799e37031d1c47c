"""JSON-file checkpointer.

One file per thread at ``{directory}/{quoted thread_id}.json``, replaced
atomically on every write.
"""

import asyncio
import logging
import os
from pathlib import Path
from urllib.parse import quote, unquote

from pydantic import ValidationError

from threadgraph.errors import StorageError
from threadgraph.state import Checkpoint, State

logger = logging.getLogger(__name__)


class FileCheckpointer:
    """Stores each thread's checkpoint as a JSON document on disk."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    def _path(self, thread_id: str) -> Path:
        return self._directory / f"{quote(thread_id, safe='')}.json"

    async def connect(self) -> None:
        """Create the checkpoint directory."""
        try:
            await asyncio.to_thread(self._directory.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create {self._directory}: {exc}") from exc

    async def close(self) -> None:
        return None

    async def put(
        self,
        thread_id: str,
        state: State,
        *,
        step: int = 0,
        node: str | None = None,
    ) -> Checkpoint:
        checkpoint = Checkpoint(thread_id=thread_id, state=state, step=step, node=node)
        path = self._path(thread_id)
        payload = checkpoint.model_dump_json(indent=2)

        def _write() -> None:
            tmp = path.with_suffix(".json.tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageError(f"Cannot write checkpoint for {thread_id!r}: {exc}") from exc
        logger.debug("wrote checkpoint thread_id=%s step=%d", thread_id, step)
        return checkpoint

    async def get(self, thread_id: str) -> State | None:
        checkpoint = await self.get_checkpoint(thread_id)
        return checkpoint.state if checkpoint else None

    async def get_checkpoint(self, thread_id: str) -> Checkpoint | None:
        path = self._path(thread_id)

        def _read() -> str | None:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")

        try:
            raw = await asyncio.to_thread(_read)
        except OSError as exc:
            raise StorageError(f"Cannot read checkpoint for {thread_id!r}: {exc}") from exc
        if raw is None:
            return None
        try:
            return Checkpoint.model_validate_json(raw)
        except ValidationError as exc:
            raise StorageError(f"Corrupt checkpoint for {thread_id!r}: {exc}") from exc

    async def delete(self, thread_id: str) -> bool:
        path = self._path(thread_id)

        def _delete() -> bool:
            if not path.exists():
                return False
            path.unlink()
            return True

        try:
            return await asyncio.to_thread(_delete)
        except OSError as exc:
            raise StorageError(f"Cannot delete checkpoint for {thread_id!r}: {exc}") from exc

    async def list_threads(self) -> list[str]:
        def _list() -> list[str]:
            if not self._directory.exists():
                return []
            return sorted(unquote(p.stem) for p in self._directory.glob("*.json"))

        try:
            return await asyncio.to_thread(_list)
        except OSError as exc:
            raise StorageError(f"Cannot list checkpoints in {self._directory}: {exc}") from exc
