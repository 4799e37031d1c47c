"""Kùzu embedded database implementation of Checkpointer."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import kuzu
from pydantic import ValidationError

from threadgraph.errors import StorageError
from threadgraph.state import Checkpoint, State

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _result_to_dicts(result: kuzu.QueryResult) -> list[dict[str, Any]]:
    """Convert a Kùzu QueryResult to a list of dicts keyed by column name."""
    columns = result.get_column_names()
    rows = []
    while result.has_next():
        values = result.get_next()
        rows.append(dict(zip(columns, values)))
    return rows


class KuzuCheckpointer:
    """Durable checkpointer backed by an embedded Kùzu database.

    Requires no external server. Kùzu calls are synchronous and are wrapped
    with asyncio.to_thread(); a lock serialises them over the one connection.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db: kuzu.Database | None = None
        self._conn: kuzu.Connection | None = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database and create the checkpoint table."""
        # Kùzu needs a non-existing subpath or existing DB directory
        db_dir = self._db_path / "kuzu_db"

        def _connect() -> tuple[kuzu.Database, kuzu.Connection]:
            self._db_path.mkdir(parents=True, exist_ok=True)
            db = kuzu.Database(str(db_dir))
            conn = kuzu.Connection(db)
            conn.execute("""
                CREATE NODE TABLE IF NOT EXISTS Checkpoint(
                    thread_id STRING,
                    state STRING,
                    step INT64,
                    node STRING,
                    updated_at STRING,
                    PRIMARY KEY(thread_id)
                )
            """)
            return db, conn

        try:
            self._db, self._conn = await asyncio.to_thread(_connect)
        except (OSError, RuntimeError) as exc:
            raise StorageError(f"Cannot open Kùzu database at {db_dir}: {exc}") from exc

    async def close(self) -> None:
        """Close the connection and release the database file lock."""
        async with self._lock:
            if self._conn is not None:
                self._conn.close()
            if self._db is not None:
                self._db.close()
        self._conn = None
        self._db = None

    async def _run(self, fn: Callable[[kuzu.Connection], T]) -> T:
        if not self._conn:
            raise StorageError("Not connected")
        conn = self._conn
        async with self._lock:
            try:
                return await asyncio.to_thread(fn, conn)
            except RuntimeError as exc:
                raise StorageError(f"Kùzu query failed: {exc}") from exc

    async def put(
        self,
        thread_id: str,
        state: State,
        *,
        step: int = 0,
        node: str | None = None,
    ) -> Checkpoint:
        checkpoint = Checkpoint(thread_id=thread_id, state=state, step=step, node=node)
        params = {
            "thread_id": thread_id,
            "state": state.model_dump_json(),
            "step": step,
            # Kùzu cannot infer a type for null parameters
            "node": node or "",
            "updated_at": checkpoint.updated_at.isoformat(),
        }

        def _upsert(conn: kuzu.Connection) -> None:
            existing = _result_to_dicts(
                conn.execute(
                    "MATCH (c:Checkpoint) WHERE c.thread_id = $thread_id RETURN c.thread_id",
                    {"thread_id": thread_id},
                )
            )
            if existing:
                conn.execute(
                    """
                    MATCH (c:Checkpoint)
                    WHERE c.thread_id = $thread_id
                    SET c.state = $state,
                        c.step = $step,
                        c.node = $node,
                        c.updated_at = $updated_at
                    """,
                    params,
                )
            else:
                conn.execute(
                    """
                    CREATE (c:Checkpoint {
                        thread_id: $thread_id,
                        state: $state,
                        step: $step,
                        node: $node,
                        updated_at: $updated_at
                    })
                    """,
                    params,
                )

        await self._run(_upsert)
        logger.debug("wrote checkpoint thread_id=%s step=%d", thread_id, step)
        return checkpoint

    async def get(self, thread_id: str) -> State | None:
        checkpoint = await self.get_checkpoint(thread_id)
        return checkpoint.state if checkpoint else None

    async def get_checkpoint(self, thread_id: str) -> Checkpoint | None:
        def _get(conn: kuzu.Connection) -> list[dict[str, Any]]:
            return _result_to_dicts(
                conn.execute(
                    "MATCH (c:Checkpoint) WHERE c.thread_id = $thread_id "
                    "RETURN c.state, c.step, c.node, c.updated_at",
                    {"thread_id": thread_id},
                )
            )

        rows = await self._run(_get)
        if not rows:
            return None
        row = rows[0]
        try:
            return Checkpoint(
                thread_id=thread_id,
                state=State.model_validate_json(row["c.state"]),
                step=row["c.step"],
                node=row["c.node"] or None,
                updated_at=datetime.fromisoformat(row["c.updated_at"]),
            )
        except ValidationError as exc:
            raise StorageError(f"Corrupt checkpoint for {thread_id!r}: {exc}") from exc

    async def delete(self, thread_id: str) -> bool:
        def _delete(conn: kuzu.Connection) -> bool:
            existing = _result_to_dicts(
                conn.execute(
                    "MATCH (c:Checkpoint) WHERE c.thread_id = $thread_id RETURN c.thread_id",
                    {"thread_id": thread_id},
                )
            )
            if not existing:
                return False
            conn.execute(
                "MATCH (c:Checkpoint) WHERE c.thread_id = $thread_id DELETE c",
                {"thread_id": thread_id},
            )
            return True

        return await self._run(_delete)

    async def list_threads(self) -> list[str]:
        def _list(conn: kuzu.Connection) -> list[str]:
            rows = _result_to_dicts(
                conn.execute("MATCH (c:Checkpoint) RETURN c.thread_id ORDER BY c.thread_id")
            )
            return [row["c.thread_id"] for row in rows]

        return await self._run(_list)
