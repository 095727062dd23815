from __future__ import annotations

import asyncio
import json
from typing import Any, Iterable, List, Optional, Set

import aiosqlite

from db.database import Database
from db.store import (
    Document,
    DocumentStore,
    Snapshot,
    SnapshotCallback,
    WriteBatch,
    WriteOp,
    apply_op,
    check_field,
    unique_clash,
)
from utils.logger import get_logger

_logger = get_logger(__name__)


def _row_to_doc(row) -> Document:
    return json.loads(row["body"])


class SqliteStore(DocumentStore):
    """
    Hosted store: every collection lives in one sqlite database, one JSON body
    per document. Batches run inside BEGIN IMMEDIATE, so increments are checked
    against the committed value even with several writers on the same file.

    Subscribers are notified after the write has committed, on a later turn of
    the event loop.
    """

    offline = False

    def __init__(self, path: str) -> None:
        super().__init__()
        self.db = Database(path)
        self._pending: Set[asyncio.Task] = set()

    # ---------------------------
    # Reads
    # ---------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        async with self.db.connect() as conn:
            return await self._fetch(conn, collection, doc_id)

    async def find(self, collection: str, **filters: Any) -> Snapshot:
        clauses = ["collection = ?"]
        params: List[Any] = [collection]
        for name, value in filters.items():
            clauses.append("json_extract(body, ?) IS ?")
            params.extend([f"$.{check_field(name)}", value])

        async with self.db.connect() as conn:
            cur = await conn.execute(
                f"""
                SELECT body
                FROM documents
                WHERE {" AND ".join(clauses)}
                ORDER BY created_at, rowid;
                """,
                tuple(params),
            )
            rows = await cur.fetchall()
            await cur.close()
        return [_row_to_doc(row) for row in rows]

    async def all(self, collection: str) -> Snapshot:
        return await self.find(collection)

    # ---------------------------
    # Writes
    # ---------------------------

    async def commit(self, batch: WriteBatch) -> List[str]:
        if not batch.ops:
            return []

        created: List[str] = []
        async with self.db.connect() as conn:
            await conn.execute("BEGIN IMMEDIATE;")
            try:
                for op in batch.ops:
                    if op.kind == "create":
                        await self._check_unique(conn, op)
                        await self._insert(conn, op.collection, op.data)
                        created.append(op.doc_id)
                        continue
                    current = await self._fetch(conn, op.collection, op.doc_id)
                    updated = apply_op(op, current)
                    await conn.execute(
                        "UPDATE documents SET body = ? WHERE collection = ? AND id = ?;",
                        (json.dumps(updated), op.collection, op.doc_id),
                    )
                await conn.execute("COMMIT;")
            except BaseException:
                await conn.execute("ROLLBACK;")
                raise

        _logger.debug(f"Committed {len(batch)} op(s) on {batch.collections}")
        self._notify_later(batch.collections)
        return created

    async def _insert(
        self, conn: aiosqlite.Connection, collection: str, doc: Document
    ) -> None:
        await conn.execute(
            "INSERT INTO documents(collection, id, body, created_at) VALUES (?, ?, ?, ?);",
            (collection, doc["id"], json.dumps(doc), doc["createdAt"]),
        )

    async def _check_unique(self, conn: aiosqlite.Connection, op: WriteOp) -> None:
        for name in op.unique:
            if op.data.get(name) is None:
                continue
            cur = await conn.execute(
                """
                SELECT 1
                FROM documents
                WHERE collection = ?
                  AND json_extract(body, ?) IS ?
                LIMIT 1;
                """,
                (op.collection, f"$.{name}", op.data.get(name)),
            )
            row = await cur.fetchone()
            await cur.close()
            if row is not None:
                raise unique_clash(op, name)

    async def _fetch(
        self, conn: aiosqlite.Connection, collection: str, doc_id: str
    ) -> Optional[Document]:
        cur = await conn.execute(
            "SELECT body FROM documents WHERE collection = ? AND id = ?;",
            (collection, doc_id),
        )
        row = await cur.fetchone()
        await cur.close()
        return _row_to_doc(row) if row else None

    # ---------------------------
    # Subscriptions
    # ---------------------------

    def _deliver_initial(self, collection: str, callback: SnapshotCallback) -> None:
        self._schedule(self._deliver(collection, [callback]))

    def _notify_later(self, collections: Iterable[str]) -> None:
        for collection in collections:
            if self._subscribers.get(collection):
                self._schedule(self._deliver(collection))

    def _schedule(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(
        self, collection: str, only: Optional[List[SnapshotCallback]] = None
    ) -> None:
        snapshot = await self.all(collection)
        for callback in only or self._callbacks(collection):
            # unsubscribed while the snapshot was loading
            if callback not in self._subscribers.get(collection, []):
                continue
            try:
                callback([dict(doc) for doc in snapshot])
            except Exception:
                _logger.exception(f"Subscriber on '{collection}' failed")

    async def drain(self) -> None:
        """Wait until every scheduled snapshot has been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await super().close()
