# src/taskmirror/store/sqlite_store.py

from __future__ import annotations

"""
Local SQLite document store with live queries.

Stands in for the managed backend when running locally: documents are JSON
payloads keyed by (collection, id); predicates are evaluated in Python over
the decoded payloads. Live queries push the FULL matching set on open and
after every write to their collection, always from the event loop (never
synchronously from inside query() or a write).
"""

import asyncio
import contextlib
import itertools
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from ..core.ports import Document, ErrorCallback, Record, SnapshotCallback, WriteOp, apply_patch
from ..core.query import Predicate, matches_all

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class _LiveQuery:
    id: int
    collection: str
    predicates: tuple[Predicate, ...]
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    active: bool = True
    scheduled: bool = False


class LiveQueryHandle:
    def __init__(self, store: SqliteTaskStore, query: _LiveQuery) -> None:
        self._store = store
        self._query = query

    @property
    def active(self) -> bool:
        return self._query.active

    def cancel(self) -> None:
        self._store._cancel(self._query)


class SqliteTaskStore:
    """
    SQLite document store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Each method opens its own SQLite connection.
    """

    def __init__(
        self,
        db_path: str | Path = "tasks.sqlite3",
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._loop = loop
        self._queries: dict[int, _LiveQuery] = {}
        self._ids = itertools.count(1)
        self._ensure_schema()
        logger.info("SqliteTaskStore ready db=%s total=%s", self._db_path, self.count_documents())

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL DEFAULT '{}',
                    updated_at REAL NOT NULL DEFAULT 0,
                    PRIMARY KEY (collection, id)
                )
                """
            )

            cur.execute("PRAGMA table_info(documents)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE documents ADD COLUMN {name} {decl}")
                logger.info("SqliteTaskStore migration: added column %s", name)

            add_col("data", "TEXT NOT NULL DEFAULT '{}'")
            add_col("updated_at", "REAL NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _encode(data: Record) -> str:
        return json.dumps(data, ensure_ascii=False)

    @staticmethod
    def _decode(raw: str | None) -> Record:
        if not raw:
            return {}
        try:
            val = json.loads(raw)
            return val if isinstance(val, dict) else {}
        except json.JSONDecodeError:
            logger.warning("Corrupt JSON payload in documents table; treating as empty.")
            return {}

    def _select(self, collection: str, predicates: tuple[Predicate, ...] | list[Predicate]) -> list[Document]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT id, data FROM documents WHERE collection = ? ORDER BY rowid ASC",
                (collection,),
            )
            out: list[Document] = []
            for row in cur.fetchall():
                data = self._decode(row["data"])
                if matches_all(data, predicates):
                    out.append(Document(id=str(row["id"]), data=data))
            return out
        finally:
            conn.close()

    # ---- one-shot reads ----

    def count_documents(self, collection: str | None = None) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            if collection is None:
                cur.execute("SELECT COUNT(*) FROM documents")
            else:
                cur.execute("SELECT COUNT(*) FROM documents WHERE collection = ?", (collection,))
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    async def fetch(self, collection: str, predicates: list[Predicate]) -> list[Document]:
        return self._select(collection, predicates)

    async def get(self, collection: str, doc_id: str) -> Record | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            row = cur.fetchone()
            return self._decode(row["data"]) if row else None
        finally:
            conn.close()

    # ---- writes ----

    async def create(self, collection: str, data: Record) -> str:
        doc_id = uuid.uuid4().hex
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO documents(collection, id, data, updated_at) VALUES (?, ?, ?, ?)",
                (collection, doc_id, self._encode(data), time.time()),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Document created collection=%s id=%s", collection, doc_id)
        self._notify(collection)
        return doc_id

    async def mutate(self, collection: str, doc_id: str, patch: Record) -> None:
        """Shallow merge of `patch` into the stored payload. Raises KeyError if missing."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            row = cur.fetchone()
            if row is None:
                raise KeyError(f"{collection}/{doc_id} does not exist")
            data = apply_patch(self._decode(row["data"]), patch)
            cur.execute(
                "UPDATE documents SET data = ?, updated_at = ? WHERE collection = ? AND id = ?",
                (self._encode(data), time.time(), collection, doc_id),
            )
            conn.commit()
        finally:
            conn.close()
        self._notify(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM documents WHERE collection = ? AND id = ?", (collection, doc_id))
            conn.commit()
            deleted = cur.rowcount
        finally:
            conn.close()
        if deleted:
            self._notify(collection)

    async def commit(self, ops: list[WriteOp]) -> None:
        """
        Apply a batch in ONE transaction.

        A failing op (e.g. "update" of a missing document) rolls back every
        write before it. Each touched collection gets a single push afterwards.
        """
        if not ops:
            return
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            for op in ops:
                if op.kind == "delete":
                    cur.execute(
                        "DELETE FROM documents WHERE collection = ? AND id = ?",
                        (op.collection, op.doc_id),
                    )
                    continue

                cur.execute(
                    "SELECT data FROM documents WHERE collection = ? AND id = ?",
                    (op.collection, op.doc_id),
                )
                row = cur.fetchone()
                if row is None and op.kind == "update":
                    raise KeyError(f"{op.collection}/{op.doc_id} does not exist")
                current = self._decode(row["data"]) if row else {}
                data = apply_patch(current, op.data or {})
                cur.execute(
                    """
                    INSERT INTO documents(collection, id, data, updated_at) VALUES (?, ?, ?, ?)
                    ON CONFLICT(collection, id) DO UPDATE SET
                        data = excluded.data,
                        updated_at = excluded.updated_at
                    """,
                    (op.collection, op.doc_id, self._encode(data), now),
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        logger.debug("Batch committed ops=%d", len(ops))
        for collection in dict.fromkeys(op.collection for op in ops):
            self._notify(collection)

    # ---- live queries ----

    def query(
        self,
        collection: str,
        predicates: list[Predicate],
        *,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> LiveQueryHandle:
        lq = _LiveQuery(
            id=next(self._ids),
            collection=collection,
            predicates=tuple(predicates),
            on_snapshot=on_snapshot,
            on_error=on_error,
        )
        self._queries[lq.id] = lq
        logger.debug("Live query opened id=%s collection=%s", lq.id, collection)
        self._schedule(lq)
        return LiveQueryHandle(self, lq)

    @property
    def live_query_count(self) -> int:
        return len(self._queries)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _schedule(self, lq: _LiveQuery) -> None:
        # Coalesce: several writes before the loop gets to us produce one push.
        if lq.scheduled or not lq.active:
            return
        lq.scheduled = True
        self._get_loop().call_soon(self._push, lq)

    def _notify(self, collection: str) -> None:
        for lq in list(self._queries.values()):
            if lq.collection == collection:
                self._schedule(lq)

    def _push(self, lq: _LiveQuery) -> None:
        lq.scheduled = False
        if not lq.active:
            return
        try:
            docs = self._select(lq.collection, lq.predicates)
        except sqlite3.Error as e:
            logger.warning("Live query failed id=%s: %s", lq.id, e)
            self._cancel(lq)
            lq.on_error(e)
            return
        lq.on_snapshot(docs)

    def _cancel(self, lq: _LiveQuery) -> None:
        lq.active = False
        self._queries.pop(lq.id, None)
