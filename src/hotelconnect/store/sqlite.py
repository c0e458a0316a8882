"""SQLite-backed document store.

Documents are stored as JSON text in a single ``documents`` table keyed by
path, with the collection path denormalised into its own indexed column so
collection scans stay cheap.  A one-row ``clock`` table persists the server
timestamp sequence across restarts.

Every blocking call runs in a worker thread via ``asyncio.to_thread`` and
opens its own connection, so the event loop never waits on disk I/O.  A
batch commits inside one ``connection_scope(write=True)``: either every op
lands or none does.

Change notifications are in-process only.  Two processes sharing one
database file will not see each other's writes pushed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any, NoReturn

from hotelconnect.errors import OperationContext
from hotelconnect.store.base import (
    Change,
    Document,
    DocumentStore,
    ServerTimestamp,
    WriteOp,
    apply_op,
    check_op,
    collection_of,
)
from hotelconnect.store.connection import connection_scope
from hotelconnect.store.errors import (
    StoreError,
    StoreReadError,
    StoreWriteError,
)

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS documents (
        path TEXT PRIMARY KEY,
        collection TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)",
    "CREATE TABLE IF NOT EXISTS clock (id INTEGER PRIMARY KEY CHECK (id = 1), seq INTEGER NOT NULL)",
    "INSERT OR IGNORE INTO clock (id, seq) VALUES (1, 0)",
)

# JSON key marking an encoded ServerTimestamp.
_TIMESTAMP_KEY = "__server_timestamp__"


def _raise_read_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed read error while preserving chained cause."""
    if isinstance(exc, StoreError):
        raise exc
    raise StoreReadError(
        context=OperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _raise_write_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed write error while preserving chained cause."""
    if isinstance(exc, StoreError):
        raise exc
    raise StoreWriteError(
        context=OperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _encode_value(value: Any) -> Any:
    if isinstance(value, ServerTimestamp):
        return {_TIMESTAMP_KEY: [value.sequence, value.issued_at.isoformat()]}
    if isinstance(value, dict):
        return {key: _encode_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_value(item) for item in value]
    return value


def _decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_TIMESTAMP_KEY}:
            sequence, issued_at = value[_TIMESTAMP_KEY]
            return ServerTimestamp(int(sequence), datetime.fromisoformat(issued_at))
        return {key: _decode_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_decode_value(item) for item in value]
    return value


def encode_document(data: dict[str, Any]) -> str:
    """Serialise document data, including server timestamps, to JSON."""
    return json.dumps(_encode_value(data), sort_keys=True)


def decode_document(text: str) -> dict[str, Any]:
    """Inverse of ``encode_document``."""
    decoded: dict[str, Any] = _decode_value(json.loads(text))
    return decoded


class SqliteDocumentStore(DocumentStore):
    """``DocumentStore`` persisted to a SQLite file."""

    def __init__(self, db_path: Path | str) -> None:
        super().__init__()
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _init_schema(self) -> None:
        try:
            with connection_scope(self._db_path, write=True) as conn:
                for statement in SCHEMA_STATEMENTS:
                    conn.execute(statement)
                row = conn.execute("SELECT seq FROM clock WHERE id = 1").fetchone()
                self._sequence = int(row[0])
        except sqlite3.Error as exc:
            _raise_write_error("store.init_schema", exc, details=f"path={str(self._db_path)!r}")
        logger.info("SQLite document store ready at %s (clock=%d)", self._db_path, self._sequence)

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(fn, *args)

    def _read_document(self, path: str) -> dict[str, Any] | None:
        try:
            with connection_scope(self._db_path) as conn:
                row = conn.execute("SELECT data FROM documents WHERE path = ?", (path,)).fetchone()
        except Exception as exc:
            _raise_read_error("store.get", exc, details=f"path={path!r}")
        return None if row is None else decode_document(row[0])

    def _read_collection(self, collection: str) -> list[Document]:
        try:
            with connection_scope(self._db_path) as conn:
                rows = conn.execute(
                    "SELECT path, data FROM documents WHERE collection = ? ORDER BY rowid",
                    (collection,),
                ).fetchall()
        except Exception as exc:
            _raise_read_error("store.query", exc, details=f"collection={collection!r}")
        return [Document(path, decode_document(data)) for path, data in rows]

    def _commit(self, ops: Sequence[WriteOp]) -> list[Change]:
        try:
            with connection_scope(self._db_path, write=True) as conn:
                cursor = conn.cursor()
                staged: dict[str, dict[str, Any] | None] = {}
                before_state: dict[str, dict[str, Any] | None] = {}
                for op in ops:
                    if op.path in staged:
                        current = staged[op.path]
                    else:
                        row = cursor.execute(
                            "SELECT data FROM documents WHERE path = ?", (op.path,)
                        ).fetchone()
                        current = None if row is None else decode_document(row[0])
                        before_state[op.path] = current
                    check_op(current, op)
                    if op.kind != "require":
                        staged[op.path] = apply_op(current, op)

                for path, after in staged.items():
                    if after is None:
                        cursor.execute("DELETE FROM documents WHERE path = ?", (path,))
                    else:
                        cursor.execute(
                            """
                            INSERT INTO documents (path, collection, data) VALUES (?, ?, ?)
                            ON CONFLICT(path) DO UPDATE SET data = excluded.data
                            """,
                            (path, collection_of(path), encode_document(after)),
                        )
                cursor.execute("UPDATE clock SET seq = MAX(seq, ?) WHERE id = 1", (self._sequence,))
        except Exception as exc:
            _raise_write_error("store.batch_write", exc, details=f"ops={len(ops)}")
        return [Change(path, before_state[path], after) for path, after in staged.items()]
