"""SQLite connection handling for ``SqliteDocumentStore``.

Each store call runs on a worker thread and opens a short-lived connection.
Connections run in autocommit mode and transactions are opened explicitly:

- read scopes take no lock beyond SQLite's own snapshot for the statement;
- write scopes start with ``BEGIN IMMEDIATE`` so the whole
  read-stage-write cycle of a batch holds the write lock.  Two batches
  committing from different threads therefore cannot both see a document
  as absent and both create it.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

BUSY_TIMEOUT_MS = 5000


def open_connection(db_path: Path) -> sqlite3.Connection:
    """Open an autocommit connection with WAL and a busy timeout."""
    connection = sqlite3.connect(str(db_path), isolation_level=None)
    connection.execute("PRAGMA journal_mode = WAL")
    connection.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
    return connection


@contextmanager
def connection_scope(db_path: Path, *, write: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a connection; for ``write`` scopes, one immediate transaction.

    A write scope commits when the block exits normally and rolls back when
    it raises.  The connection is always closed.
    """
    connection = open_connection(db_path)
    try:
        if write:
            connection.execute("BEGIN IMMEDIATE")
        try:
            yield connection
        except BaseException:
            if write and connection.in_transaction:
                connection.execute("ROLLBACK")
            raise
        if write:
            connection.execute("COMMIT")
    finally:
        connection.close()
