"""Change-notifying document store adapters.

``base``        DocumentStore interface, write ops, subscriptions, timestamps.
``memory``      InMemoryDocumentStore: dict-backed, used by tests.
``sqlite``      SqliteDocumentStore: JSON documents in one SQLite file.
``paths``       StorePaths: the tenant-scoped namespace layout.
``errors``      Typed store exceptions.
"""

from hotelconnect.store.base import (
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    Filter,
    ServerTimestamp,
    Subscription,
    WriteOp,
    where,
)
from hotelconnect.store.errors import (
    DocumentExistsError,
    PreconditionFailedError,
    StoreError,
    StoreReadError,
    StoreWriteError,
)
from hotelconnect.store.memory import InMemoryDocumentStore
from hotelconnect.store.paths import StorePaths
from hotelconnect.store.sqlite import SqliteDocumentStore

__all__ = [
    "SERVER_TIMESTAMP",
    "Document",
    "DocumentExistsError",
    "DocumentStore",
    "Filter",
    "InMemoryDocumentStore",
    "PreconditionFailedError",
    "ServerTimestamp",
    "SqliteDocumentStore",
    "StoreError",
    "StorePaths",
    "StoreReadError",
    "StoreWriteError",
    "Subscription",
    "WriteOp",
    "where",
]
