"""In-process document store.

``InMemoryDocumentStore`` keeps every document in a dict keyed by path.
It is the default backend for development and the fixture backend for the
test suite.  Commits are atomic because they run without a suspension
point: the whole batch is validated before any document is touched.

Snapshot order
--------------
A real change feed makes no ordering promise, and the core must not rely
on one.  Passing ``shuffle=random.Random(seed)`` makes every collection
read return documents in a random order, which the tests use to prove
that ordering is imposed by consumers alone.
"""

from __future__ import annotations

import copy
import random
from collections.abc import Sequence
from typing import Any

from hotelconnect.store.base import (
    Change,
    Document,
    DocumentStore,
    WriteOp,
    apply_op,
    check_op,
    collection_of,
)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed ``DocumentStore``."""

    def __init__(self, *, shuffle: random.Random | None = None) -> None:
        super().__init__()
        self._documents: dict[str, dict[str, Any]] = {}
        self._shuffle = shuffle

    def _read_document(self, path: str) -> dict[str, Any] | None:
        data = self._documents.get(path)
        return None if data is None else copy.deepcopy(data)

    def _read_collection(self, collection: str) -> list[Document]:
        documents = [
            Document(path, copy.deepcopy(data))
            for path, data in self._documents.items()
            if collection_of(path) == collection
        ]
        if self._shuffle is not None:
            self._shuffle.shuffle(documents)
        return documents

    def _commit(self, ops: Sequence[WriteOp]) -> list[Change]:
        # Stage against a working view first so a failing op leaves
        # nothing behind.
        staged: dict[str, dict[str, Any] | None] = {}
        for op in ops:
            current = staged[op.path] if op.path in staged else self._documents.get(op.path)
            check_op(current, op)
            if op.kind != "require":
                staged[op.path] = apply_op(current, op)

        changes: list[Change] = []
        for path, after in staged.items():
            before = self._documents.get(path)
            if after is None:
                self._documents.pop(path, None)
            else:
                self._documents[path] = copy.deepcopy(after)
            changes.append(Change(path, before, after))
        return changes

    def __len__(self) -> int:
        return len(self._documents)
