"""Abstract change-notifying document store.

The core never talks to a concrete database.  It consumes the small
interface defined here: documents addressed by slash-separated paths,
collection scans with equality filters, atomic write batches, and
push-based change subscriptions.

=============================================================================
CHANGE NOTIFICATION MODEL
=============================================================================

1. A subscription names a collection (plus equality filters) or a single
   document path, and a handler.
2. Every committed write that touches a matching document *schedules* a
   delivery on the running event loop.  Deliveries are coalesced: a
   subscription with a delivery already pending is not scheduled twice.
3. At delivery time the store re-reads the **current** snapshot and hands
   the full document list to the handler.  Nothing is diffed, and snapshot
   order carries no meaning; consumers sort.
4. ``Subscription.cancel()`` is synchronous.  The active flag is checked
   after the snapshot read and immediately before the handler runs, so a
   cancelled subscription never sees another callback.
5. If a handler raises, or the snapshot read fails, the error is logged,
   ``on_error`` is called when given, and the subscription is cancelled.
   There is no automatic resubscription.

=============================================================================
SERVER TIMESTAMPS
=============================================================================

Fields set to ``SERVER_TIMESTAMP`` are replaced at commit time with a
``ServerTimestamp``.  Timestamps are monotonically increasing per store and
compare by sequence only.  Every write in one batch shares one timestamp.

Usage::

    store = InMemoryDocumentStore()
    mid = await store.add("artifacts/app/public/messages", {
        "roomId": "101", "text": "hi", "timestamp": SERVER_TIMESTAMP,
    })

    def on_change(documents):
        print([doc.id for doc in documents])

    sub = store.subscribe("artifacts/app/public/messages",
                          [where("roomId", "101")], on_change)
    ...
    sub.cancel()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import secrets
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Literal

from hotelconnect.errors import OperationContext
from hotelconnect.store.errors import DocumentExistsError, PreconditionFailedError

logger = logging.getLogger(__name__)

# Backing-store batch ceiling.  Callers must chunk larger write sets.
DEFAULT_MAX_BATCH_SIZE = 400


# =============================================================================
# TIMESTAMPS
# =============================================================================


class _ServerTimestampSentinel:
    """Placeholder replaced with a ``ServerTimestamp`` at commit time."""

    _instance: _ServerTimestampSentinel | None = None

    def __new__(cls) -> _ServerTimestampSentinel:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestampSentinel()


@dataclass(frozen=True, order=True)
class ServerTimestamp:
    """Opaque, comparable write timestamp assigned by the store.

    Attributes:
        sequence: Monotonically increasing commit counter.  The ONLY field
                  used for ordering.
        issued_at: Wall clock time of the commit (UTC).  Display only.
    """

    sequence: int
    issued_at: datetime = field(compare=False, default_factory=lambda: datetime.now(UTC))

    def to_millis(self) -> int:
        """Wall clock milliseconds since the epoch."""
        return int(self.issued_at.timestamp() * 1000)


def resolve_server_timestamps(fields: dict[str, Any], stamp: ServerTimestamp) -> dict[str, Any]:
    """Return a copy of ``fields`` with every sentinel replaced by ``stamp``."""
    return {key: stamp if value is SERVER_TIMESTAMP else value for key, value in fields.items()}


# =============================================================================
# DOCUMENTS, FILTERS, WRITE OPS
# =============================================================================


def collection_of(path: str) -> str:
    """Return the collection path of a document path."""
    return path.rsplit("/", 1)[0]


def document_id(path: str) -> str:
    """Return the final segment of a document path."""
    return path.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class Document:
    """A snapshot of one stored document."""

    path: str
    data: dict[str, Any]

    @property
    def id(self) -> str:
        return document_id(self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(frozen=True)
class Filter:
    """Equality filter on a top-level field."""

    field: str
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        return data.get(self.field) == self.value


def where(field_name: str, value: Any) -> Filter:
    """Build an equality filter."""
    return Filter(field_name, value)


def matches_all(filters: Iterable[Filter], data: dict[str, Any] | None) -> bool:
    if data is None:
        return False
    return all(f.matches(data) for f in filters)


@dataclass(frozen=True)
class WriteOp:
    """A single mutation inside a batch.

    ``create`` fails the whole batch with ``DocumentExistsError`` when the
    document already exists.  ``require`` writes nothing: it evaluates
    ``check`` against the document as staged so far in the same commit and
    fails the whole batch with ``PreconditionFailedError`` when it returns
    false.
    """

    kind: Literal["set", "create", "delete", "require"]
    path: str
    fields: dict[str, Any] | None = None
    merge: bool = False
    check: Callable[[dict[str, Any] | None], bool] | None = field(default=None, compare=False)
    reason: str = ""

    @classmethod
    def set(cls, path: str, fields: dict[str, Any], *, merge: bool = False) -> WriteOp:
        return cls("set", path, dict(fields), merge)

    @classmethod
    def create(cls, path: str, fields: dict[str, Any]) -> WriteOp:
        return cls("create", path, dict(fields))

    @classmethod
    def delete(cls, path: str) -> WriteOp:
        return cls("delete", path)

    @classmethod
    def require(
        cls,
        path: str,
        check: Callable[[dict[str, Any] | None], bool],
        *,
        reason: str = "",
    ) -> WriteOp:
        return cls("require", path, check=check, reason=reason)


@dataclass(frozen=True)
class Change:
    """Before/after state of one document touched by a commit."""

    path: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None


def check_op(current: dict[str, Any] | None, op: WriteOp) -> None:
    """Raise when ``op`` cannot apply to ``current``."""
    if op.kind == "create" and current is not None:
        raise DocumentExistsError(
            context=OperationContext("store.create", details=f"path={op.path!r}")
        )
    if op.kind == "require" and (op.check is None or not op.check(current)):
        details = f"path={op.path!r}"
        if op.reason:
            details = f"{details}: {op.reason}"
        raise PreconditionFailedError(context=OperationContext("store.require", details=details))


def apply_op(current: dict[str, Any] | None, op: WriteOp) -> dict[str, Any] | None:
    """Compute a document's new state.  ``op.fields`` must be resolved."""
    if op.kind == "delete":
        return None
    assert op.fields is not None
    if op.kind == "set" and op.merge and current is not None:
        return {**current, **op.fields}
    return dict(op.fields)


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

ChangeHandler = Callable[[list[Document]], Awaitable[None] | None]
ErrorHandler = Callable[[Exception], None]


class Subscription:
    """Cancellable handle for a live change listener.

    ``cancel()`` is idempotent and synchronous: once it returns, the
    handler is guaranteed not to be invoked again.
    """

    def __init__(
        self,
        *,
        collection: str | None,
        path: str | None,
        filters: Sequence[Filter],
        on_change: ChangeHandler,
        on_error: ErrorHandler | None,
        detach: Callable[[Subscription], None],
    ) -> None:
        self.collection = collection
        self.path = path
        self.filters = tuple(filters)
        self._on_change = on_change
        self._on_error = on_error
        self._detach = detach
        self._active = True
        self._pending = False

    def __repr__(self) -> str:
        target = self.path or self.collection
        state = "active" if self._active else "cancelled"
        return f"Subscription({target!r}, {state})"

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._detach(self)

    def is_affected_by(self, change: Change) -> bool:
        if self.path is not None:
            return change.path == self.path
        if collection_of(change.path) != self.collection:
            return False
        return matches_all(self.filters, change.before) or matches_all(self.filters, change.after)


# =============================================================================
# DOCUMENT STORE
# =============================================================================


class DocumentStore(ABC):
    """Base class for store adapters.

    Concrete adapters implement four blocking primitives
    (``_read_document``, ``_read_collection``, ``_commit`` and
    ``_close``).  This class provides the async public API, server
    timestamps, batch-size enforcement and the change notification
    machinery on top of them.
    """

    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._deliveries: set[asyncio.Task[None]] = set()
        self._sequence: int = 0
        self._closed = False

    # ── Adapter primitives ────────────────────────────────────────────────────

    @abstractmethod
    def _read_document(self, path: str) -> dict[str, Any] | None:
        """Return a document's data, or ``None`` when absent."""

    @abstractmethod
    def _read_collection(self, collection: str) -> list[Document]:
        """Return every document directly under ``collection``."""

    @abstractmethod
    def _commit(self, ops: Sequence[WriteOp]) -> list[Change]:
        """Apply resolved ops atomically and return what changed."""

    def _close(self) -> None:
        """Release adapter resources."""

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking primitive.  Adapters doing real I/O override this."""
        return fn(*args)

    def _next_timestamp(self) -> ServerTimestamp:
        self._sequence += 1
        return ServerTimestamp(self._sequence)

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get(self, path: str) -> Document | None:
        data = await self._call(self._read_document, path)
        return None if data is None else Document(path, data)

    async def query(self, collection: str, filters: Sequence[Filter] = ()) -> list[Document]:
        documents = await self._call(self._read_collection, collection)
        return [doc for doc in documents if matches_all(filters, doc.data)]

    # ── Writes ────────────────────────────────────────────────────────────────

    async def set(self, path: str, fields: dict[str, Any], *, merge: bool = False) -> None:
        await self.batch_write([WriteOp.set(path, fields, merge=merge)])

    async def add(self, collection: str, fields: dict[str, Any]) -> str:
        new_id = secrets.token_hex(10)
        await self.batch_write([WriteOp.create(f"{collection}/{new_id}", fields)])
        return new_id

    async def batch_write(self, ops: Sequence[WriteOp]) -> None:
        """Commit ``ops`` atomically.

        Raises:
            ValueError: If ``ops`` exceeds ``max_batch_size``.
            StoreWriteError: If the commit fails.  Nothing is written.
        """
        if len(ops) > self.max_batch_size:
            raise ValueError(
                f"batch of {len(ops)} ops exceeds the store limit of {self.max_batch_size}"
            )
        if not ops:
            return
        stamp = self._next_timestamp()
        resolved = [
            op if op.fields is None else replace(op, fields=resolve_server_timestamps(op.fields, stamp))
            for op in ops
        ]
        changes = await self._call(self._commit, resolved)
        self._notify(changes)

    # ── Subscriptions ─────────────────────────────────────────────────────────

    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        on_change: ChangeHandler,
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        """Listen to a filtered collection.  The first snapshot is scheduled at once."""
        sub = Subscription(
            collection=collection,
            path=None,
            filters=filters,
            on_change=on_change,
            on_error=on_error,
            detach=self._detach,
        )
        return self._attach(sub)

    def subscribe_document(
        self,
        path: str,
        on_change: ChangeHandler,
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        """Listen to one document.  Handlers receive a list of zero or one documents."""
        sub = Subscription(
            collection=None,
            path=path,
            filters=(),
            on_change=on_change,
            on_error=on_error,
            detach=self._detach,
        )
        return self._attach(sub)

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)

    async def settle(self) -> None:
        """Wait until every scheduled delivery has run."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            sub.cancel()
        for task in list(self._deliveries):
            task.cancel()
        self._closed = True
        await self._call(self._close)

    # ── Notification machinery ────────────────────────────────────────────────

    def _attach(self, sub: Subscription) -> Subscription:
        self._subscriptions.append(sub)
        logger.debug("SUBSCRIBE: %r (total %d)", sub, len(self._subscriptions))
        self._schedule(sub)
        return sub

    def _detach(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass
        logger.debug("UNSUBSCRIBE: %r", sub)

    def _notify(self, changes: Iterable[Change]) -> None:
        changes = list(changes)
        for sub in list(self._subscriptions):
            if any(sub.is_affected_by(change) for change in changes):
                self._schedule(sub)

    def _schedule(self, sub: Subscription) -> None:
        if sub._pending or not sub.active:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Deliveries need a running loop; sync callers get no pushes.
            logger.debug("No running loop; delivery to %r skipped", sub)
            return
        sub._pending = True
        task = loop.create_task(self._deliver(sub))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, sub: Subscription) -> None:
        # Cleared before the read so a write landing mid-read schedules again.
        sub._pending = False
        try:
            if sub.path is not None:
                doc = await self.get(sub.path)
                snapshot = [] if doc is None else [doc]
            else:
                assert sub.collection is not None
                snapshot = await self.query(sub.collection, sub.filters)
        except Exception as exc:
            self._fail(sub, exc)
            return

        if not sub.active:
            return
        try:
            result = sub._on_change(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self._fail(sub, exc)

    def _fail(self, sub: Subscription, exc: Exception) -> None:
        if not sub.active:
            return
        logger.error("Subscription %r failed; no further updates: %s", sub, exc, exc_info=exc)
        sub.cancel()
        if sub._on_error is not None:
            try:
                sub._on_error(exc)
            except Exception:
                logger.exception("on_error handler for %r raised", sub)
