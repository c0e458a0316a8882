"""Staff master feed: the newest messages across many rooms.

One ``FeedSubscription`` owns a per-room message subscription for every
targeted room plus a single rooms-collection listener.  Each per-room
update replaces that room's slice (newest ``feed_room_limit`` messages)
in a room-keyed mapping; the mapping is then flattened, sorted newest
first and cut to ``feed_limit`` before the handler is called.

Retargeting tears every per-room subscription down and starts over with
empty results, so a room dropped from the target set can never leak back
into the feed through a late delivery.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from typing import Any

from hotelconnect.context import AppContext
from hotelconnect.models import FeedItem, Message, Room, StaffProfile, timestamp_key
from hotelconnect.roster import roster_errors
from hotelconnect.store import Document, Subscription, where

logger = logging.getLogger(__name__)

FeedHandler = Callable[[list[FeedItem]], Any]


def _newest_first(message: Message) -> tuple[int, str]:
    return (timestamp_key(message.timestamp), message.id)


def rank_feed(
    results: dict[str, list[Message]], rooms: dict[str, Room], limit: int
) -> list[FeedItem]:
    """Flatten per-room slices into the newest ``limit`` feed items."""
    merged = [
        FeedItem(room_id=room_id, room=rooms.get(room_id), message=message)
        for room_id, messages in results.items()
        for message in messages
    ]
    merged.sort(key=lambda item: _newest_first(item.message), reverse=True)
    return merged[:limit]


class FeedSubscription:
    """Live feed over a changeable set of rooms."""

    def __init__(self, aggregator: FeedAggregator, handler: FeedHandler) -> None:
        self._context = aggregator.context
        self._handler = handler
        self._room_subs: dict[str, Subscription] = {}
        self._results: dict[str, list[Message]] = {}
        self._rooms: dict[str, Room] = {}
        self._emits: set[asyncio.Task[Any]] = set()
        self._active = True
        self._rooms_sub = self._context.track(
            self._context.store.subscribe(self._context.paths.rooms, [], self._on_rooms)
        )

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"FeedSubscription(rooms={sorted(self._room_subs)}, {state})"

    @property
    def active(self) -> bool:
        return self._active

    @property
    def room_ids(self) -> frozenset[str]:
        return frozenset(self._room_subs)

    def retarget(self, room_ids: Iterable[str]) -> None:
        """Replace the followed room set."""
        if not self._active:
            return
        for sub in self._room_subs.values():
            sub.cancel()
        self._room_subs = {}
        self._results = {}

        targets = list(dict.fromkeys(room_ids))
        logger.debug("Feed retargeted to %d rooms", len(targets))
        if not targets:
            self._emit_now([])
            return
        store = self._context.store
        for room_id in targets:
            self._room_subs[room_id] = self._context.track(
                store.subscribe(
                    self._context.paths.messages,
                    [where("roomId", room_id)],
                    self._room_handler(room_id),
                )
            )

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        for sub in self._room_subs.values():
            sub.cancel()
        self._room_subs = {}
        self._rooms_sub.cancel()

    def _room_handler(self, room_id: str) -> Callable[[list[Document]], Any]:
        room_limit = self._context.config.chat.feed_room_limit

        def on_change(documents: list[Document]) -> Any:
            messages = [Message.from_document(doc) for doc in documents]
            messages.sort(key=_newest_first, reverse=True)
            self._results[room_id] = messages[:room_limit]
            return self._publish()

        return on_change

    def _on_rooms(self, documents: list[Document]) -> Any:
        self._rooms = {doc.id: Room.from_document(doc) for doc in documents}
        if self._results:
            return self._publish()
        return None

    def _publish(self) -> Any:
        items = rank_feed(self._results, self._rooms, self._context.config.chat.feed_limit)
        return self._handler(items)

    def _emit_now(self, items: list[FeedItem]) -> None:
        result = self._handler(items)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._emits.add(task)
            task.add_done_callback(self._emits.discard)


class FeedAggregator:
    """Builds feed subscriptions and resolves which rooms a staff member sees."""

    def __init__(self, context: AppContext) -> None:
        self.context = context

    def subscribe(self, room_ids: Iterable[str], handler: FeedHandler) -> FeedSubscription:
        feed = FeedSubscription(self, handler)
        feed.retarget(room_ids)
        return feed

    async def room_ids_for(self, staff_id: str, show_all: bool = False) -> list[str]:
        """Followed rooms of ``staff_id``, or every room when ``show_all``.

        Raises:
            RosterError: The rooms or the staff profile could not be read.
        """
        store, paths = self.context.store, self.context.paths
        with roster_errors("feed.room_ids_for", staff_id):
            if show_all:
                return sorted(doc.id for doc in await store.query(paths.rooms))
            doc = await store.get(paths.staff(staff_id))
        if doc is None:
            return []
        return sorted(StaffProfile.from_document(doc).followed_rooms)
