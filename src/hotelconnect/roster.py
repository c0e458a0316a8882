"""Staff profiles and the set of rooms each staff member follows."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from hotelconnect.context import AppContext
from hotelconnect.errors import OperationContext, RosterError
from hotelconnect.models import StaffProfile
from hotelconnect.store import (
    SERVER_TIMESTAMP,
    Document,
    DocumentExistsError,
    StoreError,
    Subscription,
    WriteOp,
)

logger = logging.getLogger(__name__)


@contextmanager
def roster_errors(operation: str, staff_id: str) -> Iterator[None]:
    """Convert store failures inside the block into ``RosterError``."""
    try:
        yield
    except StoreError as exc:
        logger.error("%s failed for staff %s: %s", operation, staff_id, exc)
        raise RosterError(
            context=OperationContext(operation, details=f"staff={staff_id!r}"), cause=exc
        ) from exc


class StaffRoster:
    """Follow/unfollow bookkeeping for staff dashboards.

    Store failures surface as ``RosterError``.
    """

    def __init__(self, context: AppContext) -> None:
        self._context = context
        self._store = context.store
        self._paths = context.paths

    async def _read(self, staff_id: str) -> StaffProfile | None:
        doc = await self._store.get(self._paths.staff(staff_id))
        return None if doc is None else StaffProfile.from_document(doc)

    async def get(self, staff_id: str) -> StaffProfile | None:
        with roster_errors("roster.get", staff_id):
            return await self._read(staff_id)

    async def ensure_profile(self, staff_id: str) -> StaffProfile:
        """Return the staff profile, creating an empty roster when absent."""
        with roster_errors("roster.ensure_profile", staff_id):
            existing = await self._read(staff_id)
            if existing is not None:
                return existing
            fresh = StaffProfile(id=staff_id)
            try:
                await self._store.batch_write(
                    [
                        WriteOp.create(
                            self._paths.staff(staff_id),
                            {**fresh.to_fields(), "updatedAt": SERVER_TIMESTAMP},
                        )
                    ]
                )
                logger.info("Created staff profile %s", staff_id)
            except DocumentExistsError:
                logger.debug("Staff profile %s created concurrently", staff_id)
            profile = await self._read(staff_id)
        return profile or fresh

    async def followed_rooms(self, staff_id: str) -> frozenset[str]:
        profile = await self.get(staff_id)
        return frozenset() if profile is None else profile.followed_rooms

    async def _update(
        self, operation: str, staff_id: str, room_id: str, follow: bool | None
    ) -> frozenset[str]:
        profile = await self.ensure_profile(staff_id)
        current = profile.followed_rooms
        if follow is None:
            follow = room_id not in current
        rooms = current | {room_id} if follow else current - {room_id}
        if rooms == current:
            return current
        with roster_errors(operation, staff_id):
            await self._store.set(
                self._paths.staff(staff_id),
                {"followedRooms": sorted(rooms), "updatedAt": SERVER_TIMESTAMP},
                merge=True,
            )
        return rooms

    async def follow(self, staff_id: str, room_id: str) -> frozenset[str]:
        return await self._update("roster.follow", staff_id, room_id, True)

    async def unfollow(self, staff_id: str, room_id: str) -> frozenset[str]:
        return await self._update("roster.unfollow", staff_id, room_id, False)

    async def toggle(self, staff_id: str, room_id: str) -> frozenset[str]:
        """Follow ``room_id`` if not followed, otherwise unfollow it."""
        return await self._update("roster.toggle", staff_id, room_id, None)

    def watch(
        self,
        staff_id: str,
        handler: Callable[[StaffProfile], Any],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        """Stream the staff profile.  A missing profile is created, not reported."""

        async def on_change(documents: list[Document]) -> None:
            if not documents:
                await self.ensure_profile(staff_id)
                # The create notifies this subscription again.
                return
            result = handler(StaffProfile.from_document(documents[0]))
            if inspect.isawaitable(result):
                await result

        sub = self._store.subscribe_document(self._paths.staff(staff_id), on_change, on_error)
        return self._context.track(sub)
