"""Room lifecycle: registration, check-in and checkout.

State machine per room::

    UNBOOKED ──register(room)/check_in──▶ OCCUPIED ──check_out──▶ CHECKED_OUT

``UNBOOKED`` is not stored; it is the absence of a room record.

Atomicity
---------
Check-in writes the guest profile and the room record in one batch, so a
profile never points at a room that was not created, and a room is never
created without its occupant's profile pointing back at it.

Checkout cannot be one batch: a room may hold more messages than the
store accepts in a single commit.  It runs as four steps:

1. query the room's live messages;
2. move them to the archive in batches (copy + delete per message, at most
   ``archive_batch_ops`` operations per batch, committed sequentially);
3. mark the room ``checked_out``;
4. clear the occupant's ``roomId``/``isCheckedIn``.

A failure halts the remaining steps and is raised as ``CheckOutError``.
Batches that already committed stay archived; nothing is rolled back.
The archive write is keyed by the original message id and merges, so
``archive_messages`` can simply be re-run against whatever is still live.

Concurrent check-in
-------------------
A brand-new room record is written with a create-if-absent op: two guests
racing for the same unbooked room id cannot both win.  Registering into a
room that is already occupied by someone else is refused; the occupancy
check is repeated inside the commit, so two registrations racing for the
same vacant room cannot both take it.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from hotelconnect.auth import Identity
from hotelconnect.context import AppContext
from hotelconnect.errors import (
    CheckInError,
    CheckOutError,
    OperationContext,
    RegistrationError,
)
from hotelconnect.languages import Language, resolve_language
from hotelconnect.models import Role, Room, RoomStatus, UserProfile, timestamp_key
from hotelconnect.store import (
    SERVER_TIMESTAMP,
    Document,
    DocumentExistsError,
    PreconditionFailedError,
    StoreError,
    Subscription,
    WriteOp,
    where,
)

logger = logging.getLogger(__name__)

RoomsHandler = Callable[[list[Room]], Any]
ProfileHandler = Callable[[UserProfile | None], Any]


def generate_room_id() -> str:
    """Collision-resistant identifier for QR-path check-ins."""
    return str(uuid.uuid4())


def chunked(items: list[Any], size: int) -> list[list[Any]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [items[i : i + size] for i in range(0, len(items), size)]


def _vacant_for(uid: str) -> Callable[[dict[str, Any] | None], bool]:
    """Room check: free, checked out, or already held by ``uid``."""

    def check(room: dict[str, Any] | None) -> bool:
        if room is None or room.get("status", RoomStatus.OCCUPIED) != RoomStatus.OCCUPIED:
            return True
        return room.get("occupantId") in (None, uid)

    return check


@dataclass(frozen=True)
class CheckoutReport:
    """Outcome of a completed checkout."""

    room_id: str
    archived: int
    batches: int
    occupant_id: str | None


class RoomLifecycleManager:
    """Owns room existence, occupancy, and the checkout archival."""

    def __init__(self, context: AppContext) -> None:
        self._context = context
        self._store = context.store
        self._paths = context.paths

    @property
    def messages_per_batch(self) -> int:
        """Messages moved per archive batch.  Each move is two operations."""
        ops = min(self._context.config.chat.archive_batch_ops, self._store.max_batch_size)
        return max(1, ops // 2)

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_profile(self, user_id: str) -> UserProfile | None:
        doc = await self._store.get(self._paths.user(user_id))
        return None if doc is None else UserProfile.from_document(doc)

    async def get_room(self, room_id: str) -> Room | None:
        doc = await self._store.get(self._paths.room(room_id))
        return None if doc is None else Room.from_document(doc)

    def watch_rooms(self, handler: RoomsHandler) -> Subscription:
        """Stream every room, most recently active first."""

        def on_change(documents: list[Document]) -> Any:
            rooms = [Room.from_document(doc) for doc in documents]
            rooms.sort(key=lambda room: (timestamp_key(room.updated_at), room.id), reverse=True)
            return handler(rooms)

        return self._context.track(self._store.subscribe(self._paths.rooms, [], on_change))

    def watch_profile(self, user_id: str, handler: ProfileHandler) -> Subscription:
        """Stream one guest profile (``None`` while it does not exist)."""

        def on_change(documents: list[Document]) -> Any:
            return handler(UserProfile.from_document(documents[0]) if documents else None)

        return self._context.track(
            self._store.subscribe_document(self._paths.user(user_id), on_change)
        )

    # ── Registration / check-in ───────────────────────────────────────────────

    def _room_fields(self, identity: Identity, name: str, language: Language) -> dict[str, Any]:
        return {
            "guestName": name,
            "guestLanguage": language.to_dict(),
            "status": str(RoomStatus.OCCUPIED),
            "occupantId": identity.uid,
            "updatedAt": SERVER_TIMESTAMP,
        }

    async def register(
        self,
        identity: Identity | None,
        name: str,
        language: str | Language | None,
        room_number: str | int | None = None,
    ) -> UserProfile | None:
        """Create or overwrite the caller's profile, optionally checking in.

        When ``room_number`` is non-empty the room record is created (or
        merged) as ``occupied`` in the same batch as the profile.

        Returns:
            The stored profile, or ``None`` when no store or identity is
            available.

        Raises:
            RegistrationError: Empty name, room occupied by another guest,
                or a store failure.
        """
        if identity is None or self._context.closed:
            return None

        operation = "rooms.register"
        name = name.strip()
        if not name:
            raise RegistrationError(context=OperationContext(operation, details="empty name"))
        lang = resolve_language(language)
        room_id = str(room_number).strip() if room_number is not None else ""

        profile = UserProfile(
            id=identity.uid,
            name=name,
            language=lang,
            role=Role.GUEST,
            room_id=room_id or None,
            is_checked_in=bool(room_id),
        )
        ops = [
            WriteOp.set(
                self._paths.user(identity.uid),
                {**profile.to_fields(), "createdAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP},
            )
        ]

        try:
            if room_id:
                ops.extend(await self._occupy_ops(operation, identity, room_id, name, lang))
            await self._store.batch_write(ops)
            stored = await self.get_profile(identity.uid)
        except (DocumentExistsError, PreconditionFailedError) as exc:
            raise RegistrationError(
                context=OperationContext(operation, details=f"room {room_id!r} was just taken"),
                cause=exc,
            ) from exc
        except StoreError as exc:
            logger.error("Registration failed for %s: %s", identity.uid, exc)
            raise RegistrationError(
                context=OperationContext(operation, details=f"uid={identity.uid!r}"),
                cause=exc,
            ) from exc

        logger.info(
            "Registered guest %s%s", identity.uid, f" into room {room_id}" if room_id else ""
        )
        return stored or profile

    async def _occupy_ops(
        self, operation: str, identity: Identity, room_id: str, name: str, lang: Language
    ) -> list[WriteOp]:
        existing = await self.get_room(room_id)
        fields = self._room_fields(identity, name, lang)
        path = self._paths.room(room_id)
        if existing is None:
            return [WriteOp.create(path, {**fields, "createdAt": SERVER_TIMESTAMP})]
        if existing.is_occupied and existing.occupant_id not in (None, identity.uid):
            raise RegistrationError(
                context=OperationContext(operation, details=f"room {room_id!r} is occupied")
            )
        # Re-checked at commit: another registration may occupy it meanwhile.
        return [
            WriteOp.require(path, _vacant_for(identity.uid), reason="room is occupied"),
            WriteOp.set(path, fields, merge=True),
        ]

    async def check_in(self, identity: Identity) -> UserProfile:
        """QR-path check-in: open a freshly generated room for the caller.

        Raises:
            CheckInError: No profile, already checked in, or store failure.
        """
        operation = "rooms.check_in"
        try:
            profile = await self.get_profile(identity.uid)
        except StoreError as exc:
            raise CheckInError(
                context=OperationContext(operation, details=f"uid={identity.uid!r}"), cause=exc
            ) from exc
        if profile is None:
            raise CheckInError(context=OperationContext(operation, details="not registered"))
        if profile.is_checked_in and profile.room_id:
            raise CheckInError(
                context=OperationContext(operation, details=f"already in room {profile.room_id!r}")
            )

        room_id = generate_room_id()
        room_fields = self._room_fields(identity, profile.name, profile.language)
        ops = [
            WriteOp.create(self._paths.room(room_id), {**room_fields, "createdAt": SERVER_TIMESTAMP}),
            WriteOp.set(
                self._paths.user(identity.uid),
                {"roomId": room_id, "isCheckedIn": True, "updatedAt": SERVER_TIMESTAMP},
                merge=True,
            ),
        ]
        try:
            await self._store.batch_write(ops)
            stored = await self.get_profile(identity.uid)
        except StoreError as exc:
            logger.error("Check-in failed for %s: %s", identity.uid, exc)
            raise CheckInError(
                context=OperationContext(operation, details=f"uid={identity.uid!r}"), cause=exc
            ) from exc

        logger.info("Guest %s checked in to room %s", identity.uid, room_id)
        return stored or replace(profile, room_id=room_id, is_checked_in=True)

    # ── Checkout ──────────────────────────────────────────────────────────────

    async def archive_messages(self, room_id: str) -> int:
        """Move every live message of ``room_id`` to the archive.

        Safe to re-run after a partial failure.

        Returns:
            Number of messages moved by this call.

        Raises:
            CheckOutError: A batch failed; earlier batches stay committed.
        """
        archived, _ = await self._archive(room_id)
        return archived

    async def _archive(self, room_id: str) -> tuple[int, int]:
        operation = "rooms.archive_messages"
        try:
            live = await self._store.query(self._paths.messages, [where("roomId", room_id)])
        except StoreError as exc:
            raise CheckOutError(
                context=OperationContext(operation, details=f"room={room_id!r}: query failed"),
                cause=exc,
            ) from exc

        batches = chunked(live, self.messages_per_batch) if live else []
        archived = 0
        for index, batch in enumerate(batches, start=1):
            ops: list[WriteOp] = []
            for doc in batch:
                ops.append(
                    WriteOp.set(
                        self._paths.archived_message(doc.id),
                        {**doc.data, "archivedAt": SERVER_TIMESTAMP, "originalMessageId": doc.id},
                        merge=True,
                    )
                )
                ops.append(WriteOp.delete(doc.path))
            try:
                await self._store.batch_write(ops)
            except StoreError as exc:
                logger.error(
                    "Archive batch %d/%d for room %s failed after %d messages moved",
                    index,
                    len(batches),
                    room_id,
                    archived,
                )
                raise CheckOutError(
                    context=OperationContext(
                        operation,
                        details=f"room={room_id!r}: batch {index}/{len(batches)} failed, "
                        f"{archived} archived",
                    ),
                    cause=exc,
                ) from exc
            archived += len(batch)
            logger.debug("Archive batch %d/%d for room %s committed", index, len(batches), room_id)
        return archived, len(batches)

    async def check_out(self, room_id: str, occupant_id: str | None = None) -> CheckoutReport:
        """Archive the room's conversation and release the room.

        Args:
            room_id: Room to check out.
            occupant_id: Guest whose profile is unlinked.  Defaults to the
                occupant recorded on the room.

        Raises:
            CheckOutError: Any step failed.  Completed steps are not undone.
        """
        operation = "rooms.check_out"
        if not room_id:
            raise CheckOutError(context=OperationContext(operation, details="no room id"))
        try:
            room = await self.get_room(room_id)
        except StoreError as exc:
            raise CheckOutError(
                context=OperationContext(operation, details=f"room={room_id!r}"), cause=exc
            ) from exc
        if room is None:
            raise CheckOutError(context=OperationContext(operation, details=f"unknown room {room_id!r}"))

        archived, batches = await self._archive(room_id)
        occupant = occupant_id or room.occupant_id
        try:
            await self._store.set(
                self._paths.room(room_id),
                {"status": str(RoomStatus.CHECKED_OUT), "updatedAt": SERVER_TIMESTAMP},
                merge=True,
            )
            if occupant and await self.get_profile(occupant) is not None:
                await self._store.set(
                    self._paths.user(occupant),
                    {"roomId": None, "isCheckedIn": False, "updatedAt": SERVER_TIMESTAMP},
                    merge=True,
                )
        except StoreError as exc:
            logger.error("Checkout of room %s failed after archival: %s", room_id, exc)
            raise CheckOutError(
                context=OperationContext(operation, details=f"room={room_id!r}: release failed"),
                cause=exc,
            ) from exc

        logger.info("Room %s checked out (%d messages archived in %d batches)", room_id, archived, batches)
        return CheckoutReport(room_id=room_id, archived=archived, batches=batches, occupant_id=occupant)
