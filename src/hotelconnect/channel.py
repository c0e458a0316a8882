"""Per-room message channel.

Sending
-------
``MessageChannel.send`` translates the outbound body (only when the two
parties' language codes differ), then writes the message and the room's
activity fields in one batch so they share a server timestamp.  The batch
also re-checks that the room is still occupied, so a checkout that commits
while the translation is in flight makes the send fail instead of leaving a
message behind in a closed room::

    body ──▶ gateway.translate(body, viewer, counterparty)
                 │ result           │ None
                 ▼                  ▼
        translations[cp] = text    translations[cp] = "(Translation unavailable) body"
                 └──────── batch: create message + merge room ────────┘

Receiving
---------
``MessageChannel.subscribe`` emits the room's complete message list on
every change, sorted by server timestamp (id breaks ties; a message whose
timestamp is missing sorts first).  Each entry is localized for the viewer:
the stored translation for the viewer's language code when the message was
written in another language, otherwise the original text.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from hotelconnect.context import AppContext
from hotelconnect.errors import OperationContext, SendError
from hotelconnect.languages import Language
from hotelconnect.models import Message, Role, Room, RoomStatus, TranslationMeta, timestamp_key
from hotelconnect.store import (
    SERVER_TIMESTAMP,
    Document,
    PreconditionFailedError,
    ServerTimestamp,
    StoreError,
    Subscription,
    WriteOp,
    where,
)
from hotelconnect.translation import unavailable_text

logger = logging.getLogger(__name__)

MessagesHandler = Callable[[list["DisplayMessage"]], Any]


def _accepts_messages(room: dict[str, Any] | None) -> bool:
    return room is not None and room.get("status", RoomStatus.OCCUPIED) == RoomStatus.OCCUPIED


@dataclass(frozen=True)
class Sender:
    """Who is writing: a guest (by uid) or a staff member."""

    id: str
    name: str
    role: Role = Role.GUEST


@dataclass(frozen=True)
class DisplayMessage:
    """A message as one particular viewer sees it."""

    id: str
    text: str
    original_text: str
    language: Language
    sender_id: str
    sender_name: str
    sender_role: Role
    timestamp: ServerTimestamp | None
    is_translated: bool
    translation_meta: TranslationMeta | None = None


def order_messages(messages: Iterable[Message]) -> list[Message]:
    """Oldest first; missing timestamps first, then by id."""
    return sorted(messages, key=lambda m: (timestamp_key(m.timestamp), m.id))


def localize(message: Message, viewer: Language) -> DisplayMessage:
    """Pick the text ``viewer`` should read for ``message``."""
    translated = None
    if message.language.code != viewer.code:
        translated = message.translations.get(viewer.code)
    return DisplayMessage(
        id=message.id,
        text=translated if translated is not None else message.text,
        original_text=message.text,
        language=message.language,
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        sender_role=message.sender_role,
        timestamp=message.timestamp,
        is_translated=translated is not None,
        translation_meta=message.translation_meta.get(viewer.code) if translated else None,
    )


class MessageChannel:
    """Send to and listen on a room's conversation."""

    def __init__(self, context: AppContext) -> None:
        self._context = context
        self._store = context.store
        self._paths = context.paths
        self._gateway = context.gateway

    def subscribe(
        self,
        room_id: str,
        viewer_language: Language,
        handler: MessagesHandler,
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        """Stream the room's localized conversation, oldest first."""

        def on_change(documents: list[Document]) -> Any:
            messages = order_messages(Message.from_document(doc) for doc in documents)
            return handler([localize(m, viewer_language) for m in messages])

        sub = self._store.subscribe(
            self._paths.messages, [where("roomId", room_id)], on_change, on_error
        )
        return self._context.track(sub)

    async def history(self, room_id: str) -> list[Message]:
        """Live messages of ``room_id``, oldest first."""
        docs = await self._store.query(self._paths.messages, [where("roomId", room_id)])
        return order_messages(Message.from_document(doc) for doc in docs)

    async def _translate(
        self, body: str, viewer: Language, counterparty: Language
    ) -> tuple[dict[str, str], dict[str, TranslationMeta]]:
        if viewer.code == counterparty.code:
            return {}, {}
        result = await self._gateway.translate(body, viewer.code, counterparty.code)
        if result is None:
            logger.warning(
                "Translation %s -> %s unavailable; storing fallback text",
                viewer.code,
                counterparty.code,
            )
            return {counterparty.code: unavailable_text(body)}, {}
        meta = TranslationMeta(
            provider=result.provider,
            confidence=result.confidence,
            detected_lang=result.detected_lang,
        )
        return {counterparty.code: result.translated}, {counterparty.code: meta}

    async def send(
        self,
        room_id: str,
        sender: Sender,
        body: str,
        viewer_language: Language,
        counterparty_language: Language,
    ) -> Message:
        """Translate if needed and persist one message.

        Args:
            room_id: Target room; must be occupied.
            sender: Author identity.
            body: Text as typed; surrounding whitespace is dropped.
            viewer_language: Language the sender writes in.
            counterparty_language: Language of the party reading it.

        Returns:
            The message as written (its timestamp is read back from the store).

        Raises:
            ValueError: Empty or whitespace-only body.
            SendError: Room missing or checked out, or the write failed.
        """
        if not body or not body.strip():
            raise ValueError("message body is empty")
        body = body.strip()

        operation = "channel.send"
        try:
            room_doc = await self._store.get(self._paths.room(room_id))
        except StoreError as exc:
            raise SendError(
                context=OperationContext(operation, details=f"room={room_id!r}"), cause=exc
            ) from exc
        room = None if room_doc is None else Room.from_document(room_doc)
        if room is None or not room.is_occupied:
            state = "missing" if room is None else str(room.status)
            raise SendError(context=OperationContext(operation, details=f"room {room_id!r} is {state}"))

        translations, meta = await self._translate(body, viewer_language, counterparty_language)
        message_id = secrets.token_hex(10)
        message = Message(
            id=message_id,
            room_id=room_id,
            text=body,
            language=viewer_language,
            sender_id=sender.id,
            sender_name=sender.name,
            sender_role=sender.role,
            translations=translations,
            translation_meta=meta,
        )
        preview = body[: self._context.config.chat.preview_length]
        ops = [
            # Checkout may have landed while the translation was in flight.
            WriteOp.require(
                self._paths.room(room_id), _accepts_messages, reason="room is not occupied"
            ),
            WriteOp.create(
                self._paths.message(message_id),
                {**message.to_fields(), "timestamp": SERVER_TIMESTAMP},
            ),
            WriteOp.set(
                self._paths.room(room_id),
                {
                    "updatedAt": SERVER_TIMESTAMP,
                    "lastMessageAt": SERVER_TIMESTAMP,
                    "lastMessagePreview": preview,
                },
                merge=True,
            ),
        ]
        try:
            await self._store.batch_write(ops)
            stored = await self._store.get(self._paths.message(message_id))
        except PreconditionFailedError as exc:
            logger.info("Room %s closed before message %s was written", room_id, message_id)
            raise SendError(
                context=OperationContext(operation, details=f"room {room_id!r} is not occupied"),
                cause=exc,
            ) from exc
        except StoreError as exc:
            logger.error("Send to room %s failed: %s", room_id, exc)
            raise SendError(
                context=OperationContext(operation, details=f"room={room_id!r}"), cause=exc
            ) from exc

        logger.debug("Message %s sent to room %s by %s", message_id, room_id, sender.id)
        return message if stored is None else Message.from_document(stored)


class Composer:
    """Input box state for one conversation.

    Holds the draft and allows one send at a time.  A successful send clears
    the draft; a failed one leaves it in place for a retry.
    """

    def __init__(
        self,
        channel: MessageChannel,
        room_id: str,
        sender: Sender,
        viewer_language: Language,
        counterparty_language: Language,
    ) -> None:
        self.channel = channel
        self.room_id = room_id
        self.sender = sender
        self.viewer_language = viewer_language
        self.counterparty_language = counterparty_language
        self.draft = ""
        self._sending = False

    @property
    def sending(self) -> bool:
        return self._sending

    async def submit(self) -> Message | None:
        """Send the current draft.

        Returns ``None`` without sending when the draft is blank or a send is
        already in flight.  ``SendError`` propagates with the draft kept.
        """
        if self._sending or not self.draft.strip():
            return None
        self._sending = True
        body = self.draft
        try:
            message = await self.channel.send(
                self.room_id,
                self.sender,
                body,
                self.viewer_language,
                self.counterparty_language,
            )
        finally:
            self._sending = False
        if self.draft == body:
            self.draft = ""
        return message
