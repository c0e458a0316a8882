"""Domain records and their stored representation.

Each record is a dataclass with a ``from_document`` constructor and a
``to_fields`` serialiser.  Stored field names are camelCase; Python
attributes are snake_case.  Timestamps are whatever the store assigned
(``ServerTimestamp``) or ``None`` while a write is still in flight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from hotelconnect.languages import HOTEL_LANGUAGE, Language
from hotelconnect.store.base import Document, ServerTimestamp


class Role(StrEnum):
    GUEST = "guest"
    STAFF = "staff"


class RoomStatus(StrEnum):
    """Stored room states.  ``UNBOOKED`` is implied by an absent record."""

    OCCUPIED = "occupied"
    CHECKED_OUT = "checked_out"


def _timestamp(value: Any) -> ServerTimestamp | None:
    return value if isinstance(value, ServerTimestamp) else None


@dataclass
class UserProfile:
    """A guest identity and its current room linkage."""

    id: str
    name: str
    language: Language
    role: Role = Role.GUEST
    room_id: str | None = None
    is_checked_in: bool = False
    created_at: ServerTimestamp | None = None
    updated_at: ServerTimestamp | None = None

    @classmethod
    def from_document(cls, doc: Document) -> UserProfile:
        return cls(
            id=doc.id,
            name=str(doc.get("name", "")),
            language=Language.from_dict(doc.get("language")),
            role=Role(doc.get("role", Role.GUEST)),
            room_id=doc.get("roomId"),
            is_checked_in=bool(doc.get("isCheckedIn", False)),
            created_at=_timestamp(doc.get("createdAt")),
            updated_at=_timestamp(doc.get("updatedAt")),
        )

    def to_fields(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "language": self.language.to_dict(),
            "role": str(self.role),
            "roomId": self.room_id,
            "isCheckedIn": self.is_checked_in,
        }


@dataclass
class StaffProfile:
    """A staff identity and the rooms it follows."""

    id: str
    name: str = "Staff"
    language: Language = HOTEL_LANGUAGE
    followed_rooms: frozenset[str] = field(default_factory=frozenset)
    updated_at: ServerTimestamp | None = None

    @classmethod
    def from_document(cls, doc: Document) -> StaffProfile:
        return cls(
            id=doc.id,
            name=str(doc.get("name") or "Staff"),
            language=Language.from_dict(doc.get("language")),
            followed_rooms=frozenset(doc.get("followedRooms") or ()),
            updated_at=_timestamp(doc.get("updatedAt")),
        )

    def to_fields(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "language": self.language.to_dict(),
            "followedRooms": sorted(self.followed_rooms),
        }


@dataclass
class Room:
    """A conversation scope with an occupancy state."""

    id: str
    guest_name: str
    guest_language: Language
    status: RoomStatus = RoomStatus.OCCUPIED
    occupant_id: str | None = None
    last_message_at: ServerTimestamp | None = None
    last_message_preview: str | None = None
    created_at: ServerTimestamp | None = None
    updated_at: ServerTimestamp | None = None

    @property
    def is_occupied(self) -> bool:
        return self.status is RoomStatus.OCCUPIED

    @classmethod
    def from_document(cls, doc: Document) -> Room:
        return cls(
            id=doc.id,
            guest_name=str(doc.get("guestName", "")),
            guest_language=Language.from_dict(doc.get("guestLanguage")),
            status=RoomStatus(doc.get("status", RoomStatus.OCCUPIED)),
            occupant_id=doc.get("occupantId"),
            last_message_at=_timestamp(doc.get("lastMessageAt")),
            last_message_preview=doc.get("lastMessagePreview"),
            created_at=_timestamp(doc.get("createdAt")),
            updated_at=_timestamp(doc.get("updatedAt")),
        )


@dataclass(frozen=True)
class TranslationMeta:
    provider: str
    confidence: float
    detected_lang: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "confidence": self.confidence,
            "detectedLang": self.detected_lang,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranslationMeta:
        return cls(
            provider=str(data.get("provider", "unknown")),
            confidence=float(data.get("confidence", 0.0)),
            detected_lang=str(data.get("detectedLang", "unknown")),
        )


@dataclass(frozen=True)
class Message:
    """One chat message.  Immutable once persisted.

    ``translations`` holds at most one entry, keyed by the language code of
    the party the sender was writing to.
    """

    id: str
    room_id: str
    text: str
    language: Language
    sender_id: str
    sender_name: str
    sender_role: Role
    timestamp: ServerTimestamp | None = None
    translations: dict[str, str] = field(default_factory=dict)
    translation_meta: dict[str, TranslationMeta] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc: Document) -> Message:
        meta = doc.get("translationMeta") or {}
        return cls(
            id=doc.id,
            room_id=str(doc.get("roomId", "")),
            text=str(doc.get("text", "")),
            language=Language.from_dict(doc.get("language")),
            sender_id=str(doc.get("senderId", "")),
            sender_name=str(doc.get("senderName", "")),
            sender_role=Role(doc.get("senderRole", Role.GUEST)),
            timestamp=_timestamp(doc.get("timestamp")),
            translations=dict(doc.get("translations") or {}),
            translation_meta={code: TranslationMeta.from_dict(m) for code, m in meta.items()},
        )

    def to_fields(self) -> dict[str, Any]:
        """Stored fields, without ``timestamp`` (the store assigns it)."""
        return {
            "roomId": self.room_id,
            "text": self.text,
            "language": self.language.to_dict(),
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "senderRole": str(self.sender_role),
            "translations": dict(self.translations),
            "translationMeta": {code: m.to_dict() for code, m in self.translation_meta.items()},
        }


@dataclass(frozen=True)
class ArchivedMessage:
    """A message moved to the archive namespace at checkout."""

    message: Message
    original_message_id: str
    archived_at: ServerTimestamp | None = None

    @classmethod
    def from_document(cls, doc: Document) -> ArchivedMessage:
        return cls(
            message=Message.from_document(doc),
            original_message_id=str(doc.get("originalMessageId", doc.id)),
            archived_at=_timestamp(doc.get("archivedAt")),
        )


@dataclass(frozen=True)
class FeedItem:
    """One row of the staff feed."""

    room_id: str
    room: Room | None
    message: Message


def timestamp_key(value: ServerTimestamp | None) -> int:
    """Sort key for store timestamps.  A missing timestamp sorts lowest."""
    return -1 if value is None else value.sequence
