"""Persisted namespace layout.

Everything lives under a tenant-scoped root, ``artifacts/{app_id}``::

    users/{userId}                      guest profiles
    staff/{staffId}                     staff profiles and rosters
    public/rooms/{roomId}               room records
    public/messages/{messageId}         live conversation
    public/archived_messages/{id}       post-checkout history
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StorePaths:
    """Path builder for one tenant."""

    app_id: str

    @property
    def root(self) -> str:
        return f"artifacts/{self.app_id}"

    # ── Collections ───────────────────────────────────────────────────────────

    @property
    def users(self) -> str:
        return f"{self.root}/users"

    @property
    def staff_profiles(self) -> str:
        return f"{self.root}/staff"

    @property
    def rooms(self) -> str:
        return f"{self.root}/public/rooms"

    @property
    def messages(self) -> str:
        return f"{self.root}/public/messages"

    @property
    def archived_messages(self) -> str:
        return f"{self.root}/public/archived_messages"

    # ── Documents ─────────────────────────────────────────────────────────────

    def user(self, user_id: str) -> str:
        return f"{self.users}/{user_id}"

    def staff(self, staff_id: str) -> str:
        return f"{self.staff_profiles}/{staff_id}"

    def room(self, room_id: str) -> str:
        return f"{self.rooms}/{room_id}"

    def message(self, message_id: str) -> str:
        return f"{self.messages}/{message_id}"

    def archived_message(self, message_id: str) -> str:
        return f"{self.archived_messages}/{message_id}"
