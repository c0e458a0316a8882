"""Typed operation errors surfaced to the presentation layer.

Every failure the core lets escape an operation boundary is one of the
classes below.  Transient and remote failures (store writes, gateway calls)
are caught where they happen and converted into one of these kinds, so the
caller only ever has to handle this hierarchy.

Two severities exist:

- *Blocking* errors (``ConfigurationError``, ``AuthenticationError``) mean
  the app cannot continue; the UI shows a full-screen error with a single
  back/retry action.
- *Transient* errors (registration, check-in, check-out, send, roster) leave the
  user on the current screen with a dismissible notice.  Internal state may
  be partially mutated (see ``RoomLifecycleManager.check_out``) and is not
  rolled back.

Translation unavailability is deliberately absent: it is not an error.  A
failed translation degrades to tagged fallback text and delivery proceeds.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class OperationContext:
    """Structured operation metadata carried by every error.

    Attributes:
        operation: Stable operation identifier (for example
            ``"rooms.check_out"``).
        details: Optional human-readable context for logs and debugging.
    """

    operation: str
    details: str | None = None


class HotelConnectError(RuntimeError):
    """Base exception for all operation failures.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    blocking: bool = False
    user_message: str = "Something went wrong."

    def __init__(
        self,
        *,
        context: OperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        super().__init__(message)
        self.context = context
        self.cause = cause


class ConfigurationError(HotelConnectError):
    """Backing-store configuration is missing or invalid.  Fatal at startup."""

    blocking = True
    user_message = "Missing store configuration."


class AuthenticationError(HotelConnectError):
    """Identity bootstrap failed.  The user must retry."""

    blocking = True
    user_message = "Authentication failed."


class RegistrationError(HotelConnectError):
    """Writing the guest profile (and optional room) failed."""

    user_message = "Registration failed."


class CheckInError(HotelConnectError):
    """QR-path check-in failed."""

    user_message = "Check-in failed."


class CheckOutError(HotelConnectError):
    """Checkout failed part-way; already archived batches stay archived."""

    user_message = "Checkout failed."


class SendError(HotelConnectError):
    """The message could not be persisted.  The draft is kept for retry."""

    user_message = "Failed to send message."


class RosterError(HotelConnectError):
    """Reading or updating a staff member's followed rooms failed."""

    user_message = "Could not update followed rooms."
