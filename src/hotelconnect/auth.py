"""Anonymous identity bootstrap.

Guests never create accounts.  On first launch the client signs in
anonymously and receives an opaque uid; that uid keys the guest's
``users/{uid}`` profile for the rest of the stay.  A client that still
holds its uid restores it instead of signing in again.

``bootstrap()`` performs the whole startup step: sign in (or restore),
then load the existing profile if there is one.  Any failure surfaces as
``AuthenticationError``; the user must retry.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from hotelconnect.context import AppContext
from hotelconnect.errors import AuthenticationError, OperationContext
from hotelconnect.models import UserProfile
from hotelconnect.store import StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """An authenticated caller."""

    uid: str


@dataclass
class Session:
    """Identity plus the guest profile loaded at startup (``None`` if new)."""

    identity: Identity
    profile: UserProfile | None = None


class AnonymousIdentityProvider:
    """Issues opaque uids."""

    def sign_in(self, existing_uid: str | None = None) -> Identity:
        if existing_uid is not None:
            if not existing_uid.strip():
                raise AuthenticationError(
                    context=OperationContext("auth.sign_in", details="empty uid")
                )
            return Identity(existing_uid)
        return Identity(secrets.token_urlsafe(21))


async def bootstrap(
    context: AppContext,
    *,
    provider: AnonymousIdentityProvider | None = None,
    existing_uid: str | None = None,
) -> Session:
    """Sign in and load the caller's profile.

    Raises:
        AuthenticationError: Sign-in failed or the profile could not be read.
    """
    provider = provider or AnonymousIdentityProvider()
    identity = provider.sign_in(existing_uid)
    try:
        doc = await context.store.get(context.paths.user(identity.uid))
    except StoreError as exc:
        logger.error("Profile load failed during bootstrap: %s", exc)
        raise AuthenticationError(
            context=OperationContext("auth.bootstrap", details=f"uid={identity.uid!r}"),
            cause=exc,
        ) from exc
    profile = None if doc is None else UserProfile.from_document(doc)
    return Session(identity=identity, profile=profile)
