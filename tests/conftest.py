"""
Shared pytest fixtures for the HotelConnect test suite.

This module provides fixtures that are automatically available to all test files:
- An in-memory document store (plain and shuffled-snapshot variants)
- A scripted translation gateway that records its calls
- A fully wired AppContext built on the two
- Guest/staff identities and helpers to seed rooms and messages

Everything is function-scoped so tests never share store state.
"""

import random
from collections.abc import AsyncGenerator

import pytest

from hotelconnect.auth import Identity
from hotelconnect.config import AppConfig
from hotelconnect.context import AppContext
from hotelconnect.languages import LANGUAGES
from hotelconnect.store import InMemoryDocumentStore
from hotelconnect.translation import TranslationResult

# ============================================================================
# TRANSLATION GATEWAY DOUBLE
# ============================================================================


class FakeGateway:
    """
    Stand-in for TranslationGateway.

    Translates by prefixing the target code (``"[es-ES] hello"``) unless
    ``available`` is False, in which case it reports unavailability the way
    the real gateway does: by returning None.
    """

    def __init__(self) -> None:
        self.available = True
        self.calls: list[tuple[str, str, str]] = []
        self.closed = False

    async def translate(self, text: str, source_lang: str, target_lang: str):
        self.calls.append((text, source_lang, target_lang))
        if not self.available:
            return None
        return TranslationResult(
            translated=f"[{target_lang}] {text}",
            provider="fake",
            confidence=0.8,
            detected_lang=source_lang,
        )

    async def aclose(self) -> None:
        self.closed = True


# ============================================================================
# STORE / CONTEXT FIXTURES
# ============================================================================


@pytest.fixture
def app_config() -> AppConfig:
    """Built-in defaults, independent of config files and env vars."""
    return AppConfig()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def shuffled_store() -> InMemoryDocumentStore:
    """Store whose collection snapshots come back in random order."""
    return InMemoryDocumentStore(shuffle=random.Random(20240601))


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def context(
    app_config: AppConfig, store: InMemoryDocumentStore, gateway: FakeGateway
) -> AsyncGenerator[AppContext, None]:
    """
    AppContext wired to the in-memory store and the fake gateway.

    Closed after the test, which also cancels every tracked subscription.
    """
    ctx = AppContext.create(app_config, store=store, gateway=gateway)
    yield ctx
    await ctx.close()


# ============================================================================
# IDENTITIES AND LANGUAGES
# ============================================================================


@pytest.fixture
def guest() -> Identity:
    return Identity("guest-uid-1")


@pytest.fixture
def other_guest() -> Identity:
    return Identity("guest-uid-2")


@pytest.fixture
def english():
    return LANGUAGES["English"]


@pytest.fixture
def spanish():
    return LANGUAGES["Spanish"]


@pytest.fixture
def french():
    return LANGUAGES["French"]
