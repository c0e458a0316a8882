"""
Tests for MessageChannel and Composer.

The ordering tests run against a store that shuffles every snapshot, so
any order the handler sees is imposed by the channel itself.
"""

import asyncio
import random

import pytest

from hotelconnect.channel import (
    Composer,
    MessageChannel,
    Sender,
    localize,
    order_messages,
)
from hotelconnect.context import AppContext
from hotelconnect.errors import OperationContext, SendError
from hotelconnect.languages import HOTEL_LANGUAGE
from hotelconnect.models import Message, Role, RoomStatus
from hotelconnect.rooms import RoomLifecycleManager
from hotelconnect.store import (
    InMemoryDocumentStore,
    ServerTimestamp,
    StoreWriteError,
    WriteOp,
    where,
)
from hotelconnect.translation import UNAVAILABLE_PREFIX

STAFF = Sender(id="staff-1", name="Front Desk", role=Role.STAFF)

# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
async def shuffled_context(app_config, shuffled_store, gateway):
    ctx = AppContext.create(app_config, store=shuffled_store, gateway=gateway)
    yield ctx
    await ctx.close()


@pytest.fixture
async def room_101(context, guest):
    """Room 101 occupied by a Spanish-speaking guest."""
    await RoomLifecycleManager(context).register(guest, "Ana", "Spanish", "101")
    return "101"


@pytest.fixture
def channel(context) -> MessageChannel:
    return MessageChannel(context)


@pytest.fixture
def ana(guest) -> Sender:
    return Sender(id=guest.uid, name="Ana")


def make_message(mid, *, seq=None, language=HOTEL_LANGUAGE, translations=None) -> Message:
    return Message(
        id=mid,
        room_id="101",
        text=f"text of {mid}",
        language=language,
        sender_id="s",
        sender_name="S",
        sender_role=Role.GUEST,
        timestamp=None if seq is None else ServerTimestamp(seq),
        translations=translations or {},
    )


# ============================================================================
# SEND
# ============================================================================


@pytest.mark.unit
class TestSend:
    async def test_same_language_skips_gateway(self, channel, room_101, gateway, english):
        message = await channel.send(room_101, STAFF, "Hello", english, english)

        assert gateway.calls == []
        assert message.translations == {}
        assert message.translation_meta == {}
        assert message.timestamp is not None

    async def test_cross_language_stores_translation_for_counterparty(
        self, channel, room_101, gateway, english, spanish
    ):
        message = await channel.send(room_101, STAFF, "Welcome", english, spanish)

        assert gateway.calls == [("Welcome", "en-US", "es-ES")]
        assert message.text == "Welcome"
        assert message.language == english
        assert message.translations == {"es-ES": "[es-ES] Welcome"}
        meta = message.translation_meta["es-ES"]
        assert (meta.provider, meta.confidence, meta.detected_lang) == ("fake", 0.8, "en-US")

    async def test_unavailable_translation_stores_tagged_original(
        self, channel, room_101, gateway, ana, english, spanish
    ):
        gateway.available = False

        message = await channel.send(room_101, ana, "Hola", spanish, english)

        assert message.translations == {"en-US": f"{UNAVAILABLE_PREFIX} Hola"}
        assert message.translation_meta == {}

    @pytest.mark.parametrize("body", ["", "   ", "\n\t"])
    async def test_blank_body_is_rejected(self, channel, room_101, gateway, body, english):
        with pytest.raises(ValueError):
            await channel.send(room_101, STAFF, body, english, english)
        assert gateway.calls == []

    async def test_missing_room_fails(self, channel, english):
        with pytest.raises(SendError):
            await channel.send("nope", STAFF, "hi", english, english)

    async def test_checked_out_room_fails(self, channel, context, room_101, english):
        await RoomLifecycleManager(context).check_out(room_101)

        with pytest.raises(SendError) as exc_info:
            await channel.send(room_101, STAFF, "hi", english, english)
        assert "checked_out" in str(exc_info.value)

    async def test_send_touches_room_activity(self, channel, context, room_101, english):
        body = "x" * 300

        message = await channel.send(room_101, STAFF, body, english, english)

        room = await RoomLifecycleManager(context).get_room(room_101)
        assert room.last_message_preview == "x" * 120
        assert room.last_message_at == message.timestamp
        assert room.updated_at == message.timestamp

    async def test_store_failure_becomes_send_error(
        self, channel, context, room_101, english, monkeypatch
    ):
        async def failing(ops):
            raise StoreWriteError(context=OperationContext("test", "injected"))

        monkeypatch.setattr(context.store, "batch_write", failing)

        with pytest.raises(SendError) as exc_info:
            await channel.send(room_101, STAFF, "hi", english, english)
        assert exc_info.value.user_message == "Failed to send message."

    async def test_body_is_trimmed_before_translation_and_storage(
        self, channel, context, room_101, gateway, ana, english, spanish
    ):
        message = await channel.send(room_101, ana, "  hola \n", spanish, english)

        assert gateway.calls == [("hola", "es-ES", "en-US")]
        assert message.text == "hola"
        assert message.translations == {"en-US": "[en-US] hola"}
        room = await RoomLifecycleManager(context).get_room(room_101)
        assert room.last_message_preview == "hola"

    async def test_checkout_during_translation_rejects_the_send(
        self, channel, context, room_101, gateway, ana, english, spanish, monkeypatch
    ):
        entered = asyncio.Event()
        release = asyncio.Event()
        translate = gateway.translate

        async def held(text, source_lang, target_lang):
            entered.set()
            await release.wait()
            return await translate(text, source_lang, target_lang)

        monkeypatch.setattr(gateway, "translate", held)
        sending = asyncio.create_task(channel.send(room_101, ana, "Hola", spanish, english))
        await entered.wait()

        report = await RoomLifecycleManager(context).check_out(room_101)
        release.set()

        with pytest.raises(SendError) as exc_info:
            await sending
        assert "not occupied" in str(exc_info.value)
        assert report.archived == 0
        live = await context.store.query(context.paths.messages, [where("roomId", room_101)])
        assert live == []
        room = await RoomLifecycleManager(context).get_room(room_101)
        assert room.status is RoomStatus.CHECKED_OUT
        assert room.last_message_preview is None


# ============================================================================
# ORDERING
# ============================================================================


@pytest.mark.unit
class TestOrdering:
    def test_order_by_timestamp_then_id_with_missing_first(self):
        messages = [
            make_message("c", seq=5),
            make_message("b", seq=5),
            make_message("z"),
            make_message("a", seq=9),
            make_message("d", seq=1),
        ]

        assert [m.id for m in order_messages(messages)] == ["z", "d", "b", "c", "a"]

    async def test_subscription_orders_explicit_timestamps(self, shuffled_context):
        store: InMemoryDocumentStore = shuffled_context.store
        paths = shuffled_context.paths
        sequences = list(range(1, 41))
        random.Random(3).shuffle(sequences)
        for seq in sequences:
            await store.batch_write(
                [
                    WriteOp.set(
                        paths.message(f"m{seq:02d}"),
                        {"roomId": "101", "text": str(seq), "timestamp": ServerTimestamp(seq)},
                    )
                ]
            )
        seen: list[list[str]] = []

        MessageChannel(shuffled_context).subscribe(
            "101", HOTEL_LANGUAGE, lambda items: seen.append([m.id for m in items])
        )
        await store.settle()

        assert seen[-1] == [f"m{seq:02d}" for seq in range(1, 41)]

    async def test_subscription_follows_send_order(self, shuffled_context, guest, english):
        await RoomLifecycleManager(shuffled_context).register(guest, "Ana", "English", "101")
        channel = MessageChannel(shuffled_context)
        seen: list[list[str]] = []
        channel.subscribe("101", english, lambda items: seen.append([m.text for m in items]))

        for i in range(25):
            await channel.send("101", STAFF, f"msg {i}", english, english)
            if i % 5 == 0:
                await shuffled_context.store.settle()
        await shuffled_context.store.settle()

        assert seen[-1] == [f"msg {i}" for i in range(25)]
        for snapshot in seen:
            assert snapshot == [f"msg {i}" for i in range(len(snapshot))]

    async def test_history_is_ordered(self, shuffled_context, guest, english):
        await RoomLifecycleManager(shuffled_context).register(guest, "Ana", "English", "101")
        channel = MessageChannel(shuffled_context)
        for i in range(10):
            await channel.send("101", STAFF, f"msg {i}", english, english)

        history = await channel.history("101")

        assert [m.text for m in history] == [f"msg {i}" for i in range(10)]


# ============================================================================
# TRANSLATION OVERLAY
# ============================================================================


@pytest.mark.unit
class TestOverlay:
    def test_viewer_sees_translation_into_own_language(self, english, spanish):
        message = make_message("m", seq=1, language=spanish, translations={"en-US": "Hello"})

        shown = localize(message, english)

        assert shown.text == "Hello"
        assert shown.original_text == "text of m"
        assert shown.is_translated is True

    def test_author_language_sees_original(self, spanish):
        message = make_message("m", seq=1, language=spanish, translations={"en-US": "Hello"})

        shown = localize(message, spanish)

        assert shown.text == "text of m"
        assert shown.is_translated is False

    def test_third_language_without_translation_sees_original(self, spanish, french):
        message = make_message("m", seq=1, language=spanish, translations={"en-US": "Hello"})

        assert localize(message, french).text == "text of m"

    def test_same_code_ignores_stray_translation(self, english):
        message = make_message("m", seq=1, language=english, translations={"en-US": "odd"})

        assert localize(message, english).text == "text of m"

    async def test_both_parties_read_their_own_language(
        self, channel, context, room_101, ana, english, spanish
    ):
        guest_view: list = []
        staff_view: list = []
        channel.subscribe(room_101, spanish, guest_view.append)
        channel.subscribe(room_101, english, staff_view.append)

        await channel.send(room_101, ana, "Hola", spanish, english)
        await channel.send(room_101, STAFF, "Welcome", english, spanish)
        await context.store.settle()

        assert [m.text for m in guest_view[-1]] == ["Hola", "[es-ES] Welcome"]
        assert [m.text for m in staff_view[-1]] == ["[en-US] Hola", "Welcome"]


# ============================================================================
# COMPOSER
# ============================================================================


@pytest.mark.unit
class TestComposer:
    @pytest.fixture
    def composer(self, channel, room_101, ana, spanish, english) -> Composer:
        return Composer(channel, room_101, ana, spanish, english)

    async def test_blank_draft_is_not_sent(self, composer, gateway):
        composer.draft = "   "

        assert await composer.submit() is None
        assert gateway.calls == []

    async def test_success_clears_draft(self, composer):
        composer.draft = "Hola"

        message = await composer.submit()

        assert message.text == "Hola"
        assert composer.draft == ""
        assert composer.sending is False

    async def test_only_one_send_in_flight(self, composer, gateway):
        release = asyncio.Event()
        original = gateway.translate

        async def slow(text, source, target):
            await release.wait()
            return await original(text, source, target)

        gateway.translate = slow
        composer.draft = "Hola"

        first = asyncio.create_task(composer.submit())
        await asyncio.sleep(0)
        assert composer.sending is True
        assert await composer.submit() is None

        release.set()
        message = await first
        assert message is not None
        assert len(gateway.calls) == 1

    async def test_failure_keeps_draft(self, composer, context, monkeypatch):
        async def failing(ops):
            raise StoreWriteError(context=OperationContext("test", "injected"))

        monkeypatch.setattr(context.store, "batch_write", failing)
        composer.draft = "Hola"

        with pytest.raises(SendError):
            await composer.submit()

        assert composer.draft == "Hola"
        assert composer.sending is False
