"""
Tests for the in-memory document store and the shared DocumentStore machinery.

Covers reads/writes, atomic batches, server timestamps and the change
notification model (initial snapshot, coalescing, cancel, error handling).
"""

import random

import pytest

from hotelconnect.store import (
    SERVER_TIMESTAMP,
    DocumentExistsError,
    InMemoryDocumentStore,
    PreconditionFailedError,
    ServerTimestamp,
    WriteOp,
    where,
)

COLL = "artifacts/test/public/messages"


@pytest.mark.store
class TestReadsAndWrites:
    async def test_add_then_get(self, store: InMemoryDocumentStore):
        doc_id = await store.add(COLL, {"roomId": "101", "text": "hi"})

        doc = await store.get(f"{COLL}/{doc_id}")

        assert doc is not None
        assert doc.id == doc_id
        assert doc.get("text") == "hi"

    async def test_get_missing_returns_none(self, store: InMemoryDocumentStore):
        assert await store.get(f"{COLL}/nope") is None

    async def test_set_merge_keeps_other_fields(self, store: InMemoryDocumentStore):
        path = f"{COLL}/a"
        await store.set(path, {"x": 1, "y": 2})
        await store.set(path, {"y": 3}, merge=True)

        doc = await store.get(path)
        assert doc.data == {"x": 1, "y": 3}

    async def test_set_without_merge_replaces(self, store: InMemoryDocumentStore):
        path = f"{COLL}/a"
        await store.set(path, {"x": 1, "y": 2})
        await store.set(path, {"y": 3})

        assert (await store.get(path)).data == {"y": 3}

    async def test_query_applies_equality_filters(self, store: InMemoryDocumentStore):
        await store.add(COLL, {"roomId": "101"})
        await store.add(COLL, {"roomId": "101"})
        await store.add(COLL, {"roomId": "202"})

        docs = await store.query(COLL, [where("roomId", "101")])

        assert len(docs) == 2
        assert all(doc.get("roomId") == "101" for doc in docs)

    async def test_query_ignores_nested_collections(self, store: InMemoryDocumentStore):
        await store.set(f"{COLL}/a", {"v": 1})
        await store.set(f"{COLL}/a/replies/b", {"v": 2})

        docs = await store.query(COLL)
        assert [doc.id for doc in docs] == ["a"]

    async def test_stored_data_is_isolated_from_caller(self, store: InMemoryDocumentStore):
        fields = {"tags": ["a"]}
        await store.set(f"{COLL}/a", fields)
        fields["tags"].append("b")

        doc = await store.get(f"{COLL}/a")
        doc.data["tags"].append("c")

        assert (await store.get(f"{COLL}/a")).data == {"tags": ["a"]}


@pytest.mark.store
class TestBatches:
    async def test_batch_is_atomic_on_create_conflict(self, store: InMemoryDocumentStore):
        await store.set(f"{COLL}/taken", {"v": 1})

        with pytest.raises(DocumentExistsError):
            await store.batch_write(
                [
                    WriteOp.set(f"{COLL}/fresh", {"v": 2}),
                    WriteOp.create(f"{COLL}/taken", {"v": 3}),
                ]
            )

        assert await store.get(f"{COLL}/fresh") is None
        assert (await store.get(f"{COLL}/taken")).data == {"v": 1}

    async def test_failed_requirement_rejects_whole_batch(self, store: InMemoryDocumentStore):
        await store.set(f"{COLL}/room", {"status": "checked_out"})

        with pytest.raises(PreconditionFailedError) as exc_info:
            await store.batch_write(
                [
                    WriteOp.require(
                        f"{COLL}/room",
                        lambda data: data is not None and data["status"] == "occupied",
                        reason="room is not occupied",
                    ),
                    WriteOp.create(f"{COLL}/msg", {"v": 1}),
                ]
            )

        assert "room is not occupied" in str(exc_info.value)
        assert await store.get(f"{COLL}/msg") is None

    async def test_requirement_sees_earlier_ops_and_writes_nothing(
        self, store: InMemoryDocumentStore
    ):
        seen = []

        def check(data):
            seen.append(data)
            return True

        await store.batch_write(
            [WriteOp.set(f"{COLL}/a", {"v": 1}), WriteOp.require(f"{COLL}/a", check)]
        )
        await store.batch_write([WriteOp.require(f"{COLL}/absent", check)])

        assert seen == [{"v": 1}, None]
        assert await store.get(f"{COLL}/absent") is None
        assert len(store) == 1

    async def test_batch_over_limit_raises_value_error(self, store: InMemoryDocumentStore):
        ops = [WriteOp.set(f"{COLL}/{i}", {"i": i}) for i in range(store.max_batch_size + 1)]

        with pytest.raises(ValueError):
            await store.batch_write(ops)
        assert len(store) == 0

    async def test_batch_at_limit_is_accepted(self, store: InMemoryDocumentStore):
        ops = [WriteOp.set(f"{COLL}/{i}", {"i": i}) for i in range(store.max_batch_size)]

        await store.batch_write(ops)

        assert len(store) == store.max_batch_size

    async def test_delete_removes_document(self, store: InMemoryDocumentStore):
        await store.set(f"{COLL}/a", {"v": 1})
        await store.batch_write([WriteOp.delete(f"{COLL}/a")])

        assert await store.get(f"{COLL}/a") is None


@pytest.mark.store
class TestServerTimestamps:
    async def test_sentinel_is_replaced(self, store: InMemoryDocumentStore):
        await store.set(f"{COLL}/a", {"timestamp": SERVER_TIMESTAMP})

        stamp = (await store.get(f"{COLL}/a")).get("timestamp")
        assert isinstance(stamp, ServerTimestamp)
        assert stamp.to_millis() > 0

    async def test_timestamps_increase_across_commits(self, store: InMemoryDocumentStore):
        await store.set(f"{COLL}/a", {"t": SERVER_TIMESTAMP})
        await store.set(f"{COLL}/b", {"t": SERVER_TIMESTAMP})

        first = (await store.get(f"{COLL}/a")).get("t")
        second = (await store.get(f"{COLL}/b")).get("t")
        assert first < second

    async def test_one_timestamp_per_batch(self, store: InMemoryDocumentStore):
        await store.batch_write(
            [
                WriteOp.set(f"{COLL}/a", {"t": SERVER_TIMESTAMP}),
                WriteOp.set(f"{COLL}/b", {"t": SERVER_TIMESTAMP, "u": SERVER_TIMESTAMP}),
            ]
        )

        a = (await store.get(f"{COLL}/a")).data
        b = (await store.get(f"{COLL}/b")).data
        assert a["t"] == b["t"] == b["u"]

    def test_ordering_ignores_wall_clock(self):
        from datetime import UTC, datetime

        early_clock = ServerTimestamp(2, datetime(2000, 1, 1, tzinfo=UTC))
        late_clock = ServerTimestamp(1, datetime(2030, 1, 1, tzinfo=UTC))

        assert late_clock < early_clock


@pytest.mark.store
class TestSubscriptions:
    async def test_initial_snapshot_is_delivered(self, store: InMemoryDocumentStore):
        await store.add(COLL, {"roomId": "101"})
        seen: list[int] = []

        store.subscribe(COLL, [where("roomId", "101")], lambda docs: seen.append(len(docs)))
        await store.settle()

        assert seen == [1]

    async def test_matching_write_triggers_delivery(self, store: InMemoryDocumentStore):
        seen: list[int] = []
        store.subscribe(COLL, [where("roomId", "101")], lambda docs: seen.append(len(docs)))
        await store.settle()

        await store.add(COLL, {"roomId": "101"})
        await store.settle()

        assert seen == [0, 1]

    async def test_non_matching_write_does_not_deliver(self, store: InMemoryDocumentStore):
        seen: list[int] = []
        store.subscribe(COLL, [where("roomId", "101")], lambda docs: seen.append(len(docs)))
        await store.settle()

        await store.add(COLL, {"roomId": "202"})
        await store.settle()

        assert seen == [0]

    async def test_delete_of_matching_document_delivers(self, store: InMemoryDocumentStore):
        doc_id = await store.add(COLL, {"roomId": "101"})
        seen: list[int] = []
        store.subscribe(COLL, [where("roomId", "101")], lambda docs: seen.append(len(docs)))
        await store.settle()

        await store.batch_write([WriteOp.delete(f"{COLL}/{doc_id}")])
        await store.settle()

        assert seen == [1, 0]

    async def test_burst_of_writes_is_coalesced(self, store: InMemoryDocumentStore):
        seen: list[int] = []
        store.subscribe(COLL, [], lambda docs: seen.append(len(docs)))
        for i in range(5):
            await store.set(f"{COLL}/{i}", {"i": i})
        await store.settle()

        assert len(seen) < 6
        assert seen[-1] == 5

    async def test_cancel_stops_deliveries(self, store: InMemoryDocumentStore):
        seen: list[int] = []
        sub = store.subscribe(COLL, [], lambda docs: seen.append(len(docs)))
        await store.settle()

        sub.cancel()
        sub.cancel()
        await store.add(COLL, {"x": 1})
        await store.settle()

        assert seen == [0]
        assert not sub.active
        assert store.active_subscriptions == 0

    async def test_cancel_before_first_delivery_suppresses_it(
        self, store: InMemoryDocumentStore
    ):
        seen: list[int] = []
        sub = store.subscribe(COLL, [], lambda docs: seen.append(len(docs)))

        sub.cancel()
        await store.settle()

        assert seen == []

    async def test_async_handler_is_awaited(self, store: InMemoryDocumentStore):
        seen: list[int] = []

        async def handler(docs):
            seen.append(len(docs))

        store.subscribe(COLL, [], handler)
        await store.settle()

        assert seen == [0]

    async def test_failing_handler_cancels_and_reports(self, store: InMemoryDocumentStore):
        errors: list[Exception] = []
        calls = 0

        def handler(docs):
            nonlocal calls
            calls += 1
            raise RuntimeError("boom")

        sub = store.subscribe(COLL, [], handler, on_error=errors.append)
        await store.settle()
        await store.add(COLL, {"x": 1})
        await store.settle()

        assert calls == 1
        assert not sub.active
        assert len(errors) == 1
        assert str(errors[0]) == "boom"

    async def test_document_subscription(self, store: InMemoryDocumentStore):
        path = f"{COLL}/solo"
        seen: list[list] = []
        store.subscribe_document(path, lambda docs: seen.append([d.data for d in docs]))
        await store.settle()

        await store.set(path, {"v": 1})
        await store.settle()
        await store.set(f"{COLL}/other", {"v": 2})
        await store.settle()

        assert seen == [[], [{"v": 1}]]

    async def test_close_cancels_everything(self, store: InMemoryDocumentStore):
        sub = store.subscribe(COLL, [], lambda docs: None)

        await store.close()

        assert not sub.active
        assert store.active_subscriptions == 0


@pytest.mark.store
async def test_shuffled_store_returns_same_set_in_varying_order():
    store = InMemoryDocumentStore(shuffle=random.Random(7))
    for i in range(30):
        await store.set(f"{COLL}/{i:02d}", {"i": i})

    orders = {tuple(doc.id for doc in await store.query(COLL)) for _ in range(5)}

    assert len(orders) > 1
    assert all(sorted(order) == [f"{i:02d}" for i in range(30)] for order in orders)
