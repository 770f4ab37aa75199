"""Tests for steward.triggers.event_bus.EventBus (no Redis server needed)"""

import json

import pytest

from steward.triggers.event_bus import WORKFLOW_WEBHOOK, Event, EventBus, _Pattern


class _FakeRedis:
    """Just enough of redis.asyncio for xadd/xread against in-memory streams."""

    def __init__(self):
        self.streams = {}
        self.reads = []

    async def xadd(self, stream, fields):
        entries = self.streams.setdefault(stream, [])
        entry_id = f"{len(entries) + 1}-0"
        entries.append((entry_id, dict(fields)))
        return entry_id

    async def xread(self, streams, count=None, block=None):
        self.reads.append(dict(streams))
        results = []
        for stream, cursor in streams.items():
            entries = self.streams.get(stream, [])
            if cursor != "$":
                entries = [e for e in entries if int(e[0].split("-")[0]) > int(cursor.split("-")[0])]
            if entries:
                results.append((stream, entries[:count]))
        return results


@pytest.fixture
def bus():
    bus = EventBus(redis_url="redis://unused")
    bus._redis = _FakeRedis()
    return bus


# =========================================================================
# Event shapes
# =========================================================================


class TestEvent:

    def test_task_trigger(self):
        event = Event.task_trigger("payment_failed", "own_1", {"payment_id": "pay_1"})
        assert event.key == "steward:payment_failed"
        assert event.owner_id == "own_1"
        assert event.workflow_id is None

    def test_workflow_webhook(self):
        event = Event.workflow_webhook("wf_1", "own_1", {"quote_id": "q_1"}, source="vendors")
        assert event.key == f"vendors:{WORKFLOW_WEBHOOK}"
        assert event.workflow_id == "wf_1"
        assert event.data == {"quote_id": "q_1"}

    def test_fields_are_strings(self):
        fields = Event.task_trigger("payment_failed", "own_1", {"amount": 1200}).to_fields()
        assert all(isinstance(v, str) for v in fields.values())
        assert "workflow_id" not in fields

    def test_from_fields_keeps_workflow_and_entry_id(self):
        fields = Event.workflow_webhook("wf_1", "own_1", {"quote_id": "q_1"}).to_fields()
        event = Event.from_fields(fields, event_id="7-0")
        assert event.workflow_id == "wf_1"
        assert event.event_id == "7-0"
        assert event.data == {"quote_id": "q_1"}
        assert event.timestamp is None


# =========================================================================
# Patterns
# =========================================================================


class TestPatterns:

    @pytest.mark.parametrize("pattern, expected", [
        ("steward:payment_failed", True),
        ("steward:*", True),
        ("steward", True),
        ("steward:maintenance_created", False),
        ("payments:payment_failed", False),
    ])
    def test_matches(self, pattern, expected):
        event = Event(source="steward", event_type="payment_failed")
        assert _Pattern.parse(pattern).matches(event) is expected

    def test_source_wide_patterns_are_equal(self):
        assert _Pattern.parse("steward") == _Pattern.parse("steward:*")

    async def test_pattern_needs_a_source(self, bus):
        with pytest.raises(ValueError, match="concrete source"):
            await bus.subscribe("*:payment_failed", lambda e: None)


# =========================================================================
# Publishing
# =========================================================================


class TestPublish:

    async def test_emit_writes_to_source_stream(self, bus):
        entry_id = await bus.emit("payment_failed", "own_1", {"payment_id": "pay_1"})

        [(stored_id, fields)] = bus._redis.streams["steward:events:steward"]
        assert entry_id == stored_id
        assert fields["event_type"] == "payment_failed"
        assert json.loads(fields["data"]) == {"payment_id": "pay_1"}
        assert fields["owner_id"] == "own_1"
        assert fields["timestamp"]

    async def test_signal_workflow(self, bus):
        await bus.signal_workflow("wf_1", "own_1", {"quote_id": "q_1"})

        [(_, fields)] = bus._redis.streams["steward:events:steward"]
        assert fields["event_type"] == WORKFLOW_WEBHOOK
        assert fields["workflow_id"] == "wf_1"

    async def test_event_without_owner_rejected(self, bus):
        with pytest.raises(ValueError, match="no owner"):
            await bus.publish(Event(source="steward", event_type="payment_failed"))
        assert bus._redis.streams == {}

    async def test_webhook_without_workflow_rejected(self, bus):
        with pytest.raises(ValueError, match="workflow_id"):
            await bus.publish(Event(source="steward", event_type=WORKFLOW_WEBHOOK, owner_id="own_1"))


# =========================================================================
# Delivery
# =========================================================================


class TestPoll:

    async def test_poll_delivers_new_entries_once(self, bus):
        received = []

        async def recorder(event):
            received.append((event.event_type, event.event_id))

        bus._subscriptions = {_Pattern.parse("steward:payment_failed"): [recorder]}
        bus._last_ids["steward:events:steward"] = "0-0"
        await bus.emit("payment_failed", "own_1")
        await bus.emit("maintenance_created", "own_1")

        assert await bus.poll(block_ms=0) == 2
        assert received == [("payment_failed", "1-0")]

        assert await bus.poll(block_ms=0) == 0
        assert bus._redis.reads[-1] == {"steward:events:steward": "2-0"}

    async def test_poll_without_subscriptions(self, bus):
        assert await bus.poll(block_ms=0) == 0
        assert bus._redis.reads == []

    async def test_malformed_entry_skipped(self, bus):
        received = []

        async def recorder(event):
            received.append(event.event_type)

        bus._subscriptions = {_Pattern.parse("steward"): [recorder]}
        bus._last_ids["steward:events:steward"] = "0-0"
        bus._redis.streams["steward:events:steward"] = [
            ("1-0", {"source": "steward", "event_type": "payment_failed", "data": "{not json"}),
        ]
        await bus.emit("lease_expiring", "own_1")

        assert await bus.poll(block_ms=0) == 1
        assert received == ["lease_expiring"]


class TestDispatch:

    async def test_dispatch_isolates_callback_errors(self, bus):
        received = []

        async def broken(event):
            raise RuntimeError("boom")

        async def recorder(event):
            received.append(event.event_type)

        bus._subscriptions = {
            _Pattern.parse("steward:payment_failed"): [broken, recorder],
            _Pattern.parse("steward:maintenance_created"): [recorder],
        }

        await bus._dispatch(Event(source="steward", event_type="payment_failed"))

        assert received == ["payment_failed"]

    async def test_unsubscribe(self, bus):
        bus._subscriptions = {_Pattern.parse("steward:payment_failed"): [lambda e: None]}
        await bus.unsubscribe("steward:payment_failed")
        assert bus._subscriptions == {}
