"""
Tests for MessageRelay.

Tests verify:
- Fan-out to every session of the recipient and nobody else
- Empty and malformed payload handling
- Attachment naming, decoding and background writes
- Store failure aborts delivery and is reported to the sender
- Anonymous senders are rejected
"""

import asyncio
import json

import pytest

from chat_gateway.components.relay.errors import MalformedPayloadError
from chat_gateway.components.relay.relay import MessageRelay, RelayOutcome


def _deliveries(ws):
    return [json.loads(m) for m in ws.sent if '"recipient"' in m]


def _errors(ws):
    return [json.loads(m) for m in ws.sent if '"type": "error"' in m]


@pytest.fixture
def relay(registry, memory_store, blob_store, metrics):
    return MessageRelay(registry, memory_store, blob_store, metrics=metrics)


@pytest.fixture
def alice(registry, make_connection):
    connection = make_connection(user_id="a", username="alice")
    registry.register(connection)
    return connection


class TestFanOut:

    @pytest.mark.asyncio
    async def test_delivers_to_all_recipient_sessions_only(self, relay, registry, alice, memory_store, make_connection):
        b1 = make_connection(user_id="b")
        b2 = make_connection(user_id="b")
        c = make_connection(user_id="c")
        for connection in (b1, b2, c):
            registry.register(connection)

        result = await relay.handle(alice, json.dumps({"recipient": "b", "text": "hi"}))

        assert result.outcome is RelayOutcome.DELIVERED
        assert result.delivered == 2
        assert len(memory_store.records) == 1
        stored = memory_store.records[0]
        expected = {"text": "hi", "sender": "a", "recipient": "b", "file": None, "id": stored.id}
        assert _deliveries(b1.websocket) == [expected]
        assert _deliveries(b2.websocket) == [expected]
        assert c.websocket.sent == []
        assert alice.websocket.sent == []

    @pytest.mark.asyncio
    async def test_offline_recipient_is_persisted_not_delivered(self, relay, alice, memory_store):
        result = await relay.handle(alice, json.dumps({"recipient": "b", "text": "later"}))

        assert result.outcome is RelayOutcome.DELIVERED
        assert result.delivered == 0
        assert len(memory_store.records) == 1

    @pytest.mark.asyncio
    async def test_closed_target_is_skipped(self, relay, registry, alice, make_connection, metrics):
        gone = make_connection(user_id="b")
        gone.websocket.drop()
        live = make_connection(user_id="b")
        registry.register(gone)
        registry.register(live)

        result = await relay.handle(alice, json.dumps({"recipient": "b", "text": "hi"}))

        assert result.delivered == 1
        assert gone.websocket.sent == []
        assert metrics.get_snapshot()["relay_deliveries_skipped"] == 1

    @pytest.mark.asyncio
    async def test_per_sender_order_is_preserved(self, relay, registry, alice, make_connection):
        bob = make_connection(user_id="b")
        registry.register(bob)

        for text in ("one", "two", "three"):
            await relay.handle(alice, json.dumps({"recipient": "b", "text": text}))

        assert [d["text"] for d in _deliveries(bob.websocket)] == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_numeric_recipient_matches_string_user_id(self, relay, registry, alice, make_connection):
        bob = make_connection(user_id="7")
        registry.register(bob)

        result = await relay.handle(alice, json.dumps({"recipient": 7, "text": "hi"}))

        assert result.delivered == 1
        assert _deliveries(bob.websocket)[0]["recipient"] == "7"


class TestDiscardAndReject:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"recipient": "b"},
            {"recipient": "b", "text": ""},
            {"recipient": "b", "text": None, "file": None},
            {"text": "no recipient"},
            {"recipient": "", "text": "blank recipient"},
        ],
    )
    async def test_payload_without_content_or_recipient_is_discarded(self, relay, registry, alice, memory_store, make_connection, payload):
        bob = make_connection(user_id="b")
        registry.register(bob)

        result = await relay.handle(alice, json.dumps(payload))

        assert result.outcome is RelayOutcome.DISCARDED
        assert memory_store.records == []
        assert bob.websocket.sent == []

    @pytest.mark.asyncio
    async def test_anonymous_sender_is_rejected(self, relay, registry, memory_store, make_connection):
        anon = make_connection()
        bob = make_connection(user_id="b")
        registry.register(anon)
        registry.register(bob)

        result = await relay.handle(anon, json.dumps({"recipient": "b", "text": "hi"}))

        assert result.outcome is RelayOutcome.REJECTED_UNAUTHENTICATED
        assert memory_store.records == []
        assert bob.websocket.sent == []
        assert _errors(anon.websocket)[0]["code"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_store_failure_aborts_delivery(self, relay, registry, alice, memory_store, make_connection, metrics):
        bob = make_connection(user_id="b")
        registry.register(bob)
        memory_store.fail = True

        result = await relay.handle(alice, json.dumps({"recipient": "b", "text": "hi"}))

        assert result.outcome is RelayOutcome.STORE_FAILED
        assert bob.websocket.sent == []
        assert _errors(alice.websocket)[0]["code"] == "message_not_saved"
        assert metrics.get_snapshot()["relay_store_failed"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("await_write", [False, True])
    async def test_store_failure_writes_no_attachment(self, registry, alice, memory_store, blob_store, await_write):
        relay = MessageRelay(registry, memory_store, blob_store, await_attachment_write=await_write)
        memory_store.fail = True
        payload = {"recipient": "b", "file": {"name": "a.png", "data": "AAAA"}}

        result = await relay.handle(alice, json.dumps(payload))
        await relay.drain()

        assert result.outcome is RelayOutcome.STORE_FAILED
        assert relay.pending_writes == 0
        assert blob_store.writes == {}


class TestMalformedPayloads:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            '"just a string"',
            json.dumps({"recipient": "b", "text": 5}),
            json.dumps({"recipient": "b", "file": {"name": "a.png"}}),
        ],
    )
    async def test_malformed_payload_raises(self, relay, alice, memory_store, raw):
        with pytest.raises(MalformedPayloadError):
            await relay.handle(alice, raw)
        assert memory_store.records == []

    @pytest.mark.asyncio
    async def test_invalid_base64_is_malformed(self, relay, alice, memory_store, blob_store):
        payload = {"recipient": "b", "file": {"name": "a.png", "data": "data:image/png;base64,@@@"}}

        with pytest.raises(MalformedPayloadError):
            await relay.handle(alice, json.dumps(payload))
        assert memory_store.records == []
        assert blob_store.writes == {}


class TestAttachments:

    @pytest.mark.asyncio
    async def test_attachment_is_named_decoded_and_delivered(self, relay, registry, alice, memory_store, blob_store, make_connection):
        bob = make_connection(user_id="b")
        registry.register(bob)
        payload = {"recipient": "b", "file": {"name": "a.png", "data": "data:image/png;base64,AAAA"}}

        result = await relay.handle(alice, json.dumps(payload))
        await relay.drain()

        stored_name = memory_store.records[0].file
        assert stored_name.endswith(".png")
        assert stored_name.split(".")[0].isdigit()
        assert blob_store.writes == {stored_name: b"\x00\x00\x00"}
        delivery = _deliveries(bob.websocket)[0]
        assert delivery["file"] == stored_name
        assert delivery["text"] is None
        assert result.message.file == stored_name

    @pytest.mark.asyncio
    async def test_background_write_does_not_block_delivery(self, relay, registry, alice, blob_store, make_connection):
        bob = make_connection(user_id="b")
        registry.register(bob)
        blob_store.gate = asyncio.Event()
        payload = {"recipient": "b", "text": "pic", "file": {"name": "x.jpg", "data": "AAAA"}}

        result = await relay.handle(alice, json.dumps(payload))

        # Delivered while the bytes are still in flight
        assert result.delivered == 1
        assert blob_store.writes == {}
        assert relay.pending_writes == 1

        blob_store.gate.set()
        assert await relay.drain() == 0
        assert list(blob_store.writes) == [result.message.file]
        assert relay.pending_writes == 0

    @pytest.mark.asyncio
    async def test_background_write_failure_is_counted(self, relay, alice, blob_store, metrics):
        blob_store.fail = True
        payload = {"recipient": "b", "file": {"name": "x.jpg", "data": "AAAA"}}

        result = await relay.handle(alice, json.dumps(payload))
        await relay.drain()
        await asyncio.sleep(0)

        assert result.outcome is RelayOutcome.DELIVERED
        assert metrics.get_snapshot()["relay_attachment_write_failed"] == 1

    @pytest.mark.asyncio
    async def test_awaited_write_happens_before_delivery(self, registry, alice, memory_store, blob_store, make_connection):
        relay = MessageRelay(registry, memory_store, blob_store, await_attachment_write=True)
        bob = make_connection(user_id="b")
        registry.register(bob)
        payload = {"recipient": "b", "file": {"name": "doc.pdf", "data": "AAAA"}}

        result = await relay.handle(alice, json.dumps(payload))

        assert relay.pending_writes == 0
        assert result.message.file in blob_store.writes
        assert _deliveries(bob.websocket)[0]["file"] == result.message.file

    @pytest.mark.asyncio
    async def test_awaited_write_failure_still_delivers(self, registry, alice, memory_store, blob_store, metrics, make_connection):
        relay = MessageRelay(registry, memory_store, blob_store, metrics=metrics, await_attachment_write=True)
        bob = make_connection(user_id="b")
        registry.register(bob)
        blob_store.fail = True

        result = await relay.handle(alice, json.dumps({"recipient": "b", "file": {"name": "a.png", "data": "AAAA"}}))

        assert result.delivered == 1
        assert metrics.get_snapshot()["relay_attachment_write_failed"] == 1

    @pytest.mark.asyncio
    async def test_two_attachments_get_distinct_names(self, relay, alice, memory_store):
        payload = json.dumps({"recipient": "b", "file": {"name": "a.png", "data": "AAAA"}})

        await relay.handle(alice, payload)
        await relay.handle(alice, payload)
        await relay.drain()

        names = [m.file for m in memory_store.records]
        assert len(set(names)) == 2

    @pytest.mark.asyncio
    async def test_drain_cancels_writes_past_timeout(self, relay, alice, blob_store):
        blob_store.gate = asyncio.Event()
        await relay.handle(alice, json.dumps({"recipient": "b", "file": {"name": "a.png", "data": "AAAA"}}))

        assert await relay.drain(timeout=0.01) == 1
        await asyncio.sleep(0.01)

        assert relay.pending_writes == 0
        assert blob_store.writes == {}
