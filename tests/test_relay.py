"""Tests for the HTTP relay client and the in-memory relay."""
import asyncio

import httpx
import pytest

from agentlinkd.crypto import seal_record, verify
from agentlinkd.errors import RelayError
from agentlinkd.models import CiphertextRecord
from agentlinkd.relay import MemoryRelay, RelayClient

RELAY = "http://relay.test/"


def record(alice_identity, bob_identity):
    secret = alice_identity.shared_secret_with(bytes(bob_identity.exchange_public))
    return seal_record({"hello": "bob"}, secret, alice_identity, recipient=bob_identity.peer_id)


class TestSend:
    def test_posts_record(self, alice_identity, bob_identity):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = request.read()
            return httpx.Response(200, json={"status": "stored", "id": "r1"})

        client = RelayClient(RELAY, alice_identity, transport=httpx.MockTransport(handler))
        rec = record(alice_identity, bob_identity)
        ack = asyncio.run(client.send(rec))

        assert ack == {"status": "stored", "id": "r1"}
        assert seen["url"] == "http://relay.test/send"
        assert CiphertextRecord.model_validate_json(seen["body"]) == rec

    def test_server_error(self, alice_identity, bob_identity):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="nope"))
        client = RelayClient(RELAY, alice_identity, transport=transport)
        with pytest.raises(RelayError, match="500"):
            asyncio.run(client.send(record(alice_identity, bob_identity)))

    def test_unreachable(self, alice_identity, bob_identity):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = RelayClient(RELAY, alice_identity, transport=httpx.MockTransport(handler))
        with pytest.raises(RelayError, match="Could not reach relay"):
            asyncio.run(client.send(record(alice_identity, bob_identity)))


class TestPoll:
    def test_signed_poll(self, alice_identity, bob_identity):
        rec = record(alice_identity, bob_identity)
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, json={"messages": [rec.model_dump(), {"nonce": "only"}]})

        client = RelayClient(RELAY, bob_identity, transport=httpx.MockTransport(handler))
        records = asyncio.run(client.poll())

        assert records == [rec]
        assert seen["x-agentlink-key"] == f"ed25519:{bob_identity.peer_id}"
        payload = f"poll:{bob_identity.peer_id}:{seen['x-agentlink-timestamp']}"
        assert verify(payload, seen["x-agentlink-signature"], bob_identity.peer_id)

    def test_empty_mailbox(self, bob_identity):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        client = RelayClient(RELAY, bob_identity, transport=transport)
        assert asyncio.run(client.poll()) == []

    def test_rejected_poll(self, bob_identity):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"detail": "bad sig"}))
        client = RelayClient(RELAY, bob_identity, transport=transport)
        with pytest.raises(RelayError, match="401"):
            asyncio.run(client.poll())

    def test_invalid_json(self, bob_identity):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        client = RelayClient(RELAY, bob_identity, transport=transport)
        with pytest.raises(RelayError, match="invalid JSON"):
            asyncio.run(client.poll())


class TestMemoryRelay:
    def test_delivers_to_recipient_only(self, alice_identity, bob_identity):
        relay = MemoryRelay()
        alice, bob = relay.client_for(alice_identity), relay.client_for(bob_identity)
        rec = record(alice_identity, bob_identity)

        async def main():
            await alice.send(rec)
            return await alice.poll(), await bob.poll(), await bob.poll()

        for_alice, first, second = asyncio.run(main())
        assert for_alice == []
        assert first == [rec]
        assert second == []
