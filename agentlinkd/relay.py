"""Relay client: deposit sealed records and poll for ours.

The relay only ever sees ciphertext records. Polling is authenticated by
signing "poll:<peer_id>:<timestamp>" with the node's signing key.
"""

import logging
import time
from typing import Optional, Protocol

import httpx
from pydantic import ValidationError

from .crypto import Identity
from .errors import RelayError
from .models import CiphertextRecord

logger = logging.getLogger(__name__)


class RelayTransport(Protocol):
    async def send(self, record: CiphertextRecord) -> dict: ...

    async def poll(self) -> list[CiphertextRecord]: ...


class RelayClient:
    def __init__(self, relay_url: str, identity: Identity, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.relay_url = relay_url.rstrip("/")
        self.identity = identity
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _auth_headers(self) -> dict:
        timestamp = str(int(time.time()))
        signature = self.identity.sign(f"poll:{self.identity.peer_id}:{timestamp}")
        return {
            "X-AgentLink-Key": f"ed25519:{self.identity.peer_id}",
            "X-AgentLink-Timestamp": timestamp,
            "X-AgentLink-Signature": signature,
        }

    async def send(self, record: CiphertextRecord) -> dict:
        """Deposit a record for its recipient. Returns the relay's ack."""
        url = f"{self.relay_url}/send"
        try:
            async with self._client() as client:
                resp = await client.post(url, json=record.model_dump())
        except httpx.HTTPError as e:
            raise RelayError(f"Could not reach relay: {e}") from e
        if resp.status_code != 200:
            raise RelayError(f"Relay send failed: {resp.status_code} {resp.text}")
        logger.info(f"Deposited record for {record.recipient[:16]}")
        return _json(resp)

    async def poll(self) -> list[CiphertextRecord]:
        """Fetch records waiting for this node, oldest first."""
        url = f"{self.relay_url}/messages"
        try:
            async with self._client() as client:
                resp = await client.get(url, headers=self._auth_headers())
        except httpx.HTTPError as e:
            raise RelayError(f"Could not reach relay: {e}") from e
        if resp.status_code != 200:
            raise RelayError(f"Relay poll failed: {resp.status_code} {resp.text}")

        records = []
        for item in _json(resp).get("messages", []):
            try:
                records.append(CiphertextRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed relay record: {e.error_count()} error(s)")
        if records:
            logger.info(f"Pulled {len(records)} records from relay")
        return records


def _json(resp: httpx.Response) -> dict:
    try:
        return resp.json()
    except ValueError as e:
        raise RelayError(f"Relay returned invalid JSON: {e}") from e


class MemoryRelay:
    """In-process relay with the same send/poll contract, keyed by recipient."""

    def __init__(self):
        self._queues: dict[str, list[CiphertextRecord]] = {}

    def client_for(self, identity: Identity) -> "MemoryRelayClient":
        return MemoryRelayClient(self, identity)


class MemoryRelayClient:
    def __init__(self, relay: MemoryRelay, identity: Identity):
        self.relay = relay
        self.identity = identity

    async def send(self, record: CiphertextRecord) -> dict:
        self.relay._queues.setdefault(record.recipient, []).append(record)
        return {"status": "ok"}

    async def poll(self) -> list[CiphertextRecord]:
        return self.relay._queues.pop(self.identity.peer_id, [])
