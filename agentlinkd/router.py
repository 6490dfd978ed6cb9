"""Message routing: seal and send outbound messages, open and police inbound ones.

Inbound pipeline, per record:
  verify + decrypt -> parse envelope -> snapshot + record_received
  -> loop guard -> reply / ack / control signals

Records from the same peer are handled under that peer's lock, in arrival
order. A failure on one record never stops the rest of the batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from pydantic import BaseModel

from .config import GuardConfig, NodeConfig
from .conversation import ConversationStore
from .crypto import Identity, open_record, seal_record
from .envelope import build_ack, build_control, build_message, parse_envelope
from .errors import AgentLinkError, CryptoError, ProtocolError
from .guard import LoopGuard
from .models import (
    CiphertextRecord,
    ControlSignal,
    Conversation,
    Envelope,
    MessageType,
    PeerInfo,
    TaskRequestBody,
    TaskResponseBody,
    TextBody,
    Verdict,
)
from .peers import PeerBook
from .relay import RelayTransport
from .replies import generate_reply
from .tasks import TaskManager

logger = logging.getLogger(__name__)


@dataclass
class InboundOutcome:
    peer_id: str
    envelope: Envelope
    verdict: Verdict
    sent: list[Envelope] = field(default_factory=list)


@dataclass
class BatchResult:
    received: list[dict] = field(default_factory=list)
    replied: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def summary(self) -> dict:
        counts = {
            "received": len(self.received),
            "replied": len(self.replied),
            "skipped": len(self.skipped),
            "errors": len(self.errors),
        }
        if self.received or self.errors:
            counts["details"] = {
                "received": self.received,
                "replied": self.replied,
                "skipped": self.skipped,
                "errors": self.errors,
            }
        return counts


class Router:
    def __init__(self, identity: Identity, peers: PeerBook, store: ConversationStore,
                 relay: RelayTransport, guard: Optional[LoopGuard] = None,
                 tasks: Optional[TaskManager] = None,
                 config: Optional[NodeConfig] = None,
                 guard_config: Optional[GuardConfig] = None):
        self.identity = identity
        self.peers = peers
        self.store = store
        self.relay = relay
        self.guard_config = guard_config or store.config
        self.guard = guard or LoopGuard(self.guard_config, clock=store.clock)
        self.tasks = tasks or TaskManager()
        self.config = config or NodeConfig()

    # --- Outbound ---

    def _require_peer(self, name_or_id: str) -> PeerInfo:
        peer = self.peers.resolve(name_or_id)
        if peer is None:
            raise ProtocolError(f"Unknown peer: {name_or_id}")
        return peer

    async def _dispatch(self, peer: PeerInfo, envelope: Envelope):
        record = seal_record(envelope.to_wire(), PeerBook.secret_for(peer), self.identity,
                             recipient=peer.peer_id)
        await self.relay.send(record)
        logger.info(f"Sent {envelope.type.value} {envelope.id} to {peer.display_name}")

    async def _send_body(self, peer: PeerInfo, body: Union[BaseModel, str],
                         expect_reply: bool = True, ttl: Optional[int] = None,
                         in_reply_to: Optional[str] = None) -> Envelope:
        """Send a MSG envelope and record it as our turn. Caller holds the peer lock."""
        conv = self.store.get_or_create(peer.peer_id)
        envelope = build_message(
            conversation_id=conv.id,
            to=peer.peer_id,
            type=MessageType.MSG,
            body=body,
            expect_reply=expect_reply,
            ttl=self.guard_config.default_ttl if ttl is None else ttl,
            in_reply_to=in_reply_to,
        )
        await self._dispatch(peer, envelope)
        self.store.record_sent(peer.peer_id, envelope)
        return envelope

    async def send_text(self, to: str, text: str, expect_reply: bool = True,
                        ttl: Optional[int] = None) -> Envelope:
        peer = self._require_peer(to)
        async with self.store.lock(peer.peer_id):
            return await self._send_body(peer, TextBody(text=text), expect_reply, ttl)

    async def send_control(self, to: str, signal: ControlSignal, data: Optional[dict] = None) -> Envelope:
        peer = self._require_peer(to)
        conv = self.store.get_or_create(peer.peer_id)
        envelope = build_control(conv.id, peer.peer_id, signal, data)
        await self._dispatch(peer, envelope)
        if envelope.body.signal == ControlSignal.END_SESSION.value:
            self.store.end(peer.peer_id)
        return envelope

    async def send_task(self, to: str, task: str, params: Optional[dict] = None,
                        timeout: float = 30.0, wait: bool = True) -> Union[TaskResponseBody, TaskRequestBody]:
        """Send a task request; with wait=True, block until the response or timeout."""
        peer = self._require_peer(to)
        request = self.tasks.build_request(task, params, timeout)
        if wait:
            self.tasks.expect(request.task_id)
        try:
            async with self.store.lock(peer.peer_id):
                await self._send_body(peer, request)
        except AgentLinkError:
            self.tasks.discard(request.task_id)
            raise
        if not wait:
            return request
        return await self.tasks.wait_for_response(request.task_id, timeout)

    # --- Inbound ---

    async def receive(self, record: CiphertextRecord) -> InboundOutcome:
        """Open one record and act on the guard's verdict.

        Raises CryptoError or ProtocolError before any state is touched.
        """
        peer = self.peers.get(record.sender)
        if peer is None:
            raise CryptoError(f"Unknown sender {record.sender[:16]}")
        plaintext = open_record(record, PeerBook.secret_for(peer), peer.peer_id)
        envelope = parse_envelope(plaintext)

        async with self.store.lock(peer.peer_id):
            snapshot = self.store.snapshot(peer.peer_id)
            self.store.record_received(peer.peer_id, envelope)
            verdict = self.guard.decide(envelope, snapshot)

            if isinstance(envelope.body, TaskResponseBody):
                self.tasks.resolve(envelope.body)

            outcome = InboundOutcome(peer_id=peer.peer_id, envelope=envelope, verdict=verdict)
            await self._act(peer, envelope, verdict, snapshot, outcome)
        return outcome

    async def _act(self, peer: PeerInfo, envelope: Envelope, verdict: Verdict,
                   snapshot: Conversation, outcome: InboundOutcome):
        if verdict.end_conversation:
            self.store.end(peer.peer_id)

        if verdict.reply:
            if isinstance(envelope.body, TaskRequestBody):
                response = await self.tasks.handle_request(envelope.body)
                sent = await self._send_body(peer, response, expect_reply=False,
                                             in_reply_to=envelope.id)
            else:
                draft = generate_reply(verdict.intent, envelope.text, peer.display_name,
                                       self.config.display_name, self.config.owner_name)
                sent = await self._send_body(peer, TextBody(text=draft.text), draft.expect_reply,
                                             draft.ttl, in_reply_to=envelope.id)
            outcome.sent.append(sent)
            return

        if verdict.send_ack:
            ack = build_ack(envelope, to=peer.peer_id)
            await self._dispatch(peer, ack)
            outcome.sent.append(ack)

        if verdict.send_end_session or verdict.send_loop_signal:
            signal = ControlSignal.END_SESSION if verdict.send_end_session else ControlSignal.LOOP_DETECTED
            control = build_control(snapshot.id, peer.peer_id, signal, {"reason": verdict.reason.value})
            await self._dispatch(peer, control)
            outcome.sent.append(control)
            self.store.end(peer.peer_id)

    async def process_batch(self, records: list[CiphertextRecord]) -> BatchResult:
        """Handle records one at a time, in arrival order."""
        result = BatchResult()
        for record in records:
            try:
                outcome = await self.receive(record)
            except (CryptoError, ProtocolError) as e:
                logger.warning(f"Dropped record from {record.sender[:16]}: {e}")
                result.errors.append({"from": record.sender, "error": str(e)})
                continue
            except AgentLinkError as e:
                logger.error(f"Failed to process record from {record.sender[:16]}: {e}")
                result.errors.append({"from": record.sender, "error": str(e)})
                continue
            except Exception as e:
                logger.error(f"Unexpected error on record from {record.sender[:16]}: {e!r}")
                result.errors.append({"from": record.sender, "error": f"{type(e).__name__}: {e}"})
                continue

            env, verdict = outcome.envelope, outcome.verdict
            result.received.append({"from": outcome.peer_id, "id": env.id,
                                    "type": env.type.value, "text": env.text})
            if verdict.reply:
                for sent in outcome.sent:
                    result.replied.append({"to": outcome.peer_id, "id": sent.id,
                                           "intent": verdict.intent.value if verdict.intent else None,
                                           "expect_reply": sent.expect_reply})
            else:
                result.skipped.append({"from": outcome.peer_id, "id": env.id,
                                       "reason": verdict.reason.value,
                                       "intent": verdict.intent.value if verdict.intent else None})
        return result

    async def pull_from_relay(self) -> BatchResult:
        records = await self.relay.poll()
        return await self.process_batch(records)
