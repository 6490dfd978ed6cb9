"""Loop guard: decide whether an inbound message deserves an automatic reply.

Checks run in a fixed order and the first match wins. Structural and safety
checks (message type, session state, ttl, turn budget, cooldown, repetition)
always run before any content heuristic gets a say.

The guard does no I/O and never mutates conversation state; the verdict
flags tell the caller which control messages to send and whether to end
the conversation.
"""

import logging
from typing import Callable, Optional

from .config import GuardConfig
from .conversation import digest_text
from .intent import IntentClassifier, KeywordIntentClassifier
from .models import (
    ControlBody,
    ControlSignal,
    Conversation,
    Envelope,
    Intent,
    MessageType,
    Reason,
    TaskRequestBody,
    Verdict,
    now_ms,
)

logger = logging.getLogger(__name__)

NO_ACTION_INTENTS = {Intent.CONFIRMATION, Intent.NOISE}


class LoopGuard:
    def __init__(self, config: Optional[GuardConfig] = None,
                 classifier: Optional[IntentClassifier] = None,
                 clock: Callable[[], int] = now_ms):
        self.config = config or GuardConfig()
        self.classifier = classifier or KeywordIntentClassifier()
        self.clock = clock

    def decide(self, envelope: Envelope, conversation: Conversation,
               now: Optional[int] = None) -> Verdict:
        verdict = self._decide(envelope, conversation, self.clock() if now is None else now)
        logger.debug(f"{envelope.id}: reply={verdict.reply} reason={verdict.reason.value}")
        return verdict

    def _decide(self, envelope: Envelope, conversation: Conversation, now: int) -> Verdict:
        cfg = self.config

        if envelope.type == MessageType.ACK:
            return Verdict(reply=False, reason=Reason.ACK_MESSAGE)

        if envelope.type == MessageType.CONTROL:
            signal = envelope.body.signal if isinstance(envelope.body, ControlBody) else None
            if signal == ControlSignal.END_SESSION.value:
                return Verdict(reply=False, reason=Reason.SESSION_ENDED, end_conversation=True)
            if signal == ControlSignal.LOOP_DETECTED.value:
                return Verdict(reply=False, reason=Reason.LOOP_DETECTED_BY_PEER)
            return Verdict(reply=False, reason=Reason.CONTROL_MESSAGE)

        if not conversation.active:
            return Verdict(reply=False, reason=Reason.CONVERSATION_INACTIVE)

        if envelope.ttl is not None and envelope.ttl <= 0:
            return Verdict(reply=False, reason=Reason.TTL_EXPIRED)

        # A task request always gets a response, even while cooling down
        if isinstance(envelope.body, TaskRequestBody):
            return Verdict(reply=True, reason=Reason.TASK_REQUEST, intent=Intent.ACTION_REQUEST)

        if envelope.expect_reply is False:
            return Verdict(reply=False, reason=Reason.NO_REPLY_EXPECTED)

        if conversation.turn >= cfg.max_turns:
            return Verdict(reply=False, reason=Reason.MAX_TURNS_REACHED, send_end_session=True)

        # Wall-clock based; skewed or edited timestamps are not corrected for.
        elapsed = now - conversation.last_message_time_ms
        if elapsed < cfg.cooldown_ms:
            return Verdict(reply=False, reason=Reason.COOLDOWN, wait_ms=cfg.cooldown_ms - elapsed)

        text = envelope.text
        if text is not None:
            digest = digest_text(text)
            recent = conversation.message_digests[-cfg.similarity_window:]
            if recent.count(digest) >= cfg.similarity_threshold:
                return Verdict(reply=False, reason=Reason.LOOP_DETECTED, send_loop_signal=True)

        intent = self.classifier.classify(text) if text is not None else Intent.INFORMATION
        if intent in NO_ACTION_INTENTS:
            return Verdict(reply=False, reason=Reason.NO_ACTION_NEEDED, intent=intent, send_ack=True)

        return Verdict(reply=True, reason=Reason.REPLY_WARRANTED, intent=intent)
