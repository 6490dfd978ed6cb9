"""Per-peer conversation state.

Unseen -> Active -> Ended. A conversation is created lazily on first
access and stays ended until it is explicitly reset.
"""

import asyncio
import hashlib
import logging
import re
from typing import Callable, Optional, Protocol

from .config import GuardConfig
from .models import Conversation, Envelope, Speaker, now_ms

logger = logging.getLogger(__name__)

_PUNCT = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    return _SPACES.sub(" ", _PUNCT.sub("", text.lower())).strip()


def digest_text(text: str) -> str:
    return hashlib.md5(normalize_text(text).encode()).hexdigest()[:8]


class ConversationPersistence(Protocol):
    def load_conversation(self, peer_id: str) -> Optional[Conversation]: ...

    def save_conversation(self, peer_id: str, conversation: Conversation) -> None: ...

    def delete_conversation(self, peer_id: str) -> None: ...


class ConversationStore:
    """Explicit mapping of peer id to Conversation.

    Writes go through to the persistence layer when one is supplied.
    Callers serialize access per peer with lock(peer_id).
    """

    def __init__(self, persistence: Optional[ConversationPersistence] = None,
                 config: Optional[GuardConfig] = None,
                 clock: Callable[[], int] = now_ms):
        self.persistence = persistence
        self.config = config or GuardConfig()
        self.clock = clock
        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, peer_id: str) -> asyncio.Lock:
        if peer_id not in self._locks:
            self._locks[peer_id] = asyncio.Lock()
        return self._locks[peer_id]

    def get(self, peer_id: str) -> Optional[Conversation]:
        conv = self._conversations.get(peer_id)
        if conv is None and self.persistence is not None:
            conv = self.persistence.load_conversation(peer_id)
            if conv is not None:
                self._conversations[peer_id] = conv
        return conv

    def get_or_create(self, peer_id: str) -> Conversation:
        conv = self.get(peer_id)
        if conv is None:
            conv = Conversation(peer_id=peer_id, created_at_ms=self.clock())
            self._conversations[peer_id] = conv
            self._save(conv)
            logger.debug(f"Started conversation {conv.id} with {peer_id[:16]}")
        return conv

    def snapshot(self, peer_id: str) -> Conversation:
        """A copy the guard can read without seeing later updates."""
        return self.get_or_create(peer_id).model_copy(deep=True)

    def record_sent(self, peer_id: str, envelope: Envelope) -> Conversation:
        return self._record(peer_id, envelope, Speaker.SELF)

    def record_received(self, peer_id: str, envelope: Envelope) -> Conversation:
        return self._record(peer_id, envelope, Speaker.PEER)

    def _record(self, peer_id: str, envelope: Envelope, speaker: Speaker) -> Conversation:
        conv = self.get_or_create(peer_id)
        conv.turn += 1
        conv.last_speaker = speaker
        conv.last_message_time_ms = self.clock()
        if envelope.text is not None:
            digests = conv.message_digests + [digest_text(envelope.text)]
            conv.message_digests = digests[-self.config.digest_window:]
        self._save(conv)
        return conv

    def end(self, peer_id: str) -> Conversation:
        conv = self.get_or_create(peer_id)
        if conv.active:
            conv.active = False
            self._save(conv)
            logger.info(f"Ended conversation {conv.id} with {peer_id[:16]}")
        return conv

    def reset(self, peer_id: str):
        """Discard the conversation; the next access starts a fresh one."""
        self._conversations.pop(peer_id, None)
        if self.persistence is not None:
            self.persistence.delete_conversation(peer_id)
        logger.info(f"Reset conversation with {peer_id[:16]}")

    def _save(self, conv: Conversation):
        if self.persistence is not None:
            self.persistence.save_conversation(conv.peer_id, conv)
