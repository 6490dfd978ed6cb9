"""Adding peers from friend links.

A friend link carries the peer's signing key and, usually, its X25519
exchange key. The shared secret is derived once, here, and persisted;
it is never re-derived per message.

    agentlink://add?key=ed25519:<hex>&name=<name>&x25519=<base64>
"""

import binascii
import logging
from base64 import b64decode, b64encode
from typing import Optional
from urllib.parse import parse_qs, quote, urlsplit

from nacl.public import PublicKey

from .crypto import Identity, exchange_key_from_verify_key
from .errors import ProtocolError
from .mailbox import Mailbox
from .models import PeerInfo

logger = logging.getLogger(__name__)

LINK_SCHEME = "agentlink"


def friend_link(identity: Identity, display_name: str) -> str:
    return (
        f"{LINK_SCHEME}://add?key=ed25519:{identity.peer_id}"
        f"&name={quote(display_name)}&x25519={quote(identity.exchange_pubkey_b64)}"
    )


def parse_friend_link(link: str) -> dict:
    """Returns {peer_id, display_name, exchange_public_key (or None)}."""
    parts = urlsplit(link)
    if parts.scheme != LINK_SCHEME:
        raise ProtocolError(f"Not an {LINK_SCHEME} link: {link[:40]}")
    params = parse_qs(parts.query)

    key = params.get("key", [""])[0]
    if key.startswith("ed25519:"):
        key = key[len("ed25519:"):]
    if not key:
        raise ProtocolError("No public key in link")
    try:
        if len(bytes.fromhex(key)) != 32:
            raise ProtocolError("Public key must be 32 bytes")
    except ValueError as e:
        raise ProtocolError(f"Public key is not hex: {e}") from e

    return {
        "peer_id": key.lower(),
        "display_name": params.get("name", ["Unknown"])[0],
        "exchange_public_key": params.get("x25519", [None])[0],
    }


class PeerBook:
    """Known peers and their pairwise shared secrets."""

    def __init__(self, identity: Identity, mailbox: Mailbox):
        self.identity = identity
        self.mailbox = mailbox

    def add_from_link(self, link: str) -> PeerInfo:
        parsed = parse_friend_link(link)
        if parsed["peer_id"] == self.identity.peer_id:
            raise ProtocolError("Cannot add yourself as a peer")

        existing = self.mailbox.get_peer(parsed["peer_id"])
        if existing:
            logger.info(f"Already connected to {existing.display_name}")
            return existing

        if parsed["exchange_public_key"]:
            try:
                exchange_public = b64decode(parsed["exchange_public_key"], validate=True)
            except binascii.Error as e:
                raise ProtocolError(f"Malformed x25519 key in link: {e}") from e
            if len(exchange_public) != PublicKey.SIZE:
                raise ProtocolError(f"x25519 key must be {PublicKey.SIZE} bytes, got {len(exchange_public)}")
        else:
            # Older links only carry the signing key
            exchange_public = exchange_key_from_verify_key(parsed["peer_id"])

        shared = self.identity.shared_secret_with(exchange_public)
        peer = PeerInfo(
            peer_id=parsed["peer_id"],
            display_name=parsed["display_name"],
            exchange_public_key=b64encode(exchange_public).decode(),
            shared_secret=b64encode(shared).decode(),
        )
        self.mailbox.upsert_peer(peer)
        logger.info(f"Added peer {peer.display_name} ({peer.peer_id[:16]})")
        return peer

    def get(self, peer_id: str) -> Optional[PeerInfo]:
        return self.mailbox.get_peer(peer_id)

    def resolve(self, name_or_id: str) -> Optional[PeerInfo]:
        """Look a peer up by id first, then by display name."""
        return self.mailbox.get_peer(name_or_id.lower()) or self.mailbox.get_peer_by_name(name_or_id)

    def all(self) -> list[PeerInfo]:
        return self.mailbox.get_peers()

    @staticmethod
    def secret_for(peer: PeerInfo) -> bytes:
        return b64decode(peer.shared_secret)
