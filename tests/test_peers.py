"""Tests for friend links and the peer book."""
from base64 import b64decode, b64encode

import pytest

from agentlinkd.crypto import Identity
from agentlinkd.errors import ProtocolError
from agentlinkd.mailbox import Mailbox
from agentlinkd.peers import PeerBook, friend_link, parse_friend_link


@pytest.fixture
def book(tmp_path, alice_identity):
    return PeerBook(alice_identity, Mailbox(str(tmp_path / "alice.db")))


class TestLinks:
    def test_roundtrip(self, bob_identity):
        parsed = parse_friend_link(friend_link(bob_identity, "Bob the Builder"))
        assert parsed["peer_id"] == bob_identity.peer_id
        assert parsed["display_name"] == "Bob the Builder"
        assert parsed["exchange_public_key"] == bob_identity.exchange_pubkey_b64

    def test_link_without_exchange_key(self, bob_identity):
        parsed = parse_friend_link(f"agentlink://add?key=ed25519:{bob_identity.peer_id}&name=Bob")
        assert parsed["exchange_public_key"] is None

    @pytest.mark.parametrize("link", [
        "https://add?key=ed25519:" + "ab" * 32,
        "agentlink://add?name=Bob",
        "agentlink://add?key=ed25519:nothex",
        "agentlink://add?key=ed25519:abcd",
    ])
    def test_invalid_links(self, link):
        with pytest.raises(ProtocolError):
            parse_friend_link(link)


class TestPeerBook:
    def test_both_sides_derive_same_secret(self, tmp_path, alice_identity, bob_identity, book):
        bob_book = PeerBook(bob_identity, Mailbox(str(tmp_path / "bob.db")))
        bob_as_seen_by_alice = book.add_from_link(friend_link(bob_identity, "Bob"))
        alice_as_seen_by_bob = bob_book.add_from_link(friend_link(alice_identity, "Alice"))
        assert bob_as_seen_by_alice.shared_secret == alice_as_seen_by_bob.shared_secret
        assert len(b64decode(bob_as_seen_by_alice.shared_secret)) == 32

    def test_secret_persisted_once(self, book, bob_identity):
        first = book.add_from_link(friend_link(bob_identity, "Bob"))
        again = book.add_from_link(friend_link(bob_identity, "Bobby"))
        assert again.shared_secret == first.shared_secret
        assert again.display_name == "Bob"
        assert len(book.all()) == 1

    def test_resolve_by_id_or_name(self, book, bob_identity):
        book.add_from_link(friend_link(bob_identity, "Bob"))
        assert book.resolve(bob_identity.peer_id).display_name == "Bob"
        assert book.resolve(bob_identity.peer_id.upper()).display_name == "Bob"
        assert book.resolve("bob").peer_id == bob_identity.peer_id
        assert book.resolve("nobody") is None

    def test_cannot_add_self(self, book, alice_identity):
        with pytest.raises(ProtocolError):
            book.add_from_link(friend_link(alice_identity, "Me"))

    def test_short_exchange_key_rejected(self, book, bob_identity):
        short = b64encode(b"short").decode()
        with pytest.raises(ProtocolError):
            book.add_from_link(f"agentlink://add?key=ed25519:{bob_identity.peer_id}&name=Bob&x25519={short}")
        assert book.all() == []

    def test_signing_key_only_link(self, book):
        carol = Identity.generate()
        peer = book.add_from_link(f"agentlink://add?key=ed25519:{carol.peer_id}&name=Carol")
        assert len(PeerBook.secret_for(peer)) == 32
