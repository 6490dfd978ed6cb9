"""Tests for the SQLite peer and conversation store."""
import pytest

from agentlinkd.errors import StateError
from agentlinkd.mailbox import Mailbox
from agentlinkd.models import Conversation, PeerInfo


@pytest.fixture
def mailbox(tmp_path):
    return Mailbox(str(tmp_path / "mailbox.db"))


def peer(peer_id="ab" * 32, name="Bob"):
    return PeerInfo(peer_id=peer_id, display_name=name,
                    exchange_public_key="cHVi", shared_secret="c2VjcmV0")


class TestPeers:
    def test_upsert_and_get(self, mailbox):
        mailbox.upsert_peer(peer())
        got = mailbox.get_peer("ab" * 32)
        assert got.display_name == "Bob"
        assert got.shared_secret == "c2VjcmV0"
        assert got.status == "connected"

    def test_lookup_by_name_ignores_case(self, mailbox):
        mailbox.upsert_peer(peer())
        assert mailbox.get_peer_by_name("bob").peer_id == "ab" * 32
        assert mailbox.get_peer_by_name("carol") is None

    def test_upsert_replaces(self, mailbox):
        mailbox.upsert_peer(peer())
        mailbox.upsert_peer(peer(name="Robert"))
        assert [p.display_name for p in mailbox.get_peers()] == ["Robert"]

    def test_missing_peer(self, mailbox):
        assert mailbox.get_peer("00" * 32) is None


class TestConversations:
    def test_save_load(self, mailbox):
        conv = Conversation(peer_id="ab" * 32, turn=4, message_digests=["deadbeef"], active=False)
        mailbox.save_conversation(conv.peer_id, conv)
        assert mailbox.load_conversation(conv.peer_id) == conv

    def test_save_overwrites(self, mailbox):
        conv = Conversation(peer_id="ab" * 32)
        mailbox.save_conversation(conv.peer_id, conv)
        conv.turn = 7
        mailbox.save_conversation(conv.peer_id, conv)
        assert mailbox.load_conversation(conv.peer_id).turn == 7

    def test_delete(self, mailbox):
        conv = Conversation(peer_id="ab" * 32)
        mailbox.save_conversation(conv.peer_id, conv)
        mailbox.delete_conversation(conv.peer_id)
        assert mailbox.load_conversation(conv.peer_id) is None


class TestFailures:
    def test_closed_store_raises_state_error(self, mailbox):
        mailbox.close()
        with pytest.raises(StateError):
            mailbox.get_peers()
        with pytest.raises(StateError):
            mailbox.save_conversation("ab" * 32, Conversation(peer_id="ab" * 32))

    def test_unopenable_path(self, tmp_path):
        with pytest.raises(StateError):
            Mailbox(str(tmp_path / "missing-dir" / "mailbox.db"))
