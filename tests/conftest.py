"""Shared fixtures: a controllable clock and pairs of connected nodes."""

import pytest

from agentlinkd.config import GuardConfig, NodeConfig
from agentlinkd.conversation import ConversationStore
from agentlinkd.crypto import Identity
from agentlinkd.mailbox import Mailbox
from agentlinkd.peers import PeerBook, friend_link
from agentlinkd.relay import MemoryRelay
from agentlinkd.router import Router


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def alice_identity():
    return Identity.generate()


@pytest.fixture
def bob_identity():
    return Identity.generate()


def make_node(tmp_path, name: str, identity: Identity, relay: MemoryRelay, clock) -> Router:
    mailbox = Mailbox(str(tmp_path / f"{name}.db"))
    store = ConversationStore(persistence=mailbox, config=GuardConfig(), clock=clock)
    config = NodeConfig(node_name=name.lower(), display_name=name, data_dir=str(tmp_path))
    return Router(identity, PeerBook(identity, mailbox), store, relay.client_for(identity),
                  config=config)


@pytest.fixture
def relay():
    return MemoryRelay()


@pytest.fixture
def nodes(tmp_path, alice_identity, bob_identity, relay, clock):
    """Alice and Bob, each holding the other's friend link."""
    alice = make_node(tmp_path, "Alice", alice_identity, relay, clock)
    bob = make_node(tmp_path, "Bob", bob_identity, relay, clock)
    alice.peers.add_from_link(friend_link(bob_identity, "Bob"))
    bob.peers.add_from_link(friend_link(alice_identity, "Alice"))
    return alice, bob
