"""Tests for the AgentLinkClient SDK against a mocked node."""
import json

import httpx
import pytest

from agentlink import AgentLinkClient


@pytest.fixture
def calls():
    return []


@pytest.fixture
def client(calls):
    def handler(request):
        body = json.loads(request.content) if request.content else None
        calls.append((request.method, request.url.path, body))
        path = request.url.path
        if path == "/v0/link":
            return httpx.Response(200, json={"link": "agentlink://add?key=ed25519:ab"})
        if path == "/v0/peers" and request.method == "GET":
            return httpx.Response(200, json=[{"peer_id": "ab", "display_name": "Bob"}])
        if path == "/v0/send":
            return httpx.Response(200, json={"status": "ok", "msg_id": "m1", "conversation_id": "c1"})
        if path == "/v0/tasks/handlers":
            return httpx.Response(200, json={"handlers": ["echo"]})
        if path == "/v0/conversations/missing":
            return httpx.Response(404, json={"detail": "Conversation not found"})
        return httpx.Response(200, json={"status": "ok"})

    return AgentLinkClient("http://node.test/", transport=httpx.MockTransport(handler))


def test_link(client):
    assert client.link() == "agentlink://add?key=ed25519:ab"


def test_peers(client):
    assert client.peers()[0]["display_name"] == "Bob"


def test_add_peer(client, calls):
    client.add_peer("agentlink://add?key=ed25519:cd")
    assert calls == [("POST", "/v0/peers", {"link": "agentlink://add?key=ed25519:cd"})]


def test_send(client, calls):
    assert client.send("Bob", "Hello!", ttl=5)["msg_id"] == "m1"
    assert calls[0][2] == {"to": "Bob", "text": "Hello!", "expect_reply": True, "ttl": 5}


def test_auto_and_reset(client, calls):
    client.auto()
    client.reset_conversation("ab")
    assert [(method, path) for method, path, _ in calls] == [
        ("POST", "/v0/auto"),
        ("DELETE", "/v0/conversations/ab"),
    ]


def test_task_handlers(client):
    assert client.task_handlers() == ["echo"]


def test_http_errors_raise(client):
    with pytest.raises(httpx.HTTPStatusError):
        client.conversation("missing")


def test_send_task(client, calls):
    client.send_task("Bob", "add", {"a": 1, "b": 2}, timeout=5)
    assert calls == [("POST", "/v0/tasks",
                      {"to": "Bob", "task": "add", "params": {"a": 1, "b": 2}, "timeout": 5, "wait": True})]


def test_send_task_without_waiting(client, calls):
    client.send_task("Bob", "add", wait=False)
    assert calls[0][2]["params"] == {}
    assert calls[0][2]["wait"] is False


def test_send_control(client, calls):
    client.send_control("Bob", "end_session", {"reason": "done"})
    assert calls == [("POST", "/v0/control",
                      {"to": "Bob", "signal": "end_session", "data": {"reason": "done"}})]
