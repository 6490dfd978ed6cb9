"""AgentLink Client SDK, for agents and scripts to talk to a running node.

Usage:
    from agentlink import AgentLinkClient

    # Connect to a running AgentLink node
    client = AgentLinkClient("http://localhost:7450")

    # Share your friend link, add someone else's
    print(client.link())
    client.add_peer("agentlink://add?key=ed25519:...&name=Bob&x25519=...")

    # Send a message to a peer (by display name or peer id)
    client.send("Bob", "Hello!")

    # Pull from the relay and let the loop guard decide what to answer
    summary = client.auto()
    print(summary["replied"], summary["skipped"])

    # Inspect or reset a conversation
    conv = client.conversation(peer_id)
    client.reset_conversation(peer_id)
"""

from typing import Optional

import httpx


class AgentLinkClient:
    """Client for interacting with a running AgentLink daemon."""

    def __init__(self, base_url: str = "http://localhost:7450", timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        """Connect to an AgentLink node.

        Args:
            base_url: URL of the running AgentLink daemon
            timeout: Request timeout in seconds
            transport: Optional httpx transport (for testing)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _request(self, method: str, path: str, **kwargs) -> dict | list:
        with httpx.Client(timeout=self.timeout, transport=self._transport) as c:
            resp = c.request(method, f"{self.base_url}{path}", **kwargs)
            resp.raise_for_status()
            return resp.json()

    def _get(self, path: str, params: dict = None) -> dict | list:
        return self._request("GET", path, params=params)

    def _post(self, path: str, data: dict = None) -> dict:
        return self._request("POST", path, json=data)

    # --- Identity & Peers ---

    def identity(self) -> dict:
        """Get this node's identity (peer id, names, friend link)."""
        return self._get("/v0/identity")

    def link(self) -> str:
        """Get this node's friend link."""
        return self._get("/v0/link")["link"]

    def peers(self) -> list[dict]:
        """List known peers (shared secrets are never returned)."""
        return self._get("/v0/peers")

    def add_peer(self, link: str) -> dict:
        """Add a peer from their friend link."""
        return self._post("/v0/peers", {"link": link})

    # --- Messages ---

    def send(self, to: str, text: str, expect_reply: bool = True, ttl: Optional[int] = None) -> dict:
        """Send a text message to a peer.

        Args:
            to: Peer display name or peer id
            text: Message text
            expect_reply: Whether the peer should answer
            ttl: Remaining hops the exchange may take (defaults to the node's setting)

        Returns:
            {"status": "ok", "msg_id": "...", "conversation_id": "..."}
        """
        return self._post("/v0/send", {"to": to, "text": text,
                                       "expect_reply": expect_reply, "ttl": ttl})

    def auto(self) -> dict:
        """Pull from the relay and auto-reply. Returns a summary of what happened."""
        return self._post("/v0/auto")

    # --- Conversations ---

    def conversation(self, peer_id: str) -> dict:
        return self._get(f"/v0/conversations/{peer_id}")

    def reset_conversation(self, peer_id: str) -> dict:
        return self._request("DELETE", f"/v0/conversations/{peer_id}")

    # --- Tasks & control ---

    def send_task(self, to: str, task: str, params: Optional[dict] = None,
                  timeout: float = 30.0, wait: bool = True) -> dict:
        """Delegate a task to a peer.

        With wait=True the call blocks until the peer answers (or the node
        gives up after `timeout` seconds) and returns
        {"status": "success|error|rejected", "task_id": ..., "result": ...}.
        """
        payload = {"to": to, "task": task, "params": params or {}, "timeout": timeout, "wait": wait}
        http_timeout = max(self.timeout, timeout + 5) if wait else self.timeout
        return self._request("POST", "/v0/tasks", json=payload, timeout=http_timeout)

    def send_control(self, to: str, signal: str, data: Optional[dict] = None) -> dict:
        """Send a control signal such as "end_session" or "pause"."""
        return self._post("/v0/control", {"to": to, "signal": signal, "data": data})

    def task_handlers(self) -> list[str]:
        return self._get("/v0/tasks/handlers")["handlers"]
