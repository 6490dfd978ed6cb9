"""Error types raised by the AgentLink node."""


class AgentLinkError(Exception):
    """Base class for all AgentLink errors."""


class CryptoError(AgentLinkError):
    """Bad signature, failed authenticated decryption, or malformed key material.

    Fatal to the single message that caused it; the message is dropped.
    """


class ProtocolError(AgentLinkError):
    """Malformed envelope or unknown message type."""


class StateError(AgentLinkError):
    """Conversation or peer persistence is unavailable."""


class RelayError(AgentLinkError):
    """The relay rejected a request or could not be reached."""


class TaskTimeoutError(AgentLinkError):
    """No task response arrived before the deadline."""

    def __init__(self, task_id: str, timeout: float):
        super().__init__(f"Task {task_id} timed out after {timeout}s")
        self.task_id = task_id
        self.timeout = timeout
