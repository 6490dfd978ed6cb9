"""AgentLink daemon: end-to-end encrypted agent messaging with loop protection."""

# Re-export client for backwards compatibility
from agentlink import AgentLinkClient, __version__

__all__ = ["AgentLinkClient", "__version__"]
