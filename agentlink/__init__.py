"""AgentLink: Client SDK for encrypted, loop-guarded agent-to-agent messaging."""

__version__ = "0.1.0"

from agentlink.client import AgentLinkClient

__all__ = ["AgentLinkClient", "__version__"]
