"""Node configuration and loop-guard tuning."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class GuardConfig:
    max_turns: int = 20
    cooldown_ms: int = 5000
    similarity_threshold: int = 3
    similarity_window: int = 10  # digests scanned for loop detection
    digest_window: int = 20  # digests retained per conversation
    default_ttl: int = 20


@dataclass
class NodeConfig:
    node_name: str = "my-agent"
    display_name: str = "AgentLink Agent"
    owner_name: str = "my human"
    port: int = 7450
    data_dir: str = "./agentlink_data"
    host: str = "0.0.0.0"
    relay_url: str = ""  # e.g. "http://localhost:7445"
    poll_interval: float = 10.0  # seconds between relay polls
    guard: GuardConfig = field(default_factory=GuardConfig)

    @property
    def db_path(self) -> str:
        return os.path.join(self.data_dir, "agentlink.db")

    @property
    def keys_dir(self) -> str:
        return os.path.join(self.data_dir, "keys")

    @property
    def identity_path(self) -> str:
        return os.path.join(self.keys_dir, "identity.json")

    def ensure_dirs(self):
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)
        Path(self.keys_dir).mkdir(parents=True, exist_ok=True)
