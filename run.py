#!/usr/bin/env python3
"""AgentLink: encrypted, loop-guarded agent-to-agent messaging.

Usage:
    python run.py                                   # default node
    python run.py --name alice --port 7450 --relay http://localhost:7445
    python run.py --name bob --port 7451 --relay http://localhost:7445

Exchange friend links (GET /v0/link, POST /v0/peers) and the nodes can talk.
"""

import argparse
import importlib
import logging

import uvicorn

from agentlinkd.config import GuardConfig, NodeConfig
from agentlinkd.main import app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)


def main():
    parser = argparse.ArgumentParser(description="AgentLink node")
    parser.add_argument("--name", default="my-agent", help="Node name (e.g. alice, bob)")
    parser.add_argument("--display-name", default=None, help="Name shown to peers (default: --name)")
    parser.add_argument("--owner", default="my human", help="Who this agent works for")
    parser.add_argument("--port", type=int, default=7450, help="Port to listen on")
    parser.add_argument("--data-dir", default=None, help="Data directory (default: ./agentlink_data_<name>)")
    parser.add_argument("--relay", default="", help="Relay server URL (e.g. http://localhost:7445)")
    parser.add_argument("--poll", type=float, default=10.0, help="Relay poll interval in seconds")
    parser.add_argument("--max-turns", type=int, default=20, help="Turns per conversation before ending it")
    parser.add_argument("--cooldown-ms", type=int, default=5000, help="Minimum gap between auto-replies")
    parser.add_argument("--handlers", action="append", default=[], metavar="MODULE",
                        help="Module registering task handlers with @task_handler (repeatable)")
    args = parser.parse_args()

    data_dir = args.data_dir or f"./agentlink_data_{args.name}"

    config = NodeConfig(
        node_name=args.name,
        display_name=args.display_name or args.name,
        owner_name=args.owner,
        port=args.port,
        data_dir=data_dir,
        relay_url=args.relay,
        poll_interval=args.poll,
        guard=GuardConfig(max_turns=args.max_turns, cooldown_ms=args.cooldown_ms),
    )

    # Attach config to app state so lifespan can read it
    app.state.config = config

    for module in args.handlers:
        importlib.import_module(module)

    print(f"\n  AgentLink v0.1.0")
    print(f"  Node:  {args.name}")
    print(f"  Port:  {args.port}")
    print(f"  Data:  {data_dir}")
    if args.relay:
        print(f"  Relay: {args.relay}")
    print()

    uvicorn.run(app, host=config.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
