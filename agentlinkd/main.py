"""FastAPI application: the AgentLink node daemon."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException

from .config import NodeConfig
from .conversation import ConversationStore
from .crypto import Identity
from .errors import CryptoError, ProtocolError, RelayError, TaskTimeoutError
from .mailbox import Mailbox
from .models import (
    AddPeerRequest,
    ControlRequest,
    ControlSignal,
    NodeIdentity,
    SendRequest,
    TaskSendRequest,
)
from .peers import PeerBook, friend_link
from .relay import RelayClient, RelayTransport
from .router import Router
from .tasks import TaskHandler, TaskManager

logger = logging.getLogger(__name__)

# Global state (initialized at startup)
config: NodeConfig = None
identity: Identity = None
mailbox: Mailbox = None
peers: PeerBook = None
store: ConversationStore = None
router: Router = None
tasks: TaskManager = TaskManager()


def task_handler(name: str):
    """Register an async handler for inbound task requests named `name`.

    Usage, in a module imported before the node starts (see run.py --handlers):

        from agentlinkd.main import task_handler

        @task_handler("weather")
        async def weather(params):
            return {"city": params["city"], "forecast": "sunny"}
    """
    def decorator(fn: TaskHandler) -> TaskHandler:
        tasks.register_handler(name, fn)
        return fn
    return decorator


async def auto_reply_loop():
    """Background task: pull from the relay and auto-reply."""
    while True:
        try:
            summary = (await router.pull_from_relay()).summary()
            if summary["received"]:
                logger.info(f"Auto-reply: {summary['replied']} replied, {summary['skipped']} skipped")
        except Exception as e:
            logger.error(f"Auto-reply loop error: {e}")
        await asyncio.sleep(config.poll_interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global config, identity, mailbox, peers, store, router

    # Config comes from app.state (set by run.py)
    config = app.state.config
    config.ensure_dirs()

    identity = Identity.load_or_create(config.identity_path)
    logger.info(f"Node identity: {identity.peer_id[:16]}")

    mailbox = Mailbox(config.db_path)
    peers = PeerBook(identity, mailbox)
    store = ConversationStore(persistence=mailbox, config=config.guard)

    relay: Optional[RelayTransport] = getattr(app.state, "relay", None)
    if relay is None and config.relay_url:
        relay = RelayClient(config.relay_url, identity)
    router = Router(identity, peers, store, relay, tasks=tasks, config=config,
                    guard_config=config.guard)

    poll_task = asyncio.create_task(auto_reply_loop()) if config.relay_url else None

    print(f"\n  AgentLink node running!")
    print(f"  Peer id:  {identity.peer_id}")
    if config.relay_url:
        print(f"  Relay:    {config.relay_url}")
    print(f"  Link:     {friend_link(identity, config.display_name)}\n")

    yield

    # Shutdown
    if poll_task:
        poll_task.cancel()
    mailbox.close()
    logger.info("AgentLink daemon stopped.")


app = FastAPI(title="AgentLink", version="0.1.0", lifespan=lifespan)


def _require_relay():
    if router.relay is None:
        raise HTTPException(status_code=503, detail="No relay configured")


# --- API Routes ---


@app.get("/v0/identity")
async def get_identity() -> NodeIdentity:
    return NodeIdentity(
        peer_id=identity.peer_id,
        node_name=config.node_name,
        display_name=config.display_name,
        exchange_pubkey=identity.exchange_pubkey_b64,
        link=friend_link(identity, config.display_name),
    )


@app.get("/v0/link")
async def get_link():
    return {"link": friend_link(identity, config.display_name)}


@app.get("/v0/peers")
async def get_peers():
    return [p.model_dump(exclude={"shared_secret"}) for p in peers.all()]


@app.post("/v0/peers")
async def add_peer(req: AddPeerRequest):
    try:
        peer = peers.add_from_link(req.link)
    except (ProtocolError, CryptoError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "ok", "peer": peer.model_dump(exclude={"shared_secret"})}


@app.get("/v0/conversations/{peer_id}")
async def get_conversation(peer_id: str):
    conv = store.get(peer_id)
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conv


@app.delete("/v0/conversations/{peer_id}")
async def reset_conversation(peer_id: str):
    store.reset(peer_id)
    return {"status": "ok", "peer_id": peer_id}


@app.post("/v0/send")
async def send_message(req: SendRequest):
    """Send a text message to a known peer."""
    _require_relay()
    try:
        envelope = await router.send_text(req.to, req.text, expect_reply=req.expect_reply, ttl=req.ttl)
    except ProtocolError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RelayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "ok", "msg_id": envelope.id, "conversation_id": envelope.conversation_id}


@app.post("/v0/auto")
async def auto_reply():
    """Pull pending records from the relay, decide, and auto-reply."""
    _require_relay()
    try:
        result = await router.pull_from_relay()
    except RelayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return result.summary()


@app.get("/v0/tasks/handlers")
async def get_task_handlers():
    return {"handlers": tasks.list_handlers()}


@app.post("/v0/tasks")
async def send_task(req: TaskSendRequest):
    """Delegate a task to a peer. With wait=true, block until its response or the timeout."""
    _require_relay()
    try:
        outcome = await router.send_task(req.to, req.task, req.params, timeout=req.timeout, wait=req.wait)
    except ProtocolError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RelayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except TaskTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    if not req.wait:
        return {"status": "sent", "task_id": outcome.task_id}
    return {"status": outcome.status, "task_id": outcome.task_id, "result": outcome.result}


@app.post("/v0/control")
async def send_control(req: ControlRequest):
    """Send a session control signal (end_session, pause, ...) to a peer."""
    _require_relay()
    try:
        signal = ControlSignal(req.signal)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown signal: {req.signal}")
    try:
        envelope = await router.send_control(req.to, signal, req.data)
    except ProtocolError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RelayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "ok", "msg_id": envelope.id, "signal": signal.value}
