"""Envelope, conversation, and peer models."""

import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag
from pydantic.alias_generators import to_camel


def new_msg_id() -> str:
    return str(uuid.uuid4())


def new_conversation_id() -> str:
    return f"conv_{uuid.uuid4().hex[:12]}"


def now_ms() -> int:
    return int(time.time() * 1000)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MessageType(str, Enum):
    MSG = "msg"  # regular message, may expect a reply
    ACK = "ack"  # acknowledgment, never replied to
    CONTROL = "control"  # session lifecycle signal


class ControlSignal(str, Enum):
    START_SESSION = "start_session"
    END_SESSION = "end_session"
    PAUSE = "pause"
    RESUME = "resume"
    LOOP_DETECTED = "loop_detected"
    REQUEST_CLARIFICATION = "request_clarification"


class Intent(str, Enum):
    QUESTION = "question"
    ACTION_REQUEST = "action_request"
    INFORMATION = "information"
    CONFIRMATION = "confirmation"
    GREETING = "greeting"
    NOISE = "noise"


class Speaker(str, Enum):
    NONE = "none"
    SELF = "self"
    PEER = "peer"


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# --- Envelope bodies ---


class TextBody(WireModel):
    model_config = ConfigDict(extra="allow")

    text: str


class AckBody(WireModel):
    ack_for: str
    note: Optional[str] = None


class ControlBody(WireModel):
    model_config = ConfigDict(extra="allow")

    signal: str  # unknown signals are carried through as control_message


class TaskRequestBody(WireModel):
    task_id: str = Field(default_factory=new_msg_id)
    task: str
    params: dict = {}
    timeout: float = 30.0
    sent_at: str = Field(default_factory=now_iso)


class TaskResponseBody(WireModel):
    task_id: str
    status: str  # success|error|rejected
    result: Any = None
    completed_at: str = Field(default_factory=now_iso)


class OpaqueBody(WireModel):
    """Any body we don't recognize; kept verbatim."""

    model_config = ConfigDict(extra="allow")


def body_kind(value: Any) -> str:
    if isinstance(value, BaseModel):
        return {
            TextBody: "text",
            AckBody: "ack",
            ControlBody: "control",
            TaskRequestBody: "task_request",
            TaskResponseBody: "task_response",
        }.get(type(value), "opaque")
    if not isinstance(value, dict):
        return "opaque"
    if "signal" in value:
        return "control"
    if "ackFor" in value or "ack_for" in value:
        return "ack"
    if "taskId" in value or "task_id" in value:
        return "task_response" if "status" in value else "task_request"
    if isinstance(value.get("text"), str):
        return "text"
    return "opaque"


Body = Annotated[
    Union[
        Annotated[TextBody, Tag("text")],
        Annotated[AckBody, Tag("ack")],
        Annotated[ControlBody, Tag("control")],
        Annotated[TaskRequestBody, Tag("task_request")],
        Annotated[TaskResponseBody, Tag("task_response")],
        Annotated[OpaqueBody, Tag("opaque")],
    ],
    Discriminator(body_kind),
]


class Envelope(WireModel):
    id: str = Field(default_factory=new_msg_id)
    conversation_id: str
    to: str = ""
    timestamp: int = Field(default_factory=now_ms)
    type: MessageType = MessageType.MSG
    expect_reply: bool = True
    ttl: Optional[int] = None
    body: Body = Field(default_factory=OpaqueBody)
    in_reply_to: Optional[str] = None

    @property
    def text(self) -> Optional[str]:
        return self.body.text if isinstance(self.body, TextBody) else None


class CiphertextRecord(BaseModel):
    """What travels through the relay."""

    ciphertext: str  # base64
    nonce: str  # base64
    signature: str  # hex, over "ciphertext:nonce"
    sender: str = ""  # hex peer id
    recipient: str = ""  # hex peer id


# --- State ---


class Conversation(BaseModel):
    id: str = Field(default_factory=new_conversation_id)
    peer_id: str
    turn: int = 0
    last_speaker: Speaker = Speaker.NONE
    last_message_time_ms: int = 0
    message_digests: list[str] = []
    active: bool = True
    created_at_ms: int = Field(default_factory=now_ms)


class Reason(str, Enum):
    ACK_MESSAGE = "ack_message"
    SESSION_ENDED = "session_ended"
    LOOP_DETECTED_BY_PEER = "loop_detected_by_peer"
    CONTROL_MESSAGE = "control_message"
    CONVERSATION_INACTIVE = "conversation_inactive"
    TTL_EXPIRED = "ttl_expired"
    NO_REPLY_EXPECTED = "no_reply_expected"
    MAX_TURNS_REACHED = "max_turns_reached"
    COOLDOWN = "cooldown"
    LOOP_DETECTED = "loop_detected"
    NO_ACTION_NEEDED = "no_action_needed"
    REPLY_WARRANTED = "reply_warranted"
    TASK_REQUEST = "task_request"


class Verdict(BaseModel):
    reply: bool
    reason: Reason
    intent: Optional[Intent] = None
    send_end_session: bool = False
    send_loop_signal: bool = False
    send_ack: bool = False
    wait_ms: Optional[int] = None
    end_conversation: bool = False


# --- Peers & API ---


class PeerInfo(BaseModel):
    peer_id: str  # hex verify key
    display_name: str
    exchange_public_key: str  # base64
    shared_secret: str  # base64, derived once when the peer is added
    status: str = "connected"
    added_at: str = Field(default_factory=now_iso)


class SendRequest(BaseModel):
    to: str  # peer id or display name
    text: str
    expect_reply: bool = True
    ttl: Optional[int] = None


class TaskSendRequest(BaseModel):
    to: str
    task: str
    params: dict = {}
    timeout: float = 30.0
    wait: bool = True


class ControlRequest(BaseModel):
    to: str
    signal: str
    data: Optional[dict] = None


class AddPeerRequest(BaseModel):
    link: str


class NodeIdentity(BaseModel):
    peer_id: str
    node_name: str
    display_name: str
    exchange_pubkey: str
    link: str
