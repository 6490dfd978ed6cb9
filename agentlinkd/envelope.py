"""Envelope construction and parsing.

ACK and CONTROL envelopes never expect a reply and always carry ttl=0,
whatever the caller asked for.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

from .config import GuardConfig
from .errors import ProtocolError
from .models import AckBody, ControlBody, ControlSignal, Envelope, MessageType, OpaqueBody, TextBody

DEFAULT_TTL = GuardConfig().default_ttl


def _coerce_body(body: Any) -> Any:
    if body is None:
        return OpaqueBody()
    if isinstance(body, str):
        return TextBody(text=body)
    return body


def build_message(
    conversation_id: str,
    to: str,
    type: MessageType = MessageType.MSG,
    body: Union[BaseModel, dict, str, None] = None,
    expect_reply: bool = True,
    ttl: Optional[int] = DEFAULT_TTL,
    in_reply_to: Optional[str] = None,
) -> Envelope:
    """Build an envelope with a fresh id and timestamp."""
    if type == MessageType.ACK:
        expect_reply, ttl = False, 0
    return Envelope(
        conversation_id=conversation_id,
        to=to,
        type=type,
        expect_reply=expect_reply,
        ttl=ttl,
        body=_coerce_body(body),
        in_reply_to=in_reply_to,
    )


def build_ack(original: Envelope, note: Optional[str] = None, to: str = "") -> Envelope:
    return build_message(
        conversation_id=original.conversation_id,
        to=to,
        type=MessageType.ACK,
        body=AckBody(ack_for=original.id, note=note),
        expect_reply=False,
        ttl=0,
        in_reply_to=original.id,
    )


def build_control(conversation_id: str, to: str, signal: Union[ControlSignal, str],
                  data: Optional[dict] = None) -> Envelope:
    signal = signal.value if isinstance(signal, ControlSignal) else signal
    return build_message(
        conversation_id=conversation_id,
        to=to,
        type=MessageType.CONTROL,
        body=ControlBody(signal=signal, **(data or {})),
        expect_reply=False,
        ttl=0,
    )


def parse_envelope(data: Any) -> Envelope:
    """Validate a decrypted envelope dict."""
    if not isinstance(data, dict):
        raise ProtocolError(f"Envelope must be an object, got {type(data).__name__}")
    try:
        return Envelope.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Malformed envelope: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e
