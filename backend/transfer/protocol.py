"""
Wire protocol for transfers carried over a text chat channel.

Each message is a JSON envelope, UTF-8 encoded, base64'd and prefixed
with a fixed marker so a host can tell protocol traffic apart from
ordinary chat before attempting a full decode:

    🔗OCFT:<base64(json)>

Envelope (camelCase on the wire):
    {"version": "1.0", "type": "chunk", "transferId": "...",
     "from": "...", "to": "...", "timestamp": 1700000000000,
     "payload": {...}}
"""

import base64
import binascii
import json
import logging
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from transfer.models import now_ms

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.0"
PREFIX = "🔗OCFT:"
# Ack index reserved for the receiver's reply to ``complete``
FINAL_ACK_INDEX = -1


class MessageType(str, Enum):
    OFFER = "offer"
    ACCEPT = "accept"
    REJECT = "reject"
    CHUNK = "chunk"
    ACK = "ack"
    COMPLETE = "complete"
    ERROR = "error"


class _Payload(BaseModel):
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class OfferPayload(_Payload):
    filename: str
    size: int = Field(ge=0)
    mime_type: str
    hash: str
    chunk_size: int
    total_chunks: int = Field(ge=0)
    secret: str | None = None
    secret_ttl: int | None = Field(default=None, alias="secretTTL")
    resume_from: int | None = None
    metadata: dict[str, Any] | None = None


class AcceptPayload(_Payload):
    ready: bool = True
    resume_from: int | None = None


class RejectPayload(_Payload):
    reason: str


class ChunkPayload(_Payload):
    index: int
    data: str  # base64
    hash: str


class AckPayload(_Payload):
    index: int
    received: bool
    error: str | None = None

    @property
    def is_final(self) -> bool:
        return self.index == FINAL_ACK_INDEX


class CompletePayload(_Payload):
    total_chunks: int
    hash: str


class ErrorPayload(_Payload):
    code: str
    message: str
    recoverable: bool = False


Payload = Union[
    OfferPayload,
    AcceptPayload,
    RejectPayload,
    ChunkPayload,
    AckPayload,
    CompletePayload,
    ErrorPayload,
]

PAYLOAD_MODELS: dict[MessageType, type[_Payload]] = {
    MessageType.OFFER: OfferPayload,
    MessageType.ACCEPT: AcceptPayload,
    MessageType.REJECT: RejectPayload,
    MessageType.CHUNK: ChunkPayload,
    MessageType.ACK: AckPayload,
    MessageType.COMPLETE: CompletePayload,
    MessageType.ERROR: ErrorPayload,
}


class OCFTMessage(BaseModel):
    """Immutable protocol envelope."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str
    type: MessageType
    transfer_id: str = Field(alias="transferId", min_length=1)
    sender: str = Field(alias="from")
    recipient: str = Field(alias="to")
    timestamp: int = 0
    payload: Payload

    @model_validator(mode="before")
    @classmethod
    def payload_for_type(cls, data: Any) -> Any:
        # payload model is selected by the envelope type
        if not isinstance(data, dict):
            return data
        kind = data.get("type")
        payload = data.get("payload")
        if not isinstance(kind, str) or kind not in PAYLOAD_MODELS:
            return data
        model = PAYLOAD_MODELS[MessageType(kind)]
        if isinstance(payload, dict):
            data = {**data, "payload": model.model_validate(payload)}
        elif payload is not None and not isinstance(payload, model):
            raise ValueError(f"Payload does not match message type '{kind}'")
        return data


def build_message(
    msg_type: MessageType,
    transfer_id: str,
    sender: str,
    recipient: str,
    payload: Payload,
) -> OCFTMessage:
    """Create a message stamped with the current time and protocol version."""
    return OCFTMessage(
        version=PROTOCOL_VERSION,
        type=msg_type,
        transfer_id=transfer_id,
        sender=sender,
        recipient=recipient,
        timestamp=now_ms(),
        payload=payload,
    )


def serialize(msg: OCFTMessage) -> str:
    return json.dumps(
        msg.model_dump(mode="json", by_alias=True, exclude_none=True),
        ensure_ascii=False,
        separators=(",", ":"),
    )


def deserialize(data: str) -> OCFTMessage | None:
    """Parse a serialized message, returning None for anything malformed."""
    try:
        raw = json.loads(data)
    except (TypeError, ValueError, RecursionError):
        return None
    if not isinstance(raw, dict):
        return None
    if not raw.get("version") or not raw.get("type") or not raw.get("transferId"):
        return None
    try:
        return OCFTMessage.model_validate(raw)
    except (ValidationError, ValueError) as e:
        logger.debug(f"Discarding malformed message: {e}")
        return None


def is_protocol_text(text: str) -> bool:
    return isinstance(text, str) and text.startswith(PREFIX)


def encode_for_transport(msg: OCFTMessage) -> str:
    body = base64.b64encode(serialize(msg).encode("utf-8")).decode("ascii")
    return f"{PREFIX}{body}"


def decode_from_transport(text: str) -> OCFTMessage | None:
    """Decode chat text into a message; never raises."""
    if not is_protocol_text(text):
        return None
    try:
        body = base64.b64decode(text[len(PREFIX):].strip(), validate=True)
        return deserialize(body.decode("utf-8"))
    except Exception as e:
        # peer-controlled input must never escape as an exception
        logger.debug(f"Discarding undecodable protocol text: {e!r}")
        return None


def encode_chunk_data(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_chunk_data(data: str) -> bytes:
    """Decode a chunk's ``data`` field; raises ValueError when not base64."""
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid chunk encoding: {e}") from e
