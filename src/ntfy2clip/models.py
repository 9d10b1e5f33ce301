"""Inbound frame and notification envelope types."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import DecodeError


EVENT_MESSAGE = "message"


class FrameKind(Enum):
    """Kinds of frames the relay transport hands to a session."""
    TEXT = "text"
    BINARY = "binary"
    PING = "ping"
    PONG = "pong"
    CLOSE = "close"
    PROTOCOL_ERROR = "protocol_error"


@dataclass(frozen=True)
class InboundEvent:
    """One decoded WebSocket frame, consumed within a single receive step."""
    kind: FrameKind
    data: Union[str, bytes, None] = None
    error: Optional[BaseException] = None

    @classmethod
    def text(cls, text: str) -> "InboundEvent":
        return cls(FrameKind.TEXT, text)

    @classmethod
    def ping(cls, payload: bytes = b"") -> "InboundEvent":
        return cls(FrameKind.PING, payload)

    @classmethod
    def pong(cls, payload: bytes = b"") -> "InboundEvent":
        return cls(FrameKind.PONG, payload)

    @classmethod
    def close(cls) -> "InboundEvent":
        return cls(FrameKind.CLOSE)

    @classmethod
    def protocol_error(cls, error: BaseException) -> "InboundEvent":
        return cls(FrameKind.PROTOCOL_ERROR, error=error)


class NotificationEnvelope(BaseModel):
    """
    JSON body of an ntfy WebSocket text frame.

    ntfy sends ``open``, ``keepalive``, ``message`` and ``poll_request``
    events; only ``message`` events carry text. Unknown fields are ignored.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    event: str
    topic: str
    message: Optional[str] = None

    def is_dispatchable_for(self, topic: str) -> bool:
        return self.event == EVENT_MESSAGE and self.topic == topic and self.message is not None


def decode_envelope(raw: Union[str, bytes]) -> NotificationEnvelope:
    """Parse a text frame into an envelope, raising DecodeError if it is malformed."""
    try:
        return NotificationEnvelope.model_validate_json(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in item['loc']) or 'body'}: {item['msg']}"
            for item in e.errors()
        )
        raise DecodeError(problems) from e
