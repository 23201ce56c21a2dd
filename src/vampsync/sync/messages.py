"""Push channel message types.

Learn: One JSON object per WebSocket frame. The server produces
data-update, refresh-required and system-message; connection-status is
produced locally by the client channel so subscribers see transport state
on the same stream as data events. ping/pong are keepalive frames and are
never surfaced to subscribers.

Message content is a hint, not the truth: the reconciler always re-fetches
the authoritative snapshot, so a lost or reordered message costs at most
one polling interval of staleness.
"""

import threading
import time
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError

from vampsync.errors import MalformedMessageError


class MessageType(str, Enum):
    DATA_UPDATE = "data-update"
    REFRESH_REQUIRED = "refresh-required"
    SYSTEM_MESSAGE = "system-message"
    CONNECTION_STATUS = "connection-status"
    PING = "ping"
    PONG = "pong"


class UpdateMessage(BaseModel):
    type: MessageType
    entity: Optional[str] = None
    message: Optional[str] = None
    connected: Optional[bool] = None
    reconnecting: Optional[bool] = None
    timestamp: int = Field(..., ge=0)

    model_config = {"extra": "ignore"}

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


def parse_message(raw: Union[str, bytes]) -> UpdateMessage:
    """Decode one frame. Raises MalformedMessageError on anything unusable."""
    try:
        return UpdateMessage.model_validate_json(raw)
    except ValidationError as e:
        preview = raw[:200] if isinstance(raw, str) else raw[:200].decode("utf-8", "replace")
        raise MalformedMessageError(
            "Undecodable push message",
            details={"raw": preview, "errors": e.error_count()},
        ) from e


class MessageClock:
    """Millisecond timestamps that strictly increase within a process."""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            stamp = max(int(time.time() * 1000), self._last + 1)
            self._last = stamp
            return stamp


# ─── Constructors ─────────────────────────────────────────


def data_update(entity: str, timestamp: int) -> UpdateMessage:
    return UpdateMessage(type=MessageType.DATA_UPDATE, entity=entity, timestamp=timestamp)


def refresh_required(entity: str, timestamp: int) -> UpdateMessage:
    return UpdateMessage(type=MessageType.REFRESH_REQUIRED, entity=entity, timestamp=timestamp)


def system_message(text: str, timestamp: int) -> UpdateMessage:
    return UpdateMessage(type=MessageType.SYSTEM_MESSAGE, message=text, timestamp=timestamp)


def connection_status(connected: bool, reconnecting: bool, timestamp: int) -> UpdateMessage:
    return UpdateMessage(
        type=MessageType.CONNECTION_STATUS,
        connected=connected,
        reconnecting=reconnecting,
        timestamp=timestamp,
    )
