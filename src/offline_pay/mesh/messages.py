"""Gossip message envelope and its wire validation."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from offline_pay.errors.mesh_errors import MalformedMessage


class MessageType(enum.StrEnum):
    """Gossip message kinds."""

    TRANSACTION = "TRANSACTION"
    PEER_ANNOUNCE = "PEER_ANNOUNCE"
    PEER_LIST = "PEER_LIST"
    PING = "PING"


def new_message_id() -> str:
    """Fresh flood identifier. Not related to any transaction id."""
    return uuid.uuid4().hex


def now_ms() -> int:
    """Wall clock in milliseconds."""
    return int(time.time() * 1000)


@dataclass
class GossipMessage:
    """One flood instance travelling across the mesh.

    Attributes:
        type: Message kind.
        sender: Peer id that originated the flood.
        timestamp: Origin time in milliseconds.
        message_id: Deduplication key.
        ttl: Remaining hops; decremented on every forward.
        data: Type-specific body.
    """

    type: MessageType
    sender: str
    timestamp: int = field(default_factory=now_ms)
    message_id: str = field(default_factory=new_message_id)
    ttl: int = 0
    data: Any = None

    def forwarded(self) -> GossipMessage:
        """Copy for the next hop, with the TTL decremented."""
        return GossipMessage(
            type=self.type,
            sender=self.sender,
            timestamp=self.timestamp,
            message_id=self.message_id,
            ttl=self.ttl - 1,
            data=self.data,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire object."""
        body: dict[str, Any] = {
            "type": self.type.value,
            "sender": self.sender,
            "timestamp": self.timestamp,
            "messageId": self.message_id,
            "ttl": self.ttl,
        }
        if self.data is not None:
            body["data"] = self.data
        return body

    @classmethod
    def from_dict(cls, raw: Any) -> GossipMessage:
        """Validate and parse a wire object.

        ``ttl`` defaults to 0 when absent, so such a message is applied
        but never forwarded.

        Raises:
            MalformedMessage: If the envelope is missing fields or mistyped.
        """
        if not isinstance(raw, dict):
            raise MalformedMessage("message is not an object")
        try:
            msg_type = MessageType(raw.get("type"))
        except ValueError as exc:
            raise MalformedMessage(f"unknown message type {raw.get('type')!r}") from exc

        sender = raw.get("sender")
        if not isinstance(sender, str) or not sender:
            raise MalformedMessage("sender missing")
        message_id = raw.get("messageId")
        if not isinstance(message_id, str) or not message_id:
            raise MalformedMessage("messageId missing")
        timestamp = raw.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp < 0:
            raise MalformedMessage("timestamp missing or not an integer")
        ttl = raw.get("ttl", 0)
        if isinstance(ttl, bool) or not isinstance(ttl, int):
            raise MalformedMessage("ttl is not an integer")

        return cls(
            type=msg_type,
            sender=sender,
            timestamp=timestamp,
            message_id=message_id,
            ttl=ttl,
            data=raw.get("data"),
        )
