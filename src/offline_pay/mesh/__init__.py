"""Offline mesh — peer overlay, gossip flooding and channel transports."""

from __future__ import annotations

from offline_pay.mesh.memory import MemoryHub, MemoryTransport
from offline_pay.mesh.messages import GossipMessage, MessageType
from offline_pay.mesh.overlay import PeerOverlay
from offline_pay.mesh.router import GossipRouter, PropagationResult
from offline_pay.mesh.transport import Connection, Transport

__all__ = [
    "Connection",
    "GossipMessage",
    "GossipRouter",
    "MemoryHub",
    "MemoryTransport",
    "MessageType",
    "PeerOverlay",
    "PropagationResult",
    "Transport",
]
