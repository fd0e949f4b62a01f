"""In-memory transport for single-process meshes and tests.

A ``MemoryHub`` is the shared "air" between ``MemoryTransport`` instances.
Delivery is synchronous: ``send`` awaits the remote listener, so a flood
across a simulated mesh completes before the originating call returns.
Every payload passes through JSON, as it would on a real wire.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from offline_pay.errors.mesh_errors import PeerUnreachable
from offline_pay.mesh.transport import Connection, Transport

logger = logging.getLogger(__name__)


class MemoryConnection(Connection):
    """One end of an in-memory channel pair."""

    def __init__(self, peer_id: str, owner: MemoryTransport) -> None:
        super().__init__(peer_id)
        self._owner = owner
        self.partner: MemoryConnection | None = None

    async def send(self, raw: dict[str, Any]) -> None:
        partner = self.partner
        if self._closed or partner is None or partner.closed:
            raise PeerUnreachable(self.peer_id, "channel closed")
        wire = json.loads(json.dumps(raw))
        self._owner.hub.sent += 1
        await partner._owner.listener.on_message(partner, wire)

    async def close(self) -> None:
        await self._shutdown(None)

    async def _shutdown(self, error: BaseException | None) -> None:
        if self._closed:
            return
        self._closed = True
        self._owner.forget(self)
        partner = self.partner
        if partner is not None and not partner.closed:
            # The remote end observes our close as an unexpected disconnect.
            partner._closed = True
            partner._owner.forget(partner)
            await partner._owner.listener.on_closed(
                partner, error or PeerUnreachable(self._owner.local_peer_id, "remote closed")
            )
        if error is not None:
            await self._owner.listener.on_closed(self, error)


class MemoryHub:
    """Registry of in-memory transports reachable from each other."""

    def __init__(self) -> None:
        self._transports: dict[str, MemoryTransport] = {}
        self._offline: set[str] = set()
        self.sent = 0

    def transport(self) -> MemoryTransport:
        """Create a transport bound to this hub."""
        return MemoryTransport(self)

    def register(self, transport: MemoryTransport) -> None:
        self._transports[transport.local_peer_id] = transport

    def unregister(self, peer_id: str) -> None:
        self._transports.pop(peer_id, None)

    def lookup(self, peer_id: str) -> MemoryTransport | None:
        if peer_id in self._offline:
            return None
        return self._transports.get(peer_id)

    def set_reachable(self, peer_id: str, reachable: bool) -> None:
        """Make new ``open`` calls to *peer_id* fail (or succeed again)."""
        if reachable:
            self._offline.discard(peer_id)
        else:
            self._offline.add(peer_id)

    async def sever(self, a: str, b: str) -> None:
        """Simulate a transport failure on the channel between *a* and *b*."""
        transport = self._transports.get(a)
        if transport is None:
            return
        for conn in list(transport.connections):
            if conn.peer_id == b and not conn.closed:
                await conn._shutdown(PeerUnreachable(b, "link severed"))


class MemoryTransport(Transport):
    """Transport whose channels are in-process ``MemoryConnection`` pairs."""

    def __init__(self, hub: MemoryHub) -> None:
        super().__init__()
        self.hub = hub
        self.connections: list[MemoryConnection] = []

    def attach(self, local_peer_id: str, listener: Any) -> None:
        super().attach(local_peer_id, listener)
        self.hub.register(self)

    async def open(self, peer_id: str) -> Connection:
        remote = self.hub.lookup(peer_id)
        if remote is None:
            raise PeerUnreachable(peer_id, "not on hub")

        local_end = MemoryConnection(peer_id, self)
        remote_end = MemoryConnection(self.local_peer_id, remote)
        local_end.partner = remote_end
        remote_end.partner = local_end
        self.connections.append(local_end)
        remote.connections.append(remote_end)

        await remote.listener.on_inbound(remote_end)
        return local_end

    def forget(self, conn: MemoryConnection) -> None:
        if conn in self.connections:
            self.connections.remove(conn)

    async def close(self) -> None:
        for conn in list(self.connections):
            await conn.close()
        self.connections.clear()
        self.hub.unregister(self.local_peer_id)
        logger.debug("Memory transport %s closed", self.local_peer_id)
