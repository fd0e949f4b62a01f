"""PeerOverlay — known peers, active connections and reconnection.

The overlay owns the connection map. It connects and disconnects peers,
accepts inbound channels, and retries lost peers at a fixed delay
(no backoff). Message semantics live in the gossip router, which plugs in
through ``set_handlers``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from offline_pay.errors.mesh_errors import PeerUnreachable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from offline_pay.mesh.transport import Connection, Transport
    from offline_pay.metrics.collector import MeshMetrics

logger = logging.getLogger(__name__)

# Default reconnect delay (seconds)
RECONNECT_DELAY = 5.0


@dataclass
class PeerRecord:
    """A peer we have heard of. Survives disconnects."""

    peer_id: str
    last_seen: float
    connection: Connection | None = None

    @property
    def connected(self) -> bool:
        return self.connection is not None and not self.connection.closed


class PeerOverlay:
    """Peer table and active-connection set for one device.

    Usage::

        overlay = PeerOverlay("peer-a", transport)
        overlay.set_handlers(on_message=router.handle, on_connected=router.greet)
        await overlay.start()
        await overlay.connect("peer-b")
        ...
        await overlay.stop()
    """

    def __init__(
        self,
        peer_id: str,
        transport: Transport,
        *,
        reconnect_delay: float = RECONNECT_DELAY,
        metrics: MeshMetrics | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._peer_id = peer_id
        self._transport = transport
        self._reconnect_delay = reconnect_delay
        self._metrics = metrics
        self._clock = clock
        self._peers: dict[str, PeerRecord] = {}
        self._connecting: set[str] = set()
        self._dropped: set[str] = set()
        self._reconnects: dict[str, asyncio.Task[None]] = {}
        self._running = False
        self._on_message: Callable[[str, Any], Awaitable[None]] | None = None
        self._on_connected: Callable[[str], Awaitable[None]] | None = None
        transport.attach(peer_id, self)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def peer_id(self) -> str:
        """Local peer identity."""
        return self._peer_id

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def known_peers(self) -> dict[str, PeerRecord]:
        """Known peers (peer_id → PeerRecord), connected or not."""
        return dict(self._peers)

    def connected_peer_ids(self) -> list[str]:
        """Peers with a live channel, sorted for stable output."""
        return sorted(pid for pid, rec in self._peers.items() if rec.connected)

    def count(self) -> int:
        """Number of live channels."""
        return len(self.connected_peer_ids())

    def is_connected(self, peer_id: str) -> bool:
        record = self._peers.get(peer_id)
        return record is not None and record.connected

    def is_known(self, peer_id: str) -> bool:
        return peer_id in self._peers

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_handlers(
        self,
        *,
        on_message: Callable[[str, Any], Awaitable[None]],
        on_connected: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        """Install the router callbacks for inbound messages and new links."""
        self._on_message = on_message
        self._on_connected = on_connected

    async def start(self) -> None:
        """Enable reconnection. Idempotent."""
        self._running = True
        logger.info("Peer overlay %s started", self._peer_id)

    async def stop(self) -> None:
        """Stop reconnecting and close every channel."""
        if not self._running and not self._reconnects and not self.count():
            return
        self._running = False
        for task in self._reconnects.values():
            task.cancel()
        if self._reconnects:
            await asyncio.gather(*self._reconnects.values(), return_exceptions=True)
        self._reconnects.clear()
        for peer_id in self.connected_peer_ids():
            await self.disconnect(peer_id)
        await self._transport.close()
        logger.info("Peer overlay %s stopped", self._peer_id)

    # ------------------------------------------------------------------
    # Peer table
    # ------------------------------------------------------------------

    def remember(self, peer_id: str) -> PeerRecord | None:
        """Add *peer_id* to the known table (or refresh ``last_seen``)."""
        if not peer_id or peer_id == self._peer_id:
            return None
        record = self._peers.get(peer_id)
        if record is None:
            record = PeerRecord(peer_id=peer_id, last_seen=self._clock())
            self._peers[peer_id] = record
            logger.debug("Learned peer %s", peer_id)
        else:
            record.last_seen = self._clock()
        return record

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def connect(self, peer_id: str) -> bool:
        """Open a channel to *peer_id*.

        No-op for ourselves, for a peer already connected, or one whose
        connection attempt is in flight. A failed attempt schedules a retry.

        Returns:
            True if a live channel to the peer exists afterwards.
        """
        if not peer_id or peer_id == self._peer_id:
            return False
        if self.is_connected(peer_id):
            return True
        if peer_id in self._connecting:
            return False

        self.remember(peer_id)
        self._dropped.discard(peer_id)
        self._connecting.add(peer_id)
        try:
            conn = await self._transport.open(peer_id)
        except PeerUnreachable as exc:
            logger.info("Connect to %s failed: %s", peer_id, exc.message)
            self._schedule_reconnect(peer_id)
            return False
        finally:
            self._connecting.discard(peer_id)

        if not await self._register(conn):
            return self.is_connected(peer_id)
        logger.info("Connected to peer %s", peer_id)
        return True

    async def disconnect(self, peer_id: str) -> None:
        """Close the channel to *peer_id* on purpose; no reconnect follows."""
        self._dropped.add(peer_id)
        task = self._reconnects.pop(peer_id, None)
        if task is not None:
            task.cancel()
        record = self._peers.get(peer_id)
        if record is None or record.connection is None:
            return
        conn, record.connection = record.connection, None
        await conn.close()
        self._update_gauge()
        logger.info("Disconnected from peer %s", peer_id)

    async def send(self, peer_id: str, raw: dict[str, Any]) -> bool:
        """Send to one peer. A failed write drops the channel and returns False."""
        record = self._peers.get(peer_id)
        if record is None or not record.connected:
            return False
        conn = record.connection
        assert conn is not None  # noqa: S101 - narrowed by record.connected
        try:
            await conn.send(raw)
        except PeerUnreachable as exc:
            logger.info("Send to %s failed: %s", peer_id, exc.message)
            await self._lost(conn)
            return False
        return True

    async def broadcast(self, raw: dict[str, Any], *, exclude: set[str] | None = None) -> int:
        """Send to every connected peer not in *exclude*. Returns deliveries."""
        skip = exclude or set()
        delivered = 0
        for peer_id in self.connected_peer_ids():
            if peer_id in skip:
                continue
            if await self.send(peer_id, raw):
                delivered += 1
        return delivered

    # ------------------------------------------------------------------
    # ConnectionListener (called by the transport)
    # ------------------------------------------------------------------

    async def on_inbound(self, conn: Connection) -> None:
        """Accept and register a channel a remote peer opened."""
        if conn.peer_id == self._peer_id:
            await conn.close()
            return
        self.remember(conn.peer_id)
        self._dropped.discard(conn.peer_id)
        if await self._register(conn):
            logger.info("Accepted peer %s", conn.peer_id)

    async def on_message(self, conn: Connection, raw: Any) -> None:
        """Forward a wire object to the router."""
        record = self._peers.get(conn.peer_id)
        if record is not None:
            record.last_seen = self._clock()
        if self._on_message is not None:
            await self._on_message(conn.peer_id, raw)

    async def on_closed(self, conn: Connection, error: BaseException | None) -> None:
        """The transport lost a channel we did not close ourselves."""
        await self._lost(conn, error)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _register(self, conn: Connection) -> bool:
        """Make *conn* the active channel for its peer.

        Returns False if another live channel already exists; the newcomer
        is closed and the existing channel kept.
        """
        record = self.remember(conn.peer_id)
        if record is None:
            return False
        if record.connected and record.connection is not conn:
            await conn.close()
            return False
        record.connection = conn
        pending = self._reconnects.pop(conn.peer_id, None)
        if pending is not None and pending is not asyncio.current_task():
            pending.cancel()
        self._update_gauge()
        if self._on_connected is not None:
            await self._on_connected(conn.peer_id)
        return True

    async def _lost(self, conn: Connection, error: BaseException | None = None) -> None:
        record = self._peers.get(conn.peer_id)
        if record is None or record.connection is not conn:
            return
        record.connection = None
        if not conn.closed:
            await conn.close()
        self._update_gauge()
        logger.warning("Lost peer %s: %s", conn.peer_id, error or "send failed")
        if conn.peer_id not in self._dropped:
            self._schedule_reconnect(conn.peer_id)

    def _schedule_reconnect(self, peer_id: str) -> None:
        if not self._running or peer_id in self._dropped:
            return
        existing = self._reconnects.get(peer_id)
        if existing is not None and not existing.done():
            return
        self._reconnects[peer_id] = asyncio.create_task(self._reconnect(peer_id))

    async def _reconnect(self, peer_id: str) -> None:
        """Retry *peer_id* every ``reconnect_delay`` seconds until it answers."""
        while self._running and peer_id not in self._dropped:
            await asyncio.sleep(self._reconnect_delay)
            if not self._running or self.is_connected(peer_id):
                break
            if self._metrics:
                self._metrics.reconnect_attempted()
            try:
                conn = await self._transport.open(peer_id)
            except PeerUnreachable as exc:
                logger.debug("Reconnect to %s failed: %s", peer_id, exc.message)
                continue
            if await self._register(conn):
                logger.info("Reconnected to peer %s", peer_id)
            break
        if self._reconnects.get(peer_id) is asyncio.current_task():
            del self._reconnects[peer_id]

    def _update_gauge(self) -> None:
        if self._metrics:
            self._metrics.set_connected_peers(self.count())
