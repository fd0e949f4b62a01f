"""GossipRouter — flood with bounded TTL and message-id deduplication.

Receive path, per wire object:

1. Validate the envelope; malformed objects are dropped silently.
2. Drop anything whose ``messageId`` was already seen.
3. Apply by type:
   - ``TRANSACTION``: recompute the hash and verify the signature, then
     persist through the store. Invalid transactions are reported, neither
     stored nor forwarded, and the message stays marked as seen. A
     transaction already held is reported as a duplicate, which is
     informational only; the message is still forwarded.
   - ``PEER_ANNOUNCE``: learn the sender; connect if it was unknown.
   - ``PEER_LIST``: learn every listed peer; connect to each with the
     configured probability (30% by default).
   - ``PING``: liveness only.
4. Forward with ``ttl - 1`` to every connected peer except the origin and
   the link it arrived on, if the decremented TTL is still positive.

The router never raises on inbound data.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from offline_pay.crypto.keys import verify_transaction
from offline_pay.errors.base import OfflinePayError
from offline_pay.errors.mesh_errors import DuplicateTransaction, MalformedMessage, NonceOutOfOrder
from offline_pay.mesh.messages import GossipMessage, MessageType
from offline_pay.mesh.seen import SeenCache
from offline_pay.models.transaction import OfflineTransaction, TransactionOrigin
from offline_pay.store.ledger_store import PutResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from offline_pay.mesh.overlay import PeerOverlay
    from offline_pay.metrics.collector import MeshMetrics
    from offline_pay.store.ledger_store import LocalLedgerStore

logger = logging.getLogger(__name__)

# Protocol defaults
INITIAL_TTL = 5
PEER_LIST_CONNECT_PROBABILITY = 0.3
DEDUP_WINDOW = 3600.0


@dataclass(frozen=True)
class PropagationResult:
    """Outcome of an originating broadcast.

    ``propagated`` is False when no peer was reachable; callers fall back
    to another exchange channel (e.g. a rendered payload).
    """

    message_id: str
    peers: int

    @property
    def propagated(self) -> bool:
        return self.peers > 0


class GossipRouter:
    """Message-level mesh protocol for one device.

    Usage::

        router = GossipRouter(overlay, store)
        result = await router.broadcast_transaction(tx)
        if not result.propagated:
            ...  # show the exchange payload instead
    """

    def __init__(
        self,
        overlay: PeerOverlay,
        store: LocalLedgerStore,
        *,
        initial_ttl: int = INITIAL_TTL,
        connect_probability: float = PEER_LIST_CONNECT_PROBABILITY,
        sampler: Callable[[], float] = random.random,
        dedup_window: float = DEDUP_WINDOW,
        dedup_max_entries: int = 50_000,
        clock: Callable[[], float] | None = None,
        metrics: MeshMetrics | None = None,
        on_incident: Callable[[OfflinePayError], Awaitable[None]] | None = None,
    ) -> None:
        self._overlay = overlay
        self._store = store
        self._initial_ttl = initial_ttl
        self._connect_probability = connect_probability
        self._sampler = sampler
        self._metrics = metrics
        self._on_incident = on_incident
        cache_kwargs: dict[str, Any] = {"window": dedup_window, "max_entries": dedup_max_entries}
        if clock is not None:
            cache_kwargs["clock"] = clock
        self._seen_messages = SeenCache(**cache_kwargs)
        self._processed_hashes = SeenCache(**cache_kwargs)
        overlay.set_handlers(on_message=self.handle, on_connected=self.send_peer_list)

    @property
    def peer_id(self) -> str:
        return self._overlay.peer_id

    @property
    def seen_count(self) -> int:
        """Number of message ids currently remembered."""
        return len(self._seen_messages)

    def has_seen(self, message_id: str) -> bool:
        return message_id in self._seen_messages

    # ------------------------------------------------------------------
    # Originating side
    # ------------------------------------------------------------------

    async def broadcast_transaction(self, tx: OfflineTransaction) -> PropagationResult:
        """Start a flood carrying *tx*."""
        self._processed_hashes.add(tx.hash)
        return await self._originate(MessageType.TRANSACTION, tx.to_wire())

    async def announce(self) -> PropagationResult:
        """Flood a ``PEER_ANNOUNCE`` for ourselves (discovery tick)."""
        return await self._originate(MessageType.PEER_ANNOUNCE, {"peerId": self.peer_id})

    async def ping(self) -> PropagationResult:
        """One-hop liveness message to every neighbour."""
        return await self._originate(MessageType.PING, None, ttl=1)

    async def send_peer_list(self, peer_id: str) -> None:
        """Tell a newly connected peer which peers we know (one hop only)."""
        peers = sorted(pid for pid in self._overlay.known_peers if pid != peer_id)
        message = GossipMessage(
            type=MessageType.PEER_LIST,
            sender=self.peer_id,
            ttl=1,
            data={"peers": peers},
        )
        self._seen_messages.add(message.message_id)
        await self._overlay.send(peer_id, message.to_dict())

    async def _originate(
        self, msg_type: MessageType, data: Any, *, ttl: int | None = None
    ) -> PropagationResult:
        message = GossipMessage(
            type=msg_type,
            sender=self.peer_id,
            ttl=self._initial_ttl if ttl is None else ttl,
            data=data,
        )
        # Our own flood must not be re-applied when it echoes back.
        self._seen_messages.add(message.message_id)
        peers = await self._overlay.broadcast(message.to_dict())
        if peers == 0:
            logger.info("%s %s not propagated: no connected peers", msg_type, message.message_id)
        return PropagationResult(message_id=message.message_id, peers=peers)

    # ------------------------------------------------------------------
    # Receiving side
    # ------------------------------------------------------------------

    async def handle(self, via_peer: str, raw: Any) -> None:
        """Process one inbound wire object from the link to *via_peer*."""
        try:
            message = GossipMessage.from_dict(raw)
        except MalformedMessage as exc:
            logger.debug("Dropping malformed message from %s: %s", via_peer, exc.message)
            self._count_dropped("malformed")
            return

        if not self._seen_messages.add(message.message_id):
            self._count_dropped("duplicate")
            return
        if self._metrics:
            self._metrics.message_received(message.type)

        try:
            await self._apply(message)
        except OfflinePayError as exc:
            # Rejected data is not passed on.
            await self._report(exc, message)
            return
        except Exception:
            # Storage or handler failure: logged, never propagated to the link.
            logger.exception("Failed to apply %s %s", message.type, message.message_id)

        await self._reflood(message, via_peer)

    async def _apply(self, message: GossipMessage) -> None:
        if message.type == MessageType.TRANSACTION:
            await self._apply_transaction(message)
        elif message.type == MessageType.PEER_ANNOUNCE:
            await self._apply_announce(message)
        elif message.type == MessageType.PEER_LIST:
            await self._apply_peer_list(message)
        # PING: liveness only

    async def _apply_transaction(self, message: GossipMessage) -> None:
        tx = OfflineTransaction.from_wire(message.data, origin=TransactionOrigin.MESH)
        if tx.hash in self._processed_hashes:
            await self._report(DuplicateTransaction(tx.hash), message)
            return
        # A forged copy must not shadow a genuine one under the same hash.
        verify_transaction(tx)

        tx.mesh_propagated = True
        result = await self._store.put_transaction(tx)
        # Only a stored transaction counts as processed; a failed write stays retryable.
        self._processed_hashes.add(tx.hash)
        if self._metrics:
            self._metrics.transaction_ingested(result)
        if result == PutResult.ALREADY_PRESENT:
            await self._report(DuplicateTransaction(tx.hash), message)
        elif result == PutResult.STORED_OUT_OF_ORDER:
            await self._report(
                NonceOutOfOrder(tx.sender, tx.nonce, await self._expected_nonce(tx)),
                message,
            )
        else:
            logger.info("Stored mesh transaction %s from %s", tx.hash[:16], tx.sender)

    async def _expected_nonce(self, tx: OfflineTransaction) -> int:
        """Lowest nonce of the sender still missing below *tx*."""
        held = await self._store.list_transactions(address=tx.sender, limit=10_000)
        nonces = {h.nonce for h in held if h.sender == tx.sender}
        return next((n for n in range(1, tx.nonce) if n not in nonces), tx.nonce)

    async def _apply_announce(self, message: GossipMessage) -> None:
        peer_id = message.sender
        if peer_id == self.peer_id:
            return
        unknown = not self._overlay.is_known(peer_id)
        self._overlay.remember(peer_id)
        if unknown and not self._overlay.is_connected(peer_id):
            await self._overlay.connect(peer_id)

    async def _apply_peer_list(self, message: GossipMessage) -> None:
        data = message.data if isinstance(message.data, dict) else {}
        peers = data.get("peers")
        if not isinstance(peers, list):
            raise MalformedMessage("PEER_LIST without a peers array")
        self._overlay.remember(message.sender)
        for peer_id in peers:
            if not isinstance(peer_id, str) or not peer_id or peer_id == self.peer_id:
                continue
            self._overlay.remember(peer_id)
            if self._overlay.is_connected(peer_id):
                continue
            if self._sampler() < self._connect_probability:
                await self._overlay.connect(peer_id)

    async def _reflood(self, message: GossipMessage, via_peer: str) -> None:
        forward = message.forwarded()
        if forward.ttl <= 0:
            return
        delivered = await self._overlay.broadcast(
            forward.to_dict(), exclude={message.sender, via_peer}
        )
        if delivered and self._metrics:
            self._metrics.message_reflooded(message.type)

    async def _report(self, exc: OfflinePayError, message: GossipMessage) -> None:
        """Record an inbound incident. Never fatal."""
        if isinstance(exc, DuplicateTransaction):
            logger.debug("%s (message %s)", exc.message, message.message_id)
        elif isinstance(exc, NonceOutOfOrder):
            logger.info("%s (message %s)", exc.message, message.message_id)
        else:
            logger.warning(
                "Rejected %s %s from %s: %s",
                message.type,
                message.message_id,
                message.sender,
                exc.message,
            )
        if self._metrics:
            self._metrics.incident(exc.code)
        if self._on_incident is not None:
            try:
                await self._on_incident(exc)
            except Exception:
                logger.exception("Incident callback failed")

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def prune(self) -> int:
        """Forget message ids and processed hashes older than the window."""
        dropped = self._seen_messages.prune() + self._processed_hashes.prune()
        if dropped:
            logger.debug("Pruned %d dedup entries", dropped)
        return dropped

    def _count_dropped(self, reason: str) -> None:
        if self._metrics:
            self._metrics.message_dropped(reason)
