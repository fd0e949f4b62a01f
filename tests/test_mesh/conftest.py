"""Fixtures for simulated meshes on a shared in-memory hub."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest

from offline_pay.datastore.client import Datastore
from offline_pay.mesh.memory import MemoryHub
from offline_pay.mesh.overlay import PeerOverlay
from offline_pay.mesh.router import GossipRouter
from offline_pay.store.ledger_store import LocalLedgerStore
from offline_pay.store.tables import Base
from tests.conftest import db_config

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@dataclass
class Peer:
    """One simulated device."""

    peer_id: str
    overlay: PeerOverlay
    router: GossipRouter
    store: LocalLedgerStore
    datastore: Datastore
    incidents: list[Any] = field(default_factory=list)


class Mesh:
    def __init__(self) -> None:
        self.hub = MemoryHub()
        self.peers: dict[str, Peer] = {}

    async def add(
        self,
        peer_id: str,
        *,
        sampler=lambda: 1.0,
        initial_ttl: int = 5,
        reconnect_delay: float = 0.01,
    ) -> Peer:
        ds = Datastore(db_config())
        await ds.open(base=Base)
        store = LocalLedgerStore(ds)
        overlay = PeerOverlay(peer_id, self.hub.transport(), reconnect_delay=reconnect_delay)
        incidents: list[Any] = []

        async def on_incident(exc) -> None:
            incidents.append(exc)

        router = GossipRouter(
            overlay,
            store,
            initial_ttl=initial_ttl,
            sampler=sampler,
            on_incident=on_incident,
        )
        await overlay.start()
        peer = Peer(peer_id, overlay, router, store, ds, incidents)
        self.peers[peer_id] = peer
        return peer

    async def line(self, *peer_ids: str, **kwargs: Any) -> list[Peer]:
        """Peers connected as a chain p0 - p1 - ... - pn."""
        peers = [await self.add(pid, **kwargs) for pid in peer_ids]
        for left, right in zip(peers, peers[1:], strict=False):
            assert await left.overlay.connect(right.peer_id)
        return peers

    async def close(self) -> None:
        for peer in self.peers.values():
            await peer.overlay.stop()
            await peer.datastore.close()


@pytest.fixture
async def mesh() -> AsyncIterator[Mesh]:
    m = Mesh()
    yield m
    await m.close()
