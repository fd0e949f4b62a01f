"""OfflinePayNode — one device: store, mesh, wallet and ledger sync."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from offline_pay.config.settings import MeshTransportKind

if TYPE_CHECKING:
    from collections.abc import Callable

    from offline_pay.config.settings import AppConfig
    from offline_pay.datastore.client import Datastore
    from offline_pay.ledger.client import LedgerClient
    from offline_pay.mesh.overlay import PeerOverlay
    from offline_pay.mesh.router import GossipRouter
    from offline_pay.mesh.transport import Transport
    from offline_pay.metrics.collector import MeshMetrics
    from offline_pay.store.ledger_store import LocalLedgerStore
    from offline_pay.sync.coordinator import SyncCoordinator
    from offline_pay.taskmanager.manager import TaskManager
    from offline_pay.wallet.service import OfflineWallet

logger = logging.getLogger(__name__)

_ERR_NOT_INITIALIZED = "Node not initialized. Call initialize() first."

ANNOUNCE_JOB = "mesh_announce"
PRUNE_JOB = "mesh_prune"


class OfflinePayNode:
    """Owns every component of a device and their lifecycle.

    Usage::

        node = OfflinePayNode(config)
        await node.initialize()
        tx, _ = await node.wallet.create_transaction(recipient, "10")
        await node.set_online(False)
        ...
        await node.close()
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        transport: Transport | None = None,
        ledger: LedgerClient | None = None,
        metrics: MeshMetrics | None = None,
        sampler: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the node.

        Args:
            config: Application configuration.
            transport: Mesh transport override (e.g. a shared memory hub).
            ledger: Ledger client override; by default one is built from config.
            metrics: Metrics override; by default built when metrics are enabled.
            sampler: Random source for peer-list connects (tests).
        """
        self._config = config
        self._transport = transport
        self._ledger = ledger
        self._metrics = metrics
        self._sampler = sampler
        self._initialized = False

        self._datastore: Datastore | None = None
        self._store: LocalLedgerStore | None = None
        self._overlay: PeerOverlay | None = None
        self._router: GossipRouter | None = None
        self._wallet: OfflineWallet | None = None
        self._coordinator: SyncCoordinator | None = None
        self._task_manager: TaskManager | None = None

    async def initialize(self) -> None:
        """Open the store, start the mesh and the background jobs.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Node already initialized"
            raise RuntimeError(msg)

        from offline_pay.datastore.client import Datastore
        from offline_pay.mesh.overlay import PeerOverlay
        from offline_pay.mesh.router import GossipRouter
        from offline_pay.metrics.collector import MeshMetrics
        from offline_pay.store.ledger_store import LocalLedgerStore
        from offline_pay.store.tables import Base
        from offline_pay.sync.coordinator import SyncCoordinator
        from offline_pay.taskmanager.manager import CronJob, TaskManager
        from offline_pay.wallet.service import OfflineWallet

        mesh = self._config.mesh

        self._datastore = Datastore(self._config.db)
        await self._datastore.open(base=Base)
        self._store = LocalLedgerStore(self._datastore)

        if self._metrics is None and self._config.metrics.enabled:
            self._metrics = MeshMetrics()

        transport = self._transport or self._build_transport()
        self._transport = transport
        self._overlay = PeerOverlay(
            self._resolve_peer_id(),
            transport,
            reconnect_delay=mesh.reconnect_delay,
            metrics=self._metrics,
        )
        router_kwargs = {"sampler": self._sampler} if self._sampler is not None else {}
        self._router = GossipRouter(
            self._overlay,
            self._store,
            initial_ttl=mesh.initial_ttl,
            connect_probability=mesh.peer_list_connect_probability,
            dedup_window=mesh.dedup_window,
            dedup_max_entries=mesh.dedup_max_entries,
            metrics=self._metrics,
            **router_kwargs,
        )
        self._wallet = OfflineWallet(self._store, self._router)

        if self._ledger is None:
            self._ledger = self._build_ledger()
        await self._ledger.connect()

        self._task_manager = TaskManager(metrics=self._metrics)
        self._task_manager.register(
            ANNOUNCE_JOB, CronJob(handler=self._announce, period=mesh.discovery_interval)
        )
        self._task_manager.register(
            PRUNE_JOB, CronJob(handler=self._prune, period=mesh.prune_interval)
        )
        self._coordinator = SyncCoordinator(
            self._store,
            self._ledger,
            self._task_manager if self._config.sync.enabled else None,
            interval=self._config.sync.interval,
            batch_size=self._config.sync.batch_size,
            include_relayed=self._config.sync.relay_mesh_transactions,
            metrics=self._metrics,
        )

        await self._wallet.initialize_identity()
        await self._overlay.start()
        await self._task_manager.start()
        self._initialized = True
        logger.info("Node %s initialized (%s)", self._overlay.peer_id, self._wallet.address)

        for peer_id in mesh.bootstrap_peers:
            await self._overlay.connect(peer_id)
        if self._overlay.count():
            await self._router.announce()

        if self._config.sync.enabled and self._config.sync.start_online:
            await self._coordinator.set_online(True)

    async def close(self) -> None:
        """Stop jobs, close the mesh, the ledger client and the store.

        Can be called multiple times (idempotent).
        """
        if not self._initialized:
            return

        if self._task_manager is not None:
            await self._task_manager.stop()
            self._task_manager = None
        if self._overlay is not None:
            await self._overlay.stop()
        if self._ledger is not None:
            await self._ledger.close()
        if self._datastore is not None:
            await self._datastore.close()
            self._datastore = None

        self._coordinator = None
        self._wallet = None
        self._router = None
        self._overlay = None
        self._store = None
        self._initialized = False
        logger.info("Node shut down")

    async def set_online(self, online: bool) -> None:
        """Forward a connectivity change to the sync coordinator."""
        await self.coordinator.set_online(online)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def _announce(self) -> None:
        await self.router.announce()

    async def _prune(self) -> None:
        await self.router.prune()

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    def _build_transport(self) -> Transport:
        if self._config.mesh.transport == MeshTransportKind.MEMORY:
            from offline_pay.mesh.memory import MemoryHub

            return MemoryHub().transport()

        from offline_pay.mesh.websocket import WebSocketTransport

        return WebSocketTransport()

    def _build_ledger(self) -> LedgerClient:
        if not self._config.ledger.url:
            from offline_pay.ledger.memory import MemoryLedger

            logger.warning("No ledger URL configured; using an in-memory ledger")
            return MemoryLedger()

        from offline_pay.ledger.client import HttpLedgerClient

        return HttpLedgerClient(self._config.ledger)

    def _resolve_peer_id(self) -> str:
        if self._config.mesh.peer_id:
            return self._config.mesh.peer_id
        if self._config.mesh.transport == MeshTransportKind.WEBSOCKET:
            host = self._config.server.host
            if host in ("0.0.0.0", "::", ""):  # noqa: S104
                host = "127.0.0.1"
            return f"ws://{host}:{self._config.server.port}"
        return f"peer-{uuid.uuid4().hex[:12]}"

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def metrics(self) -> MeshMetrics | None:
        return self._metrics

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._transport

    @property
    def ledger(self) -> LedgerClient:
        if self._ledger is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._ledger

    @property
    def store(self) -> LocalLedgerStore:
        if self._store is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._store

    @property
    def overlay(self) -> PeerOverlay:
        if self._overlay is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._overlay

    @property
    def router(self) -> GossipRouter:
        if self._router is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._router

    @property
    def wallet(self) -> OfflineWallet:
        if self._wallet is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._wallet

    @property
    def coordinator(self) -> SyncCoordinator:
        if self._coordinator is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._coordinator

    @property
    def task_manager(self) -> TaskManager | None:
        return self._task_manager
