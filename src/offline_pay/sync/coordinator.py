"""SyncCoordinator — submit pending transactions to the ledger while online.

One sync round:

1. Ask the store for submittable PENDING transactions (ordered by sender
   and nonce, each sender cut at its first nonce gap).
2. Take up to ``batch_size`` of them, move each to PROCESSING and submit
   the batch in order.
3. Apply the receipt: accepted → COMPLETED and synced, rejected →
   REJECTED, no verdict → back to PENDING. A whole-batch refusal marks
   the batch FAILED.
4. Repeat until nothing is left. A transport failure reverts the current
   batch to PENDING and ends the round; the next timer tick retries.

Only one round runs at a time. Going online registers the periodic
``ledger_sync`` job and runs a round immediately; going offline removes
the job without interrupting a round already under way.
"""

from __future__ import annotations

import enum
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from offline_pay.errors.ledger_errors import LedgerRejected, LedgerSubmissionFailed
from offline_pay.ledger.models import MAX_BATCH_SIZE, LedgerEntry
from offline_pay.models.transaction import TransactionStatus
from offline_pay.taskmanager.manager import CronJob

if TYPE_CHECKING:
    from offline_pay.ledger.client import LedgerClient
    from offline_pay.ledger.models import BatchReceipt
    from offline_pay.metrics.collector import MeshMetrics
    from offline_pay.models.transaction import OfflineTransaction
    from offline_pay.store.ledger_store import LocalLedgerStore
    from offline_pay.taskmanager.manager import TaskManager

logger = logging.getLogger(__name__)

SYNC_JOB = "ledger_sync"
SYNC_INTERVAL = 30.0
_HISTORY = 100


class BatchOutcome(enum.StrEnum):
    """State of a submitted batch.

    PENDING: no verdict yet (in flight, or the submission failed).
    PARTIAL: some transactions got no verdict and were put back.
    COMPLETE: every transaction got a verdict.
    """

    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "complete"


@dataclass
class SyncBatch:
    """One ledger submission."""

    batch_id: str
    transaction_hashes: list[str]
    submitted_at: float
    outcome: BatchOutcome = BatchOutcome.PENDING
    ledger_batch_id: str = ""
    error: str = ""


@dataclass
class SyncResult:
    """Summary of one sync round."""

    ran: bool = True
    reason: str = ""
    accepted: int = 0
    rejected: int = 0
    failed: int = 0
    reverted: int = 0
    batches: list[SyncBatch] = field(default_factory=list)

    @property
    def submitted(self) -> int:
        return sum(len(b.transaction_hashes) for b in self.batches)


class SyncCoordinator:
    """Drives ledger submission for one device.

    Usage::

        coordinator = SyncCoordinator(store, ledger, task_manager)
        await coordinator.set_online(True)   # immediate round + 30 s timer
        ...
        await coordinator.set_online(False)
    """

    def __init__(
        self,
        store: LocalLedgerStore,
        ledger: LedgerClient,
        task_manager: TaskManager | None = None,
        *,
        interval: float = SYNC_INTERVAL,
        batch_size: int = MAX_BATCH_SIZE,
        include_relayed: bool = False,
        metrics: MeshMetrics | None = None,
    ) -> None:
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            msg = f"batch_size must be between 1 and {MAX_BATCH_SIZE}"
            raise ValueError(msg)
        self._store = store
        self._ledger = ledger
        self._tasks = task_manager
        self._interval = interval
        self._batch_size = batch_size
        self._include_relayed = include_relayed
        self._metrics = metrics
        self._online = False
        self._in_progress = False
        self._history: deque[SyncBatch] = deque(maxlen=_HISTORY)
        self._last_result: SyncResult | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def online(self) -> bool:
        return self._online

    @property
    def sync_in_progress(self) -> bool:
        return self._in_progress

    @property
    def batches(self) -> list[SyncBatch]:
        """Recent batches, oldest first."""
        return list(self._history)

    @property
    def last_result(self) -> SyncResult | None:
        return self._last_result

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    async def set_online(self, online: bool) -> SyncResult | None:
        """Record a connectivity change.

        Returns:
            The result of the immediate round when going online, else None.
        """
        if online == self._online:
            return None
        self._online = online
        if not online:
            logger.info("Offline: ledger sync paused")
            if self._tasks is not None:
                await self._tasks.unregister(SYNC_JOB)
            return None

        logger.info("Online: starting ledger sync")
        if self._tasks is not None:
            self._tasks.register(SYNC_JOB, CronJob(handler=self._tick, period=self._interval))
        return await self.sync()

    async def _tick(self) -> None:
        await self.sync()

    # ------------------------------------------------------------------
    # Sync round
    # ------------------------------------------------------------------

    async def sync(self) -> SyncResult:
        """Run one round. Skipped while offline or while a round is running."""
        if not self._online:
            return SyncResult(ran=False, reason="offline")
        if self._in_progress:
            return SyncResult(ran=False, reason="sync already in progress")

        self._in_progress = True
        result = SyncResult()
        try:
            if self._metrics:
                with self._metrics.track_sync():
                    await self._run_round(result)
            else:
                await self._run_round(result)
        finally:
            self._in_progress = False
        self._last_result = result
        if result.batches:
            logger.info(
                "Sync round: %d submitted, %d accepted, %d rejected, %d failed, %d reverted",
                result.submitted,
                result.accepted,
                result.rejected,
                result.failed,
                result.reverted,
            )
        return result

    async def _run_round(self, result: SyncResult) -> None:
        attempted: set[str] = set()
        blocked: set[str] = set()
        while self._online:
            pending = await self._store.pending_for_sync(include_relayed=self._include_relayed)
            if self._metrics:
                self._metrics.set_pending_count(len(pending))
            candidates = [
                tx for tx in pending if tx.hash not in attempted and tx.sender not in blocked
            ]
            if not candidates:
                return
            chunk = candidates[: self._batch_size]
            attempted.update(tx.hash for tx in chunk)
            if not await self._submit(chunk, result, blocked):
                return

    async def _submit(
        self,
        chunk: list[OfflineTransaction],
        result: SyncResult,
        blocked: set[str],
    ) -> bool:
        """Submit one batch. Returns False if the round must stop."""
        claimed: list[OfflineTransaction] = []
        for tx in chunk:
            if await self._store.update_status(tx.hash, TransactionStatus.PROCESSING):
                claimed.append(tx)
        if not claimed:
            return True

        batch = SyncBatch(
            batch_id=uuid.uuid4().hex,
            transaction_hashes=[tx.hash for tx in claimed],
            submitted_at=time.time(),
        )
        self._history.append(batch)
        result.batches.append(batch)

        try:
            receipt = await self._ledger.submit_batch(
                [LedgerEntry.from_transaction(tx) for tx in claimed]
            )
        except LedgerSubmissionFailed as exc:
            logger.warning("Ledger submission failed, reverting %d: %s", len(claimed), exc.message)
            batch.error = exc.message
            result.reverted += await self._revert(claimed)
            self._batch_finished(batch)
            return False
        except LedgerRejected as exc:
            logger.error("Ledger rejected batch %s: %s", batch.batch_id, exc.message)
            batch.error = exc.message
            for tx in claimed:
                if await self._store.update_status(tx.hash, TransactionStatus.FAILED):
                    result.failed += 1
                blocked.add(tx.sender)
            batch.outcome = BatchOutcome.COMPLETE
            self._batch_finished(batch)
            return True
        except Exception:
            await self._revert(claimed)
            raise

        await self._apply_receipt(batch, claimed, receipt, result, blocked)
        self._batch_finished(batch)
        return True

    async def _apply_receipt(
        self,
        batch: SyncBatch,
        claimed: list[OfflineTransaction],
        receipt: BatchReceipt,
        result: SyncResult,
        blocked: set[str],
    ) -> None:
        batch.ledger_batch_id = receipt.batch_id
        unresolved: list[OfflineTransaction] = []
        for tx in claimed:
            outcome = receipt.outcome_for(tx.hash)
            if outcome is None:
                unresolved.append(tx)
                blocked.add(tx.sender)
            elif outcome.accepted:
                if await self._store.mark_synced(tx.hash):
                    result.accepted += 1
            else:
                logger.warning("Ledger rejected %s: %s", tx.hash[:16], outcome.reason or "-")
                if await self._store.update_status(tx.hash, TransactionStatus.REJECTED):
                    result.rejected += 1
                blocked.add(tx.sender)

        if unresolved:
            logger.warning("No verdict for %d transaction(s); reverting", len(unresolved))
            result.reverted += await self._revert(unresolved)
            batch.outcome = BatchOutcome.PARTIAL
        else:
            batch.outcome = BatchOutcome.COMPLETE

    async def _revert(self, txs: list[OfflineTransaction]) -> int:
        reverted = 0
        for tx in txs:
            if await self._store.update_status(tx.hash, TransactionStatus.PENDING):
                reverted += 1
        return reverted

    def _batch_finished(self, batch: SyncBatch) -> None:
        if self._metrics:
            self._metrics.batch_finished(batch.outcome.value)
