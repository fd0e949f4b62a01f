"""LocalLedgerStore — durable transaction state and the nonce index.

The store is the single writer of transaction status. Every write runs in
the datastore's exclusive write session, so nonce allocation and
hash-keyed upserts never interleave, even though every database call is a
suspension point.
"""

from __future__ import annotations

import enum
import logging
from itertools import groupby
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select

from offline_pay.models.transaction import (
    TransactionOrigin,
    TransactionStatus,
    can_transition,
)
from offline_pay.store.tables import KeypairRecord, TransactionRecord

if TYPE_CHECKING:
    from collections.abc import Iterable

    from offline_pay.datastore.client import Datastore
    from offline_pay.models.transaction import Keypair, OfflineTransaction

logger = logging.getLogger(__name__)


class PutResult(enum.StrEnum):
    """Outcome of ``put_transaction``."""

    STORED = "stored"
    STORED_OUT_OF_ORDER = "stored_out_of_order"
    ALREADY_PRESENT = "already_present"


class LocalLedgerStore:
    """Queryable store of offline transactions and the device keypair.

    Usage::

        store = LocalLedgerStore(datastore)
        result = await store.put_transaction(tx)
        batch = await store.pending_for_sync()
    """

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def put_transaction(self, tx: OfflineTransaction) -> PutResult:
        """Insert *tx* unless a transaction with the same hash exists.

        Duplicate delivery is expected on a mesh and is not an error.
        A nonce that skips ahead of the sender's stored nonces is stored
        all the same; ``pending_for_sync`` holds it back.
        """
        async with self._ds.write() as session:
            if await session.get(TransactionRecord, tx.hash) is not None:
                return PutResult.ALREADY_PRESENT

            highest = await session.scalar(
                select(func.max(TransactionRecord.nonce)).where(
                    TransactionRecord.sender == tx.sender
                )
            )
            session.add(TransactionRecord.from_domain(tx))

        if tx.nonce > (highest or 0) + 1:
            logger.info(
                "Stored %s with nonce %d ahead of sender %s (highest %d)",
                tx.hash[:16],
                tx.nonce,
                tx.sender,
                highest or 0,
            )
            return PutResult.STORED_OUT_OF_ORDER
        return PutResult.STORED

    async def get_transaction(self, tx_hash: str) -> OfflineTransaction | None:
        """Find a transaction by hash."""
        async with self._ds.session() as session:
            record = await session.get(TransactionRecord, tx_hash)
            return record.to_domain() if record is not None else None

    async def get_by_id(self, tx_id: str) -> OfflineTransaction | None:
        """Find a transaction by its id (not the hash)."""
        async with self._ds.session() as session:
            record = await session.scalar(
                select(TransactionRecord).where(TransactionRecord.id == tx_id).limit(1)
            )
            return record.to_domain() if record is not None else None

    async def list_transactions(
        self,
        *,
        address: str | None = None,
        status: TransactionStatus | None = None,
        limit: int = 100,
    ) -> list[OfflineTransaction]:
        """List transactions newest first, optionally for one address."""
        async with self._ds.session() as session:
            stmt = select(TransactionRecord).order_by(
                TransactionRecord.timestamp.desc(), TransactionRecord.nonce.desc()
            )
            if address:
                stmt = stmt.where(
                    (TransactionRecord.sender == address) | (TransactionRecord.recipient == address)
                )
            if status is not None:
                stmt = stmt.where(TransactionRecord.status == status.value)
            result = await session.execute(stmt.limit(limit))
            return [record.to_domain() for record in result.scalars().all()]

    async def next_nonce(self, address: str) -> int:
        """One plus the highest nonce stored for *address* (1 for a new sender)."""
        async with self._ds.session() as session:
            highest = await session.scalar(
                select(func.max(TransactionRecord.nonce)).where(
                    TransactionRecord.sender == address
                )
            )
        return (highest or 0) + 1

    async def pending_for_sync(self, *, include_relayed: bool = False) -> list[OfflineTransaction]:
        """PENDING transactions that may be submitted now, ordered by (sender, nonce).

        For each sender, transactions are released in nonce order up to the
        first gap. A gap is a missing nonce, or a lower nonce that is neither
        synced nor pending itself (PROCESSING, FAILED, REJECTED).

        Args:
            include_relayed: Also release transactions received from peers.
        """
        origins = [TransactionOrigin.LOCAL.value]
        if include_relayed:
            origins += [TransactionOrigin.MESH.value, TransactionOrigin.EXCHANGE.value]

        async with self._ds.session() as session:
            senders = select(TransactionRecord.sender).where(
                TransactionRecord.status == TransactionStatus.PENDING.value,
                TransactionRecord.synced_on_ledger.is_(False),
                TransactionRecord.origin.in_(origins),
            )
            result = await session.execute(
                select(TransactionRecord)
                .where(TransactionRecord.sender.in_(senders))
                .order_by(
                    TransactionRecord.sender,
                    TransactionRecord.nonce,
                    TransactionRecord.timestamp,
                    TransactionRecord.hash,
                )
            )
            records = list(result.scalars().all())

        eligible: list[OfflineTransaction] = []
        for sender, group in groupby(records, key=lambda r: r.sender):
            eligible.extend(_releasable(sender, group, origins))
        return eligible

    async def update_status(self, tx_hash: str, new_status: TransactionStatus) -> bool:
        """Move a transaction along the status lattice.

        Backward or out-of-terminal moves are refused with a warning.

        Returns:
            True if the status changed.
        """
        async with self._ds.write() as session:
            record = await session.get(TransactionRecord, tx_hash)
            if record is None:
                logger.warning("update_status: transaction %s not found", tx_hash[:16])
                return False
            current = TransactionStatus(record.status)
            if current == new_status:
                return False
            if not can_transition(current, new_status):
                logger.warning(
                    "Refusing status change %s -> %s for %s", current, new_status, tx_hash[:16]
                )
                return False
            record.status = new_status.value
        return True

    async def mark_synced(self, tx_hash: str) -> bool:
        """Set ``synced_on_ledger`` and COMPLETED in one commit."""
        async with self._ds.write() as session:
            record = await session.get(TransactionRecord, tx_hash)
            if record is None:
                logger.warning("mark_synced: transaction %s not found", tx_hash[:16])
                return False
            current = TransactionStatus(record.status)
            if current != TransactionStatus.COMPLETED and not can_transition(
                current, TransactionStatus.COMPLETED
            ):
                logger.warning("Refusing to mark %s transaction %s synced", current, tx_hash[:16])
                return False
            record.status = TransactionStatus.COMPLETED.value
            record.synced_on_ledger = True
        return True

    async def mark_propagated(self, tx_hash: str) -> None:
        """Record that the transaction reached at least one peer."""
        async with self._ds.write() as session:
            record = await session.get(TransactionRecord, tx_hash)
            if record is not None and not record.mesh_propagated:
                record.mesh_propagated = True

    async def reset(self) -> None:
        """Delete every stored transaction. Test environments only."""
        async with self._ds.write() as session:
            await session.execute(delete(TransactionRecord))
        logger.warning("All offline transactions cleared")

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def get_keypair(self) -> Keypair | None:
        """Return the device keypair, if one was created."""
        async with self._ds.session() as session:
            record = await session.scalar(
                select(KeypairRecord).order_by(KeypairRecord.created_at).limit(1)
            )
            return record.to_domain() if record is not None else None

    async def save_keypair(self, keypair: Keypair) -> None:
        """Persist the device keypair."""
        async with self._ds.write() as session:
            session.add(
                KeypairRecord(
                    address=keypair.address,
                    public_key=keypair.public_key,
                    private_key=keypair.private_key,
                )
            )


def _releasable(
    sender: str,
    records: Iterable[TransactionRecord],
    origins: list[str],
) -> list[OfflineTransaction]:
    """Walk one sender's transactions in nonce order up to the first gap."""
    released: list[OfflineTransaction] = []
    expected = 1
    for nonce, same_nonce in groupby(records, key=lambda r: r.nonce):
        if nonce != expected:
            if nonce > expected:
                logger.debug(
                    "Sender %s: holding back nonce %d, missing %d", sender, nonce, expected
                )
            break
        # Competing transactions for one nonce: the earliest timestamp wins.
        record = next(same_nonce)
        if record.synced_on_ledger or record.status == TransactionStatus.COMPLETED.value:
            expected += 1
            continue
        if record.status != TransactionStatus.PENDING.value or record.origin not in origins:
            break
        released.append(record.to_domain())
        expected += 1
    return released
