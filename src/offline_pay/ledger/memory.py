"""In-memory ledger — reference implementation of the batch contract.

Used by tests and single-process simulations. Per transaction it checks
the declared hash against the canonical message, refuses replays of an
already accepted hash, and enforces each sender's nonce sequence
(1, 2, 3, ... with no gaps). Verdicts inside one batch are applied in
order, so a batch may carry consecutive nonces of the same sender.
"""

from __future__ import annotations

import logging
import uuid

from offline_pay.crypto.keys import canonical_message, transaction_hash
from offline_pay.errors.ledger_errors import LedgerRejected, LedgerSubmissionFailed
from offline_pay.ledger.client import LedgerClient
from offline_pay.ledger.models import MAX_BATCH_SIZE, BatchReceipt, LedgerEntry, TxOutcome

logger = logging.getLogger(__name__)


class MemoryLedger(LedgerClient):
    """Ledger held in process memory.

    Attributes:
        unreachable: While True every submission fails as a transport error.
        batches: Receipts issued so far, oldest first.
    """

    def __init__(self) -> None:
        self.unreachable = False
        self.batches: list[tuple[list[LedgerEntry], BatchReceipt]] = []
        self._accepted: dict[str, LedgerEntry] = {}
        self._last_nonce: dict[str, int] = {}

    @property
    def accepted(self) -> list[LedgerEntry]:
        """Accepted entries in acceptance order."""
        return list(self._accepted.values())

    def is_accepted(self, tx_hash: str) -> bool:
        return tx_hash in self._accepted

    def last_nonce(self, sender: str) -> int:
        """Highest accepted nonce for *sender* (0 if none)."""
        return self._last_nonce.get(sender, 0)

    async def submit_batch(self, entries: list[LedgerEntry]) -> BatchReceipt:
        if self.unreachable:
            raise LedgerSubmissionFailed("ledger unreachable")
        if len(entries) > MAX_BATCH_SIZE:
            msg = f"batch of {len(entries)} exceeds the ledger limit of {MAX_BATCH_SIZE}"
            raise LedgerRejected(msg, status_code=413)

        receipt = BatchReceipt(batch_id=uuid.uuid4().hex)
        for entry in entries:
            receipt.outcomes.append(self._judge(entry))
        self.batches.append((list(entries), receipt))
        logger.debug(
            "Batch %s: %d/%d accepted",
            receipt.batch_id,
            sum(o.accepted for o in receipt.outcomes),
            len(entries),
        )
        return receipt

    def _judge(self, entry: LedgerEntry) -> TxOutcome:
        computed = transaction_hash(
            canonical_message(
                entry.amount, entry.sender, entry.recipient, entry.nonce, entry.timestamp
            )
        )
        if computed != entry.hash:
            return TxOutcome(entry.hash, accepted=False, reason="hash mismatch")
        if entry.hash in self._accepted:
            return TxOutcome(entry.hash, accepted=False, reason="replay")
        expected = self.last_nonce(entry.sender) + 1
        if entry.nonce != expected:
            return TxOutcome(
                entry.hash, accepted=False, reason=f"nonce {entry.nonce}, expected {expected}"
            )
        self._accepted[entry.hash] = entry
        self._last_nonce[entry.sender] = entry.nonce
        return TxOutcome(entry.hash, accepted=True)
