"""Ledger data models — batch entries and the per-transaction receipt.

Wire contract (JSON, camelCase):

Request::

    {"transactions": [{"hash", "from", "to", "amount", "nonce",
                       "timestamp", "signature"}, ...]}

Response::

    {"batchId": "...", "results": [{"hash", "accepted", "reason"?}, ...]}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from offline_pay.models.transaction import OfflineTransaction

# Largest batch the ledger accepts in one submission
MAX_BATCH_SIZE = 20


@dataclass(frozen=True)
class LedgerEntry:
    """The signed fields of one transaction, as submitted to the ledger."""

    hash: str
    sender: str
    recipient: str
    amount: str
    nonce: int
    timestamp: int
    signature: str

    @classmethod
    def from_transaction(cls, tx: OfflineTransaction) -> LedgerEntry:
        return cls(
            hash=tx.hash,
            sender=tx.sender,
            recipient=tx.recipient,
            amount=tx.amount,
            nonce=tx.nonce,
            timestamp=tx.timestamp,
            signature=tx.signature,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "from": self.sender,
            "to": self.recipient,
            "amount": self.amount,
            "nonce": self.nonce,
            "timestamp": self.timestamp,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class TxOutcome:
    """Ledger verdict for one transaction of a batch."""

    hash: str
    accepted: bool
    reason: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TxOutcome | None:
        """Parse one verdict; None unless ``accepted`` is a JSON boolean."""
        accepted = data.get("accepted")
        if not isinstance(accepted, bool):
            return None
        return cls(
            hash=str(data.get("hash", "")),
            accepted=accepted,
            reason=str(data.get("reason") or ""),
        )


@dataclass
class BatchReceipt:
    """Ledger response to one batch submission.

    Attributes:
        batch_id: Ledger-side batch reference.
        outcomes: Per-transaction verdicts. A transaction missing from
            this list was neither accepted nor rejected.
    """

    batch_id: str = ""
    outcomes: list[TxOutcome] = field(default_factory=list)

    def outcome_for(self, tx_hash: str) -> TxOutcome | None:
        return next((o for o in self.outcomes if o.hash == tx_hash), None)

    @classmethod
    def from_dict(cls, data: Any) -> BatchReceipt:
        """Parse a receipt body. Entries without a usable verdict are left out.

        Raises:
            ValueError: If the body is not an object or ``results`` is not a list.
        """
        if not isinstance(data, dict):
            msg = f"receipt must be a JSON object, got {type(data).__name__}"
            raise ValueError(msg)
        results = data.get("results")
        if results is None:
            results = []
        if not isinstance(results, list):
            msg = f"receipt results must be a list, got {type(results).__name__}"
            raise ValueError(msg)
        outcomes = [TxOutcome.from_dict(r) for r in results if isinstance(r, dict)]
        return cls(
            batch_id=str(data.get("batchId") or ""),
            outcomes=[o for o in outcomes if o is not None],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "results": [
                {"hash": o.hash, "accepted": o.accepted, "reason": o.reason}
                for o in self.outcomes
            ],
        }
