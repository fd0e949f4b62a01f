"""Offline transaction domain types — status lattice, keypair, transaction.

``OfflineTransaction`` is the in-memory view shared by the store, the gossip
router and the sync coordinator. The wire form (``to_wire``/``from_wire``)
uses the camelCase field names other devices and the ledger expect.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Any

from offline_pay.errors.mesh_errors import MalformedMessage

# ---------------------------------------------------------------------------
# Status lattice
# ---------------------------------------------------------------------------


class TransactionStatus(enum.StrEnum):
    """Transaction lifecycle.

    Lifecycle: PENDING → PROCESSING → COMPLETED | REJECTED | FAILED
    PROCESSING may revert to PENDING after a transient ledger failure.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        """COMPLETED and REJECTED admit no further transitions."""
        return self in (TransactionStatus.COMPLETED, TransactionStatus.REJECTED)


_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset(
        {
            TransactionStatus.PROCESSING,
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.REJECTED,
        }
    ),
    TransactionStatus.PROCESSING: frozenset(
        {
            TransactionStatus.PENDING,
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.REJECTED,
        }
    ),
    TransactionStatus.FAILED: frozenset(
        {
            TransactionStatus.PENDING,
            TransactionStatus.COMPLETED,
            TransactionStatus.REJECTED,
        }
    ),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.REJECTED: frozenset(),
}


def can_transition(current: TransactionStatus, new: TransactionStatus) -> bool:
    """Return True if *current* → *new* is allowed by the status lattice."""
    return new in _TRANSITIONS[current]


class TransactionOrigin(enum.StrEnum):
    """Where a stored transaction came from."""

    LOCAL = "local"
    MESH = "mesh"
    EXCHANGE = "exchange"


# ---------------------------------------------------------------------------
# Keypair
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Keypair:
    """Device identity. ``private_key`` never leaves the store or signer."""

    address: str
    public_key: str
    private_key: str = field(repr=False)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def is_valid_amount(amount: Any) -> bool:
    """Check that *amount* is a positive, finite decimal string."""
    if not isinstance(amount, str) or not amount or amount != amount.strip():
        return False
    try:
        value = Decimal(amount)
    except InvalidOperation:
        return False
    return value.is_finite() and value > 0


def _require(data: dict[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    value = data.get(key)
    # bool is an int subclass; never accept it for numeric fields
    if value is None or isinstance(value, bool) or not isinstance(value, kind):
        msg = f"field {key!r} missing or not {getattr(kind, '__name__', kind)}"
        raise MalformedMessage(msg)
    return value


# ---------------------------------------------------------------------------
# OfflineTransaction
# ---------------------------------------------------------------------------


@dataclass
class OfflineTransaction:
    """A signed value transfer created or received while offline.

    Attributes:
        id: Unique transaction ID (uuid4).
        sender: Originating address (``from`` on the wire).
        recipient: Destination address (``to`` on the wire).
        amount: Decimal string, kept verbatim because it is signed.
        nonce: Per-sender sequence number, starting at 1.
        timestamp: Creation time in milliseconds.
        signature: Base58 Ed25519 signature over the canonical message.
        hash: SHA-256 hex digest of the canonical message.
        status: Lifecycle status.
        metadata: Free-form metadata; carries ``senderPublicKey``.
        synced_on_ledger: Whether the ledger has accepted the transaction.
        mesh_propagated: Whether the transaction reached at least one peer.
        origin: Where the transaction entered this device.
    """

    id: str
    sender: str
    recipient: str
    amount: str
    nonce: int
    timestamp: int
    signature: str
    hash: str
    status: TransactionStatus = TransactionStatus.PENDING
    metadata: dict[str, Any] = field(default_factory=dict)
    synced_on_ledger: bool = False
    mesh_propagated: bool = False
    origin: TransactionOrigin = TransactionOrigin.LOCAL

    @property
    def sender_public_key(self) -> str | None:
        """Sender public key carried in metadata, if any."""
        value = self.metadata.get("senderPublicKey")
        return value if isinstance(value, str) else None

    def with_status(self, status: TransactionStatus) -> OfflineTransaction:
        """Return a copy with a different status."""
        return replace(self, status=status)

    def to_wire(self) -> dict[str, Any]:
        """Serialize the signed fields plus id and metadata for the mesh."""
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "amount": self.amount,
            "nonce": self.nonce,
            "timestamp": self.timestamp,
            "signature": self.signature,
            "hash": self.hash,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_wire(
        cls,
        data: Any,
        *,
        origin: TransactionOrigin = TransactionOrigin.MESH,
    ) -> OfflineTransaction:
        """Parse a wire dict into a fresh PENDING transaction.

        Status and sync flags from the wire are ignored; every device
        tracks its own view of the lifecycle.

        Raises:
            MalformedMessage: If a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise MalformedMessage("transaction data must be an object")
        nonce = _require(data, "nonce", int)
        if nonce < 1:
            raise MalformedMessage("nonce must be >= 1")
        timestamp = _require(data, "timestamp", int)
        if timestamp < 0:
            raise MalformedMessage("timestamp must be non-negative")
        amount = _require(data, "amount", str)
        if not is_valid_amount(amount):
            raise MalformedMessage(f"invalid amount {amount!r}")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise MalformedMessage("metadata must be an object")
        return cls(
            id=_require(data, "id", str),
            sender=_require(data, "from", str),
            recipient=_require(data, "to", str),
            amount=amount,
            nonce=nonce,
            timestamp=timestamp,
            signature=_require(data, "signature", str),
            hash=_require(data, "hash", str),
            metadata=dict(metadata),
            origin=origin,
        )

    def __repr__(self) -> str:
        return (
            f"<OfflineTransaction hash={self.hash[:16]}... from={self.sender} "
            f"nonce={self.nonce} status={self.status}>"
        )
