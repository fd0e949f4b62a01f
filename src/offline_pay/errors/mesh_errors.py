"""Validation and mesh errors.

Raised while ingesting data that arrived from another device. The gossip
router absorbs all of these; they surface to callers only on the local
exchange (payload import) path.
"""

from __future__ import annotations

from offline_pay.errors.base import OfflinePayError


class MalformedMessage(OfflinePayError):
    """A wire message or payload is missing fields or has the wrong types."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=400, code="malformed-message")


class SignatureInvalid(OfflinePayError):
    """Signature (or the sender key binding) does not verify."""

    def __init__(self, message: str = "invalid transaction signature") -> None:
        super().__init__(message, status_code=422, code="signature-invalid")


class HashMismatch(OfflinePayError):
    """Declared transaction hash differs from the recomputed one."""

    def __init__(self, declared: str, computed: str) -> None:
        super().__init__(
            f"transaction hash mismatch: declared {declared[:16]}, computed {computed[:16]}",
            status_code=422,
            code="hash-mismatch",
        )
        self.declared = declared
        self.computed = computed


class DuplicateTransaction(OfflinePayError):
    """Transaction hash already stored. Informational, never fatal."""

    def __init__(self, tx_hash: str) -> None:
        super().__init__(
            f"transaction {tx_hash[:16]} already present", status_code=200, code="duplicate"
        )
        self.tx_hash = tx_hash


class NonceOutOfOrder(OfflinePayError):
    """Stored, but not submittable until the sender's lower nonces are synced."""

    def __init__(self, sender: str, nonce: int, expected: int) -> None:
        super().__init__(
            f"nonce {nonce} for {sender} arrived before nonce {expected}",
            status_code=202,
            code="nonce-out-of-order",
        )
        self.sender = sender
        self.nonce = nonce
        self.expected = expected


class PeerUnreachable(OfflinePayError):
    """A peer channel could not be opened or a send failed."""

    def __init__(self, peer_id: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"peer {peer_id} unreachable{detail}", status_code=502, code="peer-unreachable"
        )
        self.peer_id = peer_id
