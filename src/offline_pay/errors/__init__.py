"""Error taxonomy."""

from offline_pay.errors.base import OfflinePayError
from offline_pay.errors.ledger_errors import LedgerRejected, LedgerSubmissionFailed
from offline_pay.errors.mesh_errors import (
    DuplicateTransaction,
    HashMismatch,
    MalformedMessage,
    NonceOutOfOrder,
    PeerUnreachable,
    SignatureInvalid,
)

__all__ = [
    "DuplicateTransaction",
    "HashMismatch",
    "LedgerRejected",
    "LedgerSubmissionFailed",
    "MalformedMessage",
    "NonceOutOfOrder",
    "OfflinePayError",
    "PeerUnreachable",
    "SignatureInvalid",
]
