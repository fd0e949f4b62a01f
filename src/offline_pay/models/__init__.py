"""Domain models."""

from offline_pay.models.transaction import (
    Keypair,
    OfflineTransaction,
    TransactionOrigin,
    TransactionStatus,
)

__all__ = ["Keypair", "OfflineTransaction", "TransactionOrigin", "TransactionStatus"]
