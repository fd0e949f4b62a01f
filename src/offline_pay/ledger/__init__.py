"""Ledger collaborator — batch submission of offline transactions."""

from __future__ import annotations

from offline_pay.ledger.client import HttpLedgerClient, LedgerClient
from offline_pay.ledger.memory import MemoryLedger
from offline_pay.ledger.models import MAX_BATCH_SIZE, BatchReceipt, LedgerEntry, TxOutcome

__all__ = [
    "MAX_BATCH_SIZE",
    "BatchReceipt",
    "HttpLedgerClient",
    "LedgerClient",
    "LedgerEntry",
    "MemoryLedger",
    "TxOutcome",
]
