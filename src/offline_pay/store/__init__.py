"""Durable local transaction store."""

from offline_pay.store.ledger_store import LocalLedgerStore, PutResult
from offline_pay.store.tables import Base

__all__ = ["Base", "LocalLedgerStore", "PutResult"]
