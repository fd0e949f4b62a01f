"""Ledger synchronization of offline transactions."""

from __future__ import annotations

from offline_pay.sync.coordinator import BatchOutcome, SyncBatch, SyncCoordinator, SyncResult

__all__ = ["BatchOutcome", "SyncBatch", "SyncCoordinator", "SyncResult"]
