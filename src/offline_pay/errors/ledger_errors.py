"""Ledger collaborator errors."""

from __future__ import annotations

from offline_pay.errors.base import OfflinePayError


class LedgerSubmissionFailed(OfflinePayError):
    """Transient failure reaching the ledger; the batch is retried next cycle."""

    def __init__(self, message: str, *, status_code: int = 502) -> None:
        super().__init__(message, status_code=status_code, code="ledger-submission-failed")


class LedgerRejected(OfflinePayError):
    """Terminal, non-retryable rejection of a whole batch."""

    def __init__(self, message: str, *, status_code: int = 422) -> None:
        super().__init__(message, status_code=status_code, code="ledger-rejected")
