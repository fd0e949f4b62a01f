"""Ledger HTTP client — batch submission.

- POST {submit_path} — submit up to 20 signed transactions in order

Failures are classified for the sync coordinator:

* connection errors, timeouts, 429 and 5xx → ``LedgerSubmissionFailed``
  (transient; the batch is retried on the next cycle)
* any other non-2xx → ``LedgerRejected`` (the whole batch is refused)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import httpx

from offline_pay.errors.ledger_errors import LedgerRejected, LedgerSubmissionFailed
from offline_pay.ledger.models import MAX_BATCH_SIZE, BatchReceipt

if TYPE_CHECKING:
    from offline_pay.config.settings import LedgerConfig
    from offline_pay.ledger.models import LedgerEntry

logger = logging.getLogger(__name__)


class LedgerClient(ABC):
    """The remote ledger the sync coordinator submits to."""

    async def connect(self) -> None:  # noqa: B027
        """Acquire resources. No-op by default."""

    async def close(self) -> None:  # noqa: B027
        """Release resources. No-op by default."""

    @abstractmethod
    async def submit_batch(self, entries: list[LedgerEntry]) -> BatchReceipt:
        """Submit an ordered batch.

        Raises:
            LedgerSubmissionFailed: Transient failure; nothing was recorded.
            LedgerRejected: The ledger refused the whole batch.
        """


class HttpLedgerClient(LedgerClient):
    """Async HTTP ledger client.

    Usage::

        ledger = HttpLedgerClient(config)
        await ledger.connect()
        try:
            receipt = await ledger.submit_batch(entries)
        finally:
            await ledger.close()
    """

    def __init__(
        self,
        config: LedgerConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Ledger configuration (url, token, submit_path, timeout).
            transport: Optional httpx transport, for tests.
        """
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"

        self._client = httpx.AsyncClient(
            base_url=self._config.url.rstrip("/"),
            headers=headers,
            timeout=self._config.timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    async def submit_batch(self, entries: list[LedgerEntry]) -> BatchReceipt:
        if not entries:
            return BatchReceipt()
        if len(entries) > MAX_BATCH_SIZE:
            msg = f"batch of {len(entries)} exceeds the ledger limit of {MAX_BATCH_SIZE}"
            raise LedgerRejected(msg, status_code=413)

        client = self._ensure_connected()
        try:
            response = await client.post(
                self._config.submit_path,
                json={"transactions": [e.to_dict() for e in entries]},
            )
        except httpx.HTTPError as exc:
            raise LedgerSubmissionFailed(f"ledger submission failed: {exc}") from exc

        if response.status_code in (200, 201, 202):
            try:
                return BatchReceipt.from_dict(response.json())
            except ValueError as exc:
                raise LedgerSubmissionFailed("ledger returned an unreadable receipt") from exc

        self._raise_for_status(response)
        return BatchReceipt()  # unreachable

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "Ledger client not connected. Call connect() first."
            raise LedgerSubmissionFailed(msg, status_code=500)
        return self._client

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        detail: object = response.text
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = body.get("detail", body.get("error", detail))

        if status == 429 or status >= 500:
            raise LedgerSubmissionFailed(
                f"ledger unavailable ({status}): {detail}", status_code=status
            )
        if status in (401, 403):
            # Credentials problem, not a verdict on the transactions.
            raise LedgerSubmissionFailed("ledger authentication failed", status_code=status)
        raise LedgerRejected(f"ledger rejected batch ({status}): {detail}", status_code=status)
