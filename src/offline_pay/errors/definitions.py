"""Pre-defined error instances for the local API surface."""

from __future__ import annotations

from offline_pay.errors.base import OfflinePayError

# -- Identity --------------------------------------------------------------

ErrNoKeypair = OfflinePayError(
    "no local keypair; initialize the identity first", status_code=409, code="no-keypair"
)

# -- Not Found -------------------------------------------------------------

ErrTransactionNotFound = OfflinePayError(
    "transaction not found", status_code=404, code="transaction-not-found"
)

# -- Validation ------------------------------------------------------------

ErrInvalidAmount = OfflinePayError(
    "amount must be a positive decimal string", status_code=400, code="invalid-amount"
)
ErrInvalidRecipient = OfflinePayError(
    "recipient address is required", status_code=400, code="invalid-recipient"
)
# -- Mesh ------------------------------------------------------------------

ErrInvalidPeerId = OfflinePayError(
    "websocket mesh peers must be ws:// or wss:// URLs", status_code=400, code="invalid-peer-id"
)
