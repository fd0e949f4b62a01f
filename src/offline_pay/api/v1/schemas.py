"""V1 API request/response Pydantic schemas.

These are the *API-layer* schemas — thin wrappers that define the HTTP
contract. The endpoint code maps domain objects onto them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from offline_pay.models.transaction import OfflineTransaction
    from offline_pay.sync.coordinator import SyncBatch, SyncResult


class ErrorResponse(BaseModel):
    """Standard error body ``{"code": "...", "message": "..."}``."""

    code: str
    message: str


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    """GET /v1/identity."""

    address: str
    public_key: str
    peer_id: str


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TransactionCreateRequest(BaseModel):
    """POST /v1/transactions — pay *to* an address."""

    to: str = Field(min_length=1)
    amount: str
    metadata: dict[str, Any] | None = None


class TransactionResponse(BaseModel):
    id: str
    hash: str
    sender: str
    recipient: str
    amount: str
    nonce: int
    timestamp: int
    signature: str
    status: str
    origin: str
    synced_on_ledger: bool
    mesh_propagated: bool
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, tx: OfflineTransaction) -> TransactionResponse:
        return cls(
            id=tx.id,
            hash=tx.hash,
            sender=tx.sender,
            recipient=tx.recipient,
            amount=tx.amount,
            nonce=tx.nonce,
            timestamp=tx.timestamp,
            signature=tx.signature,
            status=tx.status.value,
            origin=tx.origin.value,
            synced_on_ledger=tx.synced_on_ledger,
            mesh_propagated=tx.mesh_propagated,
            metadata=tx.metadata,
        )


class TransactionCreateResponse(BaseModel):
    transaction: TransactionResponse
    propagated: bool
    peers: int


# ---------------------------------------------------------------------------
# Exchange
# ---------------------------------------------------------------------------


class ExportResponse(BaseModel):
    """GET /v1/exchange/{tx_hash} — the payload to render as a QR code."""

    payload: str


class ImportRequest(BaseModel):
    """POST /v1/exchange — a scanned payload."""

    payload: str = Field(min_length=1)


class ImportResponse(BaseModel):
    transaction: TransactionResponse
    result: str
    propagated: bool
    peers: int


# ---------------------------------------------------------------------------
# Mesh
# ---------------------------------------------------------------------------


class PeerResponse(BaseModel):
    peer_id: str
    connected: bool
    last_seen: float


class ConnectPeerRequest(BaseModel):
    """POST /v1/peers — connect to a peer id (a ws:// URL on websocket meshes)."""

    peer_id: str = Field(min_length=1)


class ConnectPeerResponse(BaseModel):
    peer_id: str
    connected: bool


# ---------------------------------------------------------------------------
# Sync & connectivity
# ---------------------------------------------------------------------------


class BatchResponse(BaseModel):
    batch_id: str
    transaction_hashes: list[str]
    submitted_at: float
    outcome: str
    ledger_batch_id: str = ""
    error: str = ""

    @classmethod
    def from_domain(cls, batch: SyncBatch) -> BatchResponse:
        return cls(
            batch_id=batch.batch_id,
            transaction_hashes=list(batch.transaction_hashes),
            submitted_at=batch.submitted_at,
            outcome=batch.outcome.value,
            ledger_batch_id=batch.ledger_batch_id,
            error=batch.error,
        )


class SyncResponse(BaseModel):
    ran: bool
    reason: str = ""
    submitted: int = 0
    accepted: int = 0
    rejected: int = 0
    failed: int = 0
    reverted: int = 0
    batches: list[BatchResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, result: SyncResult) -> SyncResponse:
        return cls(
            ran=result.ran,
            reason=result.reason,
            submitted=result.submitted,
            accepted=result.accepted,
            rejected=result.rejected,
            failed=result.failed,
            reverted=result.reverted,
            batches=[BatchResponse.from_domain(b) for b in result.batches],
        )


class NetworkRequest(BaseModel):
    """PUT /v1/network — report connectivity."""

    online: bool


class NetworkResponse(BaseModel):
    online: bool
    sync_in_progress: bool
    peer_id: str
    connected_peers: int
