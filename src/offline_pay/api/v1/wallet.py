"""V1 wallet endpoints — identity, transactions and payload exchange."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from offline_pay.api.dependencies import get_node
from offline_pay.api.v1.schemas import (
    ExportResponse,
    IdentityResponse,
    ImportRequest,
    ImportResponse,
    TransactionCreateRequest,
    TransactionCreateResponse,
    TransactionResponse,
)
from offline_pay.node import OfflinePayNode  # noqa: TC001

router = APIRouter(tags=["wallet"])


@router.get("/identity")
async def get_identity(node: Annotated[OfflinePayNode, Depends(get_node)]) -> IdentityResponse:
    """Device address and public key."""
    keypair = node.wallet.keypair
    return IdentityResponse(
        address=keypair.address,
        public_key=keypair.public_key,
        peer_id=node.overlay.peer_id,
    )


@router.get("/transactions")
async def list_transactions(
    node: Annotated[OfflinePayNode, Depends(get_node)],
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[TransactionResponse]:
    """Transactions sent or received by this device, newest first."""
    txs = await node.wallet.transactions(limit=limit)
    return [TransactionResponse.from_domain(tx) for tx in txs]


@router.post("/transactions", status_code=201)
async def create_transaction(
    node: Annotated[OfflinePayNode, Depends(get_node)],
    body: TransactionCreateRequest,
) -> TransactionCreateResponse:
    """Sign a payment, store it and flood it to connected peers."""
    tx, propagation = await node.wallet.create_transaction(body.to, body.amount, body.metadata)
    return TransactionCreateResponse(
        transaction=TransactionResponse.from_domain(tx),
        propagated=propagation.propagated if propagation else False,
        peers=propagation.peers if propagation else 0,
    )


@router.get("/transactions/{tx_hash}")
async def get_transaction(
    tx_hash: str,
    node: Annotated[OfflinePayNode, Depends(get_node)],
) -> TransactionResponse:
    tx = await node.wallet.get_transaction(tx_hash)
    return TransactionResponse.from_domain(tx)


@router.get("/exchange/{tx_hash}")
async def export_payload(
    tx_hash: str,
    node: Annotated[OfflinePayNode, Depends(get_node)],
) -> ExportResponse:
    """Exchange payload for a stored transaction."""
    return ExportResponse(payload=await node.wallet.export_payload(tx_hash))


@router.post("/exchange", status_code=201)
async def import_payload(
    node: Annotated[OfflinePayNode, Depends(get_node)],
    body: ImportRequest,
) -> ImportResponse:
    """Verify and store a scanned exchange payload."""
    tx, result, propagation = await node.wallet.import_payload(body.payload)
    return ImportResponse(
        transaction=TransactionResponse.from_domain(tx),
        result=result.value,
        propagated=propagation.propagated if propagation else False,
        peers=propagation.peers if propagation else 0,
    )
