"""V1 sync endpoints — manual rounds, batch history and connectivity."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from offline_pay.api.dependencies import get_node
from offline_pay.api.v1.schemas import (
    BatchResponse,
    NetworkRequest,
    NetworkResponse,
    SyncResponse,
)
from offline_pay.node import OfflinePayNode  # noqa: TC001

router = APIRouter(tags=["sync"])


def _network(node: OfflinePayNode) -> NetworkResponse:
    return NetworkResponse(
        online=node.coordinator.online,
        sync_in_progress=node.coordinator.sync_in_progress,
        peer_id=node.overlay.peer_id,
        connected_peers=node.overlay.count(),
    )


@router.post("/sync")
async def trigger_sync(node: Annotated[OfflinePayNode, Depends(get_node)]) -> SyncResponse:
    """Run a sync round now. Skipped while offline or already syncing."""
    result = await node.coordinator.sync()
    return SyncResponse.from_domain(result)


@router.get("/sync/batches")
async def list_batches(node: Annotated[OfflinePayNode, Depends(get_node)]) -> list[BatchResponse]:
    """Recent ledger batches, oldest first."""
    return [BatchResponse.from_domain(b) for b in node.coordinator.batches]


@router.get("/network")
async def get_network(node: Annotated[OfflinePayNode, Depends(get_node)]) -> NetworkResponse:
    return _network(node)


@router.put("/network")
async def set_network(
    node: Annotated[OfflinePayNode, Depends(get_node)],
    body: NetworkRequest,
) -> NetworkResponse:
    """Report connectivity. Going online starts a sync round immediately."""
    await node.set_online(body.online)
    return _network(node)
