"""V1 mesh endpoints — known peers and manual connects."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from offline_pay.api.dependencies import get_node
from offline_pay.api.v1.schemas import ConnectPeerRequest, ConnectPeerResponse, PeerResponse
from offline_pay.errors.definitions import ErrInvalidPeerId
from offline_pay.mesh.websocket import WebSocketTransport
from offline_pay.node import OfflinePayNode  # noqa: TC001

router = APIRouter(tags=["mesh"])


@router.get("/peers")
async def list_peers(node: Annotated[OfflinePayNode, Depends(get_node)]) -> list[PeerResponse]:
    """Known peers, connected or not."""
    records = node.overlay.known_peers
    return [
        PeerResponse(peer_id=pid, connected=rec.connected, last_seen=rec.last_seen)
        for pid, rec in sorted(records.items())
    ]


@router.post("/peers")
async def connect_peer(
    node: Annotated[OfflinePayNode, Depends(get_node)],
    body: ConnectPeerRequest,
) -> ConnectPeerResponse:
    """Connect to a peer; a failed attempt keeps retrying in the background."""
    if isinstance(node.transport, WebSocketTransport) and not body.peer_id.startswith(
        ("ws://", "wss://")
    ):
        raise ErrInvalidPeerId
    connected = await node.overlay.connect(body.peer_id)
    return ConnectPeerResponse(peer_id=body.peer_id, connected=connected)


@router.delete("/peers/{peer_id:path}", status_code=204)
async def disconnect_peer(
    peer_id: str,
    node: Annotated[OfflinePayNode, Depends(get_node)],
) -> None:
    """Drop a peer on purpose; it is not reconnected."""
    await node.overlay.disconnect(peer_id)
