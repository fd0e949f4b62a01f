"""Mesh websocket endpoint — inbound peer channels.

Remote nodes open ``/mesh?peer=<their peer id>``; the accepted socket is
handed to the node's ``WebSocketTransport`` for the channel's lifetime.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Query, WebSocket, status

from offline_pay.mesh.websocket import MESH_PATH, WebSocketTransport

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket(MESH_PATH)
async def mesh_socket(websocket: WebSocket, peer: Annotated[str, Query()] = "") -> None:
    node = getattr(websocket.app.state, "node", None)
    transport = node.transport if node is not None and node.is_initialized else None
    if not peer or not isinstance(transport, WebSocketTransport):
        logger.info("Refusing mesh socket (peer=%r)", peer)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    await transport.serve(websocket, peer)
