"""WebSocket transport — JSON text frames between mesh nodes.

Outbound channels are opened with the ``websockets`` asyncio client.
Inbound channels arrive through the FastAPI ``/mesh`` websocket route,
which hands the accepted socket to ``WebSocketTransport.serve``.

On a websocket mesh a peer id is the peer's base URL
(``ws://host:port``); the caller's own id travels in the ``peer`` query
parameter so the remote side can register the channel symmetrically.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from starlette.websockets import WebSocketDisconnect
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from offline_pay.errors.mesh_errors import PeerUnreachable
from offline_pay.mesh.transport import Connection, Transport

if TYPE_CHECKING:
    from fastapi import WebSocket
    from websockets.asyncio.client import ClientConnection

logger = logging.getLogger(__name__)

MESH_PATH = "/mesh"
_MAX_FRAME = 2**20


def _decode(text: str | bytes) -> Any:
    """Decode a frame; undecodable frames are passed on as-is for the router to drop."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return text


class _ClientChannel(Connection):
    """Outbound channel wrapping a ``websockets`` client connection."""

    def __init__(self, peer_id: str, ws: ClientConnection) -> None:
        super().__init__(peer_id)
        self._ws = ws
        self.reader: asyncio.Task[None] | None = None

    async def send(self, raw: dict[str, Any]) -> None:
        if self._closed:
            raise PeerUnreachable(self.peer_id, "channel closed")
        try:
            await self._ws.send(json.dumps(raw))
        except (ConnectionClosed, OSError) as exc:
            raise PeerUnreachable(self.peer_id, str(exc)) from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._ws.close()


class _ServerChannel(Connection):
    """Inbound channel wrapping a Starlette websocket."""

    def __init__(self, peer_id: str, ws: WebSocket) -> None:
        super().__init__(peer_id)
        self._ws = ws

    async def send(self, raw: dict[str, Any]) -> None:
        if self._closed:
            raise PeerUnreachable(self.peer_id, "channel closed")
        try:
            await self._ws.send_text(json.dumps(raw))
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise PeerUnreachable(self.peer_id, str(exc)) from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close()
        except RuntimeError:
            # Already closed by the remote side.
            pass


class WebSocketTransport(Transport):
    """Transport over websockets; peer ids are ``ws://`` base URLs.

    Usage::

        transport = WebSocketTransport()
        overlay = PeerOverlay("ws://10.0.0.5:3004", transport)
        await overlay.connect("ws://10.0.0.7:3004")
    """

    def __init__(self, *, open_timeout: float | None = 10.0) -> None:
        super().__init__()
        self._open_timeout = open_timeout
        self._channels: set[_ClientChannel] = set()

    def url_for(self, peer_id: str) -> str:
        """Endpoint URL used to reach *peer_id*."""
        return f"{peer_id.rstrip('/')}{MESH_PATH}?peer={quote(self.local_peer_id, safe='')}"

    async def open(self, peer_id: str) -> Connection:
        try:
            ws = await connect(
                self.url_for(peer_id),
                open_timeout=self._open_timeout,
                max_size=_MAX_FRAME,
                compression=None,
            )
        except (WebSocketException, OSError, TimeoutError, ValueError) as exc:
            raise PeerUnreachable(peer_id, type(exc).__name__) from exc

        channel = _ClientChannel(peer_id, ws)
        channel.reader = asyncio.create_task(self._pump_client(channel, ws))
        self._channels.add(channel)
        return channel

    async def _pump_client(self, channel: _ClientChannel, ws: ClientConnection) -> None:
        error: BaseException | None = None
        try:
            async for frame in ws:
                await self.listener.on_message(channel, _decode(frame))
        except ConnectionClosed as exc:
            error = exc
        finally:
            self._channels.discard(channel)
            intentional = channel.closed
            channel._closed = True
            if not intentional:
                await self.listener.on_closed(
                    channel, error or PeerUnreachable(channel.peer_id, "connection closed")
                )

    async def serve(self, websocket: WebSocket, peer_id: str) -> None:
        """Run an accepted inbound websocket until it disconnects."""
        channel = _ServerChannel(peer_id, websocket)
        await self.listener.on_inbound(channel)
        error: BaseException | None = None
        try:
            while True:
                frame = await websocket.receive_text()
                await self.listener.on_message(channel, _decode(frame))
        except WebSocketDisconnect as exc:
            error = PeerUnreachable(peer_id, f"disconnected ({exc.code})")
        finally:
            intentional = channel.closed
            channel._closed = True
            if not intentional:
                await self.listener.on_closed(channel, error)

    async def close(self) -> None:
        channels = list(self._channels)
        for channel in channels:
            await channel.close()
        readers = [c.reader for c in channels if c.reader is not None]
        if readers:
            await asyncio.gather(*readers, return_exceptions=True)
        self._channels.clear()
