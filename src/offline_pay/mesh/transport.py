"""Peer channel interfaces.

A ``Transport`` opens outbound channels and hands inbound ones to a
``ConnectionListener`` (the peer overlay). A ``Connection`` only knows how
to send one wire object and how to close itself; every inbound object and
every close is pushed to the listener.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol


class ConnectionListener(Protocol):
    """Receives connection events from a transport."""

    async def on_inbound(self, conn: Connection) -> None:
        """A remote peer opened a channel to us."""

    async def on_message(self, conn: Connection, raw: Any) -> None:
        """A wire object (already JSON-decoded, possibly garbage) arrived."""

    async def on_closed(self, conn: Connection, error: BaseException | None) -> None:
        """The channel closed. *error* is set when the transport failed."""


class Connection(ABC):
    """One live bidirectional channel to a peer."""

    def __init__(self, peer_id: str) -> None:
        self.peer_id = peer_id
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the channel has been closed."""
        return self._closed

    @abstractmethod
    async def send(self, raw: dict[str, Any]) -> None:
        """Send one wire object.

        Raises:
            PeerUnreachable: If the channel is closed or the write fails.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Idempotent."""

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{type(self).__name__} peer={self.peer_id} {state}>"


class Transport(ABC):
    """Factory for peer channels."""

    def __init__(self) -> None:
        self._local_peer_id = ""
        self._listener: ConnectionListener | None = None

    @property
    def local_peer_id(self) -> str:
        return self._local_peer_id

    @property
    def listener(self) -> ConnectionListener:
        if self._listener is None:
            msg = "Transport not attached. Call attach() first."
            raise RuntimeError(msg)
        return self._listener

    def attach(self, local_peer_id: str, listener: ConnectionListener) -> None:
        """Bind the local identity and the listener for inbound events."""
        self._local_peer_id = local_peer_id
        self._listener = listener

    @abstractmethod
    async def open(self, peer_id: str) -> Connection:
        """Open a channel to *peer_id*.

        Raises:
            PeerUnreachable: If the peer cannot be reached.
        """

    async def close(self) -> None:  # noqa: B027
        """Release transport resources."""
