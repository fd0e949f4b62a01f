"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/identity")
    async def identity(node: Annotated[OfflinePayNode, Depends(get_node)]) -> ...:
        ...
"""

from __future__ import annotations

from fastapi import Request

from offline_pay.errors.base import OfflinePayError
from offline_pay.node import OfflinePayNode  # noqa: TC001

ErrNodeNotReady = OfflinePayError("node is not initialized", status_code=503, code="not-ready")


def get_node(request: Request) -> OfflinePayNode:
    """Retrieve the node from ``app.state``.

    The node is stored on ``app.state.node`` during lifespan startup.

    Raises:
        OfflinePayError: If the node is not initialized.
    """
    node: OfflinePayNode | None = getattr(request.app.state, "node", None)
    if node is None or not node.is_initialized:
        raise ErrNodeNotReady
    return node
