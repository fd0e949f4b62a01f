"""V1 REST API routes.

Combines all sub-routers under the ``/v1`` prefix.
"""

from fastapi import APIRouter

from offline_pay.api.v1.mesh import router as mesh_router
from offline_pay.api.v1.schemas import ErrorResponse
from offline_pay.api.v1.sync import router as sync_router
from offline_pay.api.v1.wallet import router as wallet_router

v1_router = APIRouter(
    prefix="/v1",
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)

v1_router.include_router(wallet_router)
v1_router.include_router(mesh_router)
v1_router.include_router(sync_router)

__all__ = ["v1_router"]
