"""V1 REST API routes.

Combines all sub-routers under the ``/v1`` prefix.
"""

from fastapi import APIRouter

from token_custody.api.v1.batches import router as batches_router
from token_custody.api.v1.contracts import router as contracts_router

v1_router = APIRouter(prefix="/v1")

v1_router.include_router(batches_router)
v1_router.include_router(contracts_router)

__all__ = ["v1_router"]
