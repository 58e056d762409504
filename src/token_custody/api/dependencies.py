"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/batches/{batch_id}")
    async def get_batch(
        batch_id: str,
        engine: Annotated[CustodyEngine, Depends(get_engine)],
    ) -> ...:
        ...
"""

from __future__ import annotations

from fastapi import Request

from token_custody.engine.client import CustodyEngine  # noqa: TC001
from token_custody.errors.custody_errors import CustodyError


def get_engine(request: Request) -> CustodyEngine:
    """Retrieve the engine stored on ``app.state`` during lifespan startup.

    Raises:
        CustodyError: 503 if the engine is not running.
    """
    engine: CustodyEngine | None = getattr(request.app.state, "engine", None)
    if engine is None or not engine.is_initialized:
        raise CustodyError("engine not available", status_code=503, code="engine-unavailable")
    return engine
