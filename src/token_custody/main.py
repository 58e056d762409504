"""Application entry point for the token custody server."""

from __future__ import annotations

import os

import uvicorn

from token_custody.config.settings import ServerConfig


def main() -> None:
    """Start the token custody server."""
    reload = os.getenv("TOKENCUSTODY_RELOAD", "false").lower() in ("1", "true", "yes")
    server = ServerConfig()
    uvicorn.run(
        "token_custody.api.app:create_app",
        factory=True,
        host=server.host,
        port=server.port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
