"""Fixtures for the HTTP API tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from token_custody.api.app import create_app

if TYPE_CHECKING:
    from collections.abc import Iterator

    from token_custody.config.settings import AppConfig
    from token_custody.ledger.memory import InMemoryLedgerClient


@pytest.fixture
def client(app_config: AppConfig, ledger: InMemoryLedgerClient) -> Iterator[TestClient]:
    """TestClient with the lifespan (and so the engine) running."""
    app = create_app(config=app_config, ledger=ledger)
    with TestClient(app) as c:
        yield c
