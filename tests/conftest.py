"""Shared test fixtures for the token custody test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from token_custody.config.settings import (
    AppConfig,
    CustodyConfig,
    DatabaseConfig,
    DatabaseEngine,
    DispatchConfig,
    LedgerBackend,
    LedgerConfig,
)
from token_custody.engine.client import CustodyEngine
from token_custody.ledger.memory import InMemoryLedgerClient

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Provide a test AppConfig backed by a per-test SQLite file."""
    return AppConfig(
        debug=True,
        encryption_key="test-encryption-key-32bytes!!!!!",
        db=DatabaseConfig(
            engine=DatabaseEngine.SQLITE,
            dsn=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        ),
        ledger=LedgerConfig(backend=LedgerBackend.MEMORY),
        dispatch=DispatchConfig(max_retry=3, retry_delay=0, window_size=3),
        custody=CustodyConfig(confirm_timeout=1),
    )


@pytest.fixture
def ledger() -> InMemoryLedgerClient:
    """In-memory ledger with scriptable failures."""
    return InMemoryLedgerClient()


@pytest.fixture
async def engine(app_config: AppConfig, ledger: InMemoryLedgerClient) -> AsyncIterator[CustodyEngine]:
    """Create an initialized engine wired to the in-memory ledger."""
    eng = CustodyEngine(app_config, ledger=ledger)
    await eng.initialize()
    yield eng
    await eng.close()
