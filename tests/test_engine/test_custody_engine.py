"""Tests for CustodyEngine lifecycle and wiring."""

from __future__ import annotations

from decimal import Decimal

import pytest

from token_custody.config.settings import AppConfig, DispatchConfig, MetricsConfig
from token_custody.engine.client import CustodyEngine
from token_custody.engine.models.batch_request import BatchStatus
from token_custody.engine.services.detail_store import RecipientItem
from token_custody.ledger.keys import Keypair
from token_custody.ledger.memory import InMemoryLedgerClient
from token_custody.metrics.collector import EngineMetrics


class TestLifecycle:
    async def test_initialize_and_close(
        self, app_config: AppConfig, ledger: InMemoryLedgerClient
    ) -> None:
        engine = CustodyEngine(app_config, ledger=ledger)
        assert not engine.is_initialized

        await engine.initialize()
        assert engine.is_initialized
        assert engine.ledger is ledger
        assert engine.batch_monitor is not None
        assert engine.batch_monitor.is_running

        await engine.close()
        assert not engine.is_initialized
        await engine.close()

    async def test_services_require_initialize(self, app_config: AppConfig) -> None:
        engine = CustodyEngine(app_config)
        for name in ("datastore", "batch_service", "custody_flow", "dispatch_pool", "cipher"):
            with pytest.raises(RuntimeError, match="not initialized"):
                getattr(engine, name)

    async def test_double_initialize(self, engine: CustodyEngine) -> None:
        with pytest.raises(RuntimeError, match="already initialized"):
            await engine.initialize()

    async def test_missing_encryption_key(
        self, app_config: AppConfig, ledger: InMemoryLedgerClient
    ) -> None:
        config = app_config.model_copy(update={"encryption_key": ""})
        engine = CustodyEngine(config, ledger=ledger)
        with pytest.raises(ValueError, match="encryption key"):
            await engine.initialize()
        assert not engine.is_initialized


class TestMetricsWiring:
    async def test_metrics_disabled(
        self, app_config: AppConfig, ledger: InMemoryLedgerClient
    ) -> None:
        config = app_config.model_copy(update={"metrics": MetricsConfig(enabled=False)})
        engine = CustodyEngine(config, ledger=ledger)
        await engine.initialize()
        try:
            assert engine.metrics is None
            assert engine.batch_monitor is None
        finally:
            await engine.close()

    async def test_injected_metrics_are_used(
        self, app_config: AppConfig, ledger: InMemoryLedgerClient
    ) -> None:
        metrics = EngineMetrics()
        engine = CustodyEngine(app_config, ledger=ledger, metrics=metrics)
        await engine.initialize()
        try:
            assert engine.metrics is metrics
        finally:
            await engine.close()


class TestResumeOnStart:
    async def test_unfinished_batches_resume(
        self, app_config: AppConfig, ledger: InMemoryLedgerClient
    ) -> None:
        recipients = [RecipientItem(Keypair.generate().address, Decimal(1)) for _ in range(2)]
        first = CustodyEngine(app_config, ledger=ledger)
        await first.initialize()
        batch_id = await first.batch_service.create_batch(recipients)
        await first.close()

        config = app_config.model_copy(
            update={
                "dispatch": app_config.dispatch.model_copy(update={"resume_on_start": True})
            }
        )
        second = CustodyEngine(config, ledger=ledger)
        await second.initialize()
        try:
            await second.dispatch_pool.join()
            view = await second.batch_service.get_status(batch_id)
            assert view.batch.status == BatchStatus.DONE
            assert len(ledger.transfers) == 2
        finally:
            await second.close()

    def test_resume_is_off_by_default(self) -> None:
        assert DispatchConfig().resume_on_start is False
