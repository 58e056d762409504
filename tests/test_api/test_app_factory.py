"""Tests for the application factory, base routes and error mapping."""

from __future__ import annotations

from fastapi.testclient import TestClient

from token_custody.api.app import create_app
from token_custody.config.settings import AppConfig, MetricsConfig
from token_custody.ledger.memory import InMemoryLedgerClient


class TestCreateApp:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_engine_started_and_stopped(
        self, app_config: AppConfig, ledger: InMemoryLedgerClient
    ) -> None:
        app = create_app(config=app_config, ledger=ledger)
        with TestClient(app):
            assert app.state.engine.is_initialized
            assert app.state.engine.ledger is ledger
        assert app.state.engine is None

    def test_engine_unavailable_without_lifespan(
        self, app_config: AppConfig, ledger: InMemoryLedgerClient
    ) -> None:
        client = TestClient(create_app(config=app_config, ledger=ledger))
        resp = client.get("/v1/batches/00000000-0000-0000-0000-000000000000")
        assert resp.status_code == 503
        assert resp.json()["code"] == "engine-unavailable"

    def test_openapi_lists_routes(self, client: TestClient) -> None:
        paths = client.get("/openapi.json").json()["paths"]
        assert "/v1/batches" in paths
        assert "/v1/contracts/{contract_id}/finalize" in paths


class TestMetricsEndpoint:
    def test_exposes_engine_and_request_metrics(self, client: TestClient) -> None:
        client.get("/health")
        body = client.get("/metrics").text
        assert "custody_batches_in_flight" in body
        assert "http_request_total{" in body
        assert 'app="token-custody"' in body

    def test_engine_shares_registry(
        self, app_config: AppConfig, ledger: InMemoryLedgerClient
    ) -> None:
        app = create_app(config=app_config, ledger=ledger)
        with TestClient(app):
            assert app.state.engine.metrics is app.state.metrics

    def test_disabled(self, app_config: AppConfig, ledger: InMemoryLedgerClient) -> None:
        config = app_config.model_copy(update={"metrics": MetricsConfig(enabled=False)})
        with TestClient(create_app(config=config, ledger=ledger)) as client:
            resp = client.get("/metrics")
        assert resp.status_code == 200
        assert resp.text == ""
