"""Tests for the /v1/batches endpoints."""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi.testclient import TestClient

from token_custody.ledger.keys import Keypair
from token_custody.ledger.memory import InMemoryLedgerClient


def _payload(count: int, **extra: Any) -> dict[str, Any]:
    return {
        "recipients": [
            {"address": Keypair.generate().address, "amount": "1.25"} for _ in range(count)
        ],
        **extra,
    }


def _wait_for_status(client: TestClient, batch_id: str, status: str) -> dict[str, Any]:
    deadline = time.monotonic() + 10
    while True:
        body = client.get(f"/v1/batches/{batch_id}").json()
        if body["status"] == status or time.monotonic() > deadline:
            return body
        time.sleep(0.05)


class TestSubmitBatch:
    def test_accepted_then_done(self, client: TestClient, ledger: InMemoryLedgerClient) -> None:
        resp = client.post("/v1/batches", json=_payload(3, cate1="payroll"))
        assert resp.status_code == 202
        accepted = resp.json()
        assert accepted["status"] == "PENDING"

        body = _wait_for_status(client, accepted["batch_id"], "DONE")
        assert body["status"] == "DONE"
        assert body["cate1"] == "payroll"
        assert body["total_count"] == 3
        assert body["completed_count"] == 3
        assert body["stats"]["success_rate"] == 100.0
        assert len(ledger.transfers) == 3

    def test_caller_chosen_id(self, client: TestClient) -> None:
        batch_id = str(uuid.uuid4())
        resp = client.post("/v1/batches", json=_payload(1, batch_id=batch_id))
        assert resp.status_code == 202
        assert resp.json()["batch_id"] == batch_id

        dup = client.post("/v1/batches", json=_payload(1, batch_id=batch_id))
        assert dup.status_code == 409
        assert dup.json()["code"] == "batch-duplicate"

    def test_invalid_address(self, client: TestClient) -> None:
        payload = {"recipients": [{"address": "not-an-address", "amount": "1"}]}
        resp = client.post("/v1/batches", json=payload)
        assert resp.status_code == 400
        assert resp.json() == {"code": "invalid-address", "message": "invalid wallet address"}

    def test_empty_recipients(self, client: TestClient) -> None:
        resp = client.post("/v1/batches", json={"recipients": []})
        assert resp.status_code == 400
        assert resp.json()["code"] == "empty-recipients"

    def test_malformed_body(self, client: TestClient) -> None:
        payload = {"recipients": [{"address": Keypair.generate().address, "amount": "lots"}]}
        assert client.post("/v1/batches", json=payload).status_code == 422


class TestReadBatch:
    def test_unknown_batch(self, client: TestClient) -> None:
        resp = client.get(f"/v1/batches/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["code"] == "batch-not-found"

    def test_details(self, client: TestClient, ledger: InMemoryLedgerClient) -> None:
        payload = _payload(2)
        failing = payload["recipients"][1]["address"]
        ledger.fail_always(failing, error="frozen")
        batch_id = client.post("/v1/batches", json=payload).json()["batch_id"]
        _wait_for_status(client, batch_id, "DONE")

        details = client.get(f"/v1/batches/{batch_id}/details").json()
        assert [d["address"] for d in details] == [r["address"] for r in payload["recipients"]]
        assert [d["sent"] for d in details] == ["Y", "N"]
        assert details[1]["last_error_message"] == "frozen"

        unsent = client.get(f"/v1/batches/{batch_id}/details", params={"sent": "N"}).json()
        assert [d["address"] for d in unsent] == [failing]

        hidden = client.get(f"/v1/batches/{batch_id}/details", params={"decrypt": "false"}).json()
        assert all(d["address"] is None for d in hidden)

    def test_details_invalid_limit(self, client: TestClient) -> None:
        batch_id = client.post("/v1/batches", json=_payload(1)).json()["batch_id"]
        resp = client.get(f"/v1/batches/{batch_id}/details", params={"limit": 0})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid-limit"

    def test_details_unknown_batch(self, client: TestClient) -> None:
        assert client.get(f"/v1/batches/{uuid.uuid4()}/details").status_code == 404
