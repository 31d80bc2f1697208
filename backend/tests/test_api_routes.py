import json
import re

import pytest
from fastapi.testclient import TestClient

from config import Settings


def parse_ndjson(response):
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


@pytest.fixture
def client(tmp_path):
    from main import create_app

    config = Settings(
        data_dir=tmp_path,
        qkd_provider="SIMULATION",
        remote_sync_enabled=False,
        eve_simulation_enabled=False,
    )
    with TestClient(create_app(config)) as test_client:
        yield test_client


@pytest.fixture
def payment():
    return {
        "scenario": "BANKING_PAYMENT",
        "mode": "QUANTUM",
        "amount": 100,
        "beneficiary": "Alice",
    }


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["qkd_provider"] == "SIMULATION"


class TestTransactionRoutes:

    def test_stream_success(self, client, payment):
        response = client.post("/api/v1/transactions", json=payment)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        lines = parse_ndjson(response)
        steps = [line for line in lines if line["type"] == "step"]
        assert steps[0]["stage"] == "INIT"
        assert steps[-1]["stage"] == "DONE"
        assert steps[-1]["is_terminal"] is True
        assert lines[-1]["type"] == "result"
        assert lines[-1]["ok"] is True
        assert lines[-1]["transaction"]["status"] == "SUCCESS"

    def test_stream_interception(self, client, payment):
        response = client.post("/api/v1/transactions", json={**payment, "simulate_attack": True})

        lines = parse_ndjson(response)
        assert lines[-2]["stage"] == "ABORT"
        assert lines[-1]["ok"] is False
        assert lines[-1]["error"]["kind"] == "SECURITY_ABORT"
        assert "%" in lines[-1]["error"]["message"]

    def test_validation_rejected_before_stream(self, client, payment):
        del payment["beneficiary"]

        response = client.post("/api/v1/transactions", json=payment)

        assert response.status_code == 422
        assert response.json()["detail"]["kind"] == "VALIDATION"
        assert client.get("/api/v1/transactions").json()["total"] == 0

    def test_unknown_scenario(self, client, payment):
        response = client.post("/api/v1/transactions", json={**payment, "scenario": "LOTTERY"})
        assert response.status_code == 422

    def test_list_get_and_stats(self, client, payment):
        result = parse_ndjson(client.post("/api/v1/transactions", json=payment))[-1]
        transaction_id = result["transaction"]["transaction_id"]
        client.post("/api/v1/transactions", json={**payment, "mode": "NORMAL"})

        listed = client.get("/api/v1/transactions", params={"mode": "QUANTUM"}).json()
        assert listed["total"] == 1

        detail = client.get(f"/api/v1/transactions/{transaction_id}")
        assert detail.status_code == 200
        assert detail.json()["beneficiary"] == "Alice"

        stats = client.get("/api/v1/transactions/stats").json()
        assert stats["total_quantum_transactions"] == 1
        assert stats["provider"] == "SIMULATION"

    def test_missing_transaction(self, client):
        assert client.get("/api/v1/transactions/nope").status_code == 404


class TestElectionRoutes:

    def test_seeded_elections(self, client):
        response = client.get("/api/v1/elections")

        assert response.status_code == 200
        assert {e["id"] for e in response.json()} == {"pres-2024", "parl-2024", "local-2024"}

    def test_get_election(self, client):
        response = client.get("/api/v1/elections/local-2024")

        assert response.status_code == 200
        assert [o["id"] for o in response.json()["options"]] == ["mayor-1", "mayor-2"]
        assert client.get("/api/v1/elections/nope").status_code == 404

    def test_cast_vote(self, client):
        response = client.post("/api/v1/elections/pres-2024/votes", json={"option_id": "cand-b"})

        assert response.status_code == 201
        assert re.match(r"^#QV-[0-9A-F]{8}$", response.json()["receipt_token"])

        history = client.get("/api/v1/votes", params={"election_id": "pres-2024"}).json()
        assert len(history) == 1
        assert history[0]["option_id"] == "cand-b"
        assert "encrypted_payload" not in history[0]

    def test_vote_with_eavesdropper(self, client):
        response = client.post(
            "/api/v1/elections/pres-2024/votes",
            json={"option_id": "cand-a", "simulate_eve": True},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "SECURITY_ABORT"
        assert client.get("/api/v1/votes").json() == []

    def test_vote_invalid_option(self, client):
        response = client.post("/api/v1/elections/pres-2024/votes", json={"option_id": "party-x"})
        assert response.status_code == 422
