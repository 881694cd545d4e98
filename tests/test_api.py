from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from fraudnet.api import app

from conftest import HIGH_RISK_VARIABLES

PREFIX = "/api/v1/fraud"


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr("fraudnet.api.MODELS_DIR", tmp_path / "models")
    with TestClient(app) as test_client:
        yield test_client


def test_root(client):
    body = client.get("/").json()
    assert body["name"] == "FraudNet Ensemble"
    assert body["analyze"] == f"{PREFIX}/analyze"


def test_health(client):
    response = client.get(f"{PREFIX}/health")
    assert response.status_code == 200
    assert response.json()["total_nodes"] == 23


def test_analyze(client):
    response = client.post(f"{PREFIX}/analyze", json={"id": "tx-api", "variables": HIGH_RISK_VARIABLES})
    assert response.status_code == 200
    body = response.json()
    assert body["transaction_id"] == "tx-api"
    assert body["verdict"]["risk_level"] in ("high", "critical")
    assert len(body["per_stage"]) == 3

    stats = client.get(f"{PREFIX}/stats").json()
    assert stats["total_analyses"] == 1


def test_analyze_rejects_missing_id(client):
    response = client.post(f"{PREFIX}/analyze", json={"variables": {"amount": 10}})
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_train_rejects_malformed_body(client):
    response = client.post(f"{PREFIX}/train", json={"samples": "not-a-list"})
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_export_model(client):
    response = client.get(f"{PREFIX}/models/amount")
    assert response.status_code == 200
    body = response.json()
    assert body["node_id"] == "amount"
    assert body["is_trained"] is False


def test_export_unknown_node(client):
    response = client.get(f"{PREFIX}/models/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "unknown_node", "message": "Unknown node: nope"}


def test_import_model(client):
    state = client.get(f"{PREFIX}/models/amount").json()
    response = client.put(f"{PREFIX}/models/amount", json=state)
    assert response.status_code == 200
    assert response.json() == {"status": "imported", "node_id": "amount", "version": "1.0.0"}


def test_import_mismatch(client):
    state = client.get(f"{PREFIX}/models/amount").json()
    response = client.put(f"{PREFIX}/models/location", json=state)
    assert response.status_code == 400
    assert response.json()["error"] == "model_state_error"


def test_train(client):
    samples = [
        {"variables": {"amount": 40 + i, "is_domestic": True}, "label_fraud_score": 0.05}
        for i in range(6)
    ] + [
        {"variables": {"amount": 30000 + i, "is_domestic": False, "country": "NG"}, "label_fraud_score": 0.95}
        for i in range(6)
    ]
    response = client.post(f"{PREFIX}/train", json={"samples": samples})
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 23
    assert body["succeeded"] == 23

    assert client.get(f"{PREFIX}/health").json()["trained_nodes"] == 23


def test_network(client):
    body = client.get(f"{PREFIX}/network").json()
    assert body["total_nodes"] == 23
    assert len(body["interconnections"]["decision"]) == 22
    assert body["data_flow"][0] == "Transaction"
