from __future__ import annotations

import asyncio

import pytest

from fraudnet.exceptions import ModelStateError, TrainingError, UnknownNodeError
from fraudnet.lifecycle import ModelLifecycleManager
from fraudnet.orchestrator import PipelineOrchestrator
from fraudnet.registry import build_default_registry
from fraudnet.schemas import DecisionMethod, ModelState, ResultBundle, ScoringMethod, Transaction
from fraudnet.trainer import generate_synthetic_samples

from conftest import HIGH_RISK_VARIABLES


@pytest.fixture(scope="module")
def samples():
    return generate_synthetic_samples(n_legit=40, n_fraud=15)


@pytest.fixture
def manager(registry):
    return ModelLifecycleManager(registry)


def test_train_all(manager, samples):
    summary = manager.train_all(samples)

    assert summary.total == 23
    assert summary.succeeded == 23
    assert summary.failed == 0
    assert summary.duration_ms >= 0
    assert [result.node_id for result in summary.results][-1] == "decision"
    assert all(node.is_trained for node in manager.registry.iter_nodes())
    assert all(version.endswith("-r1") for version in manager.registry.network_versions().values())


def test_partial_training_is_reported(manager, samples, monkeypatch):
    """One node that cannot train fails alone; the rest are trained."""
    node = manager.registry.node("amount")
    original = node.train
    monkeypatch.setattr(node, "train", lambda pairs: original([]))

    summary = manager.train_all(samples)

    assert summary.failed == 1
    assert summary.succeeded == 22
    failed = [result for result in summary.results if not result.success]
    assert failed[0].node_id == "amount"
    assert failed[0].stage == "layer1"
    assert "no training samples" in failed[0].error
    assert not node.is_trained


def test_train_all_on_nothing_fails_every_node(manager):
    summary = manager.train_all([])
    assert summary.failed == summary.total == 23
    assert summary.succeeded == 0


def test_train_node(manager, samples):
    report = manager.train_node("risk_assessment", samples)
    assert report.success
    assert manager.registry.node("risk_assessment").is_trained

    with pytest.raises(TrainingError):
        manager.train_node("risk_assessment", [])
    with pytest.raises(UnknownNodeError):
        manager.train_node("no_such_node", samples)


def test_mapping_samples_are_accepted(manager):
    raw = [
        {"variables": {"amount": 20}, "label_fraud_score": 0.0},
        {"variables": {"amount": 50000, "is_domestic": False}, "label_fraud_score": 1.0},
    ]
    assert manager.train_node("amount", raw).samples == 2


def test_export_import_between_pipelines(manager, samples):
    """A node moved to another pipeline scores identically."""
    manager.train_node("amount", samples)
    state = manager.export_model("amount")

    other = ModelLifecycleManager(build_default_registry())
    other.import_model("amount", state)

    tx = Transaction(id="t", variables=HIGH_RISK_VARIABLES)
    source = manager.registry.node("amount").evaluate(tx, ResultBundle())
    target = other.registry.node("amount").evaluate(tx, ResultBundle())
    assert target.method == ScoringMethod.MODEL
    assert target.score == source.score
    assert other.registry.node("amount").version == state.version


def test_import_mismatch_raises(manager):
    state = manager.export_model("amount")
    with pytest.raises(ModelStateError):
        manager.import_model("location", state)
    with pytest.raises(UnknownNodeError):
        manager.import_model("nowhere", ModelState(node_id="nowhere", version="1.0.0"))


def test_reset_node(manager, samples):
    manager.train_node("device", samples)
    manager.reset_node("device")
    assert not manager.registry.node("device").is_trained


def test_save_and_load_all(manager, samples, tmp_path):
    manager.train_all(samples)
    paths = manager.save_all(tmp_path)
    assert len(paths) == 23
    assert (tmp_path / "decision.joblib").exists()

    restored = ModelLifecycleManager(build_default_registry())
    assert restored.load_all(tmp_path) == 23
    assert all(node.is_trained for node in restored.registry.iter_nodes())

    (tmp_path / "merchant.joblib").unlink()
    partial = ModelLifecycleManager(build_default_registry())
    assert partial.load_all(tmp_path) == 22
    assert not partial.registry.node("merchant").is_trained


def test_trained_pipeline_uses_model_decision(manager, samples, high_risk_tx):
    manager.train_all(samples)
    result = asyncio.run(PipelineOrchestrator(manager.registry).analyze(high_risk_tx))
    assert result.verdict.decision_method == DecisionMethod.TRAINED_MODEL
    assert 0.0 <= result.verdict.fraud_score <= 1.0


def test_network_info(manager):
    info = manager.network_info()
    assert info["total_nodes"] == 23
    assert info["total_connections"] == 6 * 12 + 4 * 18 + 22
    assert len(info["nodes"]) == 23
    assert info["interconnections"]["amount"] == []
