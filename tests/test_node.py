from __future__ import annotations

from datetime import datetime

import pytest

from fraudnet.analyzers import STAGE_ONE_NODES
from fraudnet.exceptions import FeatureExtractionError, ModelStateError, NodeInferenceError, TrainingError
from fraudnet.node import ScoringNode, _TrainedModel
from fraudnet.schemas import ModelState, ResultBundle, ScoringMethod, Transaction

from conftest import constant_node, failing_node


def _amount_node() -> ScoringNode:
    return STAGE_ONE_NODES[0].build("layer1")


def _samples(n: int = 40):
    return [({"a": i / n, "b": float(i % 2)}, round(i / n, 4)) for i in range(n)]


def test_heuristic_scores_are_bounded():
    """Scores and confidences always land in [0, 1]."""
    node = _amount_node()
    for amount in (0.5, 3, 45, 12000, 10 ** 9):
        out = node.evaluate(Transaction(id="t", variables={"amount": amount}), ResultBundle())
        assert 0.0 <= out.score <= 1.0
        assert 0.0 <= out.confidence <= 1.0
        assert out.method == ScoringMethod.HEURISTIC


def test_heuristic_is_deterministic():
    """Same input, same output."""
    node = _amount_node()
    tx = Transaction(id="t", variables={"amount": 25000, "client_age_days": 3})
    first = node.evaluate(tx, ResultBundle())
    second = node.evaluate(tx, ResultBundle())
    assert first.score == second.score
    assert first.reasons == second.reasons


def test_heuristic_failure_raises_inference_error():
    """A raising heuristic surfaces as NodeInferenceError."""
    node = failing_node("broken")
    with pytest.raises(NodeInferenceError):
        node.evaluate(Transaction(id="t"), ResultBundle())


def test_feature_failure_raises_extraction_error():
    """A raising feature function is a FeatureExtractionError, also a NodeInferenceError."""
    def features(transaction, bundle, params):
        raise KeyError("missing")

    node = ScoringNode("bad_features", features, lambda f, p: None)
    with pytest.raises(FeatureExtractionError) as excinfo:
        node.evaluate(Transaction(id="t"), ResultBundle())
    assert isinstance(excinfo.value, NodeInferenceError)
    assert excinfo.value.node_id == "bad_features"


def test_train_empty_samples_raises():
    """Training on nothing is refused."""
    node = _amount_node()
    with pytest.raises(TrainingError):
        node.train([])
    assert not node.is_trained


def test_train_rejects_out_of_range_label():
    """Labels must be fraud scores in [0, 1]."""
    node = constant_node("c", 0.2)
    with pytest.raises(TrainingError):
        node.train([({"a": 1.0}, 1.5)])


def test_train_switches_to_model_and_bumps_version():
    """A trained node scores through its model and carries a new revision."""
    node = constant_node("c", 0.2)
    report = node.train(_samples())
    assert report.success
    assert report.iterations > 0
    assert report.samples == 40
    assert node.is_trained
    assert node.version == "1.0.0-r1"

    node.train(_samples())
    assert node.version == "1.0.0-r2"

    out = node.score({"a": 0.9, "b": 1.0})
    assert out.method == ScoringMethod.MODEL
    assert 0.0 <= out.score <= 1.0


def test_export_import_round_trip_preserves_scores():
    """Importing an exported state reproduces the scores bit for bit."""
    source = constant_node("c", 0.2)
    source.train(_samples())
    state = source.export_state()
    assert state.is_trained
    assert state.weights

    target = constant_node("c", 0.2)
    target.import_state(state)
    assert target.is_trained
    assert target.version == source.version
    for features in ({"a": 0.1, "b": 0.0}, {"a": 0.75, "b": 1.0}):
        assert target.score(features).score == source.score(features).score


def test_import_rejects_other_node_state():
    """A state exported by another node is refused."""
    node = constant_node("c", 0.2)
    state = ModelState(node_id="other", version="1.0.0")
    with pytest.raises(ModelStateError):
        node.import_state(state)


def test_import_trained_state_without_weights_raises():
    """A state that claims training but carries no weights is refused."""
    node = constant_node("c", 0.2)
    with pytest.raises(ModelStateError):
        node.import_state(ModelState(node_id="c", version="1.0.0-r1", is_trained=True, weights=""))


def test_import_corrupt_weights_raises():
    """Undecodable weights are refused."""
    node = constant_node("c", 0.2)
    state = ModelState(node_id="c", version="1.0.0-r1", is_trained=True, weights="bm90IGEgbW9kZWw=")
    with pytest.raises(ModelStateError):
        node.import_state(state)


def test_model_failure_falls_back_to_heuristic():
    """When the model cannot predict, the heuristic answers."""
    class BrokenModel:
        def predict(self, X):
            raise RuntimeError("no predictions today")

    node = constant_node("c", 0.35)
    node._trained = _TrainedModel(
        model=BrokenModel(), feature_names=("constant",), residual_error=0.0, trained_at=datetime.utcnow(),
    )
    out = node.score({"constant": 0.35})
    assert out.method == ScoringMethod.HEURISTIC
    assert out.score == pytest.approx(0.35)


def test_reset_returns_to_heuristic():
    """Reset drops the model and the revision."""
    node = constant_node("c", 0.2)
    node.train(_samples())
    node.reset()
    assert not node.is_trained
    assert node.version == "1.0.0"
    assert node.info()["is_trained"] is False
