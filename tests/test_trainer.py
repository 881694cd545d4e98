from __future__ import annotations

import json

from fraudnet.trainer import generate_synthetic_samples, load_samples, run_training_pipeline


def _labelled(n: int):
    legit = [{"variables": {"amount": 30 + i, "is_domestic": True}, "label_fraud_score": 0.05} for i in range(n)]
    fraud = [
        {"variables": {"amount": 40000 + i, "is_domestic": False, "country": "NG"}, "label_fraud_score": 0.95}
        for i in range(n)
    ]
    return legit + fraud


def test_synthetic_samples_are_labelled():
    samples = generate_synthetic_samples(n_legit=20, n_fraud=5)
    assert len(samples) == 25
    assert sum(1 for sample in samples if sample.label_fraud_score >= 0.7) == 5


def test_missing_file_falls_back_to_synthetic(tmp_path):
    samples = load_samples(tmp_path / "absent.json")
    assert len(samples) == 500


def test_load_json(tmp_path):
    path = tmp_path / "samples.json"
    path.write_text(json.dumps(_labelled(3)), encoding="utf-8")
    samples = load_samples(path)
    assert len(samples) == 6
    assert samples[-1].variables["country"] == "NG"


def test_load_csv(tmp_path):
    path = tmp_path / "samples.csv"
    path.write_text("amount,hour_of_day,label\n20.5,14,0.0\n50000,,1.0\n", encoding="utf-8")
    samples = load_samples(path)
    assert [sample.label_fraud_score for sample in samples] == [0.0, 1.0]
    assert samples[0].variables["amount"] == 20.5
    assert samples[1].variables["hour_of_day"] is None


def test_training_pipeline(tmp_path):
    path = tmp_path / "samples.json"
    path.write_text(json.dumps(_labelled(10)), encoding="utf-8")

    results = run_training_pipeline(data_path=path, models_dir=tmp_path / "models")

    assert results["summary"]["total"] == 23
    assert results["summary"]["succeeded"] == 23
    assert set(results["metrics"]) >= {"precision", "recall", "f1"}
    assert len(results["paths"]) == 23
    assert (tmp_path / "models" / "decision.joblib").exists()
