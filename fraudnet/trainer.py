"""
trainer.py
----------
End-to-end training pipeline for the FraudNet ensemble.

Pipeline steps:
  1. Load labelled samples (JSON or CSV), or generate a synthetic set
  2. Stratified train / hold-out split
  3. Train every node through the ModelLifecycleManager
  4. Evaluate the trained pipeline on the hold-out set
  5. Persist node states to disk

Run with: python -m fraudnet.trainer --data samples.csv
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from sklearn.metrics import f1_score, precision_score, recall_score, roc_auc_score
from sklearn.model_selection import train_test_split

from .config import FRAUD_THRESHOLD, MODEL_VERSION, MODELS_DIR, TRAINING_SEED
from .schemas import TrainingSample, Transaction
from .service import FraudDetectionService

logger = logging.getLogger(__name__)

LABEL_COLUMNS = ("label_fraud_score", "label")


# ---------------------------------------------------------------------------
# Data loading helpers
# ---------------------------------------------------------------------------

def load_samples(data_path: Optional[Path] = None) -> List[TrainingSample]:
    """
    Load labelled samples.

    Parameters
    ----------
    data_path : JSON file holding a list of ``{variables, label_fraud_score}``
                objects, or a CSV with one column per variable plus a
                ``label_fraud_score`` (or ``label``) column. ``None`` or a
                missing file falls back to a synthetic dataset.
    """
    if data_path is not None and Path(data_path).exists():
        data_path = Path(data_path)
        logger.info("Loading samples from %s", data_path)
        if data_path.suffix.lower() == ".json":
            with open(data_path, encoding="utf-8") as fh:
                return [TrainingSample.model_validate(item) for item in json.load(fh)]

        import pandas as pd
        df = pd.read_csv(data_path)
        label_column = next((c for c in LABEL_COLUMNS if c in df.columns), None)
        if label_column is None:
            raise ValueError(f"CSV needs one of the columns {LABEL_COLUMNS}")
        labels = df[label_column].astype(float).clip(0.0, 1.0)
        columns = df.drop(columns=[label_column])
        variables = columns.astype(object).where(columns.notna(), None)
        samples = [
            TrainingSample(variables=row, label_fraud_score=label)
            for row, label in zip(variables.to_dict(orient="records"), labels)
        ]
        logger.info("Loaded %d samples (%.4f mean label)", len(samples), float(labels.mean()))
        return samples

    logger.warning("No dataset found, generating synthetic samples for development.")
    return generate_synthetic_samples()


def generate_synthetic_samples(
    n_legit: int = 400,
    n_fraud: int = 100,
    random_state: int = TRAINING_SEED,
) -> List[TrainingSample]:
    """Small synthetic dataset so the pipeline runs without real data."""
    rng = np.random.RandomState(random_state)
    samples = []

    for _ in range(n_legit):
        average = float(rng.uniform(20, 300))
        samples.append(TrainingSample(
            variables={
                "amount": round(average * float(rng.uniform(0.3, 1.8)), 2),
                "historical_avg_amount": round(average, 2),
                "client_age_days": int(rng.randint(200, 3000)),
                "historical_transaction_count": int(rng.randint(50, 800)),
                "historical_location_count": int(rng.randint(1, 6)),
                "transactions_last_hour": int(rng.randint(0, 2)),
                "transactions_last_24h": int(rng.randint(0, 6)),
                "hour_of_day": int(rng.randint(8, 21)),
                "day_of_week": int(rng.randint(1, 6)),
                "is_domestic": True,
                "channel": str(rng.choice(["pos", "online", "atm"])),
                "device_info": "mobile-app",
                "ip_address": "10.0.0.1",
                "merchant_type": str(rng.choice(["grocery", "restaurant", "retail", "fuel"])),
            },
            label_fraud_score=round(float(rng.uniform(0.0, 0.2)), 4),
        ))

    for _ in range(n_fraud):
        samples.append(TrainingSample(
            variables={
                "amount": round(float(rng.uniform(5000, 60000)), 2),
                "historical_avg_amount": round(float(rng.uniform(50, 400)), 2),
                "client_age_days": int(rng.randint(0, 30)),
                "historical_transaction_count": int(rng.randint(0, 10)),
                "historical_location_count": 1,
                "transactions_last_hour": int(rng.randint(3, 12)),
                "transactions_last_24h": int(rng.randint(10, 40)),
                "hour_of_day": int(rng.choice([0, 1, 2, 3, 4, 23])),
                "day_of_week": int(rng.choice([0, 6])),
                "is_domestic": False,
                "country": str(rng.choice(["NG", "RU", "KP", "ZZ"])),
                "channel": "online",
                "merchant_type": str(rng.choice(["gambling", "crypto", "electronics"])),
            },
            label_fraud_score=round(float(rng.uniform(0.75, 1.0)), 4),
        ))

    order = rng.permutation(len(samples))
    return [samples[i] for i in order]


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def evaluate_holdout(
    service: FraudDetectionService,
    samples: List[TrainingSample],
    threshold: float = FRAUD_THRESHOLD,
) -> Dict[str, float]:
    """Binary metrics of ``fraud_detected`` against ``label >= threshold``."""
    transactions = [
        Transaction(id=f"holdout-{i}", variables=sample.variables) for i, sample in enumerate(samples)
    ]
    results = asyncio.run(service.analyze_batch(transactions))

    y_true = np.array([sample.label_fraud_score >= threshold for sample in samples], dtype=int)
    y_pred = np.array([result.verdict.fraud_detected for result in results], dtype=int)
    y_score = np.array([result.verdict.fraud_score for result in results], dtype=float)

    metrics = {
        "precision": float(precision_score(y_true, y_pred, zero_division=0)),
        "recall": float(recall_score(y_true, y_pred, zero_division=0)),
        "f1": float(f1_score(y_true, y_pred, zero_division=0)),
    }
    if len(np.unique(y_true)) > 1:
        metrics["roc_auc"] = float(roc_auc_score(y_true, y_score))
    return metrics


# ---------------------------------------------------------------------------
# Main training pipeline
# ---------------------------------------------------------------------------

def run_training_pipeline(
    data_path: Optional[Path] = None,
    test_size: float = 0.2,
    models_dir: Path = MODELS_DIR,
    save_models: bool = True,
) -> Dict[str, Any]:
    """
    Full end-to-end training pipeline.

    Returns
    -------
    dict with training summary counts, hold-out metrics and saved paths
    """
    logger.info("=== FraudNet Ensemble - Training Pipeline ===")

    # 1. Load data
    samples = load_samples(data_path)

    # 2. Stratified split on the binary label
    strata = [int(sample.label_fraud_score >= FRAUD_THRESHOLD) for sample in samples]
    stratify = strata if len(set(strata)) > 1 else None
    train_samples, holdout_samples = train_test_split(
        samples, test_size=test_size, stratify=stratify, random_state=TRAINING_SEED,
    )
    logger.info("Split sizes - train: %d  holdout: %d", len(train_samples), len(holdout_samples))

    # 3. Train every node
    service = FraudDetectionService()
    summary = service.train(train_samples)
    for result in summary.results:
        if not result.success:
            logger.warning("Node %s failed to train: %s", result.node_id, result.error)

    # 4. Evaluate on hold-out
    logger.info("=== Hold-out Evaluation ===")
    metrics = evaluate_holdout(service, holdout_samples)

    # 5. Save artefacts
    saved_paths: List[str] = []
    if save_models:
        saved_paths = [str(path) for path in service.lifecycle.save_all(models_dir)]
        logger.info("Node states saved to %s", models_dir)

    logger.info("=== Training Complete ===")
    logger.info("Hold-out metrics: %s", metrics)

    return {
        "model_version": MODEL_VERSION,
        "summary": {
            "total": summary.total,
            "succeeded": summary.succeeded,
            "failed": summary.failed,
            "duration_ms": summary.duration_ms,
        },
        "metrics": metrics,
        "paths": saved_paths,
    }


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Train FraudNet ensemble nodes")
    parser.add_argument("--data", type=str, default=None, help="Path to JSON or CSV training samples")
    parser.add_argument("--test-size", type=float, default=0.2, help="Hold-out proportion")
    parser.add_argument("--models-dir", type=str, default=str(MODELS_DIR), help="Where to save node states")
    parser.add_argument("--no-save", action="store_true", help="Do not save node states")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")

    results = run_training_pipeline(
        data_path=Path(args.data) if args.data else None,
        test_size=args.test_size,
        models_dir=Path(args.models_dir),
        save_models=not args.no_save,
    )
    print("\nTraining summary:")
    for k, v in results["summary"].items():
        print(f"  {k}: {v}")
    print("Hold-out metrics:")
    for k, v in results["metrics"].items():
        print(f"  {k}: {v:.4f}")


if __name__ == "__main__":
    main()
