"""
FraudNet Ensemble - Scoring Node
=================================

One generic node type shared by every analyzer, combiner, aggregator and the
decision node. Variants differ only in the feature function and the heuristic
function they are built with (see the ``*_NODES`` tables).

Scoring path:
  1. trained XGBoost regressor, if the node holds one
  2. deterministic heuristic over the same feature vector
  3. ``NodeInferenceError`` (the orchestrator substitutes a placeholder)
"""

from __future__ import annotations

import base64
import io
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import joblib
import numpy as np
from sklearn.metrics import mean_squared_error
from xgboost import XGBRegressor

from .config import (
    MODEL_REASON_FEATURES,
    NODE_MODEL_VERSION,
    TRAINED_BASE_CONFIDENCE,
    TRAINED_FIT_BONUS,
    TRAINED_FIT_RESIDUAL,
    XGB_PARAMS,
)
from .exceptions import FeatureExtractionError, ModelStateError, NodeInferenceError, TrainingError
from .features import clamp
from .schemas import (
    FeatureVector,
    ModelState,
    ResultBundle,
    ScoreOutput,
    ScoringMethod,
    TrainingReport,
    Transaction,
)

logger = logging.getLogger(__name__)


class NodeScore(NamedTuple):
    score: float
    confidence: float
    reasons: List[str]
    warnings: Tuple[str, ...] = ()
    method: ScoringMethod = ScoringMethod.HEURISTIC


FeatureFn = Callable[[Transaction, ResultBundle, Mapping[str, Any]], Mapping[str, float]]
HeuristicFn = Callable[[FeatureVector, Mapping[str, Any]], NodeScore]
FeatureSample = Tuple[Mapping[str, float], float]


@dataclass(frozen=True)
class NodeSpec:
    """One row of a declarative stage table."""

    name: str
    feature_fn: FeatureFn
    heuristic_fn: HeuristicFn
    description: str = ""
    params: Mapping[str, Any] = field(default_factory=dict)

    def build(self, stage: str, params: Optional[Mapping[str, Any]] = None) -> "ScoringNode":
        merged = {**self.params, **(params or {})}
        return ScoringNode(
            name=self.name,
            feature_fn=self.feature_fn,
            heuristic_fn=self.heuristic_fn,
            params=merged,
            stage=stage,
            description=self.description,
        )


@dataclass(frozen=True)
class _TrainedModel:
    model: XGBRegressor
    feature_names: Tuple[str, ...]
    residual_error: float
    trained_at: datetime


def _revision_of(version: str) -> int:
    _, sep, tail = version.rpartition("-r")
    if not sep:
        return 0
    try:
        return int(tail)
    except ValueError:
        return 0


class ScoringNode:
    """Atomic unit of analysis: features -> (score, confidence, reasons)."""

    def __init__(
        self,
        name: str,
        feature_fn: FeatureFn,
        heuristic_fn: HeuristicFn,
        params: Optional[Mapping[str, Any]] = None,
        stage: str = "",
        description: str = "",
    ):
        self.node_id = name
        self.stage = stage
        self.description = description
        self._feature_fn = feature_fn
        self._heuristic_fn = heuristic_fn
        self._params: Dict[str, Any] = dict(params or {})
        self._trained: Optional[_TrainedModel] = None
        self._version = NODE_MODEL_VERSION
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"ScoringNode({self.node_id!r}, stage={self.stage!r}, trained={self.is_trained})"

    @property
    def is_trained(self) -> bool:
        return self._trained is not None

    @property
    def version(self) -> str:
        return self._version

    @property
    def params(self) -> Mapping[str, Any]:
        return self._params

    # =========================================================================
    # SCORING
    # =========================================================================

    def extract_features(self, transaction: Transaction, bundle: ResultBundle) -> FeatureVector:
        try:
            raw = self._feature_fn(transaction, bundle, self._params)
            return {str(key): float(value) for key, value in raw.items()}
        except Exception as exc:
            raise FeatureExtractionError(self.node_id, f"feature extraction failed: {exc}") from exc

    def score(self, features: FeatureVector) -> NodeScore:
        trained = self._trained
        if trained is not None:
            try:
                return self._model_score(trained, features)
            except Exception:
                logger.warning("Model inference failed for %s, using heuristic.", self.node_id, exc_info=True)

        try:
            result = self._heuristic_fn(features, self._params)
        except Exception as exc:
            raise NodeInferenceError(self.node_id, f"heuristic failed: {exc}") from exc

        return NodeScore(
            score=clamp(float(result.score)),
            confidence=clamp(float(result.confidence)),
            reasons=list(result.reasons),
            warnings=tuple(result.warnings),
            method=ScoringMethod.HEURISTIC,
        )

    def evaluate(self, transaction: Transaction, bundle: ResultBundle) -> ScoreOutput:
        """Extract features and score them; raises NodeInferenceError on failure."""
        start = time.perf_counter()
        features = self.extract_features(transaction, bundle)
        result = self.score(features)
        return ScoreOutput(
            node_id=self.node_id,
            score=result.score,
            confidence=result.confidence,
            reasons=result.reasons,
            warnings=list(result.warnings),
            features=features,
            duration_ms=round((time.perf_counter() - start) * 1000, 3),
            method=result.method,
        )

    def _model_score(self, trained: _TrainedModel, features: FeatureVector) -> NodeScore:
        vector = np.array(
            [[features.get(name, 0.0) for name in trained.feature_names]],
            dtype=np.float32,
        )
        raw = float(trained.model.predict(vector)[0])
        if not np.isfinite(raw):
            raise ValueError(f"non-finite prediction {raw}")

        confidence = TRAINED_BASE_CONFIDENCE
        if trained.residual_error <= TRAINED_FIT_RESIDUAL:
            confidence += TRAINED_FIT_BONUS

        strongest = sorted(
            (item for item in features.items() if item[1] >= 0.5),
            key=lambda item: (-item[1], item[0]),
        )[:MODEL_REASON_FEATURES]
        reasons = [f"Model signal: {name.replace('_', ' ')}" for name, _ in strongest]

        return NodeScore(
            score=clamp(raw),
            confidence=clamp(confidence),
            reasons=reasons,
            method=ScoringMethod.MODEL,
        )

    # =========================================================================
    # TRAINING
    # =========================================================================

    def train(self, samples: Sequence[FeatureSample]) -> TrainingReport:
        """
        Fit the node's regressor on ``(features, label_score)`` pairs.

        Raises
        ------
        TrainingError : samples are empty or malformed, or the fit fails.
        """
        if not samples:
            raise TrainingError(self.node_id, "no training samples")

        X, y, names = self._training_matrix(samples)

        with self._lock:
            model = XGBRegressor(**XGB_PARAMS)
            try:
                model.fit(X, y)
                predictions = np.clip(model.predict(X), 0.0, 1.0)
            except Exception as exc:
                raise TrainingError(self.node_id, f"fit failed: {exc}") from exc

            residual = float(mean_squared_error(y, predictions))
            self._trained = _TrainedModel(
                model=model,
                feature_names=names,
                residual_error=residual,
                trained_at=datetime.utcnow(),
            )
            self._version = f"{NODE_MODEL_VERSION}-r{_revision_of(self._version) + 1}"

        iterations = int(model.get_booster().num_boosted_rounds())
        logger.info(
            "Trained %s on %d samples (rounds=%d, mse=%.5f)",
            self.node_id, len(y), iterations, residual,
        )
        return TrainingReport(success=True, iterations=iterations, residual_error=residual, samples=len(y))

    def _training_matrix(
        self, samples: Sequence[FeatureSample],
    ) -> Tuple[np.ndarray, np.ndarray, Tuple[str, ...]]:
        rows: List[Mapping[str, float]] = []
        labels: List[float] = []
        for i, sample in enumerate(samples):
            try:
                features, label_score = sample
            except (TypeError, ValueError) as exc:
                raise TrainingError(self.node_id, f"sample {i} is not a (features, label) pair") from exc
            if not isinstance(features, Mapping):
                raise TrainingError(self.node_id, f"sample {i} features are not a mapping")
            try:
                label_value = float(label_score)
            except (TypeError, ValueError) as exc:
                raise TrainingError(self.node_id, f"sample {i} label is not numeric") from exc
            if not 0.0 <= label_value <= 1.0:
                raise TrainingError(self.node_id, f"sample {i} label {label_value} outside [0, 1]")
            rows.append(features)
            labels.append(label_value)

        names = tuple(sorted({str(key) for row in rows for key in row}))
        if not names:
            raise TrainingError(self.node_id, "samples carry no features")

        try:
            X = np.array(
                [[float(row.get(name, 0.0)) for name in names] for row in rows],
                dtype=np.float32,
            )
        except (TypeError, ValueError) as exc:
            raise TrainingError(self.node_id, f"non-numeric feature value: {exc}") from exc
        if not np.all(np.isfinite(X)):
            raise TrainingError(self.node_id, "non-finite feature value")

        return X, np.array(labels, dtype=np.float32), names

    # =========================================================================
    # STATE
    # =========================================================================

    def export_state(self) -> ModelState:
        with self._lock:
            trained = self._trained
            version = self._version

        weights = None
        if trained is not None:
            buffer = io.BytesIO()
            joblib.dump(
                {
                    "model": trained.model,
                    "feature_names": list(trained.feature_names),
                    "residual_error": trained.residual_error,
                },
                buffer,
            )
            weights = base64.b64encode(buffer.getvalue()).decode("ascii")

        return ModelState(
            node_id=self.node_id,
            version=version,
            is_trained=trained is not None,
            trained_at=trained.trained_at if trained is not None else None,
            weights=weights,
        )

    def import_state(self, state: ModelState) -> None:
        if state.node_id != self.node_id:
            raise ModelStateError(
                f"state for node {state.node_id!r} cannot be imported into {self.node_id!r}"
            )

        trained = None
        if state.is_trained:
            if not state.weights:
                raise ModelStateError(f"trained state for {self.node_id!r} carries no weights")
            try:
                payload = joblib.load(io.BytesIO(base64.b64decode(state.weights)))
                trained = _TrainedModel(
                    model=payload["model"],
                    feature_names=tuple(payload["feature_names"]),
                    residual_error=float(payload["residual_error"]),
                    trained_at=state.trained_at or datetime.utcnow(),
                )
            except Exception as exc:
                raise ModelStateError(f"corrupt weights for {self.node_id!r}: {exc}") from exc

        with self._lock:
            self._trained = trained
            self._version = state.version
        logger.info("Imported state into %s (version=%s, trained=%s)", self.node_id, state.version, trained is not None)

    def reset(self) -> None:
        with self._lock:
            self._trained = None
            self._version = NODE_MODEL_VERSION
        logger.info("Reset %s to heuristic mode", self.node_id)

    def info(self) -> Dict[str, Any]:
        trained = self._trained
        return {
            "node_id": self.node_id,
            "stage": self.stage,
            "description": self.description,
            "version": self._version,
            "is_trained": trained is not None,
            "trained_at": trained.trained_at.isoformat() if trained is not None else None,
            "feature_count": len(trained.feature_names) if trained is not None else None,
        }
