"""
FraudNet Ensemble - Model Lifecycle Manager
============================================

Trains, exports, imports and persists per-node models. Aggregator and
decision nodes are trained against synthetic prior-stage outputs derived
from each labelled sample, so every node can be fitted from the same
``{variables, label_fraud_score}`` list. A node that fails to train is
recorded and skipped; partial training is a valid end state.
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

import joblib
import numpy as np

from .config import SYNTHETIC_PRIOR_CONFIDENCE, SYNTHETIC_PRIOR_JITTER, TRAINING_SEED
from .exceptions import ModelStateError
from .features import clamp
from .node import ScoringNode
from .registry import NodeRegistry
from .schemas import (
    ModelState,
    NodeTrainingResult,
    ResultBundle,
    ScoreOutput,
    StageResult,
    TrainingReport,
    TrainingSample,
    TrainingSummary,
    Transaction,
)

logger = logging.getLogger(__name__)

SampleInput = Union[TrainingSample, Mapping[str, Any]]


class ModelLifecycleManager:
    """Batch training and state management over one NodeRegistry."""

    def __init__(self, registry: NodeRegistry, seed: int = TRAINING_SEED):
        self.registry = registry
        self.seed = seed

    # =========================================================================
    # TRAINING
    # =========================================================================

    def _synthetic_bundle(self, sample: TrainingSample, rng: np.random.RandomState) -> ResultBundle:
        """Prior outputs for every stage, each ``label * U(0.8, 1.2)`` clamped to [0, 1]."""
        low, high = SYNTHETIC_PRIOR_JITTER
        stages = []
        for stage in self.registry.stages:
            outputs = {}
            for node in stage.nodes:
                outputs[node.node_id] = ScoreOutput(
                    node_id=node.node_id,
                    score=clamp(sample.label_fraud_score * float(rng.uniform(low, high))),
                    confidence=SYNTHETIC_PRIOR_CONFIDENCE,
                )
            stages.append(StageResult(name=stage.name, tag=stage.tag, outputs=outputs))
        return ResultBundle(stages=stages)

    def _prepare(self, samples: Sequence[SampleInput]) -> List[Tuple[Transaction, ResultBundle, float]]:
        rng = np.random.RandomState(self.seed)
        prepared = []
        for i, raw in enumerate(samples):
            sample = raw if isinstance(raw, TrainingSample) else TrainingSample.model_validate(raw)
            transaction = Transaction(id=f"train-{i}", variables=sample.variables)
            prepared.append((transaction, self._synthetic_bundle(sample, rng), sample.label_fraud_score))
        return prepared

    def _stage_index(self, node: ScoringNode) -> int:
        for index, stage in enumerate(self.registry.stages):
            if node in stage.nodes:
                return index
        return len(self.registry.stages)

    def _train(self, node: ScoringNode, prepared) -> TrainingReport:
        index = self._stage_index(node)
        pairs = [
            (node.extract_features(transaction, bundle.prior(index)), label_score)
            for transaction, bundle, label_score in prepared
        ]
        return node.train(pairs)

    def train_node(self, node_id: str, samples: Sequence[SampleInput]) -> TrainingReport:
        """Train a single node; ``TrainingError`` propagates to the caller."""
        node = self.registry.node(node_id)
        return self._train(node, self._prepare(samples))

    def train_all(self, samples: Sequence[SampleInput]) -> TrainingSummary:
        """Train every stage node and the decision node, in pipeline order."""
        start_time = time.perf_counter()
        prepared = self._prepare(samples)
        results: List[NodeTrainingResult] = []

        for node in self.registry.iter_nodes():
            stage = self.registry.stage_of(node.node_id)
            try:
                report = self._train(node, prepared)
                results.append(NodeTrainingResult(node_id=node.node_id, stage=stage, success=True, report=report))
            except Exception as exc:
                logger.warning("Training failed for %s: %s", node.node_id, exc)
                results.append(NodeTrainingResult(node_id=node.node_id, stage=stage, success=False, error=str(exc)))

        succeeded = sum(1 for result in results if result.success)
        duration = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Training complete: %d/%d nodes succeeded in %.1f ms", succeeded, len(results), duration,
        )
        return TrainingSummary(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            duration_ms=round(duration, 3),
            results=results,
        )

    # =========================================================================
    # STATE
    # =========================================================================

    def export_model(self, node_id: str) -> ModelState:
        return self.registry.node(node_id).export_state()

    def import_model(self, node_id: str, state: ModelState) -> None:
        """Apply ``state`` to ``node_id``; the state must name the same node."""
        node = self.registry.node(node_id)
        if state.node_id != node_id:
            raise ModelStateError(f"state for node {state.node_id!r} does not match target {node_id!r}")
        node.import_state(state)

    def reset_node(self, node_id: str) -> None:
        self.registry.node(node_id).reset()

    def save_all(self, directory: Union[str, Path]) -> List[Path]:
        """Persist every node's state as ``<node_id>.joblib``."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        paths = []
        for node in self.registry.iter_nodes():
            path = directory / f"{node.node_id}.joblib"
            joblib.dump(node.export_state().model_dump(mode="json"), path)
            paths.append(path)
        logger.info("Saved %d node states to %s", len(paths), directory)
        return paths

    def load_all(self, directory: Union[str, Path]) -> int:
        """Load every ``<node_id>.joblib`` present; missing files are skipped."""
        directory = Path(directory)
        loaded = 0
        for node in self.registry.iter_nodes():
            path = directory / f"{node.node_id}.joblib"
            if not path.exists():
                logger.debug("No saved state for %s", node.node_id)
                continue
            state = ModelState.model_validate(joblib.load(path))
            self.import_model(node.node_id, state)
            loaded += 1
        logger.info("Loaded %d node states from %s", loaded, directory)
        return loaded

    def network_info(self) -> Dict[str, Any]:
        info = self.registry.describe()
        info["nodes"] = [node.info() for node in self.registry.iter_nodes()]
        return info
