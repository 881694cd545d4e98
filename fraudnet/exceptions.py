"""
FraudNet Ensemble - Error Taxonomy
===================================

Node-level errors never reach the caller of an analysis: the orchestrator
turns them into placeholders or into the decision fallback. Structural
errors (an invalid Transaction) are pydantic ``ValidationError`` and do
propagate.
"""


class FraudNetError(Exception):
    """Base class for all ensemble errors."""


class NodeInferenceError(FraudNetError):
    """A node could not produce a score, not even through its heuristic."""

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(f"{node_id}: {message}")


class FeatureExtractionError(NodeInferenceError):
    """Feature extraction raised. Handled exactly like an inference failure."""


class TrainingError(FraudNetError):
    """Training samples were empty or malformed, or the fit itself failed."""

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(f"{node_id}: {message}")


class AggregationError(FraudNetError):
    """An aggregation over prior results failed."""


class DecisionError(AggregationError):
    """The decision node failed; the orchestrator applies the fallback average."""


class ModelStateError(FraudNetError, ValueError):
    """A ModelState could not be applied to the target node."""


class UnknownNodeError(FraudNetError, KeyError):
    """No node with the requested id is registered."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(node_id)

    def __str__(self) -> str:
        return f"Unknown node: {self.node_id}"
