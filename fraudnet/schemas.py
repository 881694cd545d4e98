"""
FraudNet Ensemble - Pydantic Schema Definitions
================================================
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Scalar = Union[bool, int, float, str, None]
FeatureVector = Dict[str, float]


# =============================================================================
# ENUMS
# =============================================================================

class RiskLevel(str, Enum):
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ScoringMethod(str, Enum):
    MODEL = "model"
    HEURISTIC = "heuristic"
    PLACEHOLDER = "placeholder"


class NodeStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    TIMEOUT = "timeout"


class DecisionMethod(str, Enum):
    WEIGHTED_ENSEMBLE = "weighted_ensemble"
    TRAINED_MODEL = "trained_model"
    FALLBACK_AVERAGE = "fallback_average"


# =============================================================================
# INPUT SCHEMAS
# =============================================================================

class Transaction(BaseModel):
    """Immutable bag of named transaction attributes."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    variables: Dict[str, Scalar] = Field(default_factory=dict)


class TrainingSample(BaseModel):
    variables: Dict[str, Scalar] = Field(default_factory=dict)
    label_fraud_score: float = Field(..., ge=0, le=1)


# =============================================================================
# NODE OUTPUTS
# =============================================================================

class ScoreOutput(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_id: str = Field(...)
    score: float = Field(..., ge=0, le=1)
    confidence: float = Field(..., ge=0, le=1)
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    features: FeatureVector = Field(default_factory=dict)
    duration_ms: float = Field(default=0.0, ge=0)
    method: ScoringMethod = Field(default=ScoringMethod.HEURISTIC)
    status: NodeStatus = Field(default=NodeStatus.OK)


class StageResult(BaseModel):
    """Outputs of one stage keyed by node name, complete once the barrier passes."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(...)
    tag: str = Field(...)
    outputs: Dict[str, ScoreOutput] = Field(default_factory=dict)
    duration_ms: float = Field(default=0.0, ge=0)

    def scores(self) -> List[float]:
        return [output.score for output in self.outputs.values()]

    def degraded(self) -> List[str]:
        return [name for name, output in self.outputs.items() if output.status != NodeStatus.OK]


class ResultBundle(BaseModel):
    """
    Ordered StageResults accumulated during one analysis.

    Every node of stage ``i`` receives ``bundle.prior(i)``, i.e. the union of
    all earlier stages and nothing from its own stage.
    """

    stages: List[StageResult] = Field(default_factory=list)

    def prior(self, index: int) -> "ResultBundle":
        return ResultBundle(stages=list(self.stages[:index]))

    def output(self, node: str) -> Optional[ScoreOutput]:
        for stage in self.stages:
            if node in stage.outputs:
                return stage.outputs[node]
        return None

    def score(self, node: str, default: float = 0.0) -> float:
        output = self.output(node)
        return output.score if output is not None else default

    def stage_scores(self, index: int) -> List[float]:
        if index >= len(self.stages):
            return []
        return self.stages[index].scores()

    def all_scores(self) -> List[float]:
        return [score for stage in self.stages for score in stage.scores()]

    def all_outputs(self) -> List[ScoreOutput]:
        return [output for stage in self.stages for output in stage.outputs.values()]


# =============================================================================
# MODEL LIFECYCLE
# =============================================================================

class ModelState(BaseModel):
    node_id: str = Field(...)
    version: str = Field(...)
    is_trained: bool = Field(default=False)
    trained_at: Optional[datetime] = Field(default=None)
    weights: Optional[str] = Field(default=None, description="base64 joblib blob")

    @field_validator("weights")
    @classmethod
    def weights_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class TrainingReport(BaseModel):
    success: bool = Field(...)
    iterations: int = Field(..., ge=0)
    residual_error: float = Field(..., ge=0)
    samples: int = Field(default=0, ge=0)


class NodeTrainingResult(BaseModel):
    node_id: str = Field(...)
    stage: str = Field(...)
    success: bool = Field(...)
    report: Optional[TrainingReport] = Field(default=None)
    error: Optional[str] = Field(default=None)


class TrainingSummary(BaseModel):
    total: int = Field(...)
    succeeded: int = Field(...)
    failed: int = Field(...)
    duration_ms: float = Field(...)
    results: List[NodeTrainingResult] = Field(default_factory=list)


# =============================================================================
# ANALYSIS RESULT
# =============================================================================

class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    fraud_detected: bool = Field(...)
    fraud_score: float = Field(..., ge=0, le=1)
    risk_level: RiskLevel = Field(...)
    confidence: float = Field(..., ge=0, le=1)
    primary_reasons: List[str] = Field(default_factory=list, max_length=10)
    warnings: List[str] = Field(default_factory=list)
    decision_method: DecisionMethod = Field(default=DecisionMethod.WEIGHTED_ENSEMBLE)
    anomaly_count: int = Field(default=0, ge=0)
    risk_factors: List[str] = Field(default_factory=list)
    recommended_actions: List[str] = Field(default_factory=list)


class TopFactor(BaseModel):
    feature: str = Field(...)
    impact: float = Field(...)
    direction: Literal["positive", "negative"] = Field(...)


class Explanation(BaseModel):
    top_factors: List[TopFactor] = Field(default_factory=list)
    narrative: str = Field(...)


class AnalysisResult(BaseModel):
    transaction_id: str = Field(...)
    verdict: Verdict = Field(...)
    per_stage: List[StageResult] = Field(default_factory=list)
    decision: Optional[ScoreOutput] = Field(default=None)
    timings: Dict[str, float] = Field(default_factory=dict)
    network_versions: Dict[str, str] = Field(default_factory=dict)
    explanation: Optional[Explanation] = Field(default=None)
    model_version: str = Field(...)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# SERVICE SCHEMAS
# =============================================================================

class PipelineStats(BaseModel):
    total_analyses: int = Field(default=0)
    fraud_detected: int = Field(default=0)
    fallback_decisions: int = Field(default=0)
    node_failures: int = Field(default=0)
    node_timeouts: int = Field(default=0)
    avg_processing_time_ms: float = Field(default=0.0)
    fraud_detection_rate: float = Field(default=0.0)


class HealthResponse(BaseModel):
    status: str = Field(...)
    version: str = Field(...)
    timestamp: datetime = Field(...)
    total_nodes: int = Field(...)
    trained_nodes: int = Field(...)
