"""
FraudNet Ensemble - Pipeline Orchestrator
==========================================

Runs the registry's stages in order against one Transaction:

  - every node of a stage runs concurrently in a worker thread
  - the stage barrier waits for all of them; each call is bounded by
    ``stage_timeout`` from the moment its worker thread picks it up
  - a failed or timed-out node gets the neutral placeholder, the stage goes on
  - the completed StageResult is frozen before the next stage starts
  - the decision node runs last; if it fails the fallback average is used
"""

import asyncio
import logging
import time
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .config import (
    FRAUD_THRESHOLD,
    MODEL_VERSION,
    PLACEHOLDER_CONFIDENCE,
    PLACEHOLDER_REASON,
    PLACEHOLDER_SCORE,
    STAGE_TIMEOUT_SECONDS,
)
from .decision import build_verdict, fallback_verdict
from .exceptions import DecisionError
from .explainer import generate_explanation
from .node import ScoringNode
from .registry import NodeRegistry, Stage
from .schemas import (
    AnalysisResult,
    DecisionMethod,
    NodeStatus,
    PipelineStats,
    ResultBundle,
    ScoreOutput,
    ScoringMethod,
    StageResult,
    Transaction,
    Verdict,
)

logger = logging.getLogger(__name__)


def placeholder_output(node_id: str, status: NodeStatus, duration_ms: float = 0.0) -> ScoreOutput:
    """Neutral stand-in for a node that failed or timed out."""
    return ScoreOutput(
        node_id=node_id,
        score=PLACEHOLDER_SCORE,
        confidence=PLACEHOLDER_CONFIDENCE,
        reasons=[PLACEHOLDER_REASON],
        warnings=[],
        features={},
        duration_ms=max(duration_ms, 0.0),
        method=ScoringMethod.PLACEHOLDER,
        status=status,
    )


def _mark_started(started: "asyncio.Future") -> None:
    if not started.done():
        started.set_result(None)


class PipelineOrchestrator:
    """Stage-by-stage executor over a NodeRegistry."""

    def __init__(
        self,
        registry: NodeRegistry,
        fraud_threshold: float = FRAUD_THRESHOLD,
        stage_timeout: Optional[float] = STAGE_TIMEOUT_SECONDS,
    ):
        self.registry = registry
        self.fraud_threshold = fraud_threshold
        self.stage_timeout = stage_timeout
        self._stats = {
            "total_analyses": 0,
            "fraud_detected": 0,
            "fallback_decisions": 0,
            "node_failures": 0,
            "node_timeouts": 0,
            "total_processing_ms": 0.0,
        }

    async def analyze(self, transaction: Union[Transaction, Mapping[str, Any]]) -> AnalysisResult:
        """
        Score one transaction through every stage and the decision node.

        Raises pydantic ``ValidationError`` for a structurally invalid payload;
        every node-level failure is absorbed into the result.
        """
        start_time = time.perf_counter()

        # Step 1: Validate the transaction
        if not isinstance(transaction, Transaction):
            transaction = Transaction.model_validate(transaction)

        # Step 2: Run each stage behind a barrier
        bundle = ResultBundle()
        timings: Dict[str, float] = {}
        for index, stage in enumerate(self.registry.stages):
            result = await self._run_stage(stage, transaction, bundle.prior(index))
            bundle = ResultBundle(stages=[*bundle.stages, result])
            timings[stage.name] = result.duration_ms

        # Step 3: Decision node, with fallback
        decision_start = time.perf_counter()
        decision, verdict = await self._decide(transaction, bundle)
        timings["decision"] = round((time.perf_counter() - decision_start) * 1000, 3)

        # Step 4: Generate explanation
        explanation = generate_explanation(verdict, bundle)

        # Step 5: Record statistics
        processing_time = (time.perf_counter() - start_time) * 1000
        timings["total"] = round(processing_time, 3)
        self._record(verdict, processing_time)

        logger.info(
            "Analyzed %s: score=%.4f risk=%s method=%s (%.1f ms)",
            transaction.id, verdict.fraud_score, verdict.risk_level.value,
            verdict.decision_method.value, processing_time,
        )

        return AnalysisResult(
            transaction_id=transaction.id,
            verdict=verdict,
            per_stage=bundle.stages,
            decision=decision,
            timings=timings,
            network_versions=self.registry.network_versions(),
            explanation=explanation,
            model_version=MODEL_VERSION,
        )

    async def _call_node(self, node: ScoringNode, transaction: Transaction, prior: ResultBundle) -> ScoreOutput:
        """
        Evaluate one node in a worker thread.

        Time spent queued for a free worker does not count against
        ``stage_timeout``; the clock starts when the call begins running.
        Raises ``asyncio.TimeoutError`` for an in-flight call that overruns.
        """
        loop = asyncio.get_running_loop()
        started = loop.create_future()

        def run() -> ScoreOutput:
            loop.call_soon_threadsafe(_mark_started, started)
            return node.evaluate(transaction, prior)

        work = loop.run_in_executor(None, run)
        await asyncio.wait({started, work}, return_when=asyncio.FIRST_COMPLETED)
        return await asyncio.wait_for(work, timeout=self.stage_timeout)

    async def _run_stage(self, stage: Stage, transaction: Transaction, prior: ResultBundle) -> StageResult:
        """One call per node; returns only after every node has an entry."""
        start_time = time.perf_counter()
        results = await asyncio.gather(
            *(self._call_node(node, transaction, prior) for node in stage.nodes),
            return_exceptions=True,
        )

        elapsed = (time.perf_counter() - start_time) * 1000
        outputs: Dict[str, ScoreOutput] = {}
        for node, result in zip(stage.nodes, results):
            if isinstance(result, asyncio.TimeoutError):
                logger.warning(
                    "Node %s timed out after %.2fs, using placeholder.", node.node_id, self.stage_timeout
                )
                self._stats["node_timeouts"] += 1
                outputs[node.node_id] = placeholder_output(node.node_id, NodeStatus.TIMEOUT, elapsed)
            elif isinstance(result, BaseException):
                logger.warning("Node %s failed (%s), using placeholder.", node.node_id, result)
                self._stats["node_failures"] += 1
                outputs[node.node_id] = placeholder_output(node.node_id, NodeStatus.ERROR, elapsed)
            else:
                outputs[node.node_id] = result

        return StageResult(
            name=stage.name,
            tag=stage.tag,
            outputs=outputs,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 3),
        )

    async def _decide(
        self, transaction: Transaction, bundle: ResultBundle,
    ) -> Tuple[Optional[ScoreOutput], Verdict]:
        node = self.registry.decision
        try:
            output = await self._call_node(node, transaction, bundle)
            return output, build_verdict(output, bundle, self.fraud_threshold)
        except Exception as exc:
            error = DecisionError(f"decision node failed: {exc!r}")
            logger.warning("%s, applying fallback average.", error)
            return None, fallback_verdict(bundle, self.fraud_threshold, reason=str(error))

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def _record(self, verdict: Verdict, processing_time: float) -> None:
        self._stats["total_analyses"] += 1
        self._stats["total_processing_ms"] += processing_time
        if verdict.fraud_detected:
            self._stats["fraud_detected"] += 1
        if verdict.decision_method == DecisionMethod.FALLBACK_AVERAGE:
            self._stats["fallback_decisions"] += 1

    def get_stats(self) -> PipelineStats:
        total = self._stats["total_analyses"]
        return PipelineStats(
            total_analyses=total,
            fraud_detected=self._stats["fraud_detected"],
            fallback_decisions=self._stats["fallback_decisions"],
            node_failures=self._stats["node_failures"],
            node_timeouts=self._stats["node_timeouts"],
            avg_processing_time_ms=round(self._stats["total_processing_ms"] / total, 3) if total else 0.0,
            fraud_detection_rate=round(self._stats["fraud_detected"] / total, 4) if total else 0.0,
        )

    def reset_stats(self) -> None:
        for key in self._stats:
            self._stats[key] = 0.0 if key == "total_processing_ms" else 0
