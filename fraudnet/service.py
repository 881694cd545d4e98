"""
FraudNet Ensemble - Service Facade
===================================

External interface over one registry: analyze, train, export/import models.
High and critical verdicts are forwarded to a ``NotificationSink``; the
default sink only logs them.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional, Protocol, Sequence, Union

from .config import BATCH_CONCURRENCY, FRAUD_THRESHOLD, MODEL_VERSION, STAGE_TIMEOUT_SECONDS
from .lifecycle import ModelLifecycleManager, SampleInput
from .orchestrator import PipelineOrchestrator
from .registry import NodeRegistry, build_default_registry
from .schemas import (
    AnalysisResult,
    HealthResponse,
    ModelState,
    PipelineStats,
    RiskLevel,
    TrainingSummary,
    Transaction,
)

logger = logging.getLogger(__name__)

NOTIFY_LEVELS = (RiskLevel.HIGH, RiskLevel.CRITICAL)


class NotificationSink(Protocol):
    def notify(self, result: AnalysisResult) -> None:
        ...


class LoggingNotificationSink:
    """Writes high and critical verdicts to the log."""

    def notify(self, result: AnalysisResult) -> None:
        verdict = result.verdict
        logger.warning(
            "Fraud alert for %s: risk=%s score=%.4f reasons=%s",
            result.transaction_id,
            verdict.risk_level.value,
            verdict.fraud_score,
            "; ".join(verdict.primary_reasons[:3]),
        )


class FraudDetectionService:
    """Owns one pipeline: registry, orchestrator and lifecycle manager."""

    def __init__(
        self,
        registry: Optional[NodeRegistry] = None,
        notification_sink: Optional[NotificationSink] = None,
        fraud_threshold: float = FRAUD_THRESHOLD,
        stage_timeout: Optional[float] = STAGE_TIMEOUT_SECONDS,
        batch_concurrency: int = BATCH_CONCURRENCY,
    ):
        if batch_concurrency < 1:
            raise ValueError(f"batch_concurrency must be positive, got {batch_concurrency}")
        self.batch_concurrency = batch_concurrency
        self.registry = registry or build_default_registry()
        self.orchestrator = PipelineOrchestrator(self.registry, fraud_threshold, stage_timeout)
        self.lifecycle = ModelLifecycleManager(self.registry)
        self.notification_sink = notification_sink or LoggingNotificationSink()

    async def analyze(self, transaction: Union[Transaction, Mapping[str, Any]]) -> AnalysisResult:
        result = await self.orchestrator.analyze(transaction)
        if result.verdict.risk_level in NOTIFY_LEVELS:
            try:
                self.notification_sink.notify(result)
            except Exception:
                logger.exception("Notification sink failed for %s", result.transaction_id)
        return result

    async def analyze_batch(
        self, transactions: Sequence[Union[Transaction, Mapping[str, Any]]],
    ) -> List[AnalysisResult]:
        """
        Independent analyses, at most ``batch_concurrency`` in flight at once.
        Results keep input order.
        """
        semaphore = asyncio.Semaphore(self.batch_concurrency)

        async def bounded(transaction):
            async with semaphore:
                return await self.analyze(transaction)

        return list(await asyncio.gather(*(bounded(tx) for tx in transactions)))

    def train(self, samples: Sequence[SampleInput]) -> TrainingSummary:
        return self.lifecycle.train_all(samples)

    def export_model(self, node_id: str) -> ModelState:
        return self.lifecycle.export_model(node_id)

    def import_model(self, node_id: str, state: ModelState) -> None:
        self.lifecycle.import_model(node_id, state)

    def get_stats(self) -> PipelineStats:
        return self.orchestrator.get_stats()

    def network_info(self):
        return self.lifecycle.network_info()

    def health(self) -> HealthResponse:
        nodes = self.registry.all_nodes()
        return HealthResponse(
            status="healthy",
            version=MODEL_VERSION,
            timestamp=datetime.utcnow(),
            total_nodes=len(nodes),
            trained_nodes=sum(1 for node in nodes if node.is_trained),
        )
