"""
FraudNet Ensemble - FastAPI Application
========================================

Run with: uvicorn fraudnet.api:app --reload --port 8000
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .config import MODEL_VERSION, MODELS_DIR
from .exceptions import ModelStateError, UnknownNodeError
from .schemas import (
    AnalysisResult,
    HealthResponse,
    ModelState,
    PipelineStats,
    TrainingSample,
    TrainingSummary,
    Transaction,
)
from .service import FraudDetectionService

logger = logging.getLogger(__name__)


class TrainRequest(BaseModel):
    samples: List[TrainingSample] = Field(default_factory=list)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service and restore any persisted node states."""
    logger.info("FraudNet Ensemble v%s starting...", MODEL_VERSION)
    service = FraudDetectionService()
    if MODELS_DIR.is_dir():
        service.lifecycle.load_all(MODELS_DIR)
    app.state.service = service
    logger.info("FraudDetectionService initialized with %d nodes", len(service.registry))
    yield
    logger.info("FraudNet Ensemble shutting down...")


app = FastAPI(
    title="FraudNet Ensemble",
    description="Staged, fully interconnected fraud-scoring ensemble",
    version=MODEL_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

router = APIRouter(prefix="/api/v1/fraud", tags=["Fraud Detection"])


def _service(request: Request) -> FraudDetectionService:
    return request.app.state.service


@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "validation_error", "message": str(exc)},
    )


@app.exception_handler(ModelStateError)
async def model_state_error_handler(request: Request, exc: ModelStateError):
    return JSONResponse(
        status_code=400,
        content={"error": "model_state_error", "message": str(exc)},
    )


@app.exception_handler(UnknownNodeError)
async def unknown_node_handler(request: Request, exc: UnknownNodeError):
    return JSONResponse(
        status_code=404,
        content={"error": "unknown_node", "message": str(exc)},
    )


@router.post("/analyze", response_model=AnalysisResult)
async def analyze_transaction(transaction: Transaction, request: Request) -> AnalysisResult:
    """Score a transaction through every stage and the decision node."""
    return await _service(request).analyze(transaction)


@router.post("/train", response_model=TrainingSummary)
def train_network(body: TrainRequest, request: Request) -> TrainingSummary:
    """Train every node; per-node failures are reported, not raised."""
    return _service(request).train(body.samples)


@router.get("/models/{node_id}", response_model=ModelState)
def export_model(node_id: str, request: Request) -> ModelState:
    return _service(request).export_model(node_id)


@router.put("/models/{node_id}")
def import_model(node_id: str, state: ModelState, request: Request) -> Dict[str, Any]:
    service = _service(request)
    service.import_model(node_id, state)
    return {"status": "imported", "node_id": node_id, "version": state.version}


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(request: Request) -> HealthResponse:
    return _service(request).health()


@router.get("/stats", response_model=PipelineStats, tags=["System"])
async def pipeline_stats(request: Request) -> PipelineStats:
    return _service(request).get_stats()


@router.get("/network", tags=["System"])
async def network_map(request: Request) -> Dict[str, Any]:
    """Stages, interconnections and node versions."""
    return _service(request).network_info()


app.include_router(router)


@app.get("/", tags=["System"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "FraudNet Ensemble",
        "version": MODEL_VERSION,
        "documentation": "/docs",
        "health": "/api/v1/fraud/health",
        "analyze": "/api/v1/fraud/analyze",
        "timestamp": datetime.utcnow().isoformat(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("fraudnet.api:app", host="0.0.0.0", port=8000, reload=True)
