"""HTTP boundary for the classifier and the analysis pipeline."""

import json
import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .classifier import handle_classify_request
from .config import Config
from .errors import DeadlineExceeded, EstimatorError, ExtractionFailure, InvalidInput, StorageFailure
from .metrics import OperationSupervisor
from .models import AnalysisRequest
from .pipeline import EstimateAnalysisPipeline
from .semantic import VisionExtractionClient
from .storage import DatabaseClient, S3Client
from .storage.base import dump_json

logger = logging.getLogger(__name__)

app = FastAPI(title="Estimator", description="Estimate extraction and classification")


@lru_cache
def get_pipeline() -> EstimateAnalysisPipeline:
    """Process-wide pipeline built from environment configuration."""
    config = Config.from_env()
    return EstimateAnalysisPipeline(
        extractor=VisionExtractionClient(
            api_key=config.openai_api_key,
            model_name=config.vision_model,
            base_url=config.openai_base_url,
        ),
        document_source=S3Client(
            endpoint_url=config.s3_endpoint,
            bucket_name=config.s3_bucket,
            access_key_id=config.aws_access_key_id,
            secret_access_key=config.aws_secret_access_key,
        ),
        analysis_store=DatabaseClient(config.database_url),
        supervisor=OperationSupervisor(max_entries=config.supervisor_max_entries),
        max_runtime_ms=config.max_runtime_ms,
        max_file_size_mb=config.max_file_size_mb,
    )


def _status_for(error: EstimatorError) -> int:
    if isinstance(error, InvalidInput):
        return 400
    if isinstance(error, ExtractionFailure):
        return 502
    if isinstance(error, DeadlineExceeded):
        return 504
    return 500


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/classify")
async def classify(request: Request) -> JSONResponse:
    """Classify estimate text and/or line items."""
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Request body must be valid JSON"})

    status_code, payload = handle_classify_request(body)
    return JSONResponse(status_code=status_code, content=payload)


@app.post("/analyze")
def analyze(
    body: AnalysisRequest,
    pipeline: EstimateAnalysisPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """Run the full pipeline for one uploaded document."""
    try:
        review = pipeline.analyze(body.review_id, body.document_reference, body.document_type)
    except StorageFailure as e:
        logger.error(f"Analysis for review {body.review_id} not saved: {e}")
        pipeline.mark_error(body.review_id, e)
        content = {"success": False, "error": e.to_dict(), "analysisCompleted": e.analysis is not None}
        return JSONResponse(status_code=500, content=content)
    except EstimatorError as e:
        return JSONResponse(status_code=_status_for(e), content={"success": False, "error": e.to_dict()})

    return JSONResponse(
        status_code=200,
        content={"success": True, "analysis": json.loads(dump_json(review))},
    )


@app.get("/operations")
def operations(pipeline: EstimateAnalysisPipeline = Depends(get_pipeline)) -> dict:
    """Operational summary of the shared supervisor log."""
    supervisor = pipeline.supervisor
    return {
        "summary": supervisor.get_summary().model_dump(),
        "retries": supervisor.retry_count(),
        "recentErrors": supervisor.get_recent_errors(),
    }
