"""Modal worker for analyzing batches of uploaded estimates."""

import logging
import sys
from pathlib import Path

import modal

app = modal.App("estimator-worker")

image = (
    modal.Image.debian_slim(python_version="3.12")
    .pip_install(
        "psycopg[binary]==3.2.3",
        "boto3==1.41.2",
        "openai==1.59.5",
        "pydantic==2.12.4",
        "fastapi==0.115.6",
    )
    .add_local_dir(Path(__file__).parent.parent / "src" / "estimator", "/root/estimator")
)

secrets = [modal.Secret.from_name("estimator-secrets")]

logger = logging.getLogger(__name__)


@app.function(image=image, secrets=secrets, timeout=900)
def analyze_batch(requests: list[dict]) -> dict:
    """Analyze a batch of uploaded estimates.

    Args:
        requests: [{"reviewId", "documentReference", "documentType"}, ...]

    Returns:
        dict: BatchMetrics for this batch
    """
    sys.path.insert(0, "/root")

    from estimator.api import get_pipeline
    from estimator.batch import process_batch
    from estimator.config import Config
    from estimator.models import AnalysisRequest

    config = Config.from_env()
    logging.basicConfig(level=config.log_level)

    pipeline = get_pipeline()
    parsed = [AnalysisRequest.model_validate(request) for request in requests]

    _, metrics = process_batch(
        pipeline,
        parsed,
        max_workers=config.batch_workers,
        max_attempts=config.max_attempts,
        clear_log=True,
    )

    if metrics.failed:
        logger.error(f"Batch {metrics.batch_id}: {metrics.failed} review(s) failed: {metrics.errors}")
    return metrics.model_dump()


@app.local_entrypoint()
def main(review_id: str, document_reference: str, document_type: str = "contractor"):
    """Analyze a single review from the command line."""
    result = analyze_batch.remote([
        {
            "reviewId": review_id,
            "documentReference": document_reference,
            "documentType": document_type,
        }
    ])
    print(result)
