"""Batch processing of analysis requests with caller-side retries."""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, TypeVar

from .errors import ExtractionFailure, StorageFailure
from .metrics import OperationSupervisor
from .models import AnalysisRequest, BatchMetrics, ReviewAnalysis
from .pipeline import EstimateAnalysisPipeline

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
INITIAL_DELAY_SEC = 1.0
BACKOFF_MULTIPLIER = 2.0
MAX_DELAY_SEC = 10.0


def is_retryable(error: Exception) -> bool:
    """Only extraction and storage failures are worth another attempt."""
    return isinstance(error, (ExtractionFailure, StorageFailure))


def backoff_delay(attempt: int) -> float:
    """Delay before retrying after failed ``attempt`` (1-based)."""
    delay = INITIAL_DELAY_SEC * BACKOFF_MULTIPLIER ** (attempt - 1)
    return min(delay, MAX_DELAY_SEC)


def retry_with_backoff(
    fn: Callable[[], T],
    supervisor: OperationSupervisor,
    operation: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    should_retry: Callable[[Exception], bool] = is_retryable,
    sleep: Callable[[float], None] = time.sleep,
    first_attempt: int = 1,
) -> T:
    """Call ``fn`` until it succeeds, retrying with exponential backoff.

    Each failed attempt that will be retried is reported through
    ``supervisor.log_retry``. The last failure is re-raised unchanged.
    ``first_attempt`` lets a caller continue a count it already started.
    """
    for attempt in range(first_attempt, max_attempts + 1):
        try:
            return fn()
        except Exception as e:
            if attempt == max_attempts or not should_retry(e):
                raise
            supervisor.log_retry(operation, attempt, max_attempts, str(e))
            sleep(backoff_delay(attempt))
    raise ValueError("max_attempts must be at least 1")


def _analyze_with_retries(
    pipeline: EstimateAnalysisPipeline,
    request: AnalysisRequest,
    max_attempts: int,
    sleep: Callable[[float], None],
) -> ReviewAnalysis:
    """Analyze one request; a failed save is retried without re-extracting."""

    def analyze() -> ReviewAnalysis:
        try:
            return pipeline.analyze(
                request.review_id, request.document_reference, request.document_type
            )
        except StorageFailure as e:
            analysis = e.analysis
            try:
                if analysis is None or max_attempts < 2:
                    raise
                pipeline.supervisor.log_retry("persist", 1, max_attempts, str(e))
                sleep(backoff_delay(1))
                retry_with_backoff(
                    lambda: pipeline.persist(analysis),
                    pipeline.supervisor,
                    "persist",
                    max_attempts=max_attempts,
                    sleep=sleep,
                    first_attempt=2,
                )
            except StorageFailure as final:
                pipeline.mark_error(request.review_id, final)
                raise
            return analysis

    return retry_with_backoff(
        analyze,
        pipeline.supervisor,
        "extraction",
        max_attempts=max_attempts,
        should_retry=lambda e: isinstance(e, ExtractionFailure),
        sleep=sleep,
    )


def process_batch(
    pipeline: EstimateAnalysisPipeline,
    requests: list[AnalysisRequest],
    max_workers: int = 4,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    clear_log: bool = True,
    batch_id: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[list[ReviewAnalysis], BatchMetrics]:
    """Analyze a batch of documents concurrently.

    Args:
        pipeline: Pipeline whose supervisor is shared by all workers
        requests: Documents to analyze
        max_workers: Thread pool size
        max_attempts: Attempts per request for retryable failures
        clear_log: Clear the supervisor's log once the batch is summarized
        batch_id: Identifier for metrics (generated if omitted)
        sleep: Backoff sleep function

    Returns:
        (analyses, metrics): Successful analyses and batch accounting
    """
    start_time = time.perf_counter()
    batch_id = batch_id or uuid.uuid4().hex[:12]
    supervisor = pipeline.supervisor
    retries_before = supervisor.retry_count()

    analyses: list[ReviewAnalysis] = []
    errors = []
    rejected = 0

    logger.info(f"Batch {batch_id}: processing {len(requests)} documents with {max_workers} workers")

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            (request, executor.submit(_analyze_with_retries, pipeline, request, max_attempts, sleep))
            for request in requests
        ]

        for request, future in futures:
            try:
                analysis = future.result()
            except Exception as e:
                logger.error(f"Failed to analyze review {request.review_id}: {e}")
                errors.append({"review_id": request.review_id, "error": str(e)})
                continue

            if analysis.classification.is_rejected:
                rejected += 1
            analyses.append(analysis)

    metrics = BatchMetrics(
        batch_id=batch_id,
        requests=len(requests),
        succeeded=len(analyses),
        rejected=rejected,
        failed=len(errors),
        retries=supervisor.retry_count() - retries_before,
        errors=errors,
        duration_sec=time.perf_counter() - start_time,
        supervisor=supervisor.get_summary(),
    )

    if clear_log:
        supervisor.clear()

    logger.info(
        f"Batch {batch_id}: {metrics.succeeded} succeeded, {metrics.failed} failed, "
        f"{metrics.rejected} rejected, {metrics.retries} retries in {metrics.duration_sec:.2f}s"
    )
    return analyses, metrics
