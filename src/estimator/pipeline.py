"""Core estimate analysis pipeline - document reference in, persisted analysis out."""

import logging
from typing import Optional, Protocol

from .classifier import build_classifier_text, evaluate_estimate
from .errors import (
    DeadlineExceeded,
    EstimatorError,
    ExtractionFailure,
    InvalidInput,
    StorageFailure,
)
from .metrics import DEFAULT_MAX_RUNTIME_MS, OperationSupervisor
from .models import (
    AnalysisResult,
    ClassificationVerdict,
    DocumentKind,
    EstimateDocument,
    ReviewAnalysis,
)
from .normalizer import normalize_extraction
from .storage import AnalysisStore, DocumentSource

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = ("application/pdf", "image/png", "image/jpeg", "image/jpg")
DOCUMENT_TYPES = ("contractor", "carrier")


class Extractor(Protocol):
    """Anything that turns document bytes into raw extraction JSON."""

    def extract(self, document: EstimateDocument, document_type: DocumentKind) -> dict:
        ...


class EstimateAnalysisPipeline:
    """Runs extraction, normalization and classification for one review.

    Every step is tracked by the supervisor, and the runtime ceiling is
    checked after extraction and after classification. Nothing here
    retries; callers wrap ``analyze`` in their own retry loop.
    """

    def __init__(
        self,
        extractor: Extractor,
        document_source: DocumentSource,
        analysis_store: AnalysisStore,
        supervisor: Optional[OperationSupervisor] = None,
        max_runtime_ms: float = DEFAULT_MAX_RUNTIME_MS,
        max_file_size_mb: int = 10,
    ):
        """Initialize the pipeline.

        Args:
            extractor: Vision extraction collaborator
            document_source: Where uploaded documents are fetched from
            analysis_store: Where finished analyses are persisted
            supervisor: Shared operation supervisor (a private one if omitted)
            max_runtime_ms: Hard ceiling for one run
            max_file_size_mb: Largest accepted document
        """
        self.extractor = extractor
        self.document_source = document_source
        self.analysis_store = analysis_store
        self.supervisor = supervisor or OperationSupervisor()
        self.max_runtime_ms = max_runtime_ms
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024

    def analyze(
        self,
        review_id: str,
        document_reference: str,
        document_type: DocumentKind,
    ) -> ReviewAnalysis:
        """Analyze one uploaded estimate and persist the result.

        Args:
            review_id: Review the analysis is stored under
            document_reference: Storage key or upload URL of the document
            document_type: "contractor" or "carrier"

        Returns:
            ReviewAnalysis: Normalized line items plus classifier verdict

        Raises:
            InvalidInput: Missing fields, unknown document, bad MIME type or size
            ExtractionFailure: Vision call failed or returned unusable content
            DeadlineExceeded: Run exceeded ``max_runtime_ms``
            StorageFailure: Analysis completed but could not be saved
        """
        if not review_id or not document_reference:
            raise InvalidInput("Missing reviewId or document reference")
        if document_type not in DOCUMENT_TYPES:
            raise InvalidInput(f"Unsupported document type: {document_type!r}")

        supervisor = self.supervisor
        start_time = supervisor.clock()
        metadata = {"reviewId": review_id, "documentType": document_type}

        try:
            self.analysis_store.update_review_status(review_id, "analyzing")

            document = supervisor.track(
                "download", self._fetch_document, document_reference, metadata=metadata
            )
            raw = supervisor.track(
                "extraction", self._extract, document, document_type, metadata=metadata
            )
            supervisor.enforce_max_runtime(start_time, self.max_runtime_ms)

            result = supervisor.track("normalization", normalize_extraction, raw, metadata=metadata)
            verdict = supervisor.track("classification", self._classify, result, metadata=metadata)
            supervisor.enforce_max_runtime(start_time, self.max_runtime_ms)

        except Exception as e:
            elapsed = supervisor.clock() - start_time
            supervisor.log_failure(
                "analyze_estimate",
                f"review={review_id} after {elapsed:.0f}ms: {e}",
                fatal=isinstance(e, DeadlineExceeded),
            )
            self.mark_error(review_id, e)
            raise

        review = ReviewAnalysis(
            review_id=review_id,
            document_type=document_type,
            analysis=result,
            classification=verdict,
        )
        self.persist(review)
        return review

    def persist(self, review: ReviewAnalysis) -> None:
        """Save a finished analysis; safe to call again after StorageFailure."""
        try:
            self.supervisor.track(
                "persist",
                self.analysis_store.save_analysis,
                review.review_id,
                review,
                metadata={"reviewId": review.review_id},
            )
        except StorageFailure as e:
            if e.analysis is None:
                e.analysis = review
            raise
        except Exception as e:
            raise StorageFailure(f"Failed to save analysis: {e}", review) from e

    def _fetch_document(self, reference: str) -> EstimateDocument:
        document = self.document_source.fetch_document(reference)

        if document.content_type not in ALLOWED_MIME_TYPES:
            raise InvalidInput(
                f"Invalid file type: {document.content_type}. "
                "Only PDF, PNG, and JPG files are supported."
            )
        if document.size_bytes > self.max_file_size_bytes:
            size_mb = document.size_bytes / 1024 / 1024
            limit_mb = self.max_file_size_bytes / 1024 / 1024
            raise InvalidInput(
                f"File too large: {size_mb:.2f}MB. Maximum size is {limit_mb:.0f}MB."
            )
        return document

    def _extract(self, document: EstimateDocument, document_type: DocumentKind) -> dict:
        try:
            return self.extractor.extract(document, document_type)
        except EstimatorError:
            raise
        except Exception as e:
            raise ExtractionFailure(f"Extraction failed: {e}") from e

    def _classify(self, result: AnalysisResult) -> ClassificationVerdict:
        verdict = evaluate_estimate(line_items=build_classifier_text(result))
        if verdict.is_rejected:
            logger.warning(
                f"Estimate classified as {verdict.classification.value} "
                f"(scores: {verdict.scores.model_dump()})"
            )
        return verdict

    def mark_error(self, review_id: str, error: Exception) -> None:
        """Best-effort switch of the review to ``error``; a failing write is only logged."""
        try:
            self.analysis_store.update_review_status(
                review_id, "error", str(error) or "Failed to analyze estimate"
            )
        except Exception as update_error:
            logger.error(f"Failed to update error status for review {review_id}: {update_error}")
