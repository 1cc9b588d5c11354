"""Typed failures raised by the estimate analysis pipeline."""

from typing import Optional


class EstimatorError(Exception):
    """Base class for all pipeline failures."""

    error_type = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        """Structured representation for logs and API responses."""
        return {
            "errorType": self.error_type,
            "message": self.message,
            "details": self.details,
        }


class InvalidInput(EstimatorError):
    """Caller supplied missing or unusable input (400-equivalent)."""

    error_type = "INVALID_INPUT"


class ClassificationRejected(EstimatorError):
    """Estimate classified as UNKNOWN or AMBIGUOUS.

    This is an expected business outcome, not a crash. The verdict (with
    its raw scores) is kept on the exception for diagnostics.
    """

    error_type = "CLASSIFICATION_REJECTED"

    def __init__(self, message: str, reason: str, verdict):
        super().__init__(message, details={"reason": reason})
        self.reason = reason
        self.verdict = verdict

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["classification"] = self.verdict.classification.value
        data["scores"] = self.verdict.scores.model_dump()
        return data


class ExtractionFailure(EstimatorError):
    """Vision model call failed or returned unparseable content."""

    error_type = "EXTRACTION_FAILURE"
    retryable = True


class DeadlineExceeded(EstimatorError):
    """Pipeline run exceeded its maximum runtime. Fatal, never retried."""

    error_type = "DEADLINE_EXCEEDED"
    retryable = False

    def __init__(self, elapsed_ms: float, max_ms: float):
        super().__init__(
            f"Processing exceeded maximum runtime: {elapsed_ms:.0f}ms (limit: {max_ms:.0f}ms)",
            details={"elapsedMs": elapsed_ms, "maxMs": max_ms},
        )
        self.elapsed_ms = elapsed_ms
        self.max_ms = max_ms


class StorageFailure(EstimatorError):
    """Persisting a completed analysis failed.

    ``analysis`` holds the finished result so the write can be retried
    without re-running extraction.
    """

    error_type = "STORAGE_FAILURE"

    def __init__(self, message: str, analysis=None):
        super().__init__(message)
        self.analysis = analysis
