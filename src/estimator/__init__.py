"""Estimate analysis pipeline - document bytes in, classified line items out."""

# Models
from .models import (
    # Analysis models
    LineItem,
    AnalysisSummary,
    AnalysisResult,
    ReviewAnalysis,
    # Classification models
    EstimateClassification,
    ConfidenceLevel,
    CategoryScores,
    ClassificationVerdict,
    # Processing models
    AnalysisRequest,
    EstimateDocument,
    # Metrics
    OperationLogEntry,
    SupervisorSummary,
    OperationStats,
    BatchMetrics,
)

# Errors
from .errors import (
    EstimatorError,
    InvalidInput,
    ClassificationRejected,
    ExtractionFailure,
    DeadlineExceeded,
    StorageFailure,
)

# Components
from .classifier import classify_estimate, evaluate_estimate
from .normalizer import normalize_extraction
from .metrics import OperationSupervisor
from .pipeline import EstimateAnalysisPipeline
from .batch import process_batch

# Semantic
from .semantic import VisionExtractionClient

# Storage
from .storage import DatabaseClient, S3Client

# Configuration
from .config import Config

__version__ = "0.1.0"

__all__ = [
    # Models
    "LineItem",
    "AnalysisSummary",
    "AnalysisResult",
    "ReviewAnalysis",
    "EstimateClassification",
    "ConfidenceLevel",
    "CategoryScores",
    "ClassificationVerdict",
    "AnalysisRequest",
    "EstimateDocument",
    "OperationLogEntry",
    "SupervisorSummary",
    "OperationStats",
    "BatchMetrics",
    # Errors
    "EstimatorError",
    "InvalidInput",
    "ClassificationRejected",
    "ExtractionFailure",
    "DeadlineExceeded",
    "StorageFailure",
    # Components
    "classify_estimate",
    "evaluate_estimate",
    "normalize_extraction",
    "OperationSupervisor",
    "EstimateAnalysisPipeline",
    "process_batch",
    "VisionExtractionClient",
    "DatabaseClient",
    "S3Client",
    "Config",
]
