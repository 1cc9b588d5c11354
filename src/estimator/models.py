"""Pydantic models for estimate analysis results and internal processing."""

import base64
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


DocumentKind = Literal["contractor", "carrier"]


# ============================================================================
# Analysis Models (persisted verbatim as JSON)
# ============================================================================


class LineItem(BaseModel):
    """One priced entry in an estimate (canonical shape).

    ``total`` is the figure reported by the extractor. It is never
    recomputed from ``qty * unit_price``.
    """

    trade: str = Field("General", description="Trade category, e.g. Roofing")
    description: str = Field("Unknown item", description="Description of the work")
    qty: float = Field(1.0, ge=0, description="Quantity")
    unit: str = Field("EA", description="Unit of measure (SF, LF, EA, ...)")
    unit_price: Decimal = Field(Decimal("0"), description="Price per unit", alias="unitPrice")
    total: Decimal = Field(Decimal("0"), description="Line total as reported")
    notes: Optional[str] = Field(None, description="Extractor notes")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class AnalysisSummary(BaseModel):
    """Aggregate statistics over the normalized line items."""

    total_amount: Decimal = Field(Decimal("0"), alias="totalAmount")
    item_count: int = Field(0, alias="itemCount")
    trades: frozenset[str] = Field(default_factory=frozenset)

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class AnalysisResult(BaseModel):
    """Result of one extraction call. Never mutated after creation."""

    line_items: tuple[LineItem, ...] = Field(default_factory=tuple, alias="lineItems")
    summary: AnalysisSummary = Field(default_factory=AnalysisSummary)
    extracted_at: datetime = Field(alias="extractedAt")
    document_type: str = Field("unknown", alias="documentType")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ============================================================================
# Classification Models
# ============================================================================


class EstimateClassification(str, Enum):
    """Domain of an estimate, plus the two rejection outcomes."""

    PROPERTY = "PROPERTY"
    AUTO = "AUTO"
    COMMERCIAL = "COMMERCIAL"
    UNKNOWN = "UNKNOWN"
    AMBIGUOUS = "AMBIGUOUS"


class ConfidenceLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class CategoryScores(BaseModel):
    """Distinct keyword hits per vocabulary."""

    property: int = 0
    auto: int = 0
    commercial: int = 0

    model_config = ConfigDict(frozen=True)

    def ranked(self) -> list[tuple[str, int]]:
        """Categories sorted by score, highest first (stable on ties)."""
        pairs = [("property", self.property), ("auto", self.auto), ("commercial", self.commercial)]
        return sorted(pairs, key=lambda pair: pair[1], reverse=True)

    def max_score(self) -> int:
        return max(self.property, self.auto, self.commercial)


class ClassificationVerdict(BaseModel):
    """Classifier output. Recomputed on every call, never cached."""

    classification: EstimateClassification
    confidence: Optional[ConfidenceLevel] = None
    scores: CategoryScores

    model_config = ConfigDict(frozen=True)

    @property
    def is_rejected(self) -> bool:
        return self.classification in (
            EstimateClassification.UNKNOWN,
            EstimateClassification.AMBIGUOUS,
        )


# ============================================================================
# Internal Processing Models (not stored in database)
# ============================================================================


class EstimateDocument(BaseModel):
    """Raw document bytes fetched from the upload store."""

    reference: str
    content_type: str
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def to_data_url(self) -> str:
        """Base64 data URL as accepted by vision chat models."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


class ReviewAnalysis(BaseModel):
    """Everything the pipeline produced for one review.

    ``analysis.document_type`` is the extractor's own hint and
    ``classification`` is the classifier's verdict; they may disagree.
    """

    review_id: str = Field(alias="reviewId")
    document_type: DocumentKind = Field(alias="documentType")
    analysis: AnalysisResult
    classification: ClassificationVerdict

    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ============================================================================
# Metrics Models
# ============================================================================


class OperationLogEntry(BaseModel):
    """One supervised operation. OPEN until ``end_time`` is set."""

    operation: str
    start_time: float  # milliseconds, monotonic clock
    end_time: Optional[float] = None
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    metadata: dict = Field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class OperationStats(BaseModel):
    """Per-operation breakdown of completed entries."""

    calls: int = 0
    successes: int = 0
    failures: int = 0
    avg_duration_ms: float = 0.0


class SupervisorSummary(BaseModel):
    """Aggregate over completed log entries."""

    total_operations: int = 0
    successful_operations: int = 0
    failed_operations: int = 0
    success_rate: float = 0.0  # percent
    avg_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    min_duration_ms: float = 0.0
    operations: dict[str, OperationStats] = Field(default_factory=dict)


class BatchMetrics(BaseModel):
    """Metrics for processing a batch of reviews."""

    batch_id: str = ""
    requests: int
    succeeded: int = 0
    rejected: int = 0
    failed: int = 0
    retries: int = 0
    errors: list[dict] = Field(default_factory=list)  # [{"review_id": str, "error": str}, ...]
    duration_sec: float = 0.0
    supervisor: SupervisorSummary = Field(default_factory=SupervisorSummary)


# ============================================================================
# Request Models
# ============================================================================


class AnalysisRequest(BaseModel):
    """One document to analyze, as handed over by the upload layer."""

    review_id: str = Field(alias="reviewId")
    document_reference: str = Field(alias="documentReference")
    document_type: DocumentKind = Field(alias="documentType")

    model_config = ConfigDict(populate_by_name=True)
