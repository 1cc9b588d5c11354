"""Storage abstractions for estimate documents and analysis results."""

import json
import mimetypes
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from ..errors import InvalidInput
from ..models import EstimateDocument, ReviewAnalysis


def _json_default(obj):
    """JSON serializer for Decimal, set and datetime values.

    Raises:
        TypeError: If object is not one of the handled types
    """
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def dump_json(model: BaseModel) -> str:
    """Serialize a model with its camelCase aliases."""
    return json.dumps(model.model_dump(by_alias=True), default=_json_default)


class DocumentSource(ABC):
    """Abstract interface for fetching uploaded estimate documents."""

    @abstractmethod
    def fetch_document(self, reference: str) -> EstimateDocument:
        """Fetch document bytes and MIME type by reference.

        Raises:
            InvalidInput: If no document exists for the reference
        """
        pass


class AnalysisStore(ABC):
    """Abstract interface for persisting analysis results by review id."""

    @abstractmethod
    def save_analysis(self, review_id: str, analysis: ReviewAnalysis) -> None:
        """Persist an analysis. Last write wins."""
        pass

    @abstractmethod
    def update_review_status(
        self, review_id: str, status: str, error_message: Optional[str] = None
    ) -> None:
        """Record the review's processing status."""
        pass


class FileSystemDocumentSource(DocumentSource):
    """Read documents from a local directory."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def fetch_document(self, reference: str) -> EstimateDocument:
        path = self.base_dir / Path(reference).name
        if not path.is_file():
            raise InvalidInput(f"Document not found: {reference}")

        content_type, _ = mimetypes.guess_type(path.name)
        with open(path, "rb") as f:
            data = f.read()

        return EstimateDocument(
            reference=reference,
            content_type=content_type or "application/octet-stream",
            data=data,
        )


class InMemoryDocumentSource(DocumentSource):
    """Serve documents from memory (for testing)."""

    def __init__(self):
        self.documents: dict[str, EstimateDocument] = {}

    def add_document(self, reference: str, data: bytes, content_type: str) -> None:
        self.documents[reference] = EstimateDocument(
            reference=reference, content_type=content_type, data=data
        )

    def fetch_document(self, reference: str) -> EstimateDocument:
        document = self.documents.get(reference)
        if document is None:
            raise InvalidInput(f"Document not found: {reference}")
        return document


class InMemoryAnalysisStore(AnalysisStore):
    """Store analyses in memory as their persisted JSON (for testing)."""

    def __init__(self):
        self.analyses: dict[str, dict] = {}
        self.statuses: dict[str, tuple[str, Optional[str]]] = {}

    def save_analysis(self, review_id: str, analysis: ReviewAnalysis) -> None:
        self.analyses[review_id] = json.loads(dump_json(analysis))
        self.statuses[review_id] = ("completed", None)

    def update_review_status(
        self, review_id: str, status: str, error_message: Optional[str] = None
    ) -> None:
        self.statuses[review_id] = (status, error_message)

    def get_analysis(self, review_id: str) -> Optional[dict]:
        return self.analyses.get(review_id)
