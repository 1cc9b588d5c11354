"""Pytest configuration and fixtures."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from estimator.metrics import OperationSupervisor
from estimator.pipeline import EstimateAnalysisPipeline
from estimator.storage import InMemoryAnalysisStore, InMemoryDocumentSource


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def supervisor(clock):
    """Supervisor on a controllable clock."""
    return OperationSupervisor(max_entries=1000, clock=clock)


@pytest.fixture
def extracted_at():
    return datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def current_extraction():
    """Extractor output in the current ``items`` shape."""
    return {
        "items": [
            {
                "trade": "Roofing",
                "description": "Architectural shingles, 30-year warranty",
                "quantity": 25.5,
                "unit": "SQ",
                "unitPrice": 450.00,
                "total": 11475.00,
                "notes": "Includes ice & water shield",
            },
            {
                "trade": "Gutters",
                "description": "Seamless aluminum gutters",
                "quantity": 120,
                "unit": "LF",
                "unitPrice": 8.5,
                "total": 1020.00,
            },
            {
                "trade": "Insulation",
                "description": "Blown-in attic insulation",
                "quantity": 900,
                "unit": "SF",
                "unitPrice": 1.25,
                "total": 1125.00,
            },
        ],
        "metadata": {"documentType": "contractor_estimate", "itemCount": 3},
    }


@pytest.fixture
def legacy_extraction(current_extraction):
    """The same items in the legacy ``lineItems`` shape."""
    legacy_items = []
    for item in current_extraction["items"]:
        legacy = dict(item)
        legacy["qty"] = legacy.pop("quantity")
        legacy["unit_price"] = legacy.pop("unitPrice")
        legacy_items.append(legacy)
    return {"lineItems": legacy_items, "metadata": current_extraction["metadata"]}


@pytest.fixture
def document_source():
    source = InMemoryDocumentSource()
    source.add_document("uploads/roof-estimate.pdf", b"%PDF-1.4 fake estimate", "application/pdf")
    return source


@pytest.fixture
def analysis_store():
    return InMemoryAnalysisStore()


@pytest.fixture
def extractor(current_extraction):
    """Vision extractor double returning the current-shape fixture."""
    mock = MagicMock()
    mock.extract.return_value = current_extraction
    return mock


@pytest.fixture
def pipeline(extractor, document_source, analysis_store, supervisor):
    return EstimateAnalysisPipeline(
        extractor=extractor,
        document_source=document_source,
        analysis_store=analysis_store,
        supervisor=supervisor,
        max_runtime_ms=20000,
    )
