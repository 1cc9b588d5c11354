"""Reconcile raw extractor output into canonical line items.

The vision model has answered in two shapes over time:

    current: {"items": [{"quantity": .., "unitPrice": ..}], "metadata": {...}}
    legacy:  {"lineItems": [{"qty": .., "unit_price": ..}]}

``reconcile_items`` is the only place that knows about both.
"""

import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Optional

from .errors import ExtractionFailure
from .models import AnalysisResult, AnalysisSummary, LineItem

logger = logging.getLogger(__name__)

DEFAULT_TRADE = "General"
DEFAULT_DESCRIPTION = "Unknown item"
DEFAULT_UNIT = "EA"
DEFAULT_QTY = 1.0
DEFAULT_DOCUMENT_TYPE = "unknown"

_NUMBER_NOISE = re.compile(r"[,$\s]")


class ExtractionShape(str, Enum):
    CURRENT = "items"
    LEGACY = "lineItems"
    EMPTY = "empty"


def reconcile_items(raw: Mapping) -> tuple[ExtractionShape, list]:
    """Pick the item list out of either extraction shape.

    Returns:
        (shape, items): ``items`` wins when present and non-empty, then
        ``lineItems``, otherwise an empty list
    """
    current = raw.get("items")
    if isinstance(current, list) and current:
        return ExtractionShape.CURRENT, current

    legacy = raw.get("lineItems")
    if isinstance(legacy, list) and legacy:
        return ExtractionShape.LEGACY, legacy

    return ExtractionShape.EMPTY, []


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Coerce extractor numbers ("$1,234.56", 12, 3.5) to Decimal."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    cleaned = _NUMBER_NOISE.sub("", value)
    if not cleaned:
        return None
    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _first_number(item: Mapping, keys: Iterable[str], allow_negative: bool = True) -> Optional[Decimal]:
    for key in keys:
        number = _to_decimal(item.get(key))
        if number is None:
            continue
        if number < 0 and not allow_negative:
            logger.warning(f"Ignoring negative {key}={number} on line item")
            continue
        return number
    return None


def _text(item: Mapping, key: str, default: str) -> str:
    value = item.get(key)
    if value is None:
        return default
    value = str(value).strip()
    return value or default


def normalize_line_item(item: Mapping) -> LineItem:
    """Map one raw item onto the canonical LineItem, applying defaults."""
    qty = _first_number(item, ("quantity", "qty"), allow_negative=False)
    unit_price = _first_number(item, ("unitPrice", "unit_price"))
    total = _first_number(item, ("total",))
    notes = item.get("notes")

    return LineItem(
        trade=_text(item, "trade", DEFAULT_TRADE),
        description=_text(item, "description", DEFAULT_DESCRIPTION),
        qty=float(qty) if qty is not None else DEFAULT_QTY,
        unit=_text(item, "unit", DEFAULT_UNIT),
        unit_price=unit_price if unit_price is not None else Decimal("0"),
        total=total if total is not None else Decimal("0"),
        notes=str(notes) if notes is not None else None,
    )


def summarize(items: Iterable[LineItem]) -> AnalysisSummary:
    """Totals, count and distinct trades for a list of line items."""
    items = list(items)
    return AnalysisSummary(
        total_amount=sum((item.total for item in items), Decimal("0")),
        item_count=len(items),
        trades=frozenset(item.trade for item in items),
    )


def _document_type_hint(raw: Mapping) -> str:
    metadata = raw.get("metadata")
    if isinstance(metadata, Mapping):
        hint = metadata.get("documentType")
        if isinstance(hint, str) and hint.strip():
            return hint.strip()
    return DEFAULT_DOCUMENT_TYPE


def normalize_extraction(raw: Any, extracted_at: Optional[datetime] = None) -> AnalysisResult:
    """Build an AnalysisResult from raw extractor output.

    Args:
        raw: Decoded JSON from the vision model
        extracted_at: Timestamp to record (defaults to now, UTC)

    Returns:
        AnalysisResult: Canonical, immutable analysis

    Raises:
        ExtractionFailure: If ``raw`` is not a mapping at all
    """
    if not isinstance(raw, Mapping):
        raise ExtractionFailure(
            f"Extraction output must be a JSON object, got {type(raw).__name__}"
        )

    shape, raw_items = reconcile_items(raw)

    line_items = []
    for index, item in enumerate(raw_items):
        if not isinstance(item, Mapping):
            logger.warning(f"Skipping non-object line item at index {index}: {item!r}")
            continue
        line_items.append(normalize_line_item(item))

    logger.debug(f"Normalized {len(line_items)} line items from {shape.value} shape")

    return AnalysisResult(
        line_items=tuple(line_items),
        summary=summarize(line_items),
        extracted_at=extracted_at or datetime.now(timezone.utc),
        document_type=_document_type_hint(raw),
    )
