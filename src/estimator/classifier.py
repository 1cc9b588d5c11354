"""Keyword-based estimate classifier: PROPERTY / AUTO / COMMERCIAL.

Scores are counts of distinct vocabulary terms found as substrings of the
lowercased content. The thresholds below are contractual; downstream
rejection of unclassifiable documents depends on them exactly.
"""

import logging
from typing import Iterable, Optional

from .errors import ClassificationRejected, InvalidInput
from .models import (
    AnalysisResult,
    CategoryScores,
    ClassificationVerdict,
    ConfidenceLevel,
    EstimateClassification,
)

logger = logging.getLogger(__name__)

MIN_CLASSIFICATION_SCORE = 3
AMBIGUITY_MARGIN = 2
HIGH_CONFIDENCE_SCORE = 5

UNKNOWN_REASON = "Insufficient recognizable line items"
AMBIGUOUS_REASON = "Multiple estimate types detected"

PROPERTY_KEYWORDS = (
    "roofing", "roof", "shingles", "siding", "drywall", "flooring",
    "painting", "water damage", "fire damage", "wind damage", "hail damage",
    "interior", "exterior", "foundation", "hvac", "plumbing", "electrical",
    "kitchen", "bathroom", "bedroom", "living room", "ceiling", "wall",
    "insulation", "gutters", "windows", "doors", "deck", "fence",
)

AUTO_KEYWORDS = (
    "bumper", "fender", "hood", "door panel", "quarter panel", "trunk",
    "windshield", "headlight", "taillight", "mirror", "grille", "paint",
    "body shop", "collision", "frame", "suspension", "alignment",
    "airbag", "seat", "dashboard", "wheel", "tire", "rim",
)

COMMERCIAL_KEYWORDS = (
    "commercial property", "business", "retail", "office", "warehouse",
    "industrial", "manufacturing", "restaurant", "store", "building",
    "tenant improvement", "ada compliance", "fire suppression", "sprinkler",
    "commercial kitchen", "loading dock", "parking lot", "signage",
)

# Priority order on exact ties with the max score.
_CATEGORY_ORDER = (
    ("property", EstimateClassification.PROPERTY),
    ("auto", EstimateClassification.AUTO),
    ("commercial", EstimateClassification.COMMERCIAL),
)


def _count_matches(haystack: str, keywords: Iterable[str]) -> int:
    return sum(1 for keyword in set(keywords) if keyword in haystack)


def score_content(text: Optional[str], line_items: Optional[Iterable[str]]) -> CategoryScores:
    """Score content against the three vocabularies."""
    haystack = f"{text or ''} {' '.join(line_items or [])}".lower()
    return CategoryScores(
        property=_count_matches(haystack, PROPERTY_KEYWORDS),
        auto=_count_matches(haystack, AUTO_KEYWORDS),
        commercial=_count_matches(haystack, COMMERCIAL_KEYWORDS),
    )


def evaluate_estimate(
    text: Optional[str] = None,
    line_items: Optional[list[str]] = None,
) -> ClassificationVerdict:
    """Classify an estimate without raising on rejection.

    Args:
        text: Free document text
        line_items: Line-item strings

    Returns:
        ClassificationVerdict; UNKNOWN and AMBIGUOUS verdicts carry no confidence

    Raises:
        InvalidInput: If text is empty and no line-item list was given. An
            empty list is scored and comes back UNKNOWN.
    """
    if not text and line_items is None:
        raise InvalidInput("Missing required field: text or lineItems")

    scores = score_content(text, line_items)
    max_score = scores.max_score()

    if max_score < MIN_CLASSIFICATION_SCORE:
        return ClassificationVerdict(classification=EstimateClassification.UNKNOWN, scores=scores)

    ranked = scores.ranked()
    # Fires on exact ties at the top as well.
    if ranked[0][1] - ranked[1][1] < AMBIGUITY_MARGIN:
        return ClassificationVerdict(classification=EstimateClassification.AMBIGUOUS, scores=scores)

    classification = next(
        category for name, category in _CATEGORY_ORDER if getattr(scores, name) == max_score
    )
    confidence = ConfidenceLevel.HIGH if max_score >= HIGH_CONFIDENCE_SCORE else ConfidenceLevel.MEDIUM

    return ClassificationVerdict(classification=classification, confidence=confidence, scores=scores)


def classify_estimate(
    text: Optional[str] = None,
    line_items: Optional[list[str]] = None,
) -> ClassificationVerdict:
    """Classify an estimate, rejecting UNKNOWN and AMBIGUOUS outcomes.

    Raises:
        InvalidInput: If neither text nor line items were supplied
        ClassificationRejected: If the estimate type cannot be determined
    """
    verdict = evaluate_estimate(text, line_items)

    if verdict.classification is EstimateClassification.UNKNOWN:
        raise ClassificationRejected("Unable to classify estimate type", UNKNOWN_REASON, verdict)
    if verdict.classification is EstimateClassification.AMBIGUOUS:
        raise ClassificationRejected("Ambiguous estimate type", AMBIGUOUS_REASON, verdict)

    return verdict


def build_classifier_text(result: AnalysisResult) -> list[str]:
    """Line-item strings fed to the classifier for an extraction result."""
    lines = []
    for item in result.line_items:
        parts = [item.trade, item.description]
        if item.notes:
            parts.append(item.notes)
        lines.append(" ".join(parts))
    return lines


def handle_classify_request(body: object) -> tuple[int, dict]:
    """Classifier service boundary.

    Args:
        body: Decoded request body, ``{"text"?: str, "lineItems"?: [str]}``

    Returns:
        (status_code, payload): 200 verdict, 400 invalid or rejected, 500 failure
    """
    try:
        if not isinstance(body, dict):
            raise InvalidInput("Request body must be a JSON object")

        text = body.get("text")
        line_items = body.get("lineItems")
        if text is not None and not isinstance(text, str):
            raise InvalidInput("Field 'text' must be a string")
        if line_items is not None and (
            not isinstance(line_items, list) or not all(isinstance(line, str) for line in line_items)
        ):
            raise InvalidInput("Field 'lineItems' must be a list of strings")

        verdict = classify_estimate(text, line_items)
        return 200, {
            "classification": verdict.classification.value,
            "confidence": verdict.confidence.value,
            "scores": verdict.scores.model_dump(),
        }

    except InvalidInput as e:
        return 400, {"error": e.message}
    except ClassificationRejected as e:
        return 400, {
            "error": e.message,
            "reason": e.reason,
            "classification": e.verdict.classification.value,
            "scores": e.verdict.scores.model_dump(),
        }
    except Exception as e:
        logger.error(f"Classification error: {e}")
        return 500, {"error": "Classification failed", "message": str(e)}
