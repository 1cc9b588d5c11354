"""Tests for the keyword estimate classifier."""

import itertools

import pytest

from estimator import classifier
from estimator.classifier import (
    AMBIGUOUS_REASON,
    UNKNOWN_REASON,
    classify_estimate,
    evaluate_estimate,
    handle_classify_request,
    score_content,
)
from estimator.errors import ClassificationRejected, InvalidInput
from estimator.models import CategoryScores, ConfidenceLevel, EstimateClassification


class TestScoreContent:
    """Tests for keyword scoring."""

    def test_counts_distinct_keywords(self):
        scores = score_content("shingles gutters hvac insulation bumper", None)
        assert scores == CategoryScores(property=4, auto=1, commercial=0)

    def test_substring_matching_without_word_boundaries(self):
        """'roofing' also contains 'roof'."""
        scores = score_content("roofing", None)
        assert scores.property == 2

    def test_repeated_keyword_counts_once(self):
        assert score_content("roof roof roof", None).property == 1

    def test_case_insensitive(self):
        assert score_content("SHINGLES Gutters HvAc", None).property == 3

    def test_text_and_line_items_combined(self):
        scores = score_content("shingles", ["gutters", "hvac"])
        assert scores.property == 3


class TestEvaluateEstimate:
    """Tests for the decision policy."""

    def test_property_medium(self):
        verdict = evaluate_estimate("shingles gutters hvac insulation bumper")

        assert verdict.classification is EstimateClassification.PROPERTY
        assert verdict.confidence is ConfidenceLevel.MEDIUM
        assert verdict.scores.model_dump() == {"property": 4, "auto": 1, "commercial": 0}

    def test_ambiguous_with_margin_of_one(self):
        """5 property vs 4 auto is ambiguous even though max >= 3."""
        verdict = evaluate_estimate(
            "shingles gutters hvac insulation fence bumper windshield headlight grille"
        )

        assert verdict.scores.property == 5
        assert verdict.scores.auto == 4
        assert verdict.classification is EstimateClassification.AMBIGUOUS
        assert verdict.confidence is None

    def test_exact_tie_is_ambiguous(self):
        verdict = evaluate_estimate("shingles gutters hvac bumper grille trunk")
        assert verdict.classification is EstimateClassification.AMBIGUOUS

    def test_margin_of_two_is_decisive(self):
        verdict = evaluate_estimate("shingles gutters hvac insulation fence bumper grille trunk")

        assert verdict.classification is EstimateClassification.PROPERTY
        assert verdict.confidence is ConfidenceLevel.HIGH

    def test_unknown_below_three(self):
        verdict = evaluate_estimate("bumper fender")

        assert verdict.classification is EstimateClassification.UNKNOWN
        assert verdict.scores.auto == 2

    def test_auto_high(self):
        verdict = evaluate_estimate(line_items=["bumper", "grille", "trunk", "windshield", "headlight"])

        assert verdict.classification is EstimateClassification.AUTO
        assert verdict.confidence is ConfidenceLevel.HIGH

    def test_commercial_medium(self):
        verdict = evaluate_estimate("warehouse loading dock signage sprinkler")

        assert verdict.classification is EstimateClassification.COMMERCIAL
        assert verdict.confidence is ConfidenceLevel.MEDIUM

    @pytest.mark.parametrize("text,line_items", [(None, None), ("", None)])
    def test_missing_input(self, text, line_items):
        with pytest.raises(InvalidInput):
            evaluate_estimate(text, line_items)

    @pytest.mark.parametrize("text", [None, ""])
    def test_empty_line_items_are_scored(self, text):
        verdict = evaluate_estimate(text, [])

        assert verdict.classification is EstimateClassification.UNKNOWN
        assert verdict.scores == CategoryScores()

    def test_idempotent(self):
        text = "shingles gutters hvac insulation bumper"
        assert evaluate_estimate(text, ["deck"]) == evaluate_estimate(text, ["deck"])

    def test_policy_over_score_grid(self, monkeypatch):
        """Every score triple obeys the rejection floor and ambiguity margin."""
        for triple in itertools.product(range(7), repeat=3):
            scores = CategoryScores(property=triple[0], auto=triple[1], commercial=triple[2])
            monkeypatch.setattr(classifier, "score_content", lambda text, lines, s=scores: s)

            verdict = evaluate_estimate("anything")
            ordered = sorted(triple, reverse=True)

            if max(triple) < 3:
                assert verdict.classification is EstimateClassification.UNKNOWN, triple
            elif ordered[0] - ordered[1] < 2:
                assert verdict.classification is EstimateClassification.AMBIGUOUS, triple
            else:
                winner = ("property", "auto", "commercial")[triple.index(max(triple))]
                assert verdict.classification.value == winner.upper(), triple
                expected = ConfidenceLevel.HIGH if max(triple) >= 5 else ConfidenceLevel.MEDIUM
                assert verdict.confidence is expected, triple


class TestClassifyEstimate:
    """Tests for the rejecting variant."""

    def test_returns_verdict(self):
        verdict = classify_estimate("shingles gutters hvac insulation fence")
        assert verdict.classification is EstimateClassification.PROPERTY

    def test_rejects_unknown(self):
        with pytest.raises(ClassificationRejected) as exc_info:
            classify_estimate("a blank page")

        assert exc_info.value.reason == UNKNOWN_REASON
        assert exc_info.value.verdict.classification is EstimateClassification.UNKNOWN

    def test_rejects_ambiguous(self):
        with pytest.raises(ClassificationRejected) as exc_info:
            classify_estimate("shingles gutters hvac bumper grille trunk")

        assert exc_info.value.reason == AMBIGUOUS_REASON
        assert exc_info.value.verdict.scores.property == 3


class TestHandleClassifyRequest:
    """Tests for the classifier service boundary."""

    def test_success(self):
        status, payload = handle_classify_request({"text": "shingles gutters hvac insulation bumper"})

        assert status == 200
        assert payload == {
            "classification": "PROPERTY",
            "confidence": "MEDIUM",
            "scores": {"property": 4, "auto": 1, "commercial": 0},
        }

    def test_missing_fields(self):
        status, payload = handle_classify_request({})

        assert status == 400
        assert payload["error"] == "Missing required field: text or lineItems"

    def test_rejection_payload(self):
        status, payload = handle_classify_request({"lineItems": ["bumper"]})

        assert status == 400
        assert payload["classification"] == "UNKNOWN"
        assert payload["reason"] == UNKNOWN_REASON
        assert payload["scores"] == {"property": 0, "auto": 1, "commercial": 0}

    def test_empty_line_items_payload(self):
        status, payload = handle_classify_request({"text": "", "lineItems": []})

        assert status == 400
        assert payload == {
            "error": "Unable to classify estimate type",
            "reason": UNKNOWN_REASON,
            "classification": "UNKNOWN",
            "scores": {"property": 0, "auto": 0, "commercial": 0},
        }

    @pytest.mark.parametrize("body", [["text"], {"text": 12}, {"lineItems": "roof"}, {"lineItems": [1, 2]}])
    def test_malformed_body(self, body):
        status, payload = handle_classify_request(body)
        assert status == 400
        assert "error" in payload

    def test_unexpected_failure(self, monkeypatch):
        def boom(text, line_items):
            raise RuntimeError("vocabulary unavailable")

        monkeypatch.setattr(classifier, "classify_estimate", boom)
        status, payload = handle_classify_request({"text": "roof"})

        assert status == 500
        assert payload["error"] == "Classification failed"
