"""Tests for the keyword-rule classifier."""

import pytest

from switchyard.intent.rules import classify_by_rules, detect_subtype
from switchyard.models import IntentCategory, LiveDataSubtype


class TestClassifyByRules:
    def test_weather_keyword_routes_to_live_data(self) -> None:
        verdict = classify_by_rules("What's the weather like?")

        assert verdict.category == IntentCategory.LIVE_DATA
        assert verdict.subtype == LiveDataSubtype.WEATHER
        assert verdict.confidence == pytest.approx(1 / 3)

    def test_knowledge_keywords(self) -> None:
        verdict = classify_by_rules("Explain the concept and tell me about it")

        assert verdict.category == IntentCategory.KNOWLEDGE_LOOKUP
        assert verdict.subtype is None
        assert verdict.confidence == 1.0
        assert verdict.scores["knowledge_lookup"] == 4.0

    def test_tie_defaults_to_conversational(self) -> None:
        verdict = classify_by_rules("weather explain")

        assert verdict.category == IntentCategory.CONVERSATIONAL
        assert verdict.subtype is None
        assert verdict.confidence == pytest.approx(1 / 3)

    def test_no_matches_is_conversational_with_zero_confidence(self) -> None:
        verdict = classify_by_rules("xyz")

        assert verdict.category == IntentCategory.CONVERSATIONAL
        assert verdict.confidence == 0.0

    def test_subtype_is_first_matching_family(self) -> None:
        verdict = classify_by_rules("weather news")

        assert verdict.category == IntentCategory.LIVE_DATA
        assert verdict.subtype == LiveDataSubtype.WEATHER

    def test_live_score_sums_subtype_matches(self) -> None:
        verdict = classify_by_rules("exchange rate for the euro")

        assert verdict.subtype == LiveDataSubtype.CURRENCY
        assert verdict.scores["live_data"] == 3.0
        assert verdict.confidence == 1.0


class TestDetectSubtype:
    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("Will it snow tomorrow?", LiveDataSubtype.WEATHER),
            ("Show me the headlines", LiveDataSubtype.NEWS),
            ("convert dollars", LiveDataSubtype.CURRENCY),
            ("What time is it?", LiveDataSubtype.TIME),
            ("hmm", None),
        ],
    )
    def test_detect_subtype(self, message: str, expected: LiveDataSubtype | None) -> None:
        assert detect_subtype(message) == expected

    def test_words_containing_now_are_not_time(self) -> None:
        verdict = classify_by_rules("Do you know anything about history?")

        assert detect_subtype("Do you know anything about history?") is None
        assert verdict.scores["live_data"] == 0.0
