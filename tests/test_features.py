"""Tests for feature and entity extraction."""

import pytest

from switchyard.features import (
    entity_confidence_score,
    extract_entities,
    extract_features,
    tokenize,
)
from switchyard.models import EntitySet


class TestTokenize:
    def test_lowercases_and_strips_punctuation(self) -> None:
        assert tokenize("What's the Weather, today?") == ["whats", "the", "weather", "today"]

    def test_empty_text_has_no_tokens(self) -> None:
        assert tokenize("") == []
        assert tokenize("   ?! ") == []


class TestExtractFeatures:
    @pytest.mark.parametrize(
        "text",
        [
            "hello",
            "what is the weather",
            "Tell me about machine learning, please!",
            "  spaced   out   words  ",
        ],
    )
    def test_feature_counts_follow_token_count(self, text: str) -> None:
        """n tokens give n unigrams and max(n - 1, 0) bigrams."""
        token_count = len(tokenize(text))
        features = extract_features(text)

        assert len(features.unigrams) == token_count
        assert len(features.bigrams) == max(token_count - 1, 0)

    def test_bigrams_join_adjacent_tokens(self) -> None:
        features = extract_features("latest news today")

        assert features.unigrams == ["latest", "news", "today"]
        assert features.bigrams == ["latest_news", "news_today"]
        assert features.all == ["latest", "news", "today", "latest_news", "news_today"]

    def test_single_token_has_no_bigrams(self) -> None:
        assert extract_features("headlines").bigrams == []


class TestExtractEntities:
    def test_location_from_question(self) -> None:
        entities = extract_entities("What's the weather in Paris?")

        assert entities.locations == frozenset({"Paris"})

    def test_multi_word_location(self) -> None:
        entities = extract_entities("Is it raining in New York?")

        assert "New York" in entities.locations

    def test_currency_amounts(self) -> None:
        entities = extract_entities("Convert $100 and €25.50 please")

        assert entities.currencies == frozenset({"$100", "€25.50"})

    def test_numbers_include_those_inside_amounts(self) -> None:
        entities = extract_entities("I owe $100 for 3 items")

        assert {"100", "3"} <= entities.numbers

    def test_dates(self) -> None:
        entities = extract_entities("Meeting on 12/25/2024 or sometime in March")

        assert "12/25/2024" in entities.dates
        assert "March" in entities.dates
        assert "March" not in entities.locations

    def test_duplicates_collapse(self) -> None:
        entities = extract_entities("Paris weather vs Paris forecast")

        assert entities.locations == frozenset({"Paris"})

    def test_plain_lowercase_text_has_no_entities(self) -> None:
        entities = extract_entities("hello there")

        assert entities.total == 0


class TestEntityConfidenceScore:
    def test_no_entities_scores_base(self) -> None:
        assert entity_confidence_score(EntitySet()) == pytest.approx(0.5)

    def test_single_location(self) -> None:
        entities = EntitySet(locations=frozenset({"Paris"}))

        # 0.5 base + 0.05 for one entity + 0.05 location bonus
        assert entity_confidence_score(entities) == pytest.approx(0.6)

    def test_count_bonus_is_capped(self) -> None:
        entities = EntitySet(numbers=frozenset(str(n) for n in range(20)))

        assert entity_confidence_score(entities) == pytest.approx(0.8)

    def test_all_bonuses_stack_but_never_exceed_one(self) -> None:
        entities = EntitySet(
            locations=frozenset({f"City{n}" for n in range(10)}),
            dates=frozenset({"May"}),
            currencies=frozenset({"$5"}),
            numbers=frozenset({"5"}),
        )

        score = entity_confidence_score(entities)

        assert score == pytest.approx(0.95)
        assert score <= 1.0
