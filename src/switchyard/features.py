"""Lexical feature and coarse entity extraction.

Everything here is a pure function of its input text. Entity extraction is a
heuristic layer: false positives are acceptable.
"""

import re
from dataclasses import dataclass, field

from switchyard.models import EntityKind, EntitySet

# Anything that is not a word character or whitespace is dropped before splitting
PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")

MONTH_NAMES: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

# Capitalized word sequences, e.g. "Paris", "New York", "Rio De Janeiro"
LOCATION_PATTERN = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
CURRENCY_PATTERN = re.compile(r"[$€£¥]\s*\d[\d,]*(?:\.\d+)?")
NUMBER_PATTERN = re.compile(r"\b\d+(?:\.\d+)?\b")
DATE_PATTERN = re.compile(
    r"\b(?:" + "|".join(MONTH_NAMES) + r"|\d{1,2}[-/]\d{1,2}[-/]\d{2,4})\b",
    re.IGNORECASE,
)

# Capitalized words that open sentences far more often than they name places
NON_LOCATION_WORDS: frozenset[str] = frozenset(
    {
        "A",
        "An",
        "And",
        "Are",
        "Can",
        "Could",
        "Define",
        "Describe",
        "Do",
        "Does",
        "Explain",
        "Give",
        "Hello",
        "Hey",
        "Hi",
        "How",
        "I",
        "Is",
        "It",
        "Please",
        "Show",
        "Tell",
        "Thanks",
        "The",
        "This",
        "What",
        "When",
        "Where",
        "Which",
        "Who",
        "Why",
        "Will",
        "Would",
        "You",
        *MONTH_NAMES,
    }
)

# Entity confidence policy
ENTITY_BASE_SCORE = 0.5
ENTITY_SCORE_PER_ENTITY = 0.05
ENTITY_COUNT_BONUS_MAX = 0.3
ENTITY_KIND_BONUS = 0.05
ENTITY_BONUS_KINDS: tuple[EntityKind, ...] = (
    EntityKind.LOCATION,
    EntityKind.DATE,
    EntityKind.CURRENCY,
)


@dataclass(frozen=True)
class Features:
    """Unigram and bigram features of one text."""

    unigrams: list[str] = field(default_factory=list)
    bigrams: list[str] = field(default_factory=list)

    @property
    def all(self) -> list[str]:
        return self.unigrams + self.bigrams


def tokenize(text: str) -> list[str]:
    """Lower-case, strip punctuation and split on whitespace."""
    cleaned = PUNCTUATION_PATTERN.sub("", text.lower())
    return cleaned.split()


def extract_features(text: str) -> Features:
    """Extract unigrams and adjacent-token bigrams.

    An n-token input yields n unigrams and max(n - 1, 0) bigrams.

    Args:
        text: Raw message text.

    Returns:
        Features with unigrams and "{a}_{b}" bigrams.
    """
    tokens = tokenize(text)
    bigrams = [f"{a}_{b}" for a, b in zip(tokens, tokens[1:])]
    return Features(unigrams=tokens, bigrams=bigrams)


def _strip_leading_function_words(match: str) -> str:
    words = match.split()
    while words and words[0] in NON_LOCATION_WORDS:
        words.pop(0)
    return " ".join(words)


def extract_entities(text: str) -> EntitySet:
    """Extract coarse named entities from text.

    Args:
        text: Any text (inbound message or candidate response content).

    Returns:
        EntitySet with locations, dates, currency amounts and bare numbers.
    """
    locations: set[str] = set()
    for match in LOCATION_PATTERN.findall(text):
        candidate = _strip_leading_function_words(match)
        if candidate and candidate not in NON_LOCATION_WORDS:
            locations.add(candidate)

    currencies = {m.strip() for m in CURRENCY_PATTERN.findall(text)}
    dates = set(DATE_PATTERN.findall(text))

    # Numbers inside currency amounts or dates are still bare numeric tokens
    numbers = set(NUMBER_PATTERN.findall(text))

    return EntitySet(
        locations=frozenset(locations),
        dates=frozenset(dates),
        currencies=frozenset(currencies),
        numbers=frozenset(numbers),
    )


def entity_confidence_score(entities: EntitySet) -> float:
    """Score how much the entities found support a confident routing decision.

    Starts at 0.5, adds 0.05 per entity (at most +0.3), and a flat +0.05 for
    each of location, date and currency when present. Capped at 1.0.
    """
    score = ENTITY_BASE_SCORE
    score += min(entities.total * ENTITY_SCORE_PER_ENTITY, ENTITY_COUNT_BONUS_MAX)
    for kind in ENTITY_BONUS_KINDS:
        if entities.has(kind):
            score += ENTITY_KIND_BONUS
    return min(score, 1.0)


__all__ = [
    "Features",
    "tokenize",
    "extract_features",
    "extract_entities",
    "entity_confidence_score",
]
