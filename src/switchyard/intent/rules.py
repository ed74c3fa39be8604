"""Deterministic keyword-rule intent classifier."""

from dataclasses import dataclass, field

from switchyard.models import IntentCategory, LiveDataSubtype

# Keyword lists per live-data subtype, in priority order for subtype selection
LIVE_DATA_KEYWORDS: dict[LiveDataSubtype, tuple[str, ...]] = {
    LiveDataSubtype.WEATHER: (
        "weather",
        "temperature",
        "rain",
        "snow",
        "sunny",
        "cloudy",
        "forecast",
        "celsius",
        "fahrenheit",
    ),
    LiveDataSubtype.NEWS: (
        "news",
        "headlines",
        "latest",
        "breaking",
        "today",
        "current events",
        "happening",
    ),
    LiveDataSubtype.CURRENCY: (
        "exchange",
        "rate",
        "currency",
        "convert",
        "dollar",
        "euro",
        "pound",
        "price",
        "forex",
    ),
    LiveDataSubtype.TIME: (
        "time",
        "what time",
        "current time",
        "o'clock",
    ),
}

KNOWLEDGE_KEYWORDS: tuple[str, ...] = (
    "explain",
    "tell me",
    "what is",
    "how does",
    "describe",
    "definition",
    "define",
    "concept",
    "learn",
    "understand",
    "about",
)

CONVERSATIONAL_KEYWORDS: tuple[str, ...] = (
    "hi",
    "hello",
    "thanks",
    "thank you",
    "help",
    "please",
    "can you",
    "would you",
    "could you",
)

# Match count that maps to full rule confidence
FULL_CONFIDENCE_MATCHES = 3


@dataclass(frozen=True)
class RuleVerdict:
    """Result of the keyword-rule classifier."""

    category: IntentCategory
    subtype: LiveDataSubtype | None
    confidence: float
    scores: dict[str, float] = field(default_factory=dict)


def _count_matches(message_lower: str, keywords: tuple[str, ...]) -> int:
    return sum(1 for keyword in keywords if keyword in message_lower)


def classify_by_rules(message: str) -> RuleVerdict:
    """Classify by keyword-match counts per category.

    The category whose match count is the strict maximum (and > 0) wins; ties
    and all-zero default to conversational. Confidence is max matches / 3,
    capped at 1.

    Args:
        message: Raw message text.

    Returns:
        RuleVerdict with category, subtype (live-data only) and confidence.
    """
    message_lower = message.lower()

    subtype_matches = {
        subtype: _count_matches(message_lower, keywords)
        for subtype, keywords in LIVE_DATA_KEYWORDS.items()
    }
    scores = {
        IntentCategory.LIVE_DATA: sum(subtype_matches.values()),
        IntentCategory.KNOWLEDGE_LOOKUP: _count_matches(message_lower, KNOWLEDGE_KEYWORDS),
        IntentCategory.CONVERSATIONAL: _count_matches(message_lower, CONVERSATIONAL_KEYWORDS),
    }

    max_score = max(scores.values())
    leaders = [category for category, score in scores.items() if score == max_score]

    category = IntentCategory.CONVERSATIONAL
    if max_score > 0 and len(leaders) == 1:
        category = leaders[0]

    subtype = None
    if category == IntentCategory.LIVE_DATA:
        subtype = next(s for s, count in subtype_matches.items() if count > 0)

    confidence = min(max_score / FULL_CONFIDENCE_MATCHES, 1.0) if max_score > 0 else 0.0

    return RuleVerdict(
        category=category,
        subtype=subtype,
        confidence=confidence,
        scores={c.value: float(s) for c, s in scores.items()},
    )


def detect_subtype(message: str) -> LiveDataSubtype | None:
    """Return the first live-data subtype whose keywords appear in the message."""
    message_lower = message.lower()
    for subtype, keywords in LIVE_DATA_KEYWORDS.items():
        if _count_matches(message_lower, keywords):
            return subtype
    return None


__all__ = [
    "CONVERSATIONAL_KEYWORDS",
    "KNOWLEDGE_KEYWORDS",
    "LIVE_DATA_KEYWORDS",
    "RuleVerdict",
    "classify_by_rules",
    "detect_subtype",
]
