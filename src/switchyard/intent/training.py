"""Fixed labeled corpus the statistical intent model is trained on.

The corpus is a replaceable parameter set; its statistical quality is not a
goal of this package.
"""

from dataclasses import dataclass

from switchyard.models import IntentCategory, LiveDataSubtype


@dataclass(frozen=True)
class TrainingExample:
    """One labeled utterance."""

    text: str
    category: IntentCategory
    subtype: LiveDataSubtype | None = None


_LIVE = IntentCategory.LIVE_DATA
_KNOWLEDGE = IntentCategory.KNOWLEDGE_LOOKUP
_CHAT = IntentCategory.CONVERSATIONAL

TRAINING_EXAMPLES: tuple[TrainingExample, ...] = (
    # Live data - weather
    TrainingExample("what is the weather", _LIVE, LiveDataSubtype.WEATHER),
    TrainingExample("weather forecast", _LIVE, LiveDataSubtype.WEATHER),
    TrainingExample("is it raining", _LIVE, LiveDataSubtype.WEATHER),
    TrainingExample("temperature today", _LIVE, LiveDataSubtype.WEATHER),
    TrainingExample("will it snow", _LIVE, LiveDataSubtype.WEATHER),
    TrainingExample("how hot is it", _LIVE, LiveDataSubtype.WEATHER),
    # Live data - news
    TrainingExample("latest news", _LIVE, LiveDataSubtype.NEWS),
    TrainingExample("breaking news today", _LIVE, LiveDataSubtype.NEWS),
    TrainingExample("what is trending", _LIVE, LiveDataSubtype.NEWS),
    TrainingExample("current events", _LIVE, LiveDataSubtype.NEWS),
    TrainingExample("headlines", _LIVE, LiveDataSubtype.NEWS),
    # Live data - currency
    TrainingExample("exchange rate", _LIVE, LiveDataSubtype.CURRENCY),
    TrainingExample("usd to eur", _LIVE, LiveDataSubtype.CURRENCY),
    TrainingExample("bitcoin price", _LIVE, LiveDataSubtype.CURRENCY),
    TrainingExample("convert currency", _LIVE, LiveDataSubtype.CURRENCY),
    # Live data - time
    TrainingExample("what time is it", _LIVE, LiveDataSubtype.TIME),
    TrainingExample("current time", _LIVE, LiveDataSubtype.TIME),
    # Knowledge lookup
    TrainingExample("explain artificial intelligence", _KNOWLEDGE),
    TrainingExample("tell me about machine learning", _KNOWLEDGE),
    TrainingExample("what is data science", _KNOWLEDGE),
    TrainingExample("define blockchain", _KNOWLEDGE),
    TrainingExample("how does deep learning work", _KNOWLEDGE),
    TrainingExample("describe natural language processing", _KNOWLEDGE),
    # Conversational
    TrainingExample("hello", _CHAT),
    TrainingExample("hi there", _CHAT),
    TrainingExample("thanks for your help", _CHAT),
    TrainingExample("can you help me", _CHAT),
    TrainingExample("good morning", _CHAT),
)


__all__ = ["TrainingExample", "TRAINING_EXAMPLES"]
