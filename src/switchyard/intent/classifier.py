"""Intent classification fusing the statistical and keyword-rule paths."""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from switchyard.config import Settings, get_settings
from switchyard.features import entity_confidence_score, extract_entities
from switchyard.intent.naive_bayes import NaiveBayesModel
from switchyard.intent.rules import classify_by_rules, detect_subtype
from switchyard.intent.training import TRAINING_EXAMPLES, TrainingExample
from switchyard.models import (
    ClassificationMethod,
    ClassificationResult,
    EntitySet,
    IntentCategory,
    LiveDataSubtype,
)

logger = logging.getLogger(__name__)


class IntentClassifier:
    """Classify a message into {category, subtype, confidence}.

    Both paths always run. The statistical verdict is used when its
    confidence reaches ``statistical_threshold``; otherwise the rule-based
    verdict is used. The chosen confidence is then blended with an
    entity-derived score. Classification never raises.

    The trained models are immutable, so one instance can serve any number
    of concurrent requests.
    """

    def __init__(
        self,
        category_model: NaiveBayesModel,
        subtype_model: NaiveBayesModel | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._category_model = category_model
        self._subtype_model = subtype_model
        self._settings = settings or get_settings()

    @classmethod
    def from_examples(
        cls,
        examples: Iterable[TrainingExample] = TRAINING_EXAMPLES,
        settings: Settings | None = None,
    ) -> IntentClassifier:
        """Train both models on a labeled corpus and build a classifier."""
        examples = list(examples)
        category_model = NaiveBayesModel.train((e.text, e.category.value) for e in examples)
        live_examples = [e for e in examples if e.subtype is not None]
        subtype_model = None
        if live_examples:
            subtype_model = NaiveBayesModel.train(
                (e.text, e.subtype.value) for e in live_examples if e.subtype is not None
            )
        return cls(category_model, subtype_model, settings)

    def classify(self, message: str) -> ClassificationResult:
        """Classify one message.

        Args:
            message: Raw message text.

        Returns:
            ClassificationResult; an empty message yields conversational with
            confidence 0.
        """
        if not message or not message.strip():
            return ClassificationResult(
                category=IntentCategory.CONVERSATIONAL,
                confidence=0.0,
                method=ClassificationMethod.RULE_BASED,
            )

        entities = extract_entities(message)
        rules = classify_by_rules(message)

        category = rules.category
        subtype = rules.subtype
        confidence = rules.confidence
        scores = rules.scores
        method = ClassificationMethod.RULE_BASED
        statistical_confidence: float | None = None
        error: str | None = None

        # Nothing from the statistical path is kept unless all of it succeeds
        try:
            prediction = self._category_model.predict(message)
            if prediction.confidence >= self._settings.statistical_threshold:
                predicted_category = IntentCategory(prediction.label)
                predicted_subtype = self._statistical_subtype(message, predicted_category)
                category = predicted_category
                subtype = predicted_subtype
                confidence = prediction.confidence
                scores = prediction.scores
                method = ClassificationMethod.STATISTICAL
            else:
                logger.info(
                    f"Statistical confidence low ({prediction.confidence:.2f}), "
                    "using rule-based detection"
                )
            statistical_confidence = prediction.confidence
        except Exception as e:
            logger.warning(f"Statistical prediction failed, using rule-based: {e}")
            error = "statistical prediction failed"

        final_confidence = self._blend(confidence, entities)

        logger.info(
            f"Classified as {category.value}"
            f"{'/' + subtype.value if subtype else ''} "
            f"via {method.value} (confidence: {final_confidence:.2f})"
        )

        return ClassificationResult(
            category=category,
            subtype=subtype,
            confidence=final_confidence,
            method=method,
            scores=scores,
            entities=entities,
            statistical_confidence=statistical_confidence,
            error=error,
        )

    def _statistical_subtype(
        self, message: str, category: IntentCategory
    ) -> LiveDataSubtype | None:
        if category != IntentCategory.LIVE_DATA:
            return None
        subtype = detect_subtype(message)
        if subtype is None and self._subtype_model is not None:
            subtype = LiveDataSubtype(self._subtype_model.predict(message).label)
        return subtype

    def _blend(self, classifier_confidence: float, entities: EntitySet) -> float:
        blended = (
            self._settings.classifier_weight * classifier_confidence
            + self._settings.entity_weight * entity_confidence_score(entities)
        )
        return max(0.0, min(blended, 1.0))

    def stats(self) -> dict[str, Any]:
        """Statistics of the underlying statistical model."""
        return self._category_model.stats()


_default_classifier: IntentClassifier | None = None
_build_lock = threading.Lock()


def get_default_classifier() -> IntentClassifier:
    """Get the process-wide classifier, training it on first use."""
    global _default_classifier
    if _default_classifier is None:
        with _build_lock:
            if _default_classifier is None:
                _default_classifier = IntentClassifier.from_examples()
    return _default_classifier


__all__ = ["IntentClassifier", "get_default_classifier"]
