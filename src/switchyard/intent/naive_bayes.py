"""Multinomial Naive Bayes over unigram and bigram features."""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from switchyard.features import extract_features

logger = logging.getLogger(__name__)


class ModelNotTrainedError(RuntimeError):
    """Raised when predicting with a model that has no labels."""


@dataclass(frozen=True)
class Prediction:
    """Naive Bayes prediction for one text.

    Attributes:
        label: Winning label.
        confidence: Min-max normalized score of the winner (0.5 on a full tie).
        scores: Raw log-probability score per label.
    """

    label: str
    confidence: float
    scores: dict[str, float] = field(default_factory=dict)


class NaiveBayesModel:
    """Immutable trained Naive Bayes model.

    Build with :meth:`train`; the instance is read-only afterwards and can be
    shared across concurrent readers without locking.
    """

    def __init__(
        self,
        priors: Mapping[str, float],
        feature_probabilities: Mapping[str, Mapping[str, float]],
        vocabulary: frozenset[str],
        example_count: int,
    ) -> None:
        self._priors = MappingProxyType(dict(priors))
        self._probabilities = MappingProxyType(
            {label: MappingProxyType(dict(table)) for label, table in feature_probabilities.items()}
        )
        self._vocabulary = vocabulary
        self._example_count = example_count

    @classmethod
    def train(cls, examples: Iterable[tuple[str, str]]) -> NaiveBayesModel:
        """Train on (text, label) pairs.

        Priors are label frequencies. Feature probabilities use add-one
        smoothing against the global vocabulary size.

        Args:
            examples: Labeled texts. Label order of first appearance is kept
                and used to break exact score ties.

        Returns:
            A trained, immutable model.
        """
        features_by_label: dict[str, list[str]] = {}
        label_counts: Counter[str] = Counter()
        vocabulary: set[str] = set()

        for text, label in examples:
            features = extract_features(text).all
            features_by_label.setdefault(label, []).extend(features)
            label_counts[label] += 1
            vocabulary.update(features)

        total_examples = sum(label_counts.values())
        vocabulary_size = len(vocabulary)

        priors = {label: label_counts[label] / total_examples for label in features_by_label}
        probabilities: dict[str, dict[str, float]] = {}
        for label, features in features_by_label.items():
            counts = Counter(features)
            denominator = len(features) + vocabulary_size
            probabilities[label] = {
                feature: (count + 1) / denominator for feature, count in counts.items()
            }

        logger.info(
            f"Naive Bayes model trained: {total_examples} examples, "
            f"{len(priors)} labels, vocabulary size {vocabulary_size}"
        )
        return cls(priors, probabilities, frozenset(vocabulary), total_examples)

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(self._priors)

    @property
    def vocabulary_size(self) -> int:
        return len(self._vocabulary)

    @property
    def is_trained(self) -> bool:
        return bool(self._priors)

    def predict(self, text: str) -> Prediction:
        """Score every label and return the argmax.

        Raises:
            ModelNotTrainedError: If the model has no labels.
        """
        if not self.is_trained:
            raise ModelNotTrainedError("Model not trained")

        features = extract_features(text).all
        unseen = 1 / (1 + self.vocabulary_size)

        scores: dict[str, float] = {}
        for label, prior in self._priors.items():
            table = self._probabilities[label]
            score = math.log(prior)
            for feature in features:
                score += math.log(table.get(feature, unseen))
            scores[label] = score

        best_label = max(scores, key=lambda label: scores[label])
        best_score = scores[best_label]
        max_score = max(scores.values())
        min_score = min(scores.values())
        if max_score == min_score:
            confidence = 0.5
        else:
            confidence = (best_score - min_score) / (max_score - min_score)

        return Prediction(label=best_label, confidence=confidence, scores=scores)

    def stats(self) -> dict[str, Any]:
        """Model statistics for observability."""
        return {
            "is_trained": self.is_trained,
            "vocabulary_size": self.vocabulary_size,
            "class_priors": dict(self._priors),
            "training_examples": self._example_count,
        }


__all__ = ["ModelNotTrainedError", "NaiveBayesModel", "Prediction"]
