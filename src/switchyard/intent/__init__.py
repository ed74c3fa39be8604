"""Intent classification: statistical model, keyword rules and their fusion."""

from switchyard.intent.classifier import IntentClassifier, get_default_classifier
from switchyard.intent.naive_bayes import ModelNotTrainedError, NaiveBayesModel, Prediction
from switchyard.intent.rules import RuleVerdict, classify_by_rules, detect_subtype
from switchyard.intent.training import TRAINING_EXAMPLES, TrainingExample

__all__ = [
    "IntentClassifier",
    "get_default_classifier",
    "ModelNotTrainedError",
    "NaiveBayesModel",
    "Prediction",
    "RuleVerdict",
    "classify_by_rules",
    "detect_subtype",
    "TRAINING_EXAMPLES",
    "TrainingExample",
]
