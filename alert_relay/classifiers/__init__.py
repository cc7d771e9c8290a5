"""
AI classifier clients.

One contract (``Classifier.send``) over several provider variants:

    Pipeline Coordinator
         ↓
    Classifier (history, retry, reply validation)
         ↓
    Variant adapters (Claude, ChatGPT, Gemini, DeepSeek, GLM, OpenRouter)
         ↓
    Provider APIs

Usage:
    from alert_relay.classifiers import create_classifier

    classifier = create_classifier(settings, preamble)
    result = await classifier.send(entry)
"""

from alert_relay.classifiers.base import Classifier, parse_reply, strip_reply
from alert_relay.classifiers.registry import ClassifierRegistry, create_classifier

__all__ = [
    "Classifier",
    "ClassifierRegistry",
    "create_classifier",
    "parse_reply",
    "strip_reply",
]
