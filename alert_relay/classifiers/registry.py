"""
Classifier variant registry.

Maps configuration names to classifier classes. The variant is chosen once
at startup; nothing downstream inspects the concrete type.

Usage:
    from alert_relay.classifiers import ClassifierRegistry, create_classifier

    # Register a custom variant
    ClassifierRegistry.register("my-provider", MyClassifier)

    # Build the configured variant
    classifier = create_classifier(settings, preamble)

    # List all variants
    for name in ClassifierRegistry.list_variants():
        print(name)
"""

import logging
from typing import TYPE_CHECKING, Any

from alert_relay.classifiers.claude import ClaudeClassifier
from alert_relay.classifiers.gemini import GeminiClassifier
from alert_relay.classifiers.openai_compat import (
    ChatGPTClassifier,
    DeepSeekClassifier,
    GLMClassifier,
    GLMCodingClassifier,
    OpenRouterClassifier,
)
from alert_relay.classifiers.scripted import ScriptedClassifier
from alert_relay.exceptions import ConfigurationError
from alert_relay.preamble import Preamble

if TYPE_CHECKING:
    from alert_relay.classifiers.base import Classifier
    from alert_relay.config import Settings

logger = logging.getLogger(__name__)

# Variants that can run without an API key
KEYLESS_VARIANTS = {"scripted"}


class ClassifierRegistry:
    """Registry of classifier variants, keyed by name.

    The registry is a class with class methods, making it a singleton
    that can be accessed from anywhere without instantiation.
    """

    _variants: dict[str, type["Classifier"]] = {}

    @classmethod
    def register(cls, name: str, variant: type["Classifier"]) -> None:
        """Register a classifier class under a name.

        Args:
            name: Configuration name of the variant
            variant: Classifier subclass
        """
        if name in cls._variants:
            logger.warning(f"Replacing existing classifier variant: {name}")
        cls._variants[name] = variant

    @classmethod
    def get(cls, name: str) -> type["Classifier"]:
        """Get a classifier class by name.

        Raises:
            ConfigurationError: If the variant is unknown
        """
        if name not in cls._variants:
            available = ", ".join(sorted(cls._variants)) or "none"
            raise ConfigurationError(
                f"Unknown classifier: {name}. Available: {available}", source="classifier"
            )
        return cls._variants[name]

    @classmethod
    def list_variants(cls) -> list[str]:
        """List all registered variant names."""
        return sorted(cls._variants)

    @classmethod
    def has_variant(cls, name: str) -> bool:
        """Check if a variant is registered."""
        return name in cls._variants

    @classmethod
    def capabilities(cls) -> dict[str, dict[str, Any]]:
        """Declared capabilities of every variant."""
        return {
            name: {
                "default_model": variant.default_model,
                "supports_attachments": variant.supports_attachments,
            }
            for name, variant in sorted(cls._variants.items())
        }


for _variant in (
    ClaudeClassifier,
    ChatGPTClassifier,
    DeepSeekClassifier,
    GeminiClassifier,
    GLMClassifier,
    GLMCodingClassifier,
    OpenRouterClassifier,
    ScriptedClassifier,
):
    ClassifierRegistry.register(_variant.name, _variant)


def create_classifier(settings: "Settings", preamble: Preamble) -> "Classifier":
    """Build the classifier selected by configuration.

    Args:
        settings: Application settings
        preamble: Shared instruction preamble

    Returns:
        Classifier instance

    Raises:
        ConfigurationError: If the variant is unknown or its API key is missing
    """
    name = settings.classifier
    variant = ClassifierRegistry.get(name)

    api_key = settings.api_key_for(name)
    if not api_key and name not in KEYLESS_VARIANTS:
        raise ConfigurationError(
            f"No API key configured for classifier {name}", source="classifier"
        )

    classifier = variant(
        preamble,
        api_key,
        model=settings.classifier_model,
        max_history=settings.max_history,
        max_attempts=settings.max_attempts,
        backoff_base=settings.backoff_base_seconds,
        timeout=settings.request_timeout_seconds,
    )
    logger.info(
        f"Classifier ready: {classifier.name} ({classifier.model}), "
        f"attachments={'yes' if classifier.supports_attachments else 'no'}"
    )
    return classifier
