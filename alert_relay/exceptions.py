"""
Exception hierarchy for alert-relay.

Every error raised by the pipeline and its collaborators derives from
RelayError, so callers can catch the whole family with one clause.

Usage:
    from alert_relay.exceptions import ClassifierError, SourceFetchError

    try:
        result = await classifier.send(entry)
    except ClassifierError as e:
        logger.error(f"Classification failed: {e}")

Retry policy:
    RetryableClassifierError and its subclasses are retried by the
    classifier's backoff loop. Everything else propagates immediately.
"""

from typing import Any


class RelayError(Exception):
    """Base exception for all alert-relay errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dict with additional error context.
        source: Name of the component or collaborator that raised the error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        source: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"[{self.source}] {self.message}"
        return self.message


class ConfigurationError(RelayError):
    """Settings are invalid or a configured collaborator cannot be built."""

    pass


class SourceFetchError(RelayError):
    """Fetching candidate items from a monitored source failed.

    Attributes:
        source_id: Identifier of the source that failed.
    """

    def __init__(self, message: str, *, source_id: str, **kwargs: Any) -> None:
        super().__init__(message, source=source_id, **kwargs)
        self.source_id = source_id


class ClassifierError(RelayError):
    """Base exception for classifier failures.

    Attributes:
        classifier: Name of the classifier variant.
    """

    def __init__(self, message: str, *, classifier: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, source=classifier, **kwargs)
        self.classifier = classifier


class RetryableClassifierError(ClassifierError):
    """A failure the classifier retry policy is allowed to retry."""

    pass


class ClassifierTransportError(RetryableClassifierError):
    """Transport-level failure (connection refused, timeout, reset)."""

    pass


class ClassifierResponseError(RetryableClassifierError):
    """Provider answered with a non-2xx status.

    Attributes:
        status_code: HTTP status code returned by the provider.
    """

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code:
            return f"{base} (HTTP {self.status_code})"
        return base


class ClassificationParseError(RetryableClassifierError):
    """Provider reply is not a valid verdict object.

    Attributes:
        raw: The offending reply text, truncated.
    """

    def __init__(self, message: str, *, raw: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.raw = raw[:500] if raw is not None else None


class ClassifierExhaustedError(ClassifierError):
    """All attempts failed.

    Attributes:
        attempts: Number of attempts made.
        last_error: The last underlying failure.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_error: BaseException | None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.last_error = last_error


class RelayPostError(RelayError):
    """Posting a relay message to the notification channel failed."""

    pass


class GateError(RelayError):
    """The gating collaborator could not determine its state."""

    pass
