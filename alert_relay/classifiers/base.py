"""
Base class for AI classifier clients.

Every provider variant shares one contract, implemented here once:

- ``send`` appends the entry to a bounded history as a user turn,
  dispatches the whole history with the system preamble, validates the
  reply and appends a synthesized assistant turn on success.
- History is FIFO-bounded by entry count, regardless of role.
- Transport errors, non-2xx replies and unparseable replies are retried
  with exponential backoff (base * 2^(n-1) before attempt n+1).
- Attachment support is a declared class attribute. Text-only variants get
  the history with attachments stripped.

Variants implement only ``_dispatch(system, history) -> raw reply text``
and translate their SDK/transport errors into the retryable
ClassifierError subclasses.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from alert_relay.exceptions import (
    ClassificationParseError,
    ClassifierExhaustedError,
    RetryableClassifierError,
)
from alert_relay.models import ClassificationResult, ConversationEntry, Role
from alert_relay.preamble import Preamble

logger = logging.getLogger(__name__)

BOM = "\ufeff"
FENCE_OPENERS = ("```json", "```JSON", "```yaml", "```")
FENCE = "```"


class _Verdict(BaseModel):
    """Wire shape of a classifier reply."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str
    danger: StrictBool = False
    status_changed: StrictBool = Field(default=False, alias="statusChanged")
    principle: str | None = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be empty")
        return value


def strip_reply(raw: str) -> str:
    """Remove a byte-order mark, surrounding whitespace and code fences."""
    text = raw.lstrip(BOM).strip()
    for opener in FENCE_OPENERS:
        if text.startswith(opener):
            text = text[len(opener):]
            break
    if text.endswith(FENCE):
        text = text[: -len(FENCE)]
    return text.strip().lstrip(BOM)


def parse_reply(raw: str | None, classifier: str | None = None) -> ClassificationResult:
    """Parse a provider reply into a ClassificationResult.

    Args:
        raw: Reply text as returned by the provider
        classifier: Variant name, for error context

    Returns:
        ClassificationResult

    Raises:
        ClassificationParseError: If the reply is empty, not a JSON object,
            or lacks a non-empty ``text``
    """
    if raw is None or not raw.strip():
        raise ClassificationParseError("Empty reply", raw=raw, classifier=classifier)

    content = strip_reply(raw)
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise ClassificationParseError(
            f"Reply is not valid JSON: {e}", raw=content, classifier=classifier
        ) from e

    if not isinstance(payload, dict):
        raise ClassificationParseError(
            f"Reply is a JSON {type(payload).__name__}, expected an object",
            raw=content,
            classifier=classifier,
        )

    try:
        verdict = _Verdict.model_validate(payload)
    except ValidationError as e:
        raise ClassificationParseError(
            f"Reply failed validation: {e.error_count()} error(s)",
            raw=content,
            classifier=classifier,
            details={"errors": e.errors(include_url=False)},
        ) from e

    return ClassificationResult(
        text=verdict.text,
        danger=verdict.danger,
        status_changed=verdict.status_changed,
        principle=verdict.principle,
    )


class Classifier(ABC):
    """Abstract classifier client.

    Class attributes declared by every variant:
        name: Registry name of the variant
        default_model: Model used when none is configured
        supports_attachments: True for multimodal variants

    Args:
        preamble: Shared instruction preamble, read on every dispatch
        model: Model id (defaults to ``default_model``)
        max_history: Maximum number of history entries
        max_attempts: Retry ceiling
        backoff_base: Base delay in seconds for exponential backoff
        sleep: Coroutine used between attempts (injectable for tests)
        now: Wall clock used for the time line appended to the preamble
    """

    name: str = "base"
    default_model: str = ""
    supports_attachments: bool = False

    def __init__(
        self,
        preamble: Preamble,
        *,
        model: str | None = None,
        max_history: int = 30,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = datetime.now,
    ):
        if max_history < 2:
            raise ValueError("max_history must be at least 2")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.preamble = preamble
        self.model = model or self.default_model
        self.max_history = max_history
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._sleep = sleep
        self._now = now
        self._history: deque[ConversationEntry] = deque(maxlen=max_history)
        self._lock = asyncio.Lock()

    @property
    def history(self) -> tuple[ConversationEntry, ...]:
        """Snapshot of the conversation history, oldest first."""
        return tuple(self._history)

    def add_to_history(self, entry: ConversationEntry) -> None:
        """Append an entry, evicting the oldest once the bound is exceeded."""
        self._history.append(entry)

    def system_text(self) -> str:
        """Preamble with the current wall-clock time appended."""
        return f"{self.preamble.text}\nCurrent time: {self._now():%H:%M:%S}"

    def _outgoing_history(self) -> list[ConversationEntry]:
        if self.supports_attachments:
            return list(self._history)
        return [entry.without_attachments() for entry in self._history]

    async def send(self, entry: ConversationEntry) -> ClassificationResult:
        """Classify an entry in the context of the conversation so far.

        Args:
            entry: Content to classify; recorded as a user turn

        Returns:
            ClassificationResult

        Raises:
            ClassifierExhaustedError: If every attempt failed
            ClassifierError: For non-retryable variant failures
        """
        async with self._lock:
            user_entry = ConversationEntry(
                role=Role.USER, text=entry.text, attachments=entry.attachments
            )
            if user_entry.has_attachments and not self.supports_attachments:
                logger.info(
                    f"Dropping {len(user_entry.attachments)} attachments for text-only classifier",
                    extra={"classifier": self.name},
                )
            self.add_to_history(user_entry)

            retrying = AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.backoff_base, exp_base=2),
                retry=retry_if_exception_type(RetryableClassifierError),
                sleep=self._sleep,
                before_sleep=self._log_retry,
            )

            try:
                async for attempt in retrying:
                    with attempt:
                        history = self._outgoing_history()
                        logger.info(
                            f"Sending {len(history)} history entries to {self.name} ({self.model})",
                            extra={
                                "classifier": self.name,
                                "attempt": attempt.retry_state.attempt_number,
                            },
                        )
                        raw = await self._dispatch(self.system_text(), history)
                        result = parse_reply(raw, classifier=self.name)
            except RetryError as e:
                last_error = e.last_attempt.exception()
                raise ClassifierExhaustedError(
                    f"Failed after {self.max_attempts} attempts. Last error: {last_error}",
                    attempts=self.max_attempts,
                    last_error=last_error,
                    classifier=self.name,
                ) from last_error

            self.add_to_history(ConversationEntry(role=Role.ASSISTANT, text=result.summary()))
            logger.info(
                f"Classifier verdict: danger={result.danger} "
                f"status_changed={result.status_changed}",
                extra={"classifier": self.name},
            )
            return result

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Attempt {retry_state.attempt_number}/{self.max_attempts} failed: {error}; "
            f"retrying in {delay:.1f}s",
            extra={"classifier": self.name, "attempt": retry_state.attempt_number},
        )

    @abstractmethod
    async def _dispatch(self, system: str, history: list[ConversationEntry]) -> str:
        """Send one request to the provider and return the raw reply text.

        Args:
            system: Preamble with current time
            history: Conversation to send, oldest first

        Raises:
            ClassifierTransportError: On transport failure or timeout
            ClassifierResponseError: On a non-2xx reply
            ClassificationParseError: If the provider envelope has no content
        """

    async def aclose(self) -> None:
        """Release network resources held by the variant."""
        return None
