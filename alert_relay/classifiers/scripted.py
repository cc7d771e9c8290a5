"""
Scripted classifier for tests and offline dry runs.

Replays a queue of raw replies (strings run through the normal reply
parser) or exceptions (raised as-is), recording every dispatch it saw.
"""

from collections import deque
from collections.abc import Iterable
from typing import Any

from alert_relay.classifiers.base import Classifier
from alert_relay.models import ConversationEntry
from alert_relay.preamble import Preamble

DEFAULT_REPLY = '{"text": "No change", "danger": false, "statusChanged": false}'


class ScriptedClassifier(Classifier):
    """Classifier that answers from a script instead of a network call.

    Args:
        preamble: Shared instruction preamble
        replies: Raw replies or exceptions, consumed in order
        default_reply: Reply used once the script is exhausted
        **kwargs: Passed to Classifier

    Example:
        >>> classifier = ScriptedClassifier(
        ...     Preamble("judge"),
        ...     replies=['{"text": "Clear", "danger": false, "statusChanged": true}'],
        ... )
    """

    name = "scripted"
    default_model = "scripted"
    supports_attachments = True

    def __init__(
        self,
        preamble: Preamble,
        api_key: str = "",
        *,
        replies: Iterable[str | BaseException] = (),
        default_reply: str = DEFAULT_REPLY,
        **kwargs: Any,
    ):
        kwargs.pop("timeout", None)
        super().__init__(preamble, **kwargs)
        self._replies: deque[str | BaseException] = deque(replies)
        self.default_reply = default_reply
        self.dispatches: list[tuple[str, list[ConversationEntry]]] = []

    def script(self, *replies: str | BaseException) -> None:
        """Append replies to the script."""
        self._replies.extend(replies)

    @property
    def call_count(self) -> int:
        return len(self.dispatches)

    async def _dispatch(self, system: str, history: list[ConversationEntry]) -> str:
        self.dispatches.append((system, list(history)))
        if not self._replies:
            return self.default_reply
        reply = self._replies.popleft()
        if isinstance(reply, BaseException):
            raise reply
        return reply
