"""
Core data model for the relay pipeline.

Items flow from sources through the cursor tracker and batch scheduler,
become a ConversationEntry for the classifier, and the classifier's
ClassificationResult is turned into a RelayAction.
"""

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Conversation roles understood by every classifier variant."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Attachment:
    """Binary blob with its content type (e.g. ``image/jpeg``)."""

    data: bytes
    content_type: str

    def __repr__(self) -> str:
        return f"Attachment(content_type={self.content_type!r}, size={len(self.data)})"


@dataclass(frozen=True)
class Item:
    """One deduplicated unit of inbound content.

    Attributes:
        source_id: Identifier of the monitored source (channel username)
        sequence_id: Monotonically increasing id within the source
        text: Message text
        attachments: Ordered attachments, possibly empty
    """

    source_id: str
    sequence_id: int
    text: str
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class ConversationEntry:
    """A single entry of the classifier's conversation history."""

    role: Role
    text: str
    attachments: tuple[Attachment, ...] = ()

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)

    def without_attachments(self) -> "ConversationEntry":
        """Return a copy stripped of attachments (used by text-only variants)."""
        if not self.attachments:
            return self
        return ConversationEntry(role=self.role, text=self.text)


@dataclass(frozen=True)
class ClassificationResult:
    """Structured verdict returned by a classifier.

    Attributes:
        text: Narrative judgment
        danger: True when the situation is dangerous
        status_changed: True when the verdict differs from the previous one
        principle: Optional free-text rationale
    """

    text: str
    danger: bool
    status_changed: bool
    principle: str | None = None

    def summary(self) -> str:
        """History line recorded as the assistant turn after a successful call."""
        return (
            f"{self.text} Danger: {str(self.danger).lower()} "
            f"StatusChanged: {str(self.status_changed).lower()}"
        )


@dataclass(frozen=True)
class RelayAction:
    """Notification to post downstream. Derived, never stored."""

    send: bool
    silent: bool
    body: str


@dataclass
class PipelineStats:
    """Counters exposed by the pipeline coordinator."""

    polls: int = 0
    polls_gated: int = 0
    items_admitted: int = 0
    batches_flushed: int = 0
    classifications_failed: int = 0
    relays_sent: int = 0
    relays_suppressed: int = 0
    relay_errors: int = 0
    source_errors: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "polls": self.polls,
            "polls_gated": self.polls_gated,
            "items_admitted": self.items_admitted,
            "batches_flushed": self.batches_flushed,
            "classifications_failed": self.classifications_failed,
            "relays_sent": self.relays_sent,
            "relays_suppressed": self.relays_suppressed,
            "relay_errors": self.relay_errors,
            "source_errors": dict(self.source_errors),
        }
