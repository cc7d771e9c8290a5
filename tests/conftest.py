"""
Pytest configuration and shared fixtures.

Collaborators are replaced by in-memory fakes: sources return canned
messages, the classifier answers from a script and the relay records what
it would have posted.
"""

from datetime import datetime

import pytest

from alert_relay.classifiers.scripted import ScriptedClassifier
from alert_relay.models import Item
from alert_relay.preamble import Preamble
from alert_relay.sinks import LogRelay
from alert_relay.sources import SourceMessage


class FakeSource:
    """Source returning scripted messages per channel.

    A value that is an exception instance is raised instead of returned.
    """

    def __init__(self, messages: dict | None = None):
        self.messages = messages or {}
        self.calls: list[tuple[str, int]] = []

    async def poll(self, source_id: str, limit: int) -> list[SourceMessage]:
        self.calls.append((source_id, limit))
        value = self.messages.get(source_id, [])
        if isinstance(value, BaseException):
            raise value
        return list(value)[-limit:]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def preamble():
    """Preamble with fixed instructions."""
    return Preamble("You judge the situation.")


@pytest.fixture
def recording_sleep():
    """Sleep replacement recording backoff delays."""
    return RecordingSleep()


@pytest.fixture
def scripted(preamble, recording_sleep):
    """Scripted classifier with instant backoff and a fixed clock."""
    return ScriptedClassifier(
        preamble,
        sleep=recording_sleep,
        now=lambda: datetime(2024, 5, 1, 12, 30, 45),
    )


@pytest.fixture
def log_relay():
    """Dry-run relay recording posted messages."""
    return LogRelay()


@pytest.fixture
def fake_source():
    """Source with no messages until configured."""
    return FakeSource()


@pytest.fixture
def make_item():
    """Factory for Items with defaults."""

    def _make(source_id: str = "chan", sequence_id: int = 1, text: str = "msg") -> Item:
        return Item(source_id=source_id, sequence_id=sequence_id, text=text)

    return _make
