"""Tests for ClaudeClassifier."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from alert_relay.classifiers.claude import ClaudeClassifier
from alert_relay.exceptions import (
    ClassificationParseError,
    ClassifierExhaustedError,
    ClassifierResponseError,
    ClassifierTransportError,
)
from alert_relay.models import Attachment, ConversationEntry, Role

VALID = '{"text": "Drones over the port", "danger": true, "statusChanged": true}'
REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def message(*blocks):
    return SimpleNamespace(content=list(blocks))


def text_block(text: str):
    return SimpleNamespace(type="text", text=text)


@pytest.fixture
def mock_client():
    """AsyncAnthropic stand-in."""
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=message(text_block(VALID)))
    client.close = AsyncMock()
    return client


@pytest.fixture
def classifier(preamble, mock_client, recording_sleep):
    return ClaudeClassifier(preamble, "sk-ant-test", client=mock_client, sleep=recording_sleep)


class TestFormatMessages:
    """Tests for Messages API payload construction."""

    def test_plain_entries(self, classifier):
        history = [
            ConversationEntry(role=Role.USER, text="batch"),
            ConversationEntry(role=Role.ASSISTANT, text="ok"),
        ]

        assert classifier.format_messages(history) == [
            {"role": "user", "content": "batch"},
            {"role": "assistant", "content": "ok"},
        ]

    def test_images_precede_text(self, classifier):
        """Test that image blocks come before the text block of a turn."""
        photos = (
            Attachment(data=b"\x01", content_type="image/jpeg"),
            Attachment(data=b"\x02", content_type="image/png"),
        )
        entry = ConversationEntry(role=Role.USER, text="see", attachments=photos)

        content = classifier.format_messages([entry])[0]["content"]

        assert [block["type"] for block in content] == ["image", "image", "text"]
        assert content[0]["source"] == {
            "type": "base64",
            "media_type": "image/jpeg",
            "data": "AQ==",
        }
        assert content[1]["source"]["media_type"] == "image/png"
        assert content[2] == {"type": "text", "text": "see"}


class TestDispatch:
    """Tests for the Messages API call."""

    @pytest.mark.asyncio
    async def test_system_sent_separately(self, classifier, mock_client):
        result = await classifier.send(ConversationEntry(role=Role.USER, text="batch"))

        assert result.danger is True
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-sonnet-4-20250514"
        assert kwargs["system"].startswith("You judge the situation.\nCurrent time: ")
        assert kwargs["messages"] == [{"role": "user", "content": "batch"}]
        assert kwargs["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_first_text_block_used(self, classifier, mock_client):
        """Test that non-text blocks are skipped."""
        mock_client.messages.create.return_value = message(
            SimpleNamespace(type="thinking", thinking="hmm"),
            text_block(VALID),
        )

        result = await classifier.send(ConversationEntry(role=Role.USER, text="batch"))

        assert result.text == "Drones over the port"

    @pytest.mark.asyncio
    async def test_no_text_block_is_retried(self, classifier, mock_client, recording_sleep):
        mock_client.messages.create.side_effect = [message(), message(text_block(VALID))]

        await classifier.send(ConversationEntry(role=Role.USER, text="batch"))

        assert recording_sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_no_text_block_parse_error(self, preamble, mock_client, recording_sleep):
        mock_client.messages.create.return_value = message()
        classifier = ClaudeClassifier(
            preamble, "k", client=mock_client, sleep=recording_sleep, max_attempts=1
        )

        with pytest.raises(ClassifierExhaustedError) as exc_info:
            await classifier.send(ConversationEntry(role=Role.USER, text="batch"))

        assert isinstance(exc_info.value.last_error, ClassificationParseError)

    @pytest.mark.asyncio
    async def test_overloaded_maps_to_response_error(self, preamble, mock_client, recording_sleep):
        mock_client.messages.create.side_effect = anthropic.APIStatusError(
            "Overloaded", response=httpx.Response(529, request=REQUEST), body=None
        )
        classifier = ClaudeClassifier(
            preamble, "k", client=mock_client, sleep=recording_sleep, max_attempts=3
        )

        with pytest.raises(ClassifierExhaustedError) as exc_info:
            await classifier.send(ConversationEntry(role=Role.USER, text="batch"))

        assert isinstance(exc_info.value.last_error, ClassifierResponseError)
        assert exc_info.value.last_error.status_code == 529
        assert recording_sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_transport_error(
        self, preamble, mock_client, recording_sleep
    ):
        mock_client.messages.create.side_effect = anthropic.APIConnectionError(request=REQUEST)
        classifier = ClaudeClassifier(
            preamble, "k", client=mock_client, sleep=recording_sleep, max_attempts=1
        )

        with pytest.raises(ClassifierExhaustedError) as exc_info:
            await classifier.send(ConversationEntry(role=Role.USER, text="batch"))

        assert isinstance(exc_info.value.last_error, ClassifierTransportError)

    @pytest.mark.asyncio
    async def test_aclose(self, classifier, mock_client):
        await classifier.aclose()

        mock_client.close.assert_awaited_once()


class TestDeclaration:
    def test_multimodal(self):
        assert ClaudeClassifier.supports_attachments is True
        assert ClaudeClassifier.name == "claude"
