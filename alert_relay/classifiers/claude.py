"""
Anthropic Claude classifier.

Uses the Messages API: the preamble goes in ``system``, images are sent as
base64 blocks ahead of the text of the same turn.
"""

import base64
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from alert_relay.classifiers.base import Classifier
from alert_relay.exceptions import (
    ClassificationParseError,
    ClassifierResponseError,
    ClassifierTransportError,
)
from alert_relay.models import ConversationEntry
from alert_relay.preamble import Preamble


class ClaudeClassifier(Classifier):
    """Claude via the Anthropic Messages API (multimodal).

    Args:
        preamble: Shared instruction preamble
        api_key: Anthropic API key
        max_tokens: Maximum tokens in the reply
        timeout: Per-attempt transport timeout in seconds
        client: Pre-built AsyncAnthropic client (tests)
        **kwargs: Passed to Classifier
    """

    name = "claude"
    default_model = "claude-sonnet-4-20250514"
    supports_attachments = True

    def __init__(
        self,
        preamble: Preamble,
        api_key: str,
        *,
        max_tokens: int = 1000,
        timeout: float = 60.0,
        client: AsyncAnthropic | None = None,
        **kwargs: Any,
    ):
        super().__init__(preamble, **kwargs)
        self.max_tokens = max_tokens
        self.client = client or AsyncAnthropic(api_key=api_key, max_retries=0, timeout=timeout)

    def format_messages(self, history: list[ConversationEntry]) -> list[dict[str, Any]]:
        """Build the Messages API ``messages`` array."""
        messages: list[dict[str, Any]] = []
        for entry in history:
            if entry.attachments:
                blocks: list[dict[str, Any]] = [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": attachment.content_type,
                            "data": base64.b64encode(attachment.data).decode("ascii"),
                        },
                    }
                    for attachment in entry.attachments
                ]
                if entry.text:
                    blocks.append({"type": "text", "text": entry.text})
                messages.append({"role": entry.role.value, "content": blocks})
            else:
                messages.append({"role": entry.role.value, "content": entry.text})
        return messages

    async def _dispatch(self, system: str, history: list[ConversationEntry]) -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                system=system,
                messages=self.format_messages(history),
                max_tokens=self.max_tokens,
            )
        except anthropic.APIConnectionError as e:
            raise ClassifierTransportError(
                f"Error sending request: {e}", classifier=self.name
            ) from e
        except anthropic.APIStatusError as e:
            raise ClassifierResponseError(
                f"API request failed: {e.message}",
                status_code=e.status_code,
                classifier=self.name,
            ) from e

        texts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        if not texts:
            raise ClassificationParseError("No content in Claude response", classifier=self.name)
        return texts[0]

    async def aclose(self) -> None:
        await self.client.close()
