"""
Classifier variants speaking the OpenAI chat-completions protocol.

ChatGPT, DeepSeek, OpenRouter and Z.AI GLM all accept the same request
shape, so one implementation serves them, parameterised by endpoint,
model and declared attachment support.
"""

import base64
import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from alert_relay.classifiers.base import Classifier
from alert_relay.exceptions import (
    ClassificationParseError,
    ClassifierResponseError,
    ClassifierTransportError,
)
from alert_relay.models import Attachment, ConversationEntry, Role
from alert_relay.preamble import Preamble

logger = logging.getLogger(__name__)


def data_url(attachment: Attachment) -> str:
    """Encode an attachment as a ``data:`` URL preserving its content type."""
    encoded = base64.b64encode(attachment.data).decode("ascii")
    return f"data:{attachment.content_type};base64,{encoded}"


class OpenAICompatibleClassifier(Classifier):
    """Classifier backed by an OpenAI-compatible chat completions endpoint.

    SDK-level retries are disabled; the shared backoff policy in
    ``Classifier.send`` is the only retry layer.

    Args:
        preamble: Shared instruction preamble
        api_key: Provider API key
        base_url: Endpoint override (defaults to the variant's)
        timeout: Per-attempt transport timeout in seconds
        client: Pre-built AsyncOpenAI client (tests)
        **kwargs: Passed to Classifier
    """

    base_url: str = "https://api.openai.com/v1"
    request_options: dict[str, Any] = {}

    def __init__(
        self,
        preamble: Preamble,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = 60.0,
        client: AsyncOpenAI | None = None,
        **kwargs: Any,
    ):
        super().__init__(preamble, **kwargs)
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or self.base_url,
            max_retries=0,
            timeout=timeout,
        )

    def format_messages(
        self, system: str, history: list[ConversationEntry]
    ) -> list[dict[str, Any]]:
        """Build the chat-completions ``messages`` array."""
        messages: list[dict[str, Any]] = [{"role": Role.SYSTEM.value, "content": system}]
        for entry in history:
            if entry.attachments:
                parts: list[dict[str, Any]] = []
                if entry.text:
                    parts.append({"type": "text", "text": entry.text})
                for attachment in entry.attachments:
                    parts.append({"type": "image_url", "image_url": {"url": data_url(attachment)}})
                messages.append({"role": entry.role.value, "content": parts})
            else:
                messages.append({"role": entry.role.value, "content": entry.text})
        return messages

    async def _dispatch(self, system: str, history: list[ConversationEntry]) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self.format_messages(system, history),
                **self.request_options,
            )
        except openai.APIConnectionError as e:
            raise ClassifierTransportError(
                f"Error sending request: {e}", classifier=self.name
            ) from e
        except openai.APIStatusError as e:
            raise ClassifierResponseError(
                f"API request failed: {e.message}",
                status_code=e.status_code,
                classifier=self.name,
            ) from e

        if not response.choices:
            raise ClassificationParseError("No choices in response", classifier=self.name)

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                f"Token usage - prompt: {usage.prompt_tokens}, "
                f"completion: {usage.completion_tokens}, total: {usage.total_tokens}",
                extra={"classifier": self.name},
            )

        return response.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self.client.close()


class ChatGPTClassifier(OpenAICompatibleClassifier):
    """OpenAI ChatGPT (multimodal, JSON response format)."""

    name = "chatgpt"
    default_model = "gpt-4o-mini"
    supports_attachments = True
    base_url = "https://api.openai.com/v1"
    request_options = {"response_format": {"type": "json_object"}}


class DeepSeekClassifier(OpenAICompatibleClassifier):
    """DeepSeek chat (text-only)."""

    name = "deepseek"
    default_model = "deepseek-chat"
    supports_attachments = False
    base_url = "https://api.deepseek.com/v1"


class OpenRouterClassifier(OpenAICompatibleClassifier):
    """OpenRouter gateway (multimodal)."""

    name = "openrouter"
    default_model = "google/gemini-2.5-flash"
    supports_attachments = True
    base_url = "https://openrouter.ai/api/v1"


class GLMClassifier(OpenAICompatibleClassifier):
    """Z.AI GLM general API (vision enabled)."""

    name = "glm"
    default_model = "glm-4.5v"
    supports_attachments = True
    base_url = "https://api.z.ai/api/paas/v4"
    request_options = {
        "temperature": 1.0,
        "max_tokens": 4096,
        "extra_body": {"thinking": {"type": "enabled"}},
    }


class GLMCodingClassifier(GLMClassifier):
    """Z.AI GLM Coding Plan endpoint (text-only)."""

    name = "glm-coding"
    default_model = "glm-5"
    supports_attachments = False
    base_url = "https://api.z.ai/api/coding/paas/v4"
