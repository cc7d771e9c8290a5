"""
Google Gemini classifier over the ``generateContent`` REST endpoint.

Gemini names the assistant role ``model`` and takes the preamble as a
``systemInstruction``. Images are embedded as ``inline_data`` parts.
"""

import base64
import json
import logging
from typing import Any

import httpx

from alert_relay.classifiers.base import Classifier
from alert_relay.exceptions import (
    ClassificationParseError,
    ClassifierResponseError,
    ClassifierTransportError,
)
from alert_relay.models import ConversationEntry, Role
from alert_relay.preamble import Preamble

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"
UTF8_BOM = b"\xef\xbb\xbf"


class GeminiClassifier(Classifier):
    """Gemini via REST (multimodal).

    Args:
        preamble: Shared instruction preamble
        api_key: Gemini API key
        base_url: API root override
        thinking_budget: Thinking token budget (0 disables thinking)
        timeout: Per-attempt transport timeout in seconds
        http_client: Pre-built httpx.AsyncClient (tests)
        **kwargs: Passed to Classifier
    """

    name = "gemini"
    default_model = "gemini-2.5-flash"
    supports_attachments = True

    def __init__(
        self,
        preamble: Preamble,
        api_key: str,
        *,
        base_url: str = GEMINI_API_URL,
        thinking_budget: int = 2048,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
        **kwargs: Any,
    ):
        super().__init__(preamble, **kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.thinking_budget = thinking_budget
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_request(self, system: str, history: list[ConversationEntry]) -> dict[str, Any]:
        """Build the ``generateContent`` request body."""
        contents = []
        for entry in history:
            role = "model" if entry.role == Role.ASSISTANT else "user"
            parts: list[dict[str, Any]] = []
            if entry.text:
                parts.append({"text": entry.text})
            for attachment in entry.attachments:
                parts.append(
                    {
                        "inline_data": {
                            "mime_type": attachment.content_type,
                            "data": base64.b64encode(attachment.data).decode("ascii"),
                        }
                    }
                )
            contents.append({"role": role, "parts": parts})

        return {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": contents,
            "generationConfig": {"thinkingConfig": {"thinkingBudget": self.thinking_budget}},
        }

    async def _dispatch(self, system: str, history: list[ConversationEntry]) -> str:
        try:
            response = await self._http.post(
                self.endpoint,
                json=self.build_request(system, history),
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.TransportError as e:
            raise ClassifierTransportError(
                f"Failed to send request to gemini: {e}", classifier=self.name
            ) from e

        if not response.is_success:
            raise ClassifierResponseError(
                f"Gemini API request failed: {response.text[:500]}",
                status_code=response.status_code,
                classifier=self.name,
            )

        body = response.content
        if body.startswith(UTF8_BOM):
            body = body[len(UTF8_BOM):]
        try:
            envelope = json.loads(body)
        except json.JSONDecodeError as e:
            raise ClassificationParseError(
                f"Failed to unmarshal gemini response: {e}",
                raw=body.decode("utf-8", errors="replace"),
                classifier=self.name,
            ) from e
        if not isinstance(envelope, dict):
            raise ClassificationParseError("Unexpected gemini response shape", classifier=self.name)

        block_reason = (envelope.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            logger.warning(f"Gemini request blocked, reason: {block_reason}")
            raise ClassificationParseError(
                f"Gemini request blocked: {block_reason}", classifier=self.name
            )

        for candidate in envelope.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                if part.get("text") and not part.get("thought"):
                    return part["text"]

        raise ClassificationParseError(
            "No valid content found in gemini response", classifier=self.name
        )

    async def aclose(self) -> None:
        await self._http.aclose()
