"""
Monitored message sources.

TelegramWebSource reads the public web preview of a channel
(``https://t.me/s/<channel>``), which lists the latest posts with their ids,
so no user session is required.
"""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

import httpx
from bs4 import BeautifulSoup

from alert_relay.exceptions import SourceFetchError
from alert_relay.models import Attachment

logger = logging.getLogger(__name__)

TELEGRAM_PREVIEW_URL = "https://t.me/s/{channel}"
BACKGROUND_URL_RE = re.compile(r"background-image:\s*url\(['\"]?(?P<url>[^'\")]+)['\"]?\)")
DEFAULT_IMAGE_TYPE = "image/jpeg"


@dataclass(frozen=True)
class SourceMessage:
    """One candidate item returned by a source poll."""

    sequence_id: int
    text: str
    attachments: tuple[Attachment, ...] = ()


class Source(Protocol):
    """Collaborator returning recent messages of a monitored source."""

    async def poll(self, source_id: str, limit: int) -> list[SourceMessage]:
        """Fetch up to ``limit`` recent messages.

        Returns:
            Messages in any order; the pipeline normalizes to oldest-first

        Raises:
            SourceFetchError: If the source cannot be read
        """
        ...


@dataclass(frozen=True)
class _ParsedPost:
    sequence_id: int
    text: str
    photo_urls: tuple[str, ...]


def parse_channel_page(html: str, channel: str) -> list[_ParsedPost]:
    """Extract posts from a channel preview page, oldest first."""
    soup = BeautifulSoup(html, "html.parser")
    posts: dict[int, _ParsedPost] = {}

    for node in soup.select("div.tgme_widget_message[data-post]"):
        post_ref = node["data-post"]
        owner, _, raw_id = post_ref.rpartition("/")
        if owner.lower() != channel.lower() or not raw_id.isdigit():
            continue

        text_node = node.select_one(".tgme_widget_message_text")
        text = text_node.get_text("\n", strip=True) if text_node else ""

        photo_urls = []
        for photo in node.select("a.tgme_widget_message_photo_wrap"):
            match = BACKGROUND_URL_RE.search(photo.get("style", ""))
            if match:
                photo_urls.append(match.group("url"))

        if not text and not photo_urls:
            continue
        sequence_id = int(raw_id)
        posts[sequence_id] = _ParsedPost(sequence_id, text, tuple(photo_urls))

    return [posts[key] for key in sorted(posts)]


class TelegramWebSource:
    """Polls public Telegram channels through their web preview.

    Args:
        fetch_attachments: Download photos and attach them to messages
        timeout: Request timeout in seconds
        http_client: Pre-built httpx.AsyncClient (tests)
    """

    def __init__(
        self,
        fetch_attachments: bool = False,
        timeout: float = 20.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.fetch_attachments = fetch_attachments
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": "alert-relay/0.1"},
        )

    async def poll(self, source_id: str, limit: int) -> list[SourceMessage]:
        url = TELEGRAM_PREVIEW_URL.format(channel=source_id)
        try:
            response = await self._http.get(url)
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Request failed: {e}", source_id=source_id) from e

        if response.status_code != 200:
            raise SourceFetchError(
                f"Unexpected status {response.status_code} from channel preview",
                source_id=source_id,
            )

        posts = parse_channel_page(response.text, source_id)[-limit:]

        messages = []
        for post in posts:
            attachments: tuple[Attachment, ...] = ()
            if self.fetch_attachments and post.photo_urls:
                attachments = await self._download(source_id, post.photo_urls)
            messages.append(SourceMessage(post.sequence_id, post.text, attachments))
        return messages

    async def _download(self, source_id: str, urls: tuple[str, ...]) -> tuple[Attachment, ...]:
        attachments = []
        for url in urls:
            try:
                response = await self._http.get(url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(
                    f"Failed to download attachment: {e}", extra={"source_id": source_id}
                )
                continue
            content_type = response.headers.get("content-type", DEFAULT_IMAGE_TYPE).split(";")[0]
            attachments.append(Attachment(data=response.content, content_type=content_type))
        return tuple(attachments)

    async def aclose(self) -> None:
        await self._http.aclose()
