"""
Relay sinks: where relay actions are posted.

TelegramRelay posts through the Bot API; LogRelay only logs (dry run).
"""

import logging
from typing import Protocol

from telegram import Bot
from telegram.error import TelegramError

from alert_relay.exceptions import RelayPostError

logger = logging.getLogger(__name__)


class RelaySink(Protocol):
    """Notification channel accepting relay messages."""

    async def post(self, channel: str, body: str, silent: bool) -> None:
        """Post a message.

        Raises:
            RelayPostError: If the message could not be delivered
        """
        ...


class TelegramRelay:
    """Posts relay messages to a Telegram channel via python-telegram-bot.

    Args:
        token: Bot API token (the bot must be able to post in the channel)
        bot: Pre-built Bot instance (tests)
    """

    def __init__(self, token: str = "", bot: Bot | None = None):
        if bot is None and not token:
            raise ValueError("TelegramRelay needs a bot token")
        self.bot = bot or Bot(token=token)

    async def post(self, channel: str, body: str, silent: bool) -> None:
        try:
            message = await self.bot.send_message(
                chat_id=channel,
                text=body,
                disable_notification=silent,
            )
        except TelegramError as e:
            raise RelayPostError(
                f"Failed to send message to {channel}: {e}", source="telegram"
            ) from e

        logger.info(f"Sent relay message {message.message_id} to {channel} (silent={silent})")

    async def aclose(self) -> None:
        await self.bot.shutdown()


class LogRelay:
    """Dry-run sink that only logs relay messages."""

    def __init__(self):
        self.posted: list[tuple[str, str, bool]] = []

    async def post(self, channel: str, body: str, silent: bool) -> None:
        self.posted.append((channel, body, silent))
        logger.info(f"[dry-run] relay to {channel} (silent={silent}): {body}")
