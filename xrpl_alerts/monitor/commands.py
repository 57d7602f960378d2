"""
Command Handling
================

Long-polls Telegram for private-chat commands:

- /start   subscribe (channel members only)
- /stop    unsubscribe
- /status  show subscription state

Group chats and plain text are ignored.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from ..api.telegram import join_channel_markup
from ..config import config
from ..errors import MembershipCheckError, TransportError
from .registry import SubscribeOutcome

if TYPE_CHECKING:
    from ..api.telegram import TelegramClient
    from .registry import SubscriberRegistry

logger = logging.getLogger(__name__)

JOIN_MESSAGE = (
    "👋 <b>Welcome to XRPL Token Alert Bot!</b>\n\n"
    "This bot monitors the XRPL for:\n"
    "• New token creations\n"
    "• Initial trustline setups\n\n"
    "To use this bot, you need to:\n"
    "1️⃣ Join our channel using the button below\n"
    "2️⃣ Return here and send /start to subscribe\n\n"
    "Once subscribed, you'll receive real-time alerts about new tokens on the XRPL!"
)

SUBSCRIBED_MESSAGE = (
    "🎉 <b>Successfully subscribed to XRPL Token Alerts!</b>\n\n"
    "You'll receive alerts when:\n"
    "• New tokens are created on XRPL\n"
    "• Initial trustlines are established\n\n"
    "⚠️ <b>Please Note</b>:\n"
    "• This is an automated monitoring service\n"
    "• Always DYOR before interacting with new tokens\n"
    "• Alert timing may vary based on network activity\n\n"
    "Use /stop to unsubscribe at any time."
)

ALREADY_SUBSCRIBED_MESSAGE = "✅ You're already subscribed.\n\nUse /stop to unsubscribe."

UNSUBSCRIBED_MESSAGE = (
    "✅ You've successfully unsubscribed from token alerts.\n\n"
    "Send /start to subscribe again."
)

NOT_SUBSCRIBED_MESSAGE = "You're not subscribed. Send /start to subscribe."

ERROR_MESSAGE = "❌ An error occurred. Please try again later."


def parse_command(text: Optional[str]) -> Optional[str]:
    """
    Extract the command name from message text.

    "/start", "/start@MyBot" and "/start extra" all give "start".
    Returns None for non-command text.
    """
    if not text or not text.startswith("/"):
        return None
    head = text.split(maxsplit=1)[0][1:]
    return head.split("@", 1)[0].lower() or None


class CommandHandler:
    """Routes Telegram updates to registry actions and replies."""

    def __init__(
        self,
        telegram: "TelegramClient",
        registry: "SubscriberRegistry",
        channel_url: str = None,
    ):
        self.telegram = telegram
        self.registry = registry
        self.channel_url = channel_url or config.required_channel_url
        self._offset: Optional[int] = None

    async def _reply(self, chat_id: int, text: str, reply_markup: dict = None):
        result = await self.telegram.send_message(chat_id, text, reply_markup=reply_markup)
        if not result.ok:
            logger.warning(f"Reply to {chat_id} failed ({result.kind.value}): {result.description}")

    async def handle_update(self, update: dict):
        """Handle one update from getUpdates."""
        message = update.get("message") or {}
        chat = message.get("chat") or {}
        if chat.get("type") != "private":
            return

        command = parse_command(message.get("text"))
        if command is None:
            return

        chat_id = chat.get("id")
        if chat_id is None:
            return

        await self.handle_command(chat_id, command)

    async def handle_command(self, chat_id: int, command: str):
        if command == "start":
            await self._handle_start(chat_id)
        elif command == "stop":
            await self._handle_stop(chat_id)
        elif command == "status":
            await self._handle_status(chat_id)
        else:
            logger.debug(f"Unknown command /{command} from {chat_id}")

    async def _handle_start(self, chat_id: int):
        try:
            outcome = await self.registry.subscribe(chat_id)
        except MembershipCheckError as e:
            logger.error(f"Membership check for /start from {chat_id} failed: {e}")
            await self._reply(chat_id, ERROR_MESSAGE)
            return

        if outcome == SubscribeOutcome.NOT_MEMBER:
            await self._reply(chat_id, JOIN_MESSAGE, join_channel_markup(self.channel_url))
        elif outcome == SubscribeOutcome.ALREADY_SUBSCRIBED:
            await self._reply(chat_id, ALREADY_SUBSCRIBED_MESSAGE)
        else:
            await self._reply(chat_id, SUBSCRIBED_MESSAGE)

    async def _handle_stop(self, chat_id: int):
        self.registry.unsubscribe(chat_id)
        await self._reply(chat_id, UNSUBSCRIBED_MESSAGE)

    async def _handle_status(self, chat_id: int):
        if chat_id in self.registry:
            await self._reply(chat_id, ALREADY_SUBSCRIBED_MESSAGE)
        else:
            await self._reply(chat_id, NOT_SUBSCRIBED_MESSAGE)

    async def poll_once(self) -> int:
        """
        Fetch and handle one batch of updates.

        Returns:
            Number of updates handled

        Raises:
            TransportError: if polling failed
        """
        updates = await self.telegram.get_updates(offset=self._offset)
        for update in updates:
            update_id = update.get("update_id")
            if update_id is not None:
                self._offset = update_id + 1
            try:
                await self.handle_update(update)
            except Exception as e:
                logger.error(f"Error handling update {update_id}: {e}")
        return len(updates)

    async def run(self, stop_event: asyncio.Event):
        """Poll for updates until stop_event is set."""
        logger.info("Command polling started")
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except TransportError as e:
                logger.warning(f"Update polling failed: {e}")
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=config.poll_error_backoff_sec)
                except asyncio.TimeoutError:
                    pass
        logger.info("Command polling stopped")
