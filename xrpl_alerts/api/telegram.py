"""
Telegram Bot API Client
=======================

Async wrapper around the handful of Bot API methods the bot needs:

- sendMessage: alert delivery and command replies
- getChatMember: membership check against the required channel
- getUpdates: long polling for /start and /stop

Error details are logged without the request URL, which contains the token.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

import aiohttp
import requests

from ..config import config
from ..errors import MembershipCheckError, TransportError

logger = logging.getLogger(__name__)

MEMBER_STATUSES = {"member", "administrator", "creator"}
NON_MEMBER_STATUSES = {"left", "kicked"}

# 400 descriptions that mean "this user is definitively not in the channel"
_NOT_A_MEMBER_ERRORS = ("user not found", "participant_id_invalid")


class DeliveryFailureKind(Enum):
    """Why a message could not be delivered."""
    BLOCKED = "blocked"                  # 403: bot blocked / user deactivated
    CHAT_NOT_FOUND = "chat_not_found"    # 400: chat deleted or never existed
    RATE_LIMITED = "rate_limited"        # 429
    NETWORK = "network"                  # timeout, connection error
    API_ERROR = "api_error"              # anything else

    @property
    def is_permanent(self) -> bool:
        return self in (DeliveryFailureKind.BLOCKED, DeliveryFailureKind.CHAT_NOT_FOUND)


@dataclass
class DeliveryResult:
    """Outcome of one sendMessage call."""
    ok: bool
    kind: Optional[DeliveryFailureKind] = None
    description: str = ""
    message_id: Optional[int] = None

    @classmethod
    def success(cls, message_id: Optional[int] = None) -> "DeliveryResult":
        return cls(ok=True, message_id=message_id)

    @classmethod
    def failure(cls, kind: DeliveryFailureKind, description: str = "") -> "DeliveryResult":
        return cls(ok=False, kind=kind, description=description)


def join_channel_markup(url: str) -> dict:
    """Inline keyboard with a single "Join Our Channel" button."""
    return {"inline_keyboard": [[{"text": "Join Our Channel", "url": url}]]}


class TelegramClient:
    """
    Async Telegram Bot API client.

    In dry-run mode nothing is sent: messages are logged, every membership
    check passes, and update polling returns nothing.
    """

    def __init__(
        self,
        bot_token: str = None,
        channel_id: str = None,
        dry_run: bool = False,
        timeout: float = None,
    ):
        self.bot_token = bot_token if bot_token is not None else config.telegram_bot_token
        self.channel_id = channel_id if channel_id is not None else config.required_channel_id
        self.dry_run = dry_run
        self.timeout = timeout or config.send_timeout_sec
        self._session: Optional[aiohttp.ClientSession] = None

        if not dry_run and not self.bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required (or use --dry-run)")

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def close(self):
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def _call(self, method: str, payload: dict, timeout: float = None) -> Tuple[int, dict]:
        """
        Call a Bot API method.

        Returns:
            (HTTP status, decoded body)

        Raises:
            TransportError: on network failure, timeout or a non-JSON body
        """
        await self._ensure_session()
        url = f"{config.telegram_api_url}/bot{self.bot_token}/{method}"
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.timeout)

        try:
            async with self._session.post(url, json=payload, timeout=client_timeout) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    raise TransportError(f"{method}: non-JSON response (HTTP {response.status})")
                return response.status, body if isinstance(body, dict) else {}
        except asyncio.TimeoutError:
            raise TransportError(f"{method}: request timed out")
        except aiohttp.ClientError as e:
            # Exception text may include the URL, so only the type is kept
            raise TransportError(f"{method}: {type(e).__name__}")

    # -------------------------------------------------------------------------
    # Notification Channel
    # -------------------------------------------------------------------------

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: str = "HTML",
    ) -> DeliveryResult:
        """
        Send a message to one chat.

        Args:
            chat_id: Target chat
            text: Message text (HTML formatted)
            reply_markup: Optional inline keyboard
            parse_mode: Telegram parse mode

        Returns:
            DeliveryResult (never raises)
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would send to {chat_id}:\n{text}")
            return DeliveryResult.success()

        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup

        try:
            status, body = await self._call("sendMessage", payload)
        except TransportError as e:
            return DeliveryResult.failure(DeliveryFailureKind.NETWORK, str(e))

        if status == 200 and body.get("ok"):
            return DeliveryResult.success(body.get("result", {}).get("message_id"))

        description = body.get("description", "")
        return DeliveryResult.failure(self._classify_send_error(status, description), description)

    @staticmethod
    def _classify_send_error(status: int, description: str) -> DeliveryFailureKind:
        text = description.lower()
        if status == 403:
            return DeliveryFailureKind.BLOCKED
        if status == 400 and "chat not found" in text:
            return DeliveryFailureKind.CHAT_NOT_FOUND
        if status == 429:
            return DeliveryFailureKind.RATE_LIMITED
        if status >= 500:
            return DeliveryFailureKind.NETWORK
        return DeliveryFailureKind.API_ERROR

    # -------------------------------------------------------------------------
    # Membership Oracle
    # -------------------------------------------------------------------------

    async def check_membership(self, user_id: int) -> bool:
        """
        Check whether a user is a member of the required channel.

        Returns:
            True for member/administrator/creator, False for a definitive
            non-member

        Raises:
            MembershipCheckError: if the answer is unknown (network, rate
                limit, server error, bot misconfiguration)
        """
        if self.dry_run:
            return True

        logger.debug(f"Checking membership for user {user_id} in channel {self.channel_id}")
        try:
            status, body = await self._call(
                "getChatMember", {"chat_id": self.channel_id, "user_id": user_id}
            )
        except TransportError as e:
            raise MembershipCheckError(str(e)) from e

        if status == 200 and body.get("ok"):
            member = body.get("result") or {}
            member_status = member.get("status")
            if member_status in MEMBER_STATUSES:
                return True
            if member_status == "restricted":
                return bool(member.get("is_member"))
            if member_status in NON_MEMBER_STATUSES:
                return False
            raise MembershipCheckError(f"unexpected member status {member_status!r}")

        description = body.get("description", "")
        if status == 400 and any(err in description.lower() for err in _NOT_A_MEMBER_ERRORS):
            return False
        raise MembershipCheckError(f"getChatMember HTTP {status}: {description}")

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    async def get_updates(self, offset: Optional[int] = None, timeout: int = None) -> List[Dict]:
        """
        Long-poll for new updates.

        Args:
            offset: First update id to return
            timeout: Server-side long-poll timeout in seconds

        Returns:
            List of update dicts

        Raises:
            TransportError: on any failure
        """
        if self.dry_run:
            await asyncio.sleep(timeout or config.poll_timeout_sec)
            return []

        poll_timeout = timeout if timeout is not None else config.poll_timeout_sec
        payload = {"timeout": poll_timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset

        status, body = await self._call("getUpdates", payload, timeout=poll_timeout + 10)
        if status != 200 or not body.get("ok"):
            raise TransportError(f"getUpdates HTTP {status}: {body.get('description', '')}")
        return body.get("result") or []


def send_test_message(bot_token: str, chat_id: str, text: str) -> bool:
    """
    Send one message synchronously to verify the bot token and chat.

    Args:
        bot_token: Telegram bot token
        chat_id: Target chat id
        text: Message text

    Returns:
        True if Telegram accepted the message
    """
    url = f"{config.telegram_api_url}/bot{bot_token}/sendMessage"
    payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}

    try:
        response = requests.post(url, json=payload, timeout=10)
        response.raise_for_status()
        logger.info("Telegram test message sent successfully")
        return True
    except requests.exceptions.Timeout:
        logger.error("Telegram request timed out")
        return False
    except requests.exceptions.HTTPError as e:
        # Log status code without exposing token in URL
        status_code = e.response.status_code if e.response is not None else "unknown"
        logger.error(f"Telegram HTTP error: {status_code}")
        return False
    except requests.exceptions.RequestException:
        logger.error("Telegram request failed")
        return False
