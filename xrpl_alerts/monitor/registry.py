"""
Subscriber Registry
===================

The set of chats that receive token alerts.

Membership of the required channel gates subscription and is re-checked on
a fixed interval. A transport failure during a check never removes anyone;
only a definitive "not a member" answer does.

All mutation happens on the event loop thread. Anything that iterates the
set (reverification, dispatch) iterates a snapshot.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, FrozenSet, List, Optional, Set

from ..api.telegram import join_channel_markup
from ..config import config
from ..errors import MembershipCheckError

if TYPE_CHECKING:
    from ..api.telegram import TelegramClient
    from ..db.state_db import StateDB

logger = logging.getLogger(__name__)

PAUSED_MESSAGE = (
    "⚠️ <b>Your subscription has been paused</b>\n\n"
    "You need to be a member of our channel to receive alerts.\n\n"
    "Join the channel and send /start to reactivate your subscription."
)


class SubscribeOutcome(Enum):
    SUBSCRIBED = "subscribed"
    ALREADY_SUBSCRIBED = "already_subscribed"
    NOT_MEMBER = "not_member"


@dataclass
class ReverifyReport:
    """Result of one reverification pass."""
    checked: int = 0
    removed: List[int] = field(default_factory=list)
    retained_on_error: List[int] = field(default_factory=list)


class SubscriberRegistry:
    """
    Process-wide subscriber set with membership re-verification.

    Args:
        oracle: Client with `async check_membership(user_id) -> bool`
        notifier: Client with `async send_message(chat_id, text, reply_markup=None)`;
            used for the best-effort "paused" notice
        store: Optional StateDB for persistence across restarts
        channel_url: Link shown on the join button
    """

    def __init__(
        self,
        oracle: "TelegramClient",
        notifier: Optional["TelegramClient"] = None,
        store: Optional["StateDB"] = None,
        channel_url: str = None,
    ):
        self.oracle = oracle
        self.notifier = notifier
        self.store = store
        self.channel_url = channel_url or config.required_channel_url
        self._subscribers: Set[int] = set()

    def load(self) -> int:
        """Load persisted subscribers. Returns the number loaded."""
        if self.store is None:
            return 0
        self._subscribers = self.store.load_subscribers()
        logger.info(f"Loaded {len(self._subscribers)} subscribers")
        return len(self._subscribers)

    def __contains__(self, chat_id: int) -> bool:
        return chat_id in self._subscribers

    def __len__(self) -> int:
        return len(self._subscribers)

    def snapshot(self) -> FrozenSet[int]:
        """Stable copy of the current subscribers."""
        return frozenset(self._subscribers)

    # -------------------------------------------------------------------------
    # Explicit Actions
    # -------------------------------------------------------------------------

    async def subscribe(self, chat_id: int) -> SubscribeOutcome:
        """
        Add a subscriber after a successful membership check.

        Raises:
            MembershipCheckError: if membership could not be determined
        """
        is_member = await self.oracle.check_membership(chat_id)
        if not is_member:
            logger.info(f"Subscribe refused for {chat_id}: not a channel member")
            return SubscribeOutcome.NOT_MEMBER

        if chat_id in self._subscribers:
            return SubscribeOutcome.ALREADY_SUBSCRIBED

        self._subscribers.add(chat_id)
        if self.store is not None:
            self.store.add_subscriber(chat_id)
        logger.info(f"Subscribed {chat_id} ({len(self._subscribers)} total)")
        return SubscribeOutcome.SUBSCRIBED

    def unsubscribe(self, chat_id: int) -> bool:
        """Remove a subscriber unconditionally. Returns True if it was present."""
        return self.remove(chat_id, reason="unsubscribed")

    def remove(self, chat_id: int, reason: str) -> bool:
        """Remove a subscriber for the given reason. Returns True if it was present."""
        if chat_id not in self._subscribers:
            return False
        self._subscribers.discard(chat_id)
        if self.store is not None:
            self.store.remove_subscriber(chat_id)
        logger.info(f"Removed subscriber {chat_id}: {reason} ({len(self._subscribers)} left)")
        return True

    # -------------------------------------------------------------------------
    # Re-verification
    # -------------------------------------------------------------------------

    async def reverify(self) -> ReverifyReport:
        """
        Check every current subscriber against the membership oracle.

        Definitive non-members are removed and sent a best-effort notice.
        Subscribers whose check failed are kept.
        """
        report = ReverifyReport()

        for chat_id in self.snapshot():
            report.checked += 1
            try:
                is_member = await self.oracle.check_membership(chat_id)
            except MembershipCheckError as e:
                logger.warning(f"Membership check failed for {chat_id}, keeping subscriber: {e}")
                report.retained_on_error.append(chat_id)
                continue
            except Exception as e:
                logger.error(f"Unexpected error checking {chat_id}, keeping subscriber: {e}")
                report.retained_on_error.append(chat_id)
                continue

            if is_member:
                continue

            if self.remove(chat_id, reason="no longer a channel member"):
                report.removed.append(chat_id)
                await self._notify_paused(chat_id)

        logger.info(
            f"Reverification: checked {report.checked}, removed {len(report.removed)}, "
            f"kept on error {len(report.retained_on_error)}"
        )
        return report

    async def _notify_paused(self, chat_id: int):
        if self.notifier is None:
            return
        try:
            result = await self.notifier.send_message(
                chat_id, PAUSED_MESSAGE, reply_markup=join_channel_markup(self.channel_url)
            )
        except Exception as e:
            logger.warning(f"Paused notice to {chat_id} failed: {e}")
            return
        if not result.ok:
            logger.warning(f"Paused notice to {chat_id} not delivered: {result.kind.value}")

    async def run_reverification(self, interval_sec: float, stop_event: asyncio.Event):
        """
        Run reverify() every interval_sec until stop_event is set.

        The first pass happens one interval after start.
        """
        logger.info(f"Membership reverification every {interval_sec / 3600:.1f}h")
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_sec)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.reverify()
            except Exception as e:
                logger.error(f"Reverification pass failed: {e}")
