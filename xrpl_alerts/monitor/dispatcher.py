"""
Alert Dispatcher
================

Broadcasts one alert per newly observed token to every current subscriber.

Delivery is best-effort and at most once per subscriber per detection:
failures are logged per recipient and never retried or propagated.
Subscribers that can never be reached again are dropped from the registry.
"""

import asyncio
import html
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from ..api.telegram import DeliveryFailureKind, DeliveryResult
from ..config import config
from ..models import TokenDescriptor

if TYPE_CHECKING:
    from ..api.telegram import TelegramClient
    from .registry import SubscriberRegistry

logger = logging.getLogger(__name__)

SEPARATOR = "━━━━━━━━━━━━━━━━━━━━"


def format_usd(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    if value >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"${value / 1_000:.1f}K"
    return f"${value:,.2f}"


def format_amount(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    return f"{value:,.0f}"


def format_token_alert(token: TokenDescriptor) -> str:
    """Render the HTML alert text for a new token."""
    issuer = html.escape(token.issuer)
    lines = ["🆕 <b>New Token Detected!</b>", SEPARATOR]

    if token.name:
        lines.append(f"📝 Name: {html.escape(token.name)}")
    lines.append(f"🔹 Currency: <code>{html.escape(token.display_currency)}</code>")
    lines.append(f"👤 Issuer: <code>{issuer}</code>")
    if token.ledger_index is not None:
        lines.append(f"📒 Ledger: {token.ledger_index}")

    lines.append("")
    lines.append(f"💰 Initial Supply: {format_amount(token.supply) or 'Unknown'}")
    lines.append(f"💧 Initial Liquidity: {format_usd(token.liquidity) or 'Not yet available'}")

    lines.append("")
    lines.append("⚠️ <b>DYOR - This is an automated alert</b>")
    lines.append("")
    lines.append("🔗 View on:")
    lines.append(f"• <a href=\"https://livenet.xrpl.org/accounts/{issuer}\">XRPL Explorer</a>")
    lines.append(f"• <a href=\"https://xrpscan.com/account/{issuer}\">XRPScan</a>")
    if token.pair_url:
        lines.append(f"• <a href=\"{html.escape(token.pair_url)}\">DEXScreener</a>")
    lines.append(SEPARATOR)

    return "\n".join(lines)


@dataclass
class DispatchReport:
    """Per-alert delivery summary."""
    recipients: int = 0
    delivered: int = 0
    failed: Dict[int, DeliveryFailureKind] = field(default_factory=dict)
    removed: List[int] = field(default_factory=list)

    @property
    def dispatched(self) -> bool:
        """Every recipient got an attempt (delivered or failed)."""
        return self.delivered + len(self.failed) == self.recipients


class AlertDispatcher:
    """
    Sends token alerts to every subscriber in the registry snapshot.

    Sends for one alert run concurrently (bounded) and all finish, or time
    out, before dispatch() returns.
    """

    def __init__(
        self,
        registry: "SubscriberRegistry",
        channel: "TelegramClient",
        max_concurrent: int = None,
        send_timeout: float = None,
        max_message_length: int = None,
    ):
        self.registry = registry
        self.channel = channel
        self.max_concurrent = max_concurrent or config.max_concurrent_sends
        self.send_timeout = send_timeout or config.send_timeout_sec
        self.max_message_length = max_message_length or config.max_message_length

    def _truncate_message(self, text: str) -> str:
        """Truncate message to Telegram's character limit."""
        if len(text) > self.max_message_length:
            return text[:self.max_message_length - 20] + "\n... (truncated)"
        return text

    async def _deliver(self, semaphore: asyncio.Semaphore, chat_id: int, text: str) -> DeliveryResult:
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self.channel.send_message(chat_id, text), timeout=self.send_timeout
                )
            except asyncio.TimeoutError:
                return DeliveryResult.failure(DeliveryFailureKind.NETWORK, "send timed out")
            except Exception as e:
                return DeliveryResult.failure(DeliveryFailureKind.API_ERROR, f"{type(e).__name__}: {e}")

    async def dispatch(self, token: TokenDescriptor) -> DispatchReport:
        """
        Deliver an alert for a newly observed token.

        Args:
            token: Descriptor from the classifier

        Returns:
            DispatchReport; never raises for delivery problems
        """
        report = DispatchReport()
        if not token.is_new:
            return report

        recipients = sorted(self.registry.snapshot())
        report.recipients = len(recipients)
        if not recipients:
            logger.info(f"New token {token.display_currency}/{token.issuer}: no subscribers")
            return report

        text = self._truncate_message(format_token_alert(token))
        semaphore = asyncio.Semaphore(self.max_concurrent)

        results = await asyncio.gather(
            *(self._deliver(semaphore, chat_id, text) for chat_id in recipients)
        )

        for chat_id, result in zip(recipients, results):
            if result.ok:
                report.delivered += 1
                continue

            report.failed[chat_id] = result.kind
            logger.warning(f"Alert to {chat_id} failed ({result.kind.value}): {result.description}")

            if result.kind.is_permanent:
                if self.registry.remove(chat_id, reason=f"unreachable ({result.kind.value})"):
                    report.removed.append(chat_id)

        logger.info(
            f"Alert {token.display_currency}/{token.issuer}: "
            f"{report.delivered}/{report.recipients} delivered, {len(report.failed)} failed"
        )
        return report
