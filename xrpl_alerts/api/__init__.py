"""
API Package
===========

External clients for the XRPL node, DexScreener and Telegram.

Components:
- xrpl.py: LedgerClient, LedgerStream
- dexscreener.py: MarketDataClient
- telegram.py: TelegramClient, DeliveryResult, DeliveryFailureKind
"""

from .xrpl import LedgerClient, LedgerStream
from .dexscreener import MarketDataClient
from .telegram import (
    TelegramClient,
    DeliveryResult,
    DeliveryFailureKind,
    join_channel_markup,
    send_test_message,
)

__all__ = [
    # XRPL
    "LedgerClient",
    "LedgerStream",
    # Market data
    "MarketDataClient",
    # Telegram
    "TelegramClient",
    "DeliveryResult",
    "DeliveryFailureKind",
    "join_channel_markup",
    "send_test_message",
]
