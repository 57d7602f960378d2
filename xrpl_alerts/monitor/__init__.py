"""
Monitor Package
===============

The ledger-monitoring and alert-dispatch pipeline.

Components:
- connector.py: LedgerStreamConnector, reconnect state machine, backoff
- scanner.py: LedgerRangeScanner (range fetch + trust line filter)
- classifier.py: TokenClassifier (novelty + market data)
- registry.py: SubscriberRegistry (membership-gated subscribers)
- dispatcher.py: AlertDispatcher (broadcast with per-recipient isolation)
- commands.py: CommandHandler (/start, /stop, /status)
- service.py: AlertBotService (wires and runs everything)
"""

from .connector import LedgerStreamConnector, ConnectionState, reconnect_delay
from .scanner import LedgerRangeScanner
from .classifier import TokenClassifier
from .registry import SubscriberRegistry, SubscribeOutcome, ReverifyReport
from .dispatcher import AlertDispatcher, DispatchReport, format_token_alert
from .commands import CommandHandler
from .service import AlertBotService

__all__ = [
    "LedgerStreamConnector",
    "ConnectionState",
    "reconnect_delay",
    "LedgerRangeScanner",
    "TokenClassifier",
    "SubscriberRegistry",
    "SubscribeOutcome",
    "ReverifyReport",
    "AlertDispatcher",
    "DispatchReport",
    "format_token_alert",
    "CommandHandler",
    "AlertBotService",
]
