"""
Pytest fixtures for the alert bot tests.

Fake collaborators stand in for the XRPL node, DexScreener and Telegram so
the pipeline runs without sockets. Async code is driven with asyncio.run.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from xrpl_alerts.api.telegram import DeliveryFailureKind, DeliveryResult
from xrpl_alerts.db.state_db import StateDB
from xrpl_alerts.errors import MembershipCheckError, ScanFailure, TransportError
from xrpl_alerts.models import MarketData, ScanResult

ISSUER_A = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
ISSUER_B = "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"
ISSUER_C = "rN7n7otQDd6FczFgLdSqtcsAUxDkw6fzRH"
SOLO_HEX = "534F4C4F" + "0" * 32


def trust_set(issuer: str, currency: str, ledger_index: int, tx_hash: str = None) -> dict:
    """Raw TrustSet transaction as returned by the node."""
    return {
        "TransactionType": "TrustSet",
        "Account": "rGWrZyQqhTp9Xu7G5Pkayo7bXjH4k4QYpf",
        "LimitAmount": {"issuer": issuer, "currency": currency, "value": "1000000"},
        "ledger_index": ledger_index,
        "hash": tx_hash or f"{currency}{ledger_index}".ljust(64, "0"),
    }


def payment(ledger_index: int) -> dict:
    return {
        "TransactionType": "Payment",
        "Amount": "1000000",
        "ledger_index": ledger_index,
        "hash": f"PAY{ledger_index}".ljust(64, "0"),
    }


# -----------------------------------------------------------------------------
# Ledger
# -----------------------------------------------------------------------------

class FakeStream:
    """Yields scripted messages, then drops like a dead socket."""

    def __init__(self, messages: List[dict], drop_reason: str = "connection dropped"):
        self._messages = messages
        self._drop_reason = drop_reason
        self.closed = False

    async def messages(self):
        for message in self._messages:
            yield message
        raise TransportError(self._drop_reason)

    async def close(self):
        self.closed = True


class FakeLedgerClient:
    """
    Scripted ledger client.

    `streams` items are FakeStream instances or exceptions to raise from
    open_ledger_stream(). When the script runs out, stop_event is set.
    `ranges` maps (start, end) requests to transaction lists or exceptions.
    """

    def __init__(self, streams: list = None, ranges: dict = None, stop_event=None):
        self.url = "wss://fake.invalid/"
        self.streams = list(streams or [])
        self.ranges = dict(ranges or {})
        self.stop_event = stop_event
        self.opened: List[FakeStream] = []
        self.requests: List[tuple] = []

    async def open_ledger_stream(self):
        if not self.streams:
            if self.stop_event is not None:
                self.stop_event.set()
            raise TransportError("script exhausted")
        item = self.streams.pop(0)
        if isinstance(item, Exception):
            raise item
        self.opened.append(item)
        return item

    async def fetch_transactions(self, start_ledger: int, end_ledger: int) -> List[dict]:
        self.requests.append((start_ledger, end_ledger))
        result = self.ranges.get((start_ledger, end_ledger), [])
        if isinstance(result, Exception):
            raise result
        return result


class RecordingScanner:
    """Scanner stand-in that records the ranges it was asked to scan."""

    def __init__(self, fail_ranges: set = None, delay: float = 0.0):
        self.ranges: List[tuple] = []
        self.fail_ranges = fail_ranges or set()
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def scan(self, start: int, end: int) -> ScanResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.ranges.append((start, end))
            return ScanResult(start_ledger=start, end_ledger=end, failed=(start, end) in self.fail_ranges)
        finally:
            self.in_flight -= 1


# -----------------------------------------------------------------------------
# Market data
# -----------------------------------------------------------------------------

class FakeMarketData:
    def __init__(self, data: Dict[tuple, object] = None, delay: float = 0.0):
        self.data = data or {}
        self.delay = delay
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def lookup(self, issuer: str, currency: str) -> Optional[MarketData]:
        self.calls.append((issuer, currency))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            result = self.data.get((issuer, currency))
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.in_flight -= 1

    async def close(self):
        pass


# -----------------------------------------------------------------------------
# Telegram
# -----------------------------------------------------------------------------

class FakeTelegram:
    """
    Membership oracle + notification channel + update source.

    `members` maps chat id to True, False or an exception instance; unknown
    ids are non-members. `failures` maps chat id to a DeliveryFailureKind.
    """

    def __init__(self, members: dict = None, failures: dict = None, updates: list = None):
        self.members = dict(members or {})
        self.failures = dict(failures or {})
        self.updates = list(updates or [])
        self.sent: List[tuple] = []
        self.membership_checks: List[int] = []
        self.update_offsets: List[Optional[int]] = []

    async def check_membership(self, user_id: int) -> bool:
        self.membership_checks.append(user_id)
        result = self.members.get(user_id, False)
        if isinstance(result, Exception):
            raise result
        return result

    async def send_message(self, chat_id: int, text: str, reply_markup: dict = None) -> DeliveryResult:
        if chat_id in self.failures:
            return DeliveryResult.failure(self.failures[chat_id], "simulated failure")
        self.sent.append((chat_id, text, reply_markup))
        return DeliveryResult.success(message_id=len(self.sent))

    async def get_updates(self, offset: int = None, timeout: int = None) -> list:
        self.update_offsets.append(offset)
        # Real long polls always suspend
        await asyncio.sleep(0.005)
        updates, self.updates = self.updates, []
        return updates

    async def close(self):
        pass

    def messages_to(self, chat_id: int) -> List[str]:
        return [text for cid, text, _ in self.sent if cid == chat_id]


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def state_db(tmp_path):
    """Fresh SQLite state store in a temp directory."""
    return StateDB(tmp_path / "state.db")


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def market_data():
    return FakeMarketData()


__all__ = [
    "ISSUER_A",
    "ISSUER_B",
    "ISSUER_C",
    "SOLO_HEX",
    "trust_set",
    "payment",
    "FakeStream",
    "FakeLedgerClient",
    "RecordingScanner",
    "FakeMarketData",
    "FakeTelegram",
    "DeliveryFailureKind",
    "MembershipCheckError",
    "ScanFailure",
]
