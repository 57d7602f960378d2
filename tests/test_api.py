"""
Tests for the network clients with the transport faked out.
"""

import asyncio
import json

import pytest

from xrpl_alerts.api.dexscreener import MarketDataClient
from xrpl_alerts.api.telegram import DeliveryFailureKind, TelegramClient, join_channel_markup
from xrpl_alerts.api.xrpl import LedgerClient, LedgerStream
from xrpl_alerts.errors import MembershipCheckError, ScanFailure, TransportError

from conftest import ISSUER_A, trust_set


class FakeWebSocket:
    """
    Minimal websocket: replies to each sent command through `responder`.

    `responder(message) -> list of frames` is called on send; the frames are
    then yielded by iteration. Extra frames queued up front come first.
    """

    def __init__(self, responder=None, frames=None):
        self.responder = responder or (lambda message: [])
        self.frames = list(frames or [])
        self.sent = []
        self.closed = False

    async def send(self, raw):
        message = json.loads(raw)
        self.sent.append(message)
        self.frames.extend(self.responder(message))

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.frames:
            raise StopAsyncIteration
        frame = self.frames.pop(0)
        return frame if isinstance(frame, str) else json.dumps(frame)

    async def close(self):
        self.closed = True


def ledger_client_with(ws):
    client = LedgerClient(url="wss://fake.invalid/", request_timeout=1)

    async def connect():
        return ws

    client._connect = connect
    return client


# =============================================================================
# XRPL
# =============================================================================

def test_fetch_transactions_sends_range_and_matches_response_id():
    txs = [trust_set(ISSUER_A, "USD", 101), "not-a-dict"]

    def respond(message):
        return [
            {"type": "ledgerClosed", "ledger_index": 102},
            {"id": message["id"] + 100, "result": {"transactions": []}},
            {"id": message["id"], "status": "success", "result": {"transactions": txs}},
        ]

    ws = FakeWebSocket(respond)
    client = ledger_client_with(ws)

    result = asyncio.run(client.fetch_transactions(101, 102))

    assert ws.sent[0]["command"] == "tx_history"
    assert (ws.sent[0]["start"], ws.sent[0]["end"]) == (101, 102)
    assert result == [txs[0]]
    assert ws.closed


def test_fetch_transactions_node_error_is_scan_failure():
    def respond(message):
        return [{"id": message["id"], "status": "error", "error": "lgrNotFound"}]

    client = ledger_client_with(FakeWebSocket(respond))

    with pytest.raises(ScanFailure) as exc_info:
        asyncio.run(client.fetch_transactions(101, 105))
    assert (exc_info.value.start_ledger, exc_info.value.end_ledger) == (100, 105)
    assert "lgrNotFound" in str(exc_info.value)


def test_fetch_transactions_closed_socket_is_scan_failure():
    client = ledger_client_with(FakeWebSocket())

    with pytest.raises(ScanFailure):
        asyncio.run(client.fetch_transactions(101, 101))


def test_connect_failure_is_scan_failure():
    client = LedgerClient(url="wss://fake.invalid/", request_timeout=1)

    async def refuse():
        raise TransportError("connect refused")

    client._connect = refuse

    with pytest.raises(ScanFailure):
        asyncio.run(client.fetch_transactions(101, 101))


def test_open_ledger_stream_subscribes():
    def respond(message):
        return [{"id": message["id"], "status": "success", "result": {}}]

    ws = FakeWebSocket(respond)
    client = ledger_client_with(ws)

    stream = asyncio.run(client.open_ledger_stream())

    assert isinstance(stream, LedgerStream)
    assert ws.sent == [{"command": "subscribe", "streams": ["ledger"], "id": ws.sent[0]["id"]}]
    assert not ws.closed


def test_open_ledger_stream_rejected():
    def respond(message):
        return [{"id": message["id"], "status": "error", "error": "noPermission"}]

    ws = FakeWebSocket(respond)
    client = ledger_client_with(ws)

    with pytest.raises(TransportError):
        asyncio.run(client.open_ledger_stream())
    assert ws.closed


def test_stream_skips_bad_frames_and_ends_with_transport_error():
    ws = FakeWebSocket(frames=["{not json", {"type": "ledgerClosed", "ledger_index": 7}, "[1, 2]"])
    stream = LedgerStream(ws, "wss://fake.invalid/")
    received = []

    async def run():
        async for message in stream.messages():
            received.append(message)

    with pytest.raises(TransportError):
        asyncio.run(run())
    assert received == [{"type": "ledgerClosed", "ledger_index": 7}]


# =============================================================================
# Telegram
# =============================================================================

def telegram_with(status, body):
    client = TelegramClient(bot_token="123:ABC", channel_id="@channel")
    calls = []

    async def fake_call(method, payload, timeout=None):
        calls.append((method, payload))
        if isinstance(body, Exception):
            raise body
        return status, body

    client._call = fake_call
    return client, calls


@pytest.mark.parametrize("member_status,expected", [
    ("member", True),
    ("administrator", True),
    ("creator", True),
    ("left", False),
    ("kicked", False),
])
def test_membership_statuses(member_status, expected):
    client, calls = telegram_with(200, {"ok": True, "result": {"status": member_status}})

    assert asyncio.run(client.check_membership(42)) is expected
    assert calls == [("getChatMember", {"chat_id": "@channel", "user_id": 42})]


def test_restricted_member_depends_on_is_member():
    client, _ = telegram_with(200, {"ok": True, "result": {"status": "restricted", "is_member": True}})
    assert asyncio.run(client.check_membership(1)) is True

    client, _ = telegram_with(200, {"ok": True, "result": {"status": "restricted", "is_member": False}})
    assert asyncio.run(client.check_membership(1)) is False


def test_user_not_found_is_definitive_non_member():
    client, _ = telegram_with(400, {"ok": False, "description": "Bad Request: user not found"})

    assert asyncio.run(client.check_membership(1)) is False


@pytest.mark.parametrize("status,body", [
    (400, {"ok": False, "description": "Bad Request: chat not found"}),
    (429, {"ok": False, "description": "Too Many Requests: retry after 5"}),
    (502, {}),
    (200, {"ok": True, "result": {"status": "mystery"}}),
    (None, TransportError("getChatMember: request timed out")),
])
def test_membership_unknown_raises(status, body):
    client, _ = telegram_with(status, body)

    with pytest.raises(MembershipCheckError):
        asyncio.run(client.check_membership(1))


@pytest.mark.parametrize("status,description,kind", [
    (403, "Forbidden: bot was blocked by the user", DeliveryFailureKind.BLOCKED),
    (400, "Bad Request: chat not found", DeliveryFailureKind.CHAT_NOT_FOUND),
    (429, "Too Many Requests", DeliveryFailureKind.RATE_LIMITED),
    (500, "Internal Server Error", DeliveryFailureKind.NETWORK),
    (400, "Bad Request: can't parse entities", DeliveryFailureKind.API_ERROR),
])
def test_send_failure_classification(status, description, kind):
    client, _ = telegram_with(status, {"ok": False, "description": description})

    result = asyncio.run(client.send_message(1, "hi"))

    assert not result.ok
    assert result.kind == kind
    assert result.kind.is_permanent == (kind in (DeliveryFailureKind.BLOCKED, DeliveryFailureKind.CHAT_NOT_FOUND))


def test_send_message_success_and_markup():
    client, calls = telegram_with(200, {"ok": True, "result": {"message_id": 99}})
    markup = join_channel_markup("https://t.me/test")

    result = asyncio.run(client.send_message(5, "<b>hi</b>", reply_markup=markup))

    assert result.ok and result.message_id == 99
    method, payload = calls[0]
    assert method == "sendMessage"
    assert payload["parse_mode"] == "HTML"
    assert payload["reply_markup"]["inline_keyboard"][0][0]["url"] == "https://t.me/test"


def test_send_message_transport_error_is_network_failure():
    client, _ = telegram_with(None, TransportError("sendMessage: ClientConnectorError"))

    result = asyncio.run(client.send_message(1, "hi"))

    assert result.kind == DeliveryFailureKind.NETWORK


def test_get_updates_passes_offset():
    client, calls = telegram_with(200, {"ok": True, "result": [{"update_id": 5}]})

    updates = asyncio.run(client.get_updates(offset=5, timeout=0))

    assert updates == [{"update_id": 5}]
    assert calls[0][1]["offset"] == 5


def test_get_updates_failure_raises():
    client, _ = telegram_with(409, {"ok": False, "description": "Conflict"})

    with pytest.raises(TransportError):
        asyncio.run(client.get_updates(timeout=0))


def test_dry_run_sends_nothing():
    client = TelegramClient(bot_token="", channel_id="", dry_run=True)

    assert asyncio.run(client.send_message(1, "hi")).ok
    assert asyncio.run(client.check_membership(1)) is True


def test_token_required_outside_dry_run():
    with pytest.raises(ValueError):
        TelegramClient(bot_token="", channel_id="@c")


# =============================================================================
# DexScreener
# =============================================================================

def test_parse_pairs_uses_first_pair():
    client = MarketDataClient(base_url="https://example.invalid/tokens")
    data = {
        "pairs": [
            {
                "baseToken": {"name": "Sologenic", "symbol": "SOLO", "totalSupply": "399556406"},
                "liquidity": {"usd": 125000.5},
                "priceUsd": "0.21",
                "url": "https://dexscreener.com/xrpl/solo",
            },
            {"baseToken": {"name": "Other"}},
        ]
    }

    market = client._parse_pairs(data)

    assert market.name == "Sologenic"
    assert market.symbol == "SOLO"
    assert market.supply == 399556406.0
    assert market.liquidity == 125000.5
    assert market.price_usd == 0.21
    assert market.pair_url == "https://dexscreener.com/xrpl/solo"


@pytest.mark.parametrize("data", [None, [], {}, {"pairs": None}, {"pairs": []}])
def test_parse_pairs_without_pairs(data):
    client = MarketDataClient(base_url="https://example.invalid/tokens")

    assert client._parse_pairs(data) is None


def test_parse_pairs_tolerates_bad_numbers():
    client = MarketDataClient(base_url="https://example.invalid/tokens")

    market = client._parse_pairs({"pairs": [{"baseToken": {"totalSupply": "n/a"}, "liquidity": None}]})

    assert market.supply is None
    assert market.liquidity is None
