"""
Tests for SubscriberRegistry: the membership gate and reverification.
"""

import asyncio

import pytest

from xrpl_alerts.errors import MembershipCheckError
from xrpl_alerts.monitor.registry import PAUSED_MESSAGE, SubscribeOutcome, SubscriberRegistry

from conftest import FakeTelegram


def make_registry(telegram, store=None):
    return SubscriberRegistry(oracle=telegram, notifier=telegram, store=store, channel_url="https://t.me/test")


def test_subscribe_requires_membership():
    telegram = FakeTelegram(members={1: True, 2: False})
    registry = make_registry(telegram)

    async def run():
        return await registry.subscribe(1), await registry.subscribe(2), await registry.subscribe(1)

    first, refused, again = asyncio.run(run())

    assert first == SubscribeOutcome.SUBSCRIBED
    assert refused == SubscribeOutcome.NOT_MEMBER
    assert again == SubscribeOutcome.ALREADY_SUBSCRIBED
    assert registry.snapshot() == frozenset({1})


def test_subscribe_propagates_oracle_failure():
    telegram = FakeTelegram(members={1: MembershipCheckError("timeout")})
    registry = make_registry(telegram)

    with pytest.raises(MembershipCheckError):
        asyncio.run(registry.subscribe(1))
    assert 1 not in registry


def test_unsubscribe_is_unconditional():
    telegram = FakeTelegram(members={1: True})
    registry = make_registry(telegram)
    asyncio.run(registry.subscribe(1))
    telegram.members[1] = False

    assert registry.unsubscribe(1)
    assert not registry.unsubscribe(1)
    assert len(registry) == 0


def test_reverify_removes_only_definitive_non_members():
    """Member stays, non-member goes, unknown status stays."""
    telegram = FakeTelegram(members={1: True, 2: True, 3: True})
    registry = make_registry(telegram)

    async def run():
        for chat_id in (1, 2, 3):
            await registry.subscribe(chat_id)
        telegram.members[2] = False
        telegram.members[3] = MembershipCheckError("HTTP 502")
        return await registry.reverify()

    report = asyncio.run(run())

    assert registry.snapshot() == frozenset({1, 3})
    assert report.checked == 3
    assert report.removed == [2]
    assert report.retained_on_error == [3]
    assert telegram.messages_to(2) == [PAUSED_MESSAGE]
    assert telegram.messages_to(3) == []


def test_reverify_keeps_subscriber_on_unexpected_error():
    telegram = FakeTelegram(members={1: True})
    registry = make_registry(telegram)
    asyncio.run(registry.subscribe(1))
    telegram.members[1] = RuntimeError("bug")

    report = asyncio.run(registry.reverify())

    assert 1 in registry
    assert report.retained_on_error == [1]


def test_reverify_tolerates_concurrent_changes():
    """Subscribing while a pass is in flight neither breaks nor skips anything."""

    class SlowTelegram(FakeTelegram):
        async def check_membership(self, user_id):
            await asyncio.sleep(0.01)
            return await super().check_membership(user_id)

    telegram = SlowTelegram(members={1: True, 2: True, 3: True})
    registry = make_registry(telegram)

    async def run():
        await registry.subscribe(1)
        await registry.subscribe(2)
        reverify = asyncio.create_task(registry.reverify())
        await asyncio.sleep(0.005)
        await registry.subscribe(3)
        registry.unsubscribe(2)
        return await reverify

    report = asyncio.run(run())

    assert report.checked == 2
    assert registry.snapshot() == frozenset({1, 3})


def test_paused_notice_failure_does_not_block_removal():
    telegram = FakeTelegram(members={1: True})
    registry = make_registry(telegram)
    asyncio.run(registry.subscribe(1))
    telegram.members[1] = False

    async def failing_send(*args, **kwargs):
        raise RuntimeError("send failed")

    telegram.send_message = failing_send

    report = asyncio.run(registry.reverify())

    assert report.removed == [1]
    assert 1 not in registry


def test_run_reverification_stops_on_event():
    telegram = FakeTelegram(members={1: True})
    registry = make_registry(telegram)

    async def run():
        await registry.subscribe(1)
        telegram.members[1] = False
        stop = asyncio.Event()
        task = asyncio.create_task(registry.run_reverification(0.01, stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(run())

    assert len(registry) == 0


def test_subscribers_persist(state_db):
    telegram = FakeTelegram(members={1: True, 2: True})
    registry = make_registry(telegram, store=state_db)

    async def run():
        await registry.subscribe(1)
        await registry.subscribe(2)

    asyncio.run(run())
    registry.unsubscribe(1)

    restored = make_registry(telegram, store=state_db)
    assert restored.load() == 1
    assert restored.snapshot() == frozenset({2})
