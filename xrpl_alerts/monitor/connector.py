"""
Ledger Stream Connector
=======================

Holds the ledger stream subscription and drives the scan pipeline.

The connector owns the LedgerCursor. Notifications are handled strictly one
at a time: the stream is not read again until the scan for the previous
notification has returned, so the cursor can only advance in order.

Reconnect state machine:

    CONNECTING -> CONNECTED -> DISCONNECTED(reason) -> RECONNECTING(delay) -> CONNECTING ...

The cursor survives reconnects, so ledgers closed during an outage are
scanned as one wide range on the first notification afterwards.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Deque, Optional

from ..config import config
from ..errors import TransportError
from ..models import LedgerCursor, ScanResult

if TYPE_CHECKING:
    from ..api.xrpl import LedgerClient, LedgerStream
    from .scanner import LedgerRangeScanner

logger = logging.getLogger(__name__)

MAX_TRANSITION_HISTORY = 100


def reconnect_delay(attempt: int, base: float, cap: float) -> float:
    """
    Exponential backoff delay for a reconnect attempt.

    Args:
        attempt: 1 for the first retry after a disconnect
        base: Delay for the first retry (seconds)
        cap: Maximum delay (seconds)

    Returns:
        min(cap, base * 2^(attempt - 1))
    """
    if attempt < 1:
        return 0.0
    # Avoid huge intermediate values after a long outage
    exponent = min(attempt - 1, 32)
    return min(cap, base * (2 ** exponent))


class ConnectionState(Enum):
    """Stream connection state."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


@dataclass
class StateTransition:
    state: ConnectionState
    reason: Optional[str] = None
    delay: Optional[float] = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LedgerStreamConnector:
    """
    Maintains the ledger stream and hands each closed ledger to the scanner.

    Args:
        ledger_client: Client with `async open_ledger_stream() -> LedgerStream`
        scanner: Scanner with `async scan(start, end) -> ScanResult`
        base_delay: First reconnect delay (seconds)
        max_delay: Reconnect delay cap (seconds)
    """

    def __init__(
        self,
        ledger_client: "LedgerClient",
        scanner: "LedgerRangeScanner",
        base_delay: float = None,
        max_delay: float = None,
    ):
        self.ledger_client = ledger_client
        self.scanner = scanner
        self.base_delay = base_delay or config.reconnect_base_sec
        self.max_delay = max_delay or config.reconnect_max_sec

        self.cursor = LedgerCursor()
        self.state = ConnectionState.IDLE
        self.transitions: Deque[StateTransition] = deque(maxlen=MAX_TRANSITION_HISTORY)
        self.attempt = 0

        self._lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._stream: Optional["LedgerStream"] = None
        self._close_task: Optional[asyncio.Future] = None

        # Statistics
        self.ledgers_seen = 0
        self.scans_run = 0
        self.scans_failed = 0

    def _set_state(self, state: ConnectionState, reason: str = None, delay: float = None):
        self.state = state
        self.transitions.append(StateTransition(state=state, reason=reason, delay=delay))

    # -------------------------------------------------------------------------
    # Notification Handling
    # -------------------------------------------------------------------------

    async def handle_message(self, message: dict) -> Optional[ScanResult]:
        """Handle one stream message. Non-ledger messages are ignored."""
        if message.get("type") != "ledgerClosed":
            return None

        try:
            ledger_index = int(message["ledger_index"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"ledgerClosed without usable ledger_index: {message}")
            return None

        return await self.handle_ledger_closed(ledger_index)

    async def handle_ledger_closed(self, ledger_index: int) -> Optional[ScanResult]:
        """
        Process one closed ledger.

        The first ledger only sets the baseline. After that each ledger
        triggers a scan of (cursor, ledger_index] and the cursor advances
        whatever the scan outcome.

        Returns:
            ScanResult, or None when no scan ran
        """
        async with self._lock:
            self.ledgers_seen += 1

            if not self.cursor.is_set:
                self.cursor.set_baseline(ledger_index)
                logger.info(f"Baseline set at ledger {ledger_index}")
                return None

            previous = self.cursor.index
            if ledger_index <= previous:
                logger.debug(f"Ignoring ledger {ledger_index} (cursor at {previous})")
                return None

            result = None
            try:
                result = await self.scanner.scan(previous, ledger_index)
            except Exception as e:
                logger.error(f"Scan of ({previous}, {ledger_index}] raised: {e}")

            self.scans_run += 1
            if result is None or result.failed:
                self.scans_failed += 1

            self.cursor.advance(ledger_index)
            return result

    # -------------------------------------------------------------------------
    # Connection Loop
    # -------------------------------------------------------------------------

    async def _wait(self, delay: float) -> bool:
        """Sleep for delay unless stopped first. Returns True if stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def _consume(self, stream: "LedgerStream") -> str:
        """Read the stream until it fails. Returns the disconnect reason."""
        try:
            async for message in stream.messages():
                await self.handle_message(message)
                if self._stop_event.is_set():
                    return "stopped"
        except TransportError as e:
            return str(e)
        except Exception as e:
            logger.exception(f"Unexpected error on ledger stream: {e}")
            return f"{type(e).__name__}: {e}"
        return "stream ended"

    async def run(self, stop_event: asyncio.Event = None):
        """
        Connect, subscribe and process notifications until stopped.

        Reconnects forever with exponential backoff.
        """
        self._stop_event = stop_event or asyncio.Event()

        while not self._stop_event.is_set():
            self._set_state(ConnectionState.CONNECTING)
            try:
                stream = await self.ledger_client.open_ledger_stream()
            except TransportError as e:
                reason = str(e)
            except Exception as e:
                logger.exception(f"Unexpected error opening ledger stream: {e}")
                reason = f"{type(e).__name__}: {e}"
            else:
                self._stream = stream
                self.attempt = 0
                self._set_state(ConnectionState.CONNECTED)
                logger.info(f"Ledger stream connected (cursor at {self.cursor.index})")
                try:
                    reason = await self._consume(stream)
                finally:
                    self._stream = None
                    await stream.close()

            if self._stop_event.is_set():
                break

            self.attempt += 1
            delay = reconnect_delay(self.attempt, self.base_delay, self.max_delay)
            self._set_state(ConnectionState.DISCONNECTED, reason=reason)
            logger.warning(f"Ledger stream disconnected: {reason}")
            self._set_state(ConnectionState.RECONNECTING, reason=reason, delay=delay)
            logger.info(f"Reconnecting in {delay:.1f}s (attempt {self.attempt})")

            if await self._wait(delay):
                break

        self._set_state(ConnectionState.STOPPED)
        logger.info("Ledger stream connector stopped")

    def stop(self):
        """Stop the connection loop."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._stream is not None:
            # Closing the socket unblocks a pending read in _consume
            self._close_task = asyncio.ensure_future(self._stream.close())

    @property
    def stats(self) -> dict:
        return {
            "state": self.state.value,
            "cursor": self.cursor.index,
            "ledgers_seen": self.ledgers_seen,
            "scans_run": self.scans_run,
            "scans_failed": self.scans_failed,
            "reconnect_attempt": self.attempt,
        }
