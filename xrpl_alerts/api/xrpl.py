"""
XRPL Websocket Client

Single responsibility: talk to an XRPL node over its websocket API.

Two kinds of connection are used:
- a long-lived stream connection subscribed to ledger-closed events
- short-lived request connections for range fetches, so a slow fetch never
  blocks or shares fate with the stream socket
"""

import asyncio
import itertools
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import config
from ..errors import ScanFailure, TransportError

logger = logging.getLogger(__name__)


class LedgerStream:
    """
    An open, subscribed ledger stream.

    Iterate with `async for message in stream.messages()`. Iteration ends
    with TransportError when the socket closes or fails.
    """

    def __init__(self, ws, url: str):
        self._ws = ws
        self.url = url

    async def messages(self) -> AsyncIterator[Dict[str, Any]]:
        try:
            async for raw in self._ws:
                try:
                    data = json.loads(raw)
                except (json.JSONDecodeError, TypeError):
                    logger.debug(f"Non-JSON frame ignored: {str(raw)[:100]}")
                    continue
                if isinstance(data, dict):
                    yield data
        except ConnectionClosed as e:
            raise TransportError(f"stream closed: code={e.code} reason={e.reason}") from e
        except (WebSocketException, OSError) as e:
            raise TransportError(f"stream error: {type(e).__name__}: {e}") from e

        # Server closed cleanly; still a disconnect from our point of view
        raise TransportError("stream closed by server")

    async def close(self):
        try:
            await self._ws.close()
        except (WebSocketException, OSError) as e:
            logger.debug(f"Error closing stream: {e}")


class LedgerClient:
    """
    Async client for the XRPL websocket API.

    Handles:
    - Opening the ledger stream subscription
    - Fetching the transactions of a ledger range
    - Request/response correlation by id
    """

    def __init__(
        self,
        url: str = None,
        request_timeout: float = None,
    ):
        self.url = url or config.xrpl_ws_url
        self.request_timeout = request_timeout or config.ledger_request_timeout_sec
        self._ids = itertools.count(1)

    async def _connect(self):
        try:
            return await websockets.connect(
                self.url,
                ping_interval=config.ws_ping_interval_sec,
                ping_timeout=config.ws_ping_timeout_sec,
                close_timeout=10,
                max_size=config.ws_max_message_bytes,
            )
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"connect to {self.url} failed: {type(e).__name__}: {e}") from e

    async def _request(self, ws, payload: dict) -> dict:
        """
        Send one command and wait for the response carrying the same id.

        Frames with other ids (or stream events) are skipped.
        """
        request_id = next(self._ids)
        message = dict(payload, id=request_id)
        await ws.send(json.dumps(message))

        async def _wait_for_response() -> dict:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except (json.JSONDecodeError, TypeError):
                    continue
                if isinstance(data, dict) and data.get("id") == request_id:
                    return data
            raise TransportError(f"connection closed before response to {payload.get('command')}")

        return await asyncio.wait_for(_wait_for_response(), timeout=self.request_timeout)

    # -------------------------------------------------------------------------
    # Public Methods
    # -------------------------------------------------------------------------

    async def open_ledger_stream(self) -> LedgerStream:
        """
        Connect and subscribe to ledger-closed notifications.

        Returns:
            LedgerStream yielding raw messages

        Raises:
            TransportError: if the connection or subscription fails
        """
        ws = await self._connect()
        try:
            response = await self._request(ws, {"command": "subscribe", "streams": ["ledger"]})
        except (ConnectionClosed, WebSocketException, OSError, asyncio.TimeoutError) as e:
            await ws.close()
            raise TransportError(f"subscribe failed: {type(e).__name__}: {e}") from e
        except TransportError:
            await ws.close()
            raise

        if response.get("status") == "error":
            await ws.close()
            raise TransportError(
                f"subscribe rejected: {response.get('error_message') or response.get('error')}"
            )

        logger.info(f"Subscribed to ledger stream at {self.url}")
        return LedgerStream(ws, self.url)

    async def fetch_transactions(self, start_ledger: int, end_ledger: int) -> List[dict]:
        """
        Request the transactions for ledgers start_ledger..end_ledger.

        Sends tx_history with start/end. Public rippled nodes treat "start"
        as an offset into recent history, ignore "end" and cap the reply at
        20 transactions, so a busy or wide range can come back incomplete.
        Callers filter by ledger_index and must not assume full coverage.

        Args:
            start_ledger: First ledger index to include
            end_ledger: Last ledger index to include

        Returns:
            List of raw transaction dicts

        Raises:
            ScanFailure: on any transport or node error
        """
        payload = {"command": "tx_history", "start": start_ledger, "end": end_ledger}

        try:
            ws = await self._connect()
        except TransportError as e:
            raise ScanFailure(start_ledger - 1, end_ledger, str(e)) from e

        try:
            response = await self._request(ws, payload)
        except asyncio.TimeoutError as e:
            raise ScanFailure(start_ledger - 1, end_ledger, "request timed out") from e
        except (ConnectionClosed, WebSocketException, OSError, TransportError) as e:
            raise ScanFailure(start_ledger - 1, end_ledger, f"{type(e).__name__}: {e}") from e
        finally:
            try:
                await ws.close()
            except (WebSocketException, OSError) as e:
                logger.debug(f"Error closing request connection: {e}")

        return self._parse_transactions(response, start_ledger, end_ledger)

    # -------------------------------------------------------------------------
    # Private Helpers
    # -------------------------------------------------------------------------

    def _parse_transactions(self, response: dict, start_ledger: int, end_ledger: int) -> List[dict]:
        if response.get("status") == "error" or "error" in response:
            reason = response.get("error_message") or response.get("error") or "unknown error"
            raise ScanFailure(start_ledger - 1, end_ledger, f"node error: {reason}")

        result: Optional[dict] = response.get("result")
        if not isinstance(result, dict):
            result = response

        transactions = result.get("transactions")
        if transactions is None:
            return []
        if not isinstance(transactions, list):
            raise ScanFailure(start_ledger - 1, end_ledger, "malformed transactions field")

        return [tx for tx in transactions if isinstance(tx, dict)]
