"""
DexScreener API Client

Single responsibility: look up market data for an XRPL token.

Lookups are best-effort enrichment. Every failure is logged and returned as
None so classification never waits on, or fails because of, this API.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..config import config
from ..models import MarketData

logger = logging.getLogger(__name__)


def _to_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MarketDataClient:
    """
    Async client for the DexScreener token endpoint.

    Token ids on DexScreener's XRPL chain are "<currency>.<issuer>".
    """

    def __init__(self, base_url: str = None, timeout: float = None):
        self.base_url = (base_url or config.dexscreener_url).rstrip("/")
        self.timeout = timeout or config.market_request_timeout_sec
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Accept": "application/json"},
            )

    async def close(self):
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def lookup(self, issuer: str, currency: str) -> Optional[MarketData]:
        """
        Look up market data for a token.

        Args:
            issuer: Issuer account (r...)
            currency: Raw currency code (3-char or 40-hex)

        Returns:
            MarketData if the token has at least one pair, None otherwise
        """
        await self._ensure_session()
        url = f"{self.base_url}/{currency}.{issuer}"

        try:
            async with self._session.get(url) as response:
                if response.status == 404:
                    return None
                if response.status != 200:
                    logger.warning(f"DexScreener error {response.status} for {currency}.{issuer}")
                    return None
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"DexScreener lookup failed for {currency}.{issuer}: {type(e).__name__}")
            return None
        except ValueError:
            logger.warning(f"DexScreener returned invalid JSON for {currency}.{issuer}")
            return None

        return self._parse_pairs(data)

    def _parse_pairs(self, data) -> Optional[MarketData]:
        """Take token attributes from the first (most relevant) pair."""
        if not isinstance(data, dict):
            return None
        pairs = data.get("pairs") or []
        if not pairs or not isinstance(pairs[0], dict):
            return None

        main_pair = pairs[0]
        token = main_pair.get("baseToken") or {}
        liquidity = main_pair.get("liquidity") or {}

        return MarketData(
            name=token.get("name") or None,
            symbol=token.get("symbol") or None,
            supply=_to_float(token.get("totalSupply")),
            liquidity=_to_float(liquidity.get("usd")),
            price_usd=_to_float(main_pair.get("priceUsd")),
            pair_url=main_pair.get("url") or None,
        )
