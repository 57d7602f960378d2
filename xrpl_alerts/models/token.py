"""
Token Models
============

Dataclasses for resolved tokens and their market data.
"""

import string
from dataclasses import dataclass
from typing import Optional

_PRINTABLE = set(string.printable) - set("\t\n\r\x0b\x0c")


def decode_currency(code: str) -> str:
    """
    Decode an XRPL currency code for display.

    Standard codes are three characters and returned as-is. Non-standard
    codes are 40 hex characters; when the bytes are printable ASCII
    (ignoring trailing NUL padding) the text is returned, otherwise the
    original hex code.

    Example: "534F4C4F00000000000000000000000000000000" -> "SOLO"
    """
    if len(code) != 40:
        return code
    try:
        raw = bytes.fromhex(code)
    except ValueError:
        return code

    text = raw.rstrip(b"\x00")
    if not text:
        return code
    try:
        decoded = text.decode("ascii")
    except UnicodeDecodeError:
        return code
    if not all(ch in _PRINTABLE for ch in decoded):
        return code
    return decoded


@dataclass
class MarketData:
    """Market attributes from the market-data collaborator. All optional."""
    name: Optional[str] = None
    symbol: Optional[str] = None
    supply: Optional[float] = None
    liquidity: Optional[float] = None  # USD
    price_usd: Optional[float] = None
    pair_url: Optional[str] = None


@dataclass
class TokenDescriptor:
    """Classifier output for one (issuer, currency) pair."""
    issuer: str
    currency: str
    is_new: bool
    ledger_index: Optional[int] = None
    name: Optional[str] = None
    symbol: Optional[str] = None
    supply: Optional[float] = None
    liquidity: Optional[float] = None
    price_usd: Optional[float] = None
    pair_url: Optional[str] = None

    @property
    def token_key(self) -> tuple:
        return (self.issuer, self.currency)

    @property
    def display_currency(self) -> str:
        return decode_currency(self.currency)

    def apply_market_data(self, market: Optional[MarketData]):
        """Copy whatever attributes the lookup produced."""
        if market is None:
            return
        self.name = market.name
        self.symbol = market.symbol
        self.supply = market.supply
        self.liquidity = market.liquidity
        self.price_usd = market.price_usd
        self.pair_url = market.pair_url
