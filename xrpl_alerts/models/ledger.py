"""
Ledger Models
=============

Dataclasses for ledger state and transactions from the XRPL websocket API.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


class LedgerCursor:
    """
    Last fully processed ledger index.

    Starts unset. The first observed index becomes the baseline; after that
    the cursor only moves forward.
    """

    def __init__(self):
        self._index: Optional[int] = None

    @property
    def index(self) -> Optional[int]:
        return self._index

    @property
    def is_set(self) -> bool:
        return self._index is not None

    def set_baseline(self, ledger_index: int):
        if self._index is not None:
            raise ValueError(f"cursor already set to {self._index}")
        self._index = ledger_index

    def advance(self, ledger_index: int):
        if self._index is None:
            raise ValueError("cursor has no baseline")
        if ledger_index < self._index:
            raise ValueError(f"cursor cannot move back from {self._index} to {ledger_index}")
        self._index = ledger_index

    def reset(self):
        """Drop the baseline (manual reset only)."""
        self._index = None

    def __repr__(self):
        return f"LedgerCursor(index={self._index})"


@dataclass(frozen=True)
class CandidateTransaction:
    """A trust line transaction that may announce a new token."""
    issuer: str
    currency: str
    ledger_index: Optional[int]
    tx_hash: Optional[str] = None
    limit: Optional[str] = None

    @property
    def token_key(self) -> tuple:
        """(issuer, currency) identity used for novelty."""
        return (self.issuer, self.currency)

    @classmethod
    def from_tx(cls, tx: dict) -> Optional["CandidateTransaction"]:
        """
        Build a candidate from a raw transaction dict.

        Accepts both the flat form and the {"tx": {...}} wrapper that some
        node responses use. Returns None when the transaction has no
        issued-currency LimitAmount.
        """
        body = tx.get("tx") if isinstance(tx.get("tx"), dict) else tx

        limit_amount = body.get("LimitAmount")
        if not isinstance(limit_amount, dict):
            return None

        issuer = limit_amount.get("issuer")
        currency = limit_amount.get("currency")
        if not issuer or not currency:
            return None

        ledger_index = body.get("ledger_index", tx.get("ledger_index"))
        try:
            ledger_index = int(ledger_index) if ledger_index is not None else None
        except (TypeError, ValueError):
            logger.debug(f"Unparseable ledger_index {ledger_index!r} on {body.get('hash')}")
            ledger_index = None

        return cls(
            issuer=issuer,
            currency=currency,
            ledger_index=ledger_index,
            tx_hash=body.get("hash", tx.get("hash")),
            limit=limit_amount.get("value"),
        )


def transaction_type(tx: dict) -> Optional[str]:
    """TransactionType of a raw transaction, unwrapping {"tx": {...}}."""
    body = tx.get("tx") if isinstance(tx.get("tx"), dict) else tx
    return body.get("TransactionType")


@dataclass
class ScanResult:
    """Outcome of one range scan."""
    start_ledger: int
    end_ledger: int
    transactions: int = 0
    candidates: int = 0
    new_tokens: int = 0
    alerts_sent: int = 0
    failed: bool = False

    @property
    def width(self) -> int:
        return self.end_ledger - self.start_ledger
