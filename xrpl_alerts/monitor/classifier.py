"""
Token Classifier
================

Decides whether a trust line candidate announces a token we have not alerted
on yet, and enriches it with market data.

Novelty is keyed on (issuer, currency). A pair is claimed before any await,
so concurrent candidates for the same pair produce exactly one new token.
"""

import asyncio
import logging
import re
from typing import TYPE_CHECKING, Iterable, List, Optional, Set, Tuple

from ..config import config
from ..errors import ClassificationFailure
from ..models import CandidateTransaction, MarketData, TokenDescriptor

if TYPE_CHECKING:
    from ..api.dexscreener import MarketDataClient
    from ..db.state_db import StateDB

logger = logging.getLogger(__name__)

# Classic XRPL address (base58, ripple alphabet)
ADDRESS_PATTERN = re.compile(r"^r[1-9A-HJ-NP-Za-km-z]{24,34}$")

# Currency code: 3 chars (not "XRP") or 40 hex chars
CURRENCY_PATTERN = re.compile(r"^([A-Za-z0-9?!@#$%^&*<>(){}\[\]|]{3}|[0-9A-Fa-f]{40})$")


class TokenClassifier:
    """
    Classifies candidates and tracks which tokens have been seen.

    Args:
        market_data: Client with `async lookup(issuer, currency) -> MarketData | None`
        store: Optional StateDB so seen tokens survive restarts
        max_concurrent: Max market-data lookups in flight
    """

    def __init__(
        self,
        market_data: "MarketDataClient",
        store: Optional["StateDB"] = None,
        max_concurrent: int = None,
    ):
        self.market_data = market_data
        self.store = store
        self.max_concurrent = max_concurrent or config.max_concurrent_lookups
        self._seen: Set[Tuple[str, str]] = set()
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

    def load(self) -> int:
        """Load persisted seen tokens. Returns the number loaded."""
        if self.store is None:
            return 0
        self._seen = self.store.load_seen_tokens()
        logger.info(f"Loaded {len(self._seen)} seen tokens")
        return len(self._seen)

    def is_seen(self, issuer: str, currency: str) -> bool:
        return (issuer, currency) in self._seen

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def _validate(self, candidate: CandidateTransaction):
        if not ADDRESS_PATTERN.match(candidate.issuer):
            raise ClassificationFailure(f"invalid issuer address {candidate.issuer!r}")
        if candidate.currency == "XRP" or not CURRENCY_PATTERN.match(candidate.currency):
            raise ClassificationFailure(f"invalid currency code {candidate.currency!r}")

    async def _lookup(self, issuer: str, currency: str) -> Optional[MarketData]:
        """Market lookup that never raises."""
        async with self._semaphore:
            try:
                return await self.market_data.lookup(issuer, currency)
            except Exception as e:
                logger.warning(f"Market lookup failed for {currency}.{issuer}: {type(e).__name__}: {e}")
                return None

    async def classify(self, candidate: CandidateTransaction) -> Optional[TokenDescriptor]:
        """
        Classify one candidate.

        Returns:
            TokenDescriptor (is_new True only the first time the pair is
            seen), or None if the candidate could not be classified
        """
        key = candidate.token_key
        if key in self._seen:
            return TokenDescriptor(
                issuer=candidate.issuer,
                currency=candidate.currency,
                is_new=False,
                ledger_index=candidate.ledger_index,
            )

        # Claim before the first await
        self._seen.add(key)
        try:
            self._validate(candidate)
            descriptor = TokenDescriptor(
                issuer=candidate.issuer,
                currency=candidate.currency,
                is_new=True,
                ledger_index=candidate.ledger_index,
            )
            descriptor.apply_market_data(await self._lookup(candidate.issuer, candidate.currency))
            if self.store is not None:
                self.store.add_seen_token(candidate.issuer, candidate.currency, candidate.ledger_index)
        except ClassificationFailure as e:
            self._seen.discard(key)
            logger.warning(f"Skipping candidate {candidate.tx_hash}: {e}")
            return None
        except Exception as e:
            self._seen.discard(key)
            logger.error(f"Classification of {candidate.currency}.{candidate.issuer} failed: {e}")
            return None

        logger.info(
            f"New token: {descriptor.display_currency} issued by {descriptor.issuer} "
            f"(ledger {descriptor.ledger_index})"
        )
        return descriptor

    async def classify_batch(self, candidates: Iterable[CandidateTransaction]) -> List[TokenDescriptor]:
        """
        Classify candidates concurrently.

        Returns:
            New-token descriptors only, in candidate order
        """
        candidates = list(candidates)
        if not candidates:
            return []

        results = await asyncio.gather(
            *(self.classify(c) for c in candidates), return_exceptions=True
        )

        new_tokens = []
        for candidate, result in zip(candidates, results):
            if isinstance(result, BaseException):
                logger.error(f"Classification of {candidate.tx_hash} raised: {result}")
                continue
            if result is not None and result.is_new:
                new_tokens.append(result)
        return new_tokens
