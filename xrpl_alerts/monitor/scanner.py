"""
Ledger Range Scanner

Fetches the transactions closed since the last processed ledger, keeps the
trust line setups, and pushes them through classification and dispatch.

The scanner never touches the cursor. A failed fetch is logged and reported
in the ScanResult; it is never raised to the caller.
"""

import logging
from typing import TYPE_CHECKING, Iterable, List

from ..config import config
from ..errors import TransportError
from ..models import CandidateTransaction, ScanResult
from ..models.ledger import transaction_type

if TYPE_CHECKING:
    from ..api.xrpl import LedgerClient
    from .classifier import TokenClassifier
    from .dispatcher import AlertDispatcher

logger = logging.getLogger(__name__)


class LedgerRangeScanner:
    """
    Scans (start_ledger, end_ledger] for new tokens.

    Pipeline per scan:
    1. Fetch transactions for the range (one request)
    2. Keep trust line transactions inside the range
    3. Classify candidates (concurrent, bounded)
    4. Dispatch each new token, one alert at a time
    """

    def __init__(
        self,
        ledger_client: "LedgerClient",
        classifier: "TokenClassifier",
        dispatcher: "AlertDispatcher",
        trust_line_types: Iterable[str] = None,
    ):
        self.ledger_client = ledger_client
        self.classifier = classifier
        self.dispatcher = dispatcher
        self.trust_line_types = set(trust_line_types or config.trust_line_types)

    def filter_candidates(
        self,
        transactions: List[dict],
        start_ledger: int,
        end_ledger: int,
    ) -> List[CandidateTransaction]:
        """
        Keep transactions that establish a trust line inside the range.

        Transactions without a ledger index are trusted to belong to the
        requested range; ones outside (start_ledger, end_ledger] are dropped so
        consecutive scans never overlap.
        """
        candidates = []
        for tx in transactions:
            if transaction_type(tx) not in self.trust_line_types:
                continue

            candidate = CandidateTransaction.from_tx(tx)
            if candidate is None:
                logger.debug(f"Trust line without issued currency skipped: {tx.get('hash')}")
                continue

            if candidate.ledger_index is not None and not (
                start_ledger < candidate.ledger_index <= end_ledger
            ):
                logger.debug(
                    f"Transaction {candidate.tx_hash} in ledger {candidate.ledger_index} "
                    f"outside ({start_ledger}, {end_ledger}]"
                )
                continue

            candidates.append(candidate)
        return candidates

    async def scan(self, start_ledger: int, end_ledger: int) -> ScanResult:
        """
        Scan ledgers in (start_ledger, end_ledger].

        Args:
            start_ledger: Last processed ledger (exclusive)
            end_ledger: Newly closed ledger (inclusive)

        Returns:
            ScanResult; failed=True if the range could not be fetched
        """
        result = ScanResult(start_ledger=start_ledger, end_ledger=end_ledger)
        if end_ledger <= start_ledger:
            return result

        if result.width > 1:
            logger.info(f"Scanning wide range ({start_ledger}, {end_ledger}]: {result.width} ledgers")

        try:
            transactions = await self.ledger_client.fetch_transactions(start_ledger + 1, end_ledger)
        except TransportError as e:
            logger.error(f"Range fetch failed, skipping ({start_ledger}, {end_ledger}]: {e}")
            result.failed = True
            return result
        except Exception as e:
            logger.error(f"Unexpected error fetching ({start_ledger}, {end_ledger}]: {e}")
            result.failed = True
            return result

        result.transactions = len(transactions)
        candidates = self.filter_candidates(transactions, start_ledger, end_ledger)
        result.candidates = len(candidates)
        if not candidates:
            return result

        new_tokens = await self.classifier.classify_batch(candidates)
        result.new_tokens = len(new_tokens)

        for token in new_tokens:
            try:
                report = await self.dispatcher.dispatch(token)
            except Exception as e:
                logger.error(f"Dispatch for {token.currency}.{token.issuer} failed: {e}")
                continue
            result.alerts_sent += report.delivered

        logger.debug(
            f"Scanned ({start_ledger}, {end_ledger}]: {result.transactions} txs, "
            f"{result.candidates} trust lines, {result.new_tokens} new tokens"
        )
        return result
