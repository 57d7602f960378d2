"""
Shared Data Models
==================

This package contains dataclasses used across the project.
"""

from .ledger import CandidateTransaction, LedgerCursor, ScanResult
from .token import MarketData, TokenDescriptor, decode_currency

__all__ = [
    "CandidateTransaction",
    "LedgerCursor",
    "ScanResult",
    "MarketData",
    "TokenDescriptor",
    "decode_currency",
]
