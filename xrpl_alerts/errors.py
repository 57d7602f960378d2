"""
Error Types
===========

Exceptions raised inside the alert pipeline.

Only ConfigError stops the process, and only at startup. Everything else is
caught at the component boundary where it happens and logged.
"""


class AlertBotError(Exception):
    """Base class for all alert bot errors."""


class ConfigError(AlertBotError):
    """Required configuration is missing or invalid."""


class TransportError(AlertBotError):
    """Connection dropped, timed out, or returned an unusable frame."""


class ScanFailure(TransportError):
    """Fetching the transactions of a ledger range failed."""

    def __init__(self, start_ledger: int, end_ledger: int, reason: str):
        self.start_ledger = start_ledger
        self.end_ledger = end_ledger
        self.reason = reason
        super().__init__(f"scan of ({start_ledger}, {end_ledger}] failed: {reason}")


class MembershipCheckError(TransportError):
    """
    The membership oracle could not answer.

    Distinct from a definitive "not a member" result, which is returned as
    False. Callers must keep the subscriber when they see this.
    """


class ClassificationFailure(AlertBotError):
    """A single candidate could not be classified."""
