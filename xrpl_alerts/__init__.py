"""
XRPL Token Alert Bot

Watches the XRP Ledger for new trust lines and alerts Telegram subscribers
about tokens that have not been seen before.
"""

__version__ = "1.0.0"
