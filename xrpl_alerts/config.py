"""
Configuration for the XRPL Token Alert Bot

All settings in one place for easy tuning. Secrets and endpoints come from
the environment (a .env file in the project root is loaded if present).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigError

_project_root = Path(__file__).parent.parent
_env_path = _project_root / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}")


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class Config:
    """All configuration settings."""

    # -------------------------------------------------------------------------
    # Ledger Network
    # -------------------------------------------------------------------------
    xrpl_ws_url: str = field(
        default_factory=lambda: os.environ.get("XRPL_WS_URL", "wss://xrplcluster.com/")
    )

    # Transaction types that establish a trust line
    trust_line_types: List[str] = field(default_factory=lambda: ["TrustSet"])

    # Reconnect backoff: base * 2^(attempt-1), capped
    reconnect_base_sec: float = field(
        default_factory=lambda: _env_float("RECONNECT_BASE_SEC", 5.0)
    )
    reconnect_max_sec: float = field(
        default_factory=lambda: _env_float("RECONNECT_MAX_SEC", 300.0)
    )

    # Timeout for a single range request (wide catch-up ranges can be slow)
    ledger_request_timeout_sec: float = 60.0

    # Websocket keepalive
    ws_ping_interval_sec: Optional[float] = 20.0
    ws_ping_timeout_sec: Optional[float] = 20.0
    ws_max_message_bytes: int = 32 * 1024 * 1024

    # -------------------------------------------------------------------------
    # Market Data (DexScreener)
    # -------------------------------------------------------------------------
    dexscreener_url: str = field(
        default_factory=lambda: os.environ.get(
            "DEXSCREENER_URL", "https://api.dexscreener.com/latest/dex/tokens"
        )
    )
    market_request_timeout_sec: float = 10.0

    # Concurrent market-data lookups per scan
    max_concurrent_lookups: int = 5

    # -------------------------------------------------------------------------
    # Telegram
    # -------------------------------------------------------------------------
    telegram_api_url: str = "https://api.telegram.org"
    telegram_bot_token: str = field(
        default_factory=lambda: os.environ.get("TELEGRAM_BOT_TOKEN", "")
    )
    required_channel_id: str = field(
        default_factory=lambda: os.environ.get("REQUIRED_CHANNEL_ID", "")
    )
    required_channel_url: str = field(
        default_factory=lambda: os.environ.get(
            "REQUIRED_CHANNEL_URL", "https://t.me/NorthernLabs"
        )
    )

    # Concurrent sends per alert and per-request timeout
    max_concurrent_sends: int = 10
    send_timeout_sec: float = 10.0

    # Long-poll timeout for getUpdates (seconds, server side)
    poll_timeout_sec: int = 30
    poll_error_backoff_sec: float = 5.0

    # Telegram limit is 4096
    max_message_length: int = 4000

    # -------------------------------------------------------------------------
    # Subscriber Re-verification
    # -------------------------------------------------------------------------
    reverify_interval_hours: float = field(
        default_factory=lambda: _env_float("REVERIFY_INTERVAL_HOURS", 24.0)
    )

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------
    state_db_path: Optional[Path] = field(
        default_factory=lambda: _state_db_path_from_env()
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    log_file: str = field(
        default_factory=lambda: os.environ.get("LOG_FILE", "logs/alertbot.log")
    )

    @property
    def reverify_interval_sec(self) -> float:
        return self.reverify_interval_hours * 3600

    def validate(self, dry_run: bool = False):
        """
        Check required settings before the service starts.

        Args:
            dry_run: If True, the bot token is not required

        Raises:
            ConfigError: if a required value is missing
        """
        if not dry_run and not self.telegram_bot_token:
            raise ConfigError("TELEGRAM_BOT_TOKEN is required (or use --dry-run)")
        if not dry_run and not self.required_channel_id:
            raise ConfigError("REQUIRED_CHANNEL_ID is required (or use --dry-run)")
        if self.reconnect_base_sec <= 0 or self.reconnect_max_sec < self.reconnect_base_sec:
            raise ConfigError("reconnect backoff must satisfy 0 < base <= max")
        if self.max_concurrent_lookups < 1 or self.max_concurrent_sends < 1:
            raise ConfigError("concurrency limits must be at least 1")
        if self.reverify_interval_hours <= 0:
            raise ConfigError("REVERIFY_INTERVAL_HOURS must be positive")


def _state_db_path_from_env() -> Optional[Path]:
    """STATE_DB_PATH="" disables persistence."""
    value = os.environ.get("STATE_DB_PATH")
    if value is None:
        return _project_root / "data" / "alertbot.db"
    if not value.strip():
        return None
    return Path(value)


# Global config instance
config = Config()
