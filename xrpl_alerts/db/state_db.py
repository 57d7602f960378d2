"""
State Database

Persists subscribers and already-alerted tokens across restarts.

The ledger cursor is not stored: every start takes a fresh
baseline from the first closed ledger it sees.
"""

import sqlite3
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Set, Tuple

logger = logging.getLogger(__name__)


@dataclass
class StateStats:
    """Row counts of the state database."""
    subscribers: int
    seen_tokens: int


class StateDB:
    """
    SQLite store for subscribers and seen (issuer, currency) pairs.

    Writes go straight through; callers keep their own in-memory copy and
    only load from here at startup.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS subscribers (
                    chat_id INTEGER PRIMARY KEY,
                    subscribed_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS seen_tokens (
                    issuer TEXT NOT NULL,
                    currency TEXT NOT NULL,
                    first_seen TEXT NOT NULL,
                    ledger_index INTEGER,
                    PRIMARY KEY (issuer, currency)
                )
            """)
            conn.commit()

    # -------------------------------------------------------------------------
    # Subscribers
    # -------------------------------------------------------------------------

    def add_subscriber(self, chat_id: int) -> bool:
        """
        Record a subscriber.

        Returns:
            True if the subscriber was new
        """
        now = datetime.now(timezone.utc).isoformat()
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO subscribers (chat_id, subscribed_at) VALUES (?, ?)",
                (chat_id, now)
            )
            conn.commit()
            return cursor.rowcount > 0

    def remove_subscriber(self, chat_id: int) -> bool:
        """
        Delete a subscriber.

        Returns:
            True if a row was removed
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM subscribers WHERE chat_id = ?", (chat_id,))
            conn.commit()
            return cursor.rowcount > 0

    def load_subscribers(self) -> Set[int]:
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute("SELECT chat_id FROM subscribers").fetchall()
            return {row[0] for row in rows}

    # -------------------------------------------------------------------------
    # Seen Tokens
    # -------------------------------------------------------------------------

    def add_seen_token(self, issuer: str, currency: str, ledger_index: Optional[int] = None) -> bool:
        """
        Record an alerted (issuer, currency) pair.

        Returns:
            True if the pair was not recorded before
        """
        now = datetime.now(timezone.utc).isoformat()
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("""
                INSERT OR IGNORE INTO seen_tokens (issuer, currency, first_seen, ledger_index)
                VALUES (?, ?, ?, ?)
            """, (issuer, currency, now, ledger_index))
            conn.commit()
            return cursor.rowcount > 0

    def remove_seen_token(self, issuer: str, currency: str):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "DELETE FROM seen_tokens WHERE issuer = ? AND currency = ?",
                (issuer, currency)
            )
            conn.commit()

    def load_seen_tokens(self) -> Set[Tuple[str, str]]:
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute("SELECT issuer, currency FROM seen_tokens").fetchall()
            return {(row[0], row[1]) for row in rows}

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def get_stats(self) -> StateStats:
        """Get row counts."""
        with sqlite3.connect(self.db_path) as conn:
            subscribers = conn.execute("SELECT COUNT(*) FROM subscribers").fetchone()[0]
            seen = conn.execute("SELECT COUNT(*) FROM seen_tokens").fetchone()[0]
        return StateStats(subscribers=subscribers, seen_tokens=seen)

    def clear_seen_tokens(self):
        """Forget every alerted token (next sighting alerts again)."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM seen_tokens")
            conn.commit()
        logger.info("Cleared seen tokens")
