#!/usr/bin/env python3
"""
Bot State Management CLI
========================

Inspect and maintain the alert bot's SQLite state.

Commands:
    stats           Show row counts
    subscribers     List subscribed chat ids
    forget          Forget one alerted token (next sighting alerts again)
    clear-tokens    Forget every alerted token
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from xrpl_alerts.config import config
from xrpl_alerts.db.state_db import StateDB


def cmd_stats(args):
    """Show database statistics."""
    db = StateDB(args.db_path)
    stats = db.get_stats()

    print("\n=== Alert Bot State ===\n")
    print(f"Database:     {db.db_path}")
    print(f"Subscribers:  {stats.subscribers:,}")
    print(f"Seen tokens:  {stats.seen_tokens:,}")


def cmd_subscribers(args):
    db = StateDB(args.db_path)
    subscribers = sorted(db.load_subscribers())
    for chat_id in subscribers:
        print(chat_id)
    print(f"\n{len(subscribers)} subscribers")


def cmd_forget(args):
    """Forget one token."""
    db = StateDB(args.db_path)
    if (args.issuer, args.currency) not in db.load_seen_tokens():
        print(f"Token not found: {args.currency}.{args.issuer}")
        return 1
    db.remove_seen_token(args.issuer, args.currency)
    print(f"Forgot {args.currency}.{args.issuer}")


def cmd_clear_tokens(args):
    """Clear all seen tokens."""
    if not args.confirm:
        print("This will forget every alerted token; each will alert again on its next trust line.")
        print("Run with --confirm to proceed.")
        return 1

    db = StateDB(args.db_path)
    count = db.get_stats().seen_tokens
    db.clear_seen_tokens()
    print(f"Cleared {count} seen tokens")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Manage the alert bot state database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=config.state_db_path,
        help=f"Path to database file (default: {config.state_db_path})"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("stats", help="Show row counts")
    subparsers.add_parser("subscribers", help="List subscribed chat ids")

    forget_parser = subparsers.add_parser("forget", help="Forget one alerted token")
    forget_parser.add_argument("issuer", help="Issuer account (r...)")
    forget_parser.add_argument("currency", help="Raw currency code")

    clear_parser = subparsers.add_parser("clear-tokens", help="Forget every alerted token")
    clear_parser.add_argument("--confirm", action="store_true", help="Confirm deletion")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.db_path is None:
        print("Persistence is disabled (STATE_DB_PATH is empty); pass --db-path.")
        return 1

    commands = {
        "stats": cmd_stats,
        "subscribers": cmd_subscribers,
        "forget": cmd_forget,
        "clear-tokens": cmd_clear_tokens,
    }

    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
