#!/usr/bin/env python3
"""
XRPL Token Alert Bot - CLI Entry Point
======================================

Runs the continuous monitoring service for new XRPL tokens.

Architecture:
    - One websocket subscription to closed ledgers
    - Each closed ledger triggers a scan of the range since the last one
    - New trust lines -> novelty check -> DexScreener enrichment -> alert
    - Subscribers must be members of the required Telegram channel
    - Membership re-checked once per day

Usage:
    # Start bot
    python scripts/run_bot.py

    # Dry run (alerts logged, nothing sent to Telegram)
    python scripts/run_bot.py --dry-run

    # Test Telegram configuration
    python scripts/run_bot.py --test-telegram CHAT_ID
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from xrpl_alerts.api.telegram import send_test_message
from xrpl_alerts.config import config
from xrpl_alerts.errors import ConfigError
from xrpl_alerts.monitor import AlertBotService


def setup_logging(log_level: str = config.log_level, log_file: str = config.log_file):
    """Configure logging for the bot service."""
    log_path = Path(log_file)
    if not log_path.is_absolute():
        log_path = project_root / log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Create date-stamped log file (e.g., logs/alertbot_2026-01-18.log)
    date_str = datetime.now().strftime("%Y-%m-%d")
    dated_log_file = log_path.parent / f"{log_path.stem}_{date_str}{log_path.suffix}"

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # File handler (date-stamped)
    file_handler = logging.FileHandler(dated_log_file)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from HTTP/websocket libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)

    root_logger.info(f"Logging to: {dated_log_file}")


def main():
    parser = argparse.ArgumentParser(
        description='XRPL Token Alert Bot',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  TELEGRAM_BOT_TOKEN    Bot token (required unless --dry-run)
  REQUIRED_CHANNEL_ID   Channel subscribers must belong to
  REQUIRED_CHANNEL_URL  Join link shown to non-members
  XRPL_WS_URL           Ledger node (default: wss://xrplcluster.com/)
  STATE_DB_PATH         SQLite state file ("" disables persistence)

Examples:
  python scripts/run_bot.py                         # Start bot
  python scripts/run_bot.py --dry-run               # Log alerts only
  python scripts/run_bot.py --test-telegram 12345   # Test Telegram setup
        """
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Log alerts instead of sending them; no command polling'
    )

    parser.add_argument(
        '--test-telegram',
        metavar='CHAT_ID',
        help='Send a test message to CHAT_ID and exit'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=config.log_level.upper(),
        help=f'Log level (default: {config.log_level.upper()})'
    )

    parser.add_argument(
        '--no-persist',
        action='store_true',
        help='Keep subscribers and seen tokens in memory only'
    )

    parser.add_argument(
        '--ws-url',
        default=None,
        help=f'XRPL websocket URL (default: {config.xrpl_ws_url})'
    )

    args = parser.parse_args()

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    # Test Telegram mode
    if args.test_telegram:
        if not config.telegram_bot_token:
            print("TELEGRAM_BOT_TOKEN not set.")
            sys.exit(1)
        print("Testing Telegram configuration...")
        ok = send_test_message(
            config.telegram_bot_token,
            args.test_telegram,
            "Test alert - XRPL Token Alert Bot configuration verified."
        )
        if ok:
            print("Test message sent successfully!")
            sys.exit(0)
        print("Failed to send test message. Check TELEGRAM_BOT_TOKEN and the chat id.")
        sys.exit(1)

    if args.ws_url:
        config.xrpl_ws_url = args.ws_url

    try:
        config.validate(dry_run=args.dry_run)
    except ConfigError as e:
        print(f"\nConfiguration error: {e}")
        sys.exit(1)

    # Print configuration
    print("\n" + "=" * 60)
    print("XRPL TOKEN ALERT BOT")
    print("=" * 60)
    print(f"Ledger node:    {config.xrpl_ws_url}")
    print(f"Channel:        {config.required_channel_id or '(dry run)'}")
    print(f"Channel URL:    {config.required_channel_url}")
    print(f"Reverify every: {config.reverify_interval_hours:g}h")
    print(f"Persistence:    {'off' if args.no_persist or not config.state_db_path else config.state_db_path}")
    print(f"Dry run:        {args.dry_run}")
    print(f"Log level:      {args.log_level}")
    print("=" * 60)

    try:
        service = AlertBotService(
            cfg=config,
            dry_run=args.dry_run,
            persist=not args.no_persist,
        )

        print("\nStarting alert bot...")
        print("Press Ctrl+C to stop\n")

        service.run()

    except KeyboardInterrupt:
        print("\n\nBot stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Alert bot error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
