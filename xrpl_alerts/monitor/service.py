"""
Alert Bot Service
=================

Wires the pipeline together and runs it:

- Ledger stream connector (drives scan -> classify -> dispatch)
- Telegram command polling (/start, /stop, /status)
- Daily membership reverification

All three run as tasks on one event loop and share only the subscriber
registry. The service runs until SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
from typing import Optional

from ..api.dexscreener import MarketDataClient
from ..api.telegram import TelegramClient
from ..api.xrpl import LedgerClient
from ..config import Config, config as default_config
from ..db.state_db import StateDB
from .classifier import TokenClassifier
from .commands import CommandHandler
from .connector import LedgerStreamConnector
from .dispatcher import AlertDispatcher
from .registry import SubscriberRegistry
from .scanner import LedgerRangeScanner

logger = logging.getLogger(__name__)


class AlertBotService:
    """
    XRPL new-token alert service.

    Args:
        cfg: Configuration (default: global config)
        dry_run: Log alerts instead of sending them; no command polling
        persist: Keep subscribers and seen tokens in SQLite
    """

    def __init__(
        self,
        cfg: Config = None,
        dry_run: bool = False,
        persist: bool = True,
        ledger_client: Optional[LedgerClient] = None,
        market_data: Optional[MarketDataClient] = None,
        telegram: Optional[TelegramClient] = None,
        store: Optional[StateDB] = None,
    ):
        self.config = cfg or default_config
        self.dry_run = dry_run

        if store is None and persist and self.config.state_db_path is not None:
            store = StateDB(self.config.state_db_path)
        self.store = store

        self.ledger_client = ledger_client or LedgerClient(url=self.config.xrpl_ws_url)
        self.market_data = market_data or MarketDataClient(base_url=self.config.dexscreener_url)
        self.telegram = telegram or TelegramClient(
            bot_token=self.config.telegram_bot_token,
            channel_id=self.config.required_channel_id,
            dry_run=dry_run,
            timeout=self.config.send_timeout_sec,
        )

        self.registry = SubscriberRegistry(
            oracle=self.telegram,
            notifier=self.telegram,
            store=self.store,
            channel_url=self.config.required_channel_url,
        )
        self.classifier = TokenClassifier(
            self.market_data,
            store=self.store,
            max_concurrent=self.config.max_concurrent_lookups,
        )
        self.dispatcher = AlertDispatcher(
            self.registry,
            self.telegram,
            max_concurrent=self.config.max_concurrent_sends,
            send_timeout=self.config.send_timeout_sec,
            max_message_length=self.config.max_message_length,
        )
        self.scanner = LedgerRangeScanner(
            self.ledger_client,
            self.classifier,
            self.dispatcher,
            trust_line_types=self.config.trust_line_types,
        )
        self.connector = LedgerStreamConnector(
            self.ledger_client,
            self.scanner,
            base_delay=self.config.reconnect_base_sec,
            max_delay=self.config.reconnect_max_sec,
        )
        self.commands = CommandHandler(
            self.telegram,
            self.registry,
            channel_url=self.config.required_channel_url,
        )

        self._stop_event: Optional[asyncio.Event] = None

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop):
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # Windows: fall back to KeyboardInterrupt
                logger.debug(f"Signal handler for {sig.name} not installed")

    async def run_async(self):
        """Run all service tasks until stop() is called."""
        self._stop_event = asyncio.Event()
        self._install_signal_handlers(asyncio.get_running_loop())

        logger.info("=" * 60)
        logger.info("XRPL TOKEN ALERT BOT STARTING")
        logger.info("=" * 60)
        logger.info(f"Ledger node: {self.ledger_client.url}")
        logger.info(f"Channel: {self.config.required_channel_id or '(none)'}")
        logger.info(f"Persistence: {self.store.db_path if self.store else 'disabled'}")
        logger.info(f"Dry run: {self.dry_run}")

        self.registry.load()
        self.classifier.load()

        tasks = [
            asyncio.create_task(self.connector.run(self._stop_event), name="ledger-stream"),
            asyncio.create_task(
                self.registry.run_reverification(self.config.reverify_interval_sec, self._stop_event),
                name="reverify",
            ),
        ]
        poller = None
        if not self.dry_run:
            poller = asyncio.create_task(self.commands.run(self._stop_event), name="commands")
            tasks.append(poller)

        try:
            await self._stop_event.wait()
        finally:
            self.connector.stop()
            if poller is not None:
                # Don't wait out a pending long poll
                poller.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for task, result in zip(tasks, results):
                if isinstance(result, Exception):
                    logger.error(f"Task {task.get_name()} ended with error: {result}")

            await self.market_data.close()
            await self.telegram.close()

            logger.info(f"Final stats: {self.connector.stats}")
            logger.info("XRPL TOKEN ALERT BOT STOPPED")

    def run(self):
        """Blocking entry point."""
        asyncio.run(self.run_async())

    def stop(self):
        """Stop the service gracefully."""
        logger.info("Shutdown signal received, stopping...")
        if self._stop_event is not None:
            self._stop_event.set()
        self.connector.stop()
