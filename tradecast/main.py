"""
Tradecast - Main Entry Point
============================

Wires the record store, Telegram transport, lifecycle services and the
tick scheduler, then runs until SIGTERM/SIGINT.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from tradecast import __version__
from tradecast.automation.matcher import AutomationMatcher
from tradecast.copytrading.exchange import ExchangeClient
from tradecast.copytrading.service import CopyTradingService
from tradecast.core.config import Settings, settings
from tradecast.core.logging_config import LogMessages, get_logger, setup_logging
from tradecast.database import SqlRecordStore, close_database, init_database
from tradecast.database.store import RecordStore
from tradecast.notifications.delivery import DeliveryPipeline
from tradecast.notifications.renderer import TemplateRenderer
from tradecast.notifications.telegram import DisabledTransport, TelegramTransport
from tradecast.notifications.transport import Transport
from tradecast.risk.calculator import PositionSizer
from tradecast.scheduler.jobs import build_jobs
from tradecast.scheduler.scheduler import Scheduler
from tradecast.trading.ingestion import TradeIngestionService
from tradecast.trading.service import TradeLifecycleService

logger = get_logger("main")


class TradecastApp:
    """
    Application orchestrator.

    Store, transport and exchange can be injected; otherwise the SQL store
    and the Telegram transport are built from settings. Without an exchange
    client, copy trading and the wallet/P&L jobs are disabled.
    """

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        store: Optional[RecordStore] = None,
        transport: Optional[Transport] = None,
        exchange: Optional[ExchangeClient] = None,
    ):
        self.settings = app_settings or settings
        self.store = store
        self.transport = transport
        self.exchange = exchange

        self.matcher: Optional[AutomationMatcher] = None
        self.lifecycle: Optional[TradeLifecycleService] = None
        self.ingestion: Optional[TradeIngestionService] = None
        self.copy_trading: Optional[CopyTradingService] = None
        self.scheduler: Optional[Scheduler] = None

        self._owns_database = store is None
        self._shutdown_event = asyncio.Event()
        self._stopped = False

    async def initialize(self) -> None:
        """Initialize all components."""
        logger.info(LogMessages.SYSTEM_STARTED, version=__version__, env=self.settings.app_env.value)

        for warning in self.settings.validate_runtime_config():
            logger.warning("Configuration warning", warning=warning)

        if self.store is None:
            await init_database()
            self.store = SqlRecordStore()

        if self.transport is None:
            if self.settings.telegram_enabled and self.settings.telegram_bot_token:
                self.transport = TelegramTransport(self.settings)
            else:
                self.transport = DisabledTransport(self.settings.telegram_caption_limit)
        if hasattr(self.transport, "initialize"):
            await self.transport.initialize()

        pipeline = DeliveryPipeline(self.transport, self.store, self.settings.public_base_url)
        self.matcher = AutomationMatcher(self.store, TemplateRenderer(self.settings.timezone), pipeline)
        self.lifecycle = TradeLifecycleService(self.store, self.matcher)

        if self.exchange is not None:
            self.copy_trading = CopyTradingService(
                self.store,
                self.exchange,
                PositionSizer(self.settings),
                quote_currency=self.settings.quote_currency,
            )
        else:
            logger.warning("No exchange client configured, copy trading disabled")

        self.ingestion = TradeIngestionService(
            self.store, self.matcher, self.exchange, self.copy_trading
        )

        self.scheduler = Scheduler(
            build_jobs(self.settings, self.store, self.matcher, self.copy_trading),
            tick_seconds=self.settings.scheduler_tick_seconds,
        )

        logger.info("System initialization complete")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run the scheduler until shutdown is requested."""
        self.scheduler.start()
        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("Run loop cancelled")
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Gracefully shutdown the system."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Initiating shutdown...")
        self._shutdown_event.set()

        if self.scheduler is not None:
            await self.scheduler.stop()

        if self.transport is not None and hasattr(self.transport, "close"):
            await self.transport.close()

        if self._owns_database:
            await close_database()

        logger.info(LogMessages.SYSTEM_STOPPED)


async def main() -> None:
    """Main entry point."""
    log_file = Path(settings.log_file) if settings.log_file else None
    setup_logging(log_file=log_file, json_format=settings.is_production)
    app = TradecastApp()

    # Setup signal handlers for graceful shutdown (Unix only)
    if sys.platform != "win32":
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info("Received signal", signal=sig.name)
            app.request_shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        await app.initialize()
        await app.run()
    except Exception as e:
        logger.exception("Fatal error", error=str(e))
        sys.exit(1)
    finally:
        await app.shutdown()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
