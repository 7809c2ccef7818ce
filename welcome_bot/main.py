"""Application entry point and bootstrap.

This module loads configuration, wires stores, services and the Matrix bot
together, and runs the bot until SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
import sys

from welcome_bot.config import BotConfig
from welcome_bot.matrix.bot import MatrixBotInterface, build_client
from welcome_bot.matrix.gateway import MautrixGateway
from welcome_bot.observability.error_log_file import setup_error_log_file
from welcome_bot.observability.redaction import RedactingFilter
from welcome_bot.services import (
    AttachmentLinker,
    CommandInterpreter,
    CommandParser,
    KeyedLockRegistry,
    LoggingService,
    OnboardingDispatcher,
    RoomClassifier,
    WelcomeTemplates,
)
from welcome_bot.stores import DedupStore, WelcomeStore

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging to stdout with token redaction."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for handler in logging.root.handlers:
        handler.addFilter(RedactingFilter())

    # Suppress verbose sync / HTTP logs
    logging.getLogger("mau").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


class Application:
    """Main application container.

    Manages all application components and their lifecycle.
    """

    def __init__(self, config: BotConfig) -> None:
        """Initialize the application with configuration.

        Args:
            config: Application configuration.
        """
        self.config = config
        self._shutdown_event = asyncio.Event()

        self.welcome_store: WelcomeStore | None = None
        self.dedup_store: DedupStore | None = None
        self.dispatcher: OnboardingDispatcher | None = None
        self.bot: MatrixBotInterface | None = None

    def setup(self) -> None:
        """Build stores, services and the bot interface."""
        config = self.config

        self.welcome_store = WelcomeStore(config.welcome_store_path)
        self.dedup_store = DedupStore(config.welcomed_store_path)

        client = build_client(config)
        gateway = MautrixGateway(client)

        classifier = RoomClassifier(
            gateway,
            target_prefix=config.target_room_prefix,
            target_exact_name=config.target_room_exact_name,
            admin_power_level=config.admin_power_level,
        )
        parser = CommandParser(config.command_prefix)
        linker = AttachmentLinker(gateway, gateway, self.welcome_store, config.command_prefix)
        interpreter = CommandInterpreter(
            gateway,
            classifier,
            self.welcome_store,
            linker,
            parser=parser,
            global_welcome=config.global_welcome,
            scope_locks=KeyedLockRegistry(),
        )
        self.dispatcher = OnboardingDispatcher(
            gateway=gateway,
            identity=gateway,
            classifier=classifier,
            welcome_store=self.welcome_store,
            dedup_store=self.dedup_store,
            interpreter=interpreter,
            logging_service=LoggingService(gateway, config.log_room_id),
            templates=WelcomeTemplates(
                title=config.welcome_title_template,
                body=config.welcome_body_template,
                cta=config.welcome_cta,
                unconfigured=config.unconfigured_dm_template,
            ),
            global_welcome=config.global_welcome,
            dm_encrypted=config.dm_encrypted,
            dedup_policy=config.dedup_policy,
        )
        self.bot = MatrixBotInterface(config, client, self.dispatcher)
        logger.info(
            "Application set up (global_welcome=%s, dedup_policy=%s)",
            config.global_welcome,
            config.dedup_policy,
        )

    async def run(self) -> None:
        """Start the bot and block until shutdown is requested."""
        if self.bot is None:
            self.setup()
        assert self.bot is not None

        self.install_signal_handlers()
        await self.bot.start()

        sync_waiter = asyncio.create_task(self.bot.wait())
        shutdown_waiter = asyncio.create_task(self._shutdown_event.wait())
        done, pending = await asyncio.wait(
            {sync_waiter, shutdown_waiter}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        for task in done:
            if task is sync_waiter and not task.cancelled() and task.exception() is not None:
                logger.error("Sync loop ended with error: %s", task.exception())

        await self.shutdown()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Stop the bot; safe to call more than once."""
        if self.bot is None:
            return
        logger.info("Shutting down...")
        bot, self.bot = self.bot, None
        try:
            await bot.stop()
        except Exception:
            logger.exception("Error while stopping the Matrix client")
        logger.info("Shutdown complete")

    def install_signal_handlers(self) -> None:
        """Register SIGINT and SIGTERM to trigger graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(sig: signal.Signals) -> None:
            logger.info("Received signal %s, initiating shutdown...", sig.name)
            self.request_shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))


async def main() -> None:
    """Main entry point for running the bot."""
    try:
        config = BotConfig.from_json_file()
    except Exception as e:
        configure_logging()
        logger.error("Invalid configuration (homeserver and access_token are required): %s", e)
        raise SystemExit(1) from e

    configure_logging(config.log_level)
    setup_error_log_file(config)
    logger.info("Starting welcome bot for %s", config.homeserver)

    app = Application(config)
    try:
        await app.run()
    except Exception:
        logger.exception("Startup failed")
        await app.shutdown()
        raise


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
