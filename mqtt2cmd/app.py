"""Main application orchestrator for mqtt2cmd."""

import asyncio
import functools
import logging
import signal
from datetime import datetime
from typing import Optional, Union

from .config import AppConfig, get_config
from .engine import SyncEngine
from .executor import ShellExecutor
from .mqtt.client import MQTTClient
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


class Mqtt2Cmd:
    """Main application class.

    Builds the entity registry from configuration, connects the
    synchronization engine to the broker and drives periodic refreshes
    while the MQTT client processes incoming commands.
    """

    def __init__(self, config: Union[AppConfig, str, None] = None):
        """Initialize the application.

        Args:
            config: AppConfig instance, path to YAML config file, or None for env/defaults
        """
        if isinstance(config, AppConfig):
            self.config = config
        else:
            self.config = get_config(config)

        self.running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.engine: Optional[SyncEngine] = None
        self.executor: Optional[ShellExecutor] = None

        self._stats = {
            "refresh_cycles": 0,
            "start_time": None,
        }

    def build_engine(self) -> SyncEngine:
        """Create the engine for the configured entities."""
        self.executor = ShellExecutor(
            timeout=self.config.engine.command_timeout,
            shell=self.config.engine.shell,
        )
        return SyncEngine(
            app_id=self.config.app_id,
            registry=self.config.build_registry(),
            connector=functools.partial(MQTTClient, self.config.mqtt),
            executor=self.executor,
            available_payload=self.config.mqtt.available_payload,
            unavailable_payload=self.config.mqtt.unavailable_payload,
            settle_delay=self.config.engine.settle_delay,
        )

    async def start(self) -> None:
        """Start the application.

        Connects to the MQTT broker, then runs the refresh loop and the
        MQTT message loop until shutdown.

        Raises:
            BusConnectionError: If the initial connection fails
        """
        setup_logging(
            level=self.config.logging.level,
            log_file=self.config.logging.file,
            format_string=self.config.logging.format,
        )

        logger.info(f"Starting mqtt2cmd as {self.config.app_id}")
        self._stats["start_time"] = datetime.now()
        self.running = True

        self._setup_signal_handlers()

        self.engine = self.build_engine()
        if not len(self.engine.registry):
            logger.warning("No switches or displays configured")
        for entity in self.engine.registry:
            logger.info(f"Configured {entity.kind}/{entity.name} (refresh={entity.refresh_seconds:g}s)")

        try:
            await self.engine.connect()

            message_task = asyncio.create_task(self.engine.client.run())
            try:
                await self._refresh_loop()
            finally:
                message_task.cancel()
                try:
                    await message_task
                except asyncio.CancelledError:
                    pass

        except asyncio.CancelledError:
            logger.info("Application cancelled")
        finally:
            await self.stop()

    async def _refresh_loop(self) -> None:
        """Refresh all entities every refresh_period seconds until shutdown."""
        period = self.config.engine.refresh_period
        logger.info(f"Starting refresh loop (period={period:g}s)")

        while self.running and not self._shutdown_event.is_set():
            self._stats["refresh_cycles"] += 1
            try:
                await self.engine.refresh()
            except Exception as e:
                logger.error(f"Refresh error: {e}", exc_info=True)

            # Wait for next refresh (or shutdown)
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=period)
                break
            except asyncio.TimeoutError:
                continue

    async def stop(self) -> None:
        """Stop the application gracefully."""
        if not self.running:
            return
        logger.info("Stopping mqtt2cmd")
        self.running = False
        self._shutdown_event.set()

        if self.engine:
            try:
                await self.engine.close()
            except Exception as e:
                logger.error(f"Error disconnecting MQTT: {e}")

            stats = self.engine.stats
            logger.info(
                f"Statistics: cycles={self._stats['refresh_cycles']}, "
                f"polls={stats['polls']}, poll_failures={stats['poll_failures']}, "
                f"commands={stats['commands']}, command_failures={stats['command_failures']}"
            )
        logger.info("mqtt2cmd stopped")

    def request_shutdown(self) -> None:
        """Ask the refresh loop to finish."""
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"Received signal {sig.name}, initiating shutdown")
            self.request_shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
            except NotImplementedError:
                pass

    @property
    def stats(self) -> dict:
        """Get application statistics."""
        return {
            **self._stats,
            "uptime": (
                str(datetime.now() - self._stats["start_time"])
                if self._stats["start_time"]
                else None
            ),
            "engine": self.engine.stats if self.engine else None,
            "executor": self.executor.stats if self.executor else None,
        }


async def run_app(config: Union[AppConfig, str, None] = None) -> None:
    """Run the application.

    Args:
        config: AppConfig instance, path to config file, or None for env/defaults
    """
    app = Mqtt2Cmd(config)
    await app.start()
