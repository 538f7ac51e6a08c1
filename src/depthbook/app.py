"""DepthBook Main Application."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from aiohttp import web

from depthbook.config_loader import AppConfig, load_config_with_overrides
from depthbook.constants import APP_NAME, APP_VERSION, LOG_FORMAT, LOG_FORMAT_JSON
from depthbook.server.app import create_web_app
from depthbook.server.context import ServiceContext

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig | None) -> None:
    env = config.environment if config else None
    level = env.log_level.value if env else "INFO"
    fmt = LOG_FORMAT_JSON if env and env.log_json else LOG_FORMAT
    logging.basicConfig(level=getattr(logging, level), format=fmt)

    # ccxt logs every request at DEBUG
    logging.getLogger("ccxt").setLevel(logging.WARNING)


class DepthBookApp:
    """Main application orchestrator."""

    def __init__(
        self,
        config_path: str | None = "config/config.yaml",
        symbol: str | None = None,
        connector: str | None = None,
        log_level: str | None = None,
        host: str | None = None,
        port: int | None = None,
    ):
        self.config_path = Path(config_path) if config_path else None
        self.config: AppConfig | None = None
        self._symbol_override = symbol
        self._connector_override = connector
        self._log_level_override = log_level
        self._host_override = host
        self._port_override = port

        # Components
        self.context: ServiceContext | None = None
        self.web_app: web.Application | None = None
        self._runner: web.AppRunner | None = None

        self._shutdown_event = asyncio.Event()

    async def initialize(self) -> None:
        """Load config and wire components."""
        # 1. Load Config
        config_path = self.config_path if self.config_path and self.config_path.exists() else None
        self.config = load_config_with_overrides(
            config_path,
            symbol=self._symbol_override,
            connector=self._connector_override,
            log_level=self._log_level_override,
        )

        setup_logging(self.config)
        logger.info(f"Initializing {APP_NAME} v{APP_VERSION}...")
        if config_path is None:
            logger.warning(f"Config file not found ({self.config_path}), using defaults")

        # Overrides
        server_updates = {}
        if self._host_override:
            server_updates["host"] = self._host_override
        if self._port_override is not None:
            server_updates["port"] = self._port_override
        if server_updates:
            self.config.server = self.config.server.model_copy(update=server_updates)

        # 2. Components
        self.context = ServiceContext.build(self.config)
        self.web_app = create_web_app(self.context, manage_lifecycle=False)

        logger.info(
            f"Symbol: {self.config.exchange.symbol} | Depth: {self.config.exchange.depth_levels} | "
            f"Interval: {self.config.updater.interval_ms}ms | "
            f"Connector: {self.config.environment.connector.value}"
        )

    async def start(self) -> None:
        """Start the updater and the HTTP server."""
        if not self.context:
            await self.initialize()

        await self.context.start()

        self._runner = web.AppRunner(self.web_app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.server.host, self.config.server.port)
        await site.start()

        prefix = self.config.server.api_prefix
        logger.info(
            f"Server listening on http://{self.config.server.host}:{self.config.server.port}/{prefix}"
        )
        logger.info(f"WebSocket endpoint: {self.config.server.ws_path}")

    async def shutdown(self) -> None:
        """Stop in reverse order: HTTP server, then updater, channel and connector."""
        logger.info("Shutting down...")
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        if self.context:
            await self.context.stop()
        logger.info("Shutdown complete.")

    async def run(self) -> None:
        """Run until SIGINT/SIGTERM."""
        if not self.context:
            await self.initialize()

        # Trap signals
        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._handle_signal)
        except NotImplementedError:
            logger.warning("Signal handlers not supported in this environment. Use Ctrl+C to stop.")

        await self.start()

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.shutdown()

    def _handle_signal(self) -> None:
        logger.info("Signal received, initiating shutdown...")
        self._shutdown_event.set()
