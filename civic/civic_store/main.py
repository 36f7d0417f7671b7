"""
Civic Store - Main entry point.

This module starts the data layer with:
- The configured document store
- The HTTP API (FastAPI served by uvicorn)

Usage:
    civic-store
    python -m civic.civic_store.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The store is connected before the HTTP server accepts requests
    - Shutdown stops the HTTP server before closing the store
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter
import uvicorn

from .api.http_server import create_app
from .api.settings import Settings
from .config import ServiceConfig
from .services import CivicServices

logger = logging.getLogger(__name__)


def setup_logging(config: ServiceConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Service configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class Service:
    """Process orchestrator.

    Attributes:
        config: Service configuration
        services: Data-layer components
        http_server: uvicorn server for the API

    Example:
        >>> service = Service()
        >>> await service.start()
        >>> # Serving until request_shutdown()
        >>> await service.stop()
    """

    def __init__(self, config: ServiceConfig | None = None) -> None:
        self.config = config or ServiceConfig.from_env()
        self.services = CivicServices.from_config(self.config)
        self.http_server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start serving and block until shutdown is requested."""
        if self._running:
            logger.warning("Service already running")
            return

        logger.info("Starting civic store")
        self.config.log_config()

        try:
            await self.services.start()

            settings = Settings(host=self.config.http.host, port=self.config.http.port)
            app = create_app(self.services, settings)
            self.http_server = uvicorn.Server(
                uvicorn.Config(
                    app,
                    host=self.config.http.host,
                    port=self.config.http.port,
                    log_config=None,
                )
            )
            self._serve_task = asyncio.create_task(self.http_server.serve())

            self._running = True
            logger.info(
                "Civic store started",
                extra={"bind": f"{self.config.http.host}:{self.config.http.port}"},
            )

            shutdown_task = asyncio.create_task(self._shutdown_event.wait())
            await asyncio.wait(
                {self._serve_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
            )
            shutdown_task.cancel()

        except Exception as e:
            logger.error(f"Service startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the service gracefully."""
        if not self._running:
            return

        logger.info("Stopping civic store")

        if self.http_server is not None:
            self.http_server.should_exit = True
        if self._serve_task is not None:
            await asyncio.gather(self._serve_task, return_exceptions=True)
            self._serve_task = None
        self.http_server = None

        await self.services.stop()
        self._running = False
        logger.info("Civic store stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServiceConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    service = Service(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        service.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(service.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(service.stop())
        loop.close()


if __name__ == "__main__":
    main()
