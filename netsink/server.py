"""
Main Server Module for netsink.

This module picks the operating mode from the configuration, wires process
signals to the shutdown token and turns fatal startup errors into exit codes.
"""

import asyncio
import logging
import signal
import ssl
import sys
from typing import BinaryIO, List, Optional

from .config import ConfigError, ServerConfig, load_config
from .http_server import HTTPFileServer, create_ssl_context
from .logger import setup_logging
from .shutdown import ShutdownToken
from .tcp_server import TCPSinkServer

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ServerRunner:
    """
    Utility class for running one of the two modes with proper signal handling.
    """

    def __init__(
        self,
        config: ServerConfig,
        sink: Optional[BinaryIO] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the ServerRunner.

        Args:
            config: Resolved startup configuration
            sink: Destination for TCP-mode data (defaults to stdout)
            logger: Logger handed to the servers
        """
        self.config = config
        self.sink = sink
        self.logger = logger or logging.getLogger(__name__)
        self.token: Optional[ShutdownToken] = None
        self.tcp_server: Optional[TCPSinkServer] = None
        self.http_server: Optional[HTTPFileServer] = None

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> List[signal.Signals]:
        installed = []
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # Not on the main thread, or a platform without add_signal_handler
                self.logger.debug(f"Cannot install handler for {sig.name}: {e}")
                continue
            installed.append(sig)
        return installed

    def _on_signal(self, sig: signal.Signals) -> None:
        self.logger.info(f"Received {sig.name}, shutting down...")
        if self.token is not None:
            self.token.trigger(sig.name)

    async def run(self, token: Optional[ShutdownToken] = None) -> None:
        """
        Run the configured mode until the token is triggered.

        Args:
            token: Shutdown token; one is created when omitted

        Raises:
            OSError: if the listener cannot be bound
            ssl.SSLError: if the TLS certificate or key cannot be loaded
        """
        self.token = token or ShutdownToken()
        loop = asyncio.get_running_loop()
        installed = self._install_signal_handlers(loop)

        try:
            if self.config.http_mode:
                await self._run_http()
            else:
                await self._run_tcp()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

    async def _run_http(self) -> None:
        ssl_context = None
        if self.config.tls_enabled:
            ssl_context = create_ssl_context(self.config.tls_cert, self.config.tls_key)
        elif self.config.tls_cert or self.config.tls_key:
            self.logger.warning("Both --tls-cert and --tls-key are needed for HTTPS; serving plain HTTP")

        if not self.config.auth_enabled and (self.config.auth_user or self.config.auth_pass):
            self.logger.warning("Both --auth-user and --auth-pass are needed for authentication; auth is disabled")

        self.http_server = HTTPFileServer(
            root=self.config.root,
            auth_user=self.config.auth_user,
            auth_pass=self.config.auth_pass,
            logger=self.logger,
        )
        # The HTTP listener binds every interface
        await self.http_server.serve(None, self.config.serve, self.token, ssl_context=ssl_context)

    async def _run_tcp(self) -> None:
        host, port = self.config.tcp_address
        self.tcp_server = TCPSinkServer(host, port, sink=self.sink, logger=self.logger)
        await self.tcp_server.serve(self.token)


def run_server(config: ServerConfig, sink: Optional[BinaryIO] = None) -> int:
    """
    Run the server described by the configuration.

    Args:
        config: Resolved startup configuration
        sink: Destination for TCP-mode data (defaults to stdout)

    Returns:
        Process exit status
    """
    runner = ServerRunner(config, sink=sink)
    try:
        asyncio.run(runner.run())
    except ssl.SSLError as e:
        logger.critical(f"Failed to load TLS certificate/key: {e}")
        return 1
    except OSError as e:
        mode = "HTTP server" if config.http_mode else "TCP listener"
        logger.critical(f"Error starting {mode}: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Server stopped by keyboard interrupt")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point; returns the process exit status."""
    try:
        config = load_config(argv)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        setup_logging(config)
    except OSError as e:
        logger.critical(f"Failed to open log file: {e}")
        return 1

    return run_server(config)
