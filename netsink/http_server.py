import asyncio
import html
import logging
import secrets
import ssl
import stat
import time
from pathlib import Path
from typing import Optional, Set
from urllib.parse import quote

from aiohttp import BasicAuth, web

from .constants import (
    AUTH_REALM,
    FILE_CHUNK_SIZE,
    INDEX_FILE,
    SHUTDOWN_GRACE_PERIOD,
)
from .recorder import ResponseRecorder
from .shutdown import ShutdownToken

RECORDER_KEY = "recorder"


class StaticFileResponse(web.FileResponse):
    """FileResponse that may be sent before the handler returns it."""

    async def prepare(self, request):
        if self.prepared:
            return None
        return await super().prepare(request)


def create_ssl_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """Server-side TLS context for a static certificate/key pair."""
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(cert_file, key_file)
    return context


def format_address(host: Optional[str], port: int) -> str:
    return f"{host or ''}:{port}"


class HTTPFileServer:
    def __init__(
        self,
        root: str = ".",
        auth_user: str = "",
        auth_pass: str = "",
        logger: Optional[logging.Logger] = None,
    ):
        self.root = Path(root).resolve()
        self.auth_user = auth_user
        self.auth_pass = auth_pass
        self.logger = logger or logging.getLogger(__name__)
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self.start_time = None
        self.request_count = 0
        self.in_flight: Set[asyncio.Task] = set()

        # Catch-all route; every method gets the file, HEAD without a body
        self.app.router.add_route('*', '/{path:.*}', self.handle_file)

        # Logging wraps auth so rejected requests are still logged
        self.app.middlewares.append(self.logging_middleware)
        self.app.middlewares.append(self.auth_middleware)

        self.app.on_startup.append(self.on_startup)
        self.app.on_shutdown.append(self.on_shutdown)

    @property
    def auth_enabled(self) -> bool:
        return bool(self.auth_user and self.auth_pass)

    @property
    def addresses(self):
        return self.runner.addresses if self.runner else []

    async def on_startup(self, app):
        self.start_time = time.time()
        self.logger.debug(f"Serving files from {self.root}")

    async def on_shutdown(self, app):
        uptime = time.time() - self.start_time if self.start_time else 0
        self.logger.info(f"HTTP server shutting down. Uptime: {uptime:.2f}s, served {self.request_count} requests")

    async def start(
        self,
        host: Optional[str],
        port: int,
        ssl_context: Optional[ssl.SSLContext] = None,
        shutdown_timeout: float = SHUTDOWN_GRACE_PERIOD,
    ) -> None:
        """
        Start listening.

        Args:
            host: Address to bind; None binds all interfaces
            port: Port to listen on (0 picks a free port)
            ssl_context: Serve HTTPS with this context when given
            shutdown_timeout: Seconds the runner gives connections still open after drain()

        Raises:
            OSError: if the address cannot be bound
        """
        scheme = "HTTPS" if ssl_context else "HTTP"
        self.logger.info(f"Starting {scheme} server on {format_address(host, port)}")
        self.runner = web.AppRunner(self.app, handle_signals=False, shutdown_timeout=shutdown_timeout)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, host, port, ssl_context=ssl_context, reuse_address=True)
        try:
            await self.site.start()
        except OSError:
            await self.runner.cleanup()
            self.runner = None
            self.site = None
            raise

    async def serve(
        self,
        host: Optional[str],
        port: int,
        token: ShutdownToken,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        """Serve until the token is triggered, then shut down within its grace period."""
        await self.start(host, port, ssl_context=ssl_context, shutdown_timeout=token.grace_period)
        await token.wait()
        await self.shutdown(token)

    async def shutdown(self, token: ShutdownToken) -> None:
        """
        Stop accepting connections and let in-flight requests finish.

        Requests still running when the token's deadline passes are cancelled,
        so the whole shutdown is bounded by the grace period.
        """
        if not self.runner:
            return
        self.logger.info("Shutting down HTTP server...")
        runner, self.runner, self.site = self.runner, None, None
        for site in list(runner.sites):
            await site.stop()

        abandoned = await self.drain(token)
        await runner.cleanup()
        if abandoned:
            self.logger.warning(
                f"HTTP server shut down after the {token.grace_period:g}s grace period; "
                f"{abandoned} unfinished requests were abandoned"
            )
        else:
            self.logger.info("HTTP server shut down gracefully")

    async def drain(self, token: ShutdownToken) -> int:
        """
        Wait for in-flight requests until the token's deadline.

        Returns:
            Number of requests cancelled because they outlived the deadline
        """
        while self.in_flight and not token.expired():
            await asyncio.wait(set(self.in_flight), timeout=token.remaining())

        pending = list(self.in_flight)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return len(pending)

    @web.middleware
    async def logging_middleware(self, request: web.Request, handler):
        """Record status and size of every response and log them once it is sent."""
        self.request_count += 1
        start_time = time.monotonic()
        recorder = ResponseRecorder()
        request[RECORDER_KEY] = recorder
        task = asyncio.current_task()
        self.in_flight.add(task)

        try:
            return await handler(request)
        except web.HTTPException as e:
            if recorder.prepared:
                raise
            for name, value in e.headers.items():
                if name.lower() not in ("content-type", "content-length"):
                    recorder.headers[name] = value
            text = e.text or f"{e.status} {e.reason}"
            return await recorder.send(request, e.status, f"{text}\n".encode())
        except ConnectionResetError as e:
            self.logger.warning(f"Client went away during {request.method} {request.path}: {e}")
            raise
        except Exception as e:
            self.logger.error(f"Error serving {request.method} {request.path}: {e}", exc_info=True)
            if recorder.prepared:
                raise
            return await recorder.send(request, 500, b"500 Internal Server Error\n")
        except asyncio.CancelledError:
            self.logger.warning(f"Abandoned {request.method} {request.path} at shutdown")
            raise
        finally:
            self.in_flight.discard(task)
            duration = time.monotonic() - start_time
            self.logger.info(f"HTTP {recorder.status} {request.method} {request.path} {recorder.size} bytes")
            self.logger.info(f"Served {request.path} in {duration:.6f}s")

    @web.middleware
    async def auth_middleware(self, request: web.Request, handler):
        """Gate every request behind the configured Basic credentials, if any."""
        if not self.auth_enabled:
            return await handler(request)

        if self.check_credentials(request.headers.get('Authorization')):
            return await handler(request)

        recorder: ResponseRecorder = request[RECORDER_KEY]
        recorder.headers['WWW-Authenticate'] = f'Basic realm="{AUTH_REALM}"'
        return await recorder.send(request, 401, b"Unauthorized\n")

    def check_credentials(self, header: Optional[str]) -> bool:
        if not header:
            return False
        try:
            # Clients send non-ASCII credentials as UTF-8
            auth = BasicAuth.decode(header, encoding="utf-8")
        except ValueError:
            return False
        user_ok = secrets.compare_digest(auth.login.encode(), self.auth_user.encode())
        pass_ok = secrets.compare_digest(auth.password.encode(), self.auth_pass.encode())
        return user_ok and pass_ok

    def resolve(self, relative: str) -> Optional[Path]:
        """Map a request path onto the served root; None if it escapes the root."""
        try:
            target = (self.root / relative).resolve()
        except (OSError, ValueError):
            return None
        if target != self.root and self.root not in target.parents:
            return None
        return target

    async def handle_file(self, request: web.Request) -> web.StreamResponse:
        """Serve a file or directory listing from the root directory."""
        recorder: ResponseRecorder = request[RECORDER_KEY]
        target = self.resolve(request.match_info['path'])
        if target is None:
            self.logger.warning(f"Rejected path outside served directory: {request.path}")
            return await recorder.send(request, 404, b"404 page not found\n")

        try:
            st = target.stat()
        except FileNotFoundError:
            return await recorder.send(request, 404, b"404 page not found\n")
        except PermissionError:
            return await recorder.send(request, 403, b"403 Forbidden\n")
        except (OSError, ValueError) as e:
            self.logger.error(f"Error reading {target}: {e}")
            return await recorder.send(request, 500, b"500 Internal Server Error\n")

        if stat.S_ISDIR(st.st_mode):
            if not request.path.endswith('/'):
                path, sep, query = request.raw_path.partition('?')
                recorder.headers['Location'] = f"{path}/{sep}{query}"
                return await recorder.send(request, 301, b"")
            index = target / INDEX_FILE
            if index.is_file():
                return await self.send_file(request, recorder, index)
            return await self.send_listing(request, recorder, target)

        return await self.send_file(request, recorder, target)

    async def send_file(self, request: web.Request, recorder: ResponseRecorder, path: Path):
        # FileResponse answers Range, If-Modified-Since and If-None-Match itself
        response = StaticFileResponse(path, chunk_size=FILE_CHUNK_SIZE)
        return await recorder.send_response(request, response)

    async def send_listing(self, request: web.Request, recorder: ResponseRecorder, directory: Path):
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except PermissionError:
            return await recorder.send(request, 403, b"403 Forbidden\n")

        lines = ['<!doctype html>', '<meta name="viewport" content="width=device-width">', '<pre>']
        for entry in entries:
            name = entry.name + ('/' if entry.is_dir() else '')
            lines.append(f'<a href="{quote(name)}">{html.escape(name)}</a>')
        lines.append('</pre>')
        body = ('\n'.join(lines) + '\n').encode('utf-8')
        return await recorder.send(request, 200, body, content_type='text/html; charset=utf-8')
