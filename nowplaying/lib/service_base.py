"""
ServiceBase — shared plumbing for the proxy's aiohttp service.

Subclass contract:

    class MyService(ServiceBase):
        name = "Demo"

        def routes(self):
            '''Return the (method, path, handler) route table.'''
            return [("GET", "/hello", self._handle_hello)]

Optional overrides:
    on_start()          — called after HTTP server is up
    on_stop()           — called during shutdown
    add_routes(app)     — add extra aiohttp resources (static dirs etc.)

The subclass gets one shared aiohttp ClientSession (self.http) for
outbound calls, opened on app startup and closed on cleanup.
"""

import asyncio
import logging
import signal

from aiohttp import web, ClientSession

from .config import Settings
from .http_utils import cors_middleware

log = logging.getLogger("nowplaying")


class ServiceBase:
    # ── Subclass must set these ──
    name: str = ""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._http_session: ClientSession | None = None
        self._runner: web.AppRunner | None = None

    @property
    def http(self) -> ClientSession:
        if self._http_session is None:
            raise RuntimeError("HTTP client session not started")
        return self._http_session

    # ── Application ──

    def create_app(self) -> web.Application:
        """Build the aiohttp app from the route table."""
        app = web.Application(middlewares=[cors_middleware])
        for method, path, handler in self.routes():
            app.router.add_route(method, path, handler)

        # Let subclass add extra resources
        self.add_routes(app)

        app.on_startup.append(self._open_session)
        app.on_cleanup.append(self._close_session)
        return app

    async def _open_session(self, app):
        self._http_session = ClientSession()

    async def _close_session(self, app):
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    # ── HTTP server ──

    async def start(self):
        """Create the aiohttp app, start listening."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.settings.port)
        await site.start()
        log.info("%s running on port %d", self.name, self.settings.port)

        await self.on_start()

    async def stop(self):
        """Shutdown hook — override on_stop() for cleanup."""
        await self.on_stop()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    # ── Subclass hooks (override as needed) ──

    def routes(self) -> list:
        """Return the (method, path, handler) route table."""
        raise NotImplementedError

    def add_routes(self, app: web.Application):
        """Add extra aiohttp resources to the app."""

    async def on_start(self):
        """Called after HTTP server is up."""

    async def on_stop(self):
        """Called during shutdown."""
