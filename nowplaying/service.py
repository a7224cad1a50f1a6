"""
Now-playing proxy (nowplaying)

Relays the Spotify account's currently playing track as simplified JSON.
Every /current-track request refreshes the access token and queries the
now-playing endpoint; nothing is cached between requests.

server.verbose = true   → full route set and {track, artist, is_playing, success}
server.verbose = false  → / and /current-track only, {track, artist}

Port: 3000 (PORT env var)
"""

import html
import logging
import os
from datetime import datetime, timezone

from aiohttp import web

from .lib.config import Settings
from .lib.service_base import ServiceBase
from .spotify import (
    InvalidCredentialsError,
    SpotifyError,
    get_currently_playing,
    parse_now_playing,
    refresh_access_token,
)

log = logging.getLogger("nowplaying")

NO_TRACK = "No track playing"

CALLBACK_HTML = '''<h2>Auth successful!</h2>
<p>Your authorization code:</p>
<textarea style="width: 100%; height: 50px;">{code}</textarea>
<p>Copy this code and use it to get your refresh token.</p>
'''


def _utc_timestamp():
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TrackProxyService(ServiceBase):
    name = "Now-playing proxy"

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.verbose = settings.verbose

    # ── Routes ──

    def routes(self):
        table = [
            ("GET", "/", self._handle_index),
            ("GET", "/current-track", self._handle_current_track),
        ]
        if self.verbose:
            table += [
                ("GET", "/test-spotify", self._handle_test_spotify),
                ("GET", "/callback", self._handle_callback),
                ("GET", "/health", self._handle_health),
            ]
        return table

    def add_routes(self, app):
        static_dir = self.settings.static_dir
        if os.path.isdir(static_dir):
            # Registered last so it never shadows the API routes
            app.router.add_static("/", static_dir)
        else:
            log.warning("Static directory %s not found — front-end not served",
                        static_dir)

    async def on_start(self):
        port = self.settings.port
        log.info("Current track: http://localhost:%d/current-track", port)
        if self.verbose:
            log.info("Health check: http://localhost:%d/health", port)
            log.info("Spotify test: http://localhost:%d/test-spotify", port)

    # ── Response shapes ──

    def _track_body(self, now_playing):
        if now_playing is None:
            if self.verbose:
                return {"track": NO_TRACK, "artist": "",
                        "is_playing": False, "success": True}
            return {"track": None, "artist": None}
        if self.verbose:
            return {**now_playing, "is_playing": True, "success": True}
        return dict(now_playing)

    def _error_body(self, err: SpotifyError):
        body = {
            "error": "Failed to fetch track",
            "details": err.details,
            "success": False,
        }
        if self.verbose:
            body["reason"] = ("invalid_credentials"
                              if isinstance(err, InvalidCredentialsError)
                              else "upstream_error")
        return body

    # ── Handlers ──

    async def _handle_index(self, request):
        return web.FileResponse(os.path.join(self.settings.static_dir, "index.html"))

    async def _handle_current_track(self, request):
        try:
            log.info("Refreshing access token...")
            token = await refresh_access_token(self.http, self.settings)
            log.info("Access token refreshed successfully")

            log.info("Fetching currently playing track...")
            data = await get_currently_playing(self.http, self.settings, token)
            now_playing = parse_now_playing(data)
        except SpotifyError as e:
            log.error("Failed to fetch track: %s", e.message)
            log.error("Response data: %s", e.payload)
            log.error("Response status: %s", e.status)
            return web.json_response(self._error_body(e), status=500)

        if now_playing:
            log.info("Now playing: %s — %s", now_playing["artist"], now_playing["track"])
        return web.json_response(self._track_body(now_playing))

    async def _handle_test_spotify(self, request):
        log.info("Testing Spotify credentials...")
        try:
            token = await refresh_access_token(self.http, self.settings)
        except SpotifyError as e:
            log.error("Spotify test failed: %s", e.details)
            return web.json_response(
                {"success": False, "error": e.details}, status=500)
        return web.json_response({
            "success": True,
            "message": "Spotify credentials are valid!",
            "access_token": token,
        })

    async def _handle_callback(self, request):
        error = request.query.get("error")
        if error:
            return web.Response(text=f"Spotify authorization failed: {error}",
                                status=400)
        code = request.query.get("code")
        if not code:
            return web.Response(text="No authorization code received", status=400)
        return web.Response(text=CALLBACK_HTML.format(code=html.escape(code)),
                            content_type="text/html")

    async def _handle_health(self, request):
        return web.json_response({
            "status": "OK",
            "timestamp": _utc_timestamp(),
            "environment": self.settings.credentials.presence(),
        })
