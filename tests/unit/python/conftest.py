"""Shared fixtures for the now-playing proxy unit tests."""

import asyncio
import json
import sys
from pathlib import Path

import pytest
from aiohttp import web

# Add the project root to sys.path so `import nowplaying` works uninstalled
PROJECT_ROOT = Path(__file__).resolve().parents[3]
sys.path.insert(0, str(PROJECT_ROOT))

from nowplaying.lib.config import Credentials, Settings  # noqa: E402
from nowplaying.service import TrackProxyService  # noqa: E402

CLIENT_ID = "client-id-1234567890"
CLIENT_SECRET = "client-secret-abcdef"
REFRESH_TOKEN = "refresh-token-xyz"

SONG_A = {
    "is_playing": True,
    "item": {
        "name": "Song A",
        "artists": [{"name": "Artist X"}, {"name": "Artist Y"}],
    },
}


@pytest.fixture(autouse=True)
def _reset_config_cache(monkeypatch):
    """Reset the config module's cache before each test."""
    import nowplaying.lib.config as config_mod
    monkeypatch.delenv("NOWPLAYING_CONFIG", raising=False)
    config_mod._config = None
    yield
    config_mod._config = None


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Provide a temp config file path and patch _SEARCH_PATHS to use it."""
    import nowplaying.lib.config as config_mod

    path = tmp_path / "config.json"
    monkeypatch.setattr(config_mod, "_SEARCH_PATHS", [str(path)])
    return path


@pytest.fixture
def write_config(config_file):
    """Write a dict as JSON to the temp config file.

    Usage:
        def test_something(write_config):
            write_config({"server": {"port": 8080}})
            assert cfg("server", "port") == 8080
    """
    import nowplaying.lib.config as config_mod

    def _write(data: dict):
        config_file.write_text(json.dumps(data))
        config_mod._config = None  # force re-read
        return config_file

    return _write


@pytest.fixture
def credentials():
    return Credentials(CLIENT_ID, CLIENT_SECRET, REFRESH_TOKEN)


class FakeSpotify:
    """Stand-in for the Spotify token and currently-playing endpoints.

    Tests tweak the status/body attributes, then assert on the call counters.
    """

    def __init__(self):
        self.server = None
        self.token_calls = 0
        self.track_calls = 0
        self.token_requests = []
        self.track_auth = []
        self.token_status = 200
        self.token_body = {"access_token": "fake-access-token",
                           "token_type": "Bearer", "expires_in": 3600}
        self.track_status = 200
        self.track_body = SONG_A
        self.track_delay = 0

    async def handle_token(self, request):
        self.token_calls += 1
        form = await request.post()
        self.token_requests.append({
            "authorization": request.headers.get("Authorization"),
            "content_type": request.headers.get("Content-Type"),
            "form": dict(form),
        })
        if isinstance(self.token_body, bytes):
            return web.Response(body=self.token_body, status=self.token_status,
                                content_type="application/json")
        if isinstance(self.token_body, str):
            return web.Response(text=self.token_body, status=self.token_status)
        return web.json_response(self.token_body, status=self.token_status)

    async def handle_track(self, request):
        self.track_calls += 1
        self.track_auth.append(request.headers.get("Authorization"))
        if self.track_delay:
            await asyncio.sleep(self.track_delay)
        if self.track_status == 204:
            return web.Response(status=204)
        if isinstance(self.track_body, bytes):
            return web.Response(body=self.track_body, status=self.track_status,
                                content_type="application/json")
        if isinstance(self.track_body, str):
            return web.Response(text=self.track_body, status=self.track_status)
        return web.json_response(self.track_body, status=self.track_status)

    @property
    def token_url(self):
        return str(self.server.make_url("/api/token"))

    @property
    def api_url(self):
        return str(self.server.make_url("/v1/me/player/currently-playing"))


@pytest.fixture
async def spotify(aiohttp_server):
    fake = FakeSpotify()
    app = web.Application()
    app.router.add_post("/api/token", fake.handle_token)
    app.router.add_get("/v1/me/player/currently-playing", fake.handle_track)
    fake.server = await aiohttp_server(app)
    return fake


@pytest.fixture
def static_dir(tmp_path):
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.html").write_text("<h1>Now Playing</h1>")
    (public / "app.css").write_text("body { color: #eee; }")
    return public


@pytest.fixture
def make_settings(spotify, credentials, static_dir):
    """Build Settings pointed at the fake Spotify server."""

    def _make(**overrides):
        kwargs = {
            "verbose": True,
            "static_dir": str(static_dir),
            "token_url": spotify.token_url,
            "api_url": spotify.api_url,
            "timeout": 10,
        }
        creds = overrides.pop("credentials", credentials)
        kwargs.update(overrides)
        return Settings(creds, **kwargs)

    return _make


@pytest.fixture
def make_client(aiohttp_client, make_settings):
    """Start the proxy app under the aiohttp test client.

    Usage:
        async def test_something(make_client):
            client = await make_client(verbose=False)
            resp = await client.get("/current-track")
    """

    async def _make(**overrides):
        service = TrackProxyService(make_settings(**overrides))
        return await aiohttp_client(service.create_app())

    return _make
