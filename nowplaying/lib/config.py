"""
Shared configuration loader for the now-playing proxy.

Loads a single JSON config file.  Search order:
  1. $NOWPLAYING_CONFIG                  (explicit override)
  2. /etc/nowplaying/config.json         (deployed)
  3. config.json                         (CWD — handy for local dev)
  4. ../../config/default.json           (repo fallback)

Secrets (SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, SPOTIFY_REFRESH_TOKEN)
and PORT stay in environment variables, optionally loaded from a .env file.

Usage:
    from nowplaying.lib.config import cfg, load_settings

    verbose  = cfg("server", "verbose", default=True)
    timeout  = cfg("spotify", "timeout", default=10)
    settings = load_settings()   # immutable, built once at startup
"""

import json
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_config: dict | None = None

PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
PROJECT_ROOT = os.path.dirname(PACKAGE_DIR)

_SEARCH_PATHS = [
    "/etc/nowplaying/config.json",
    "config.json",
    os.path.join(PROJECT_ROOT, "config", "default.json"),
]

DEFAULT_PORT = 3000
DEFAULT_TIMEOUT = 10
TOKEN_URL = "https://accounts.spotify.com/api/token"
CURRENTLY_PLAYING_URL = "https://api.spotify.com/v1/me/player/currently-playing"
DEFAULT_STATIC_DIR = os.path.join(PROJECT_ROOT, "public")


def _search_paths() -> list:
    override = os.environ.get("NOWPLAYING_CONFIG")
    return [override] + _SEARCH_PATHS if override else list(_SEARCH_PATHS)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("server")                    → config["server"]
    cfg("server", "port")            → config["server"]["port"]
    cfg("spotify", "timeout", default=10)  → config["spotify"]["timeout"] or 10
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()


@dataclass(frozen=True, repr=False)
class Credentials:
    """Spotify client credentials plus the long-lived refresh token.

    Read-only once constructed; handlers share the same instance.
    """

    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def presence(self) -> dict:
        """Report which credentials are set without revealing them."""
        return {
            "client_id": "present" if self.client_id else "missing",
            "refresh_token": "present" if self.refresh_token else "missing",
        }

    def __repr__(self):
        # Never print secrets
        return "Credentials(client_id=%r, client_secret=%s, refresh_token=%s)" % (
            self.client_id[:8] + "..." if self.client_id else "",
            "***" if self.client_secret else "''",
            "***" if self.refresh_token else "''",
        )


@dataclass(frozen=True)
class Settings:
    """Process-wide service settings, built once by load_settings()."""

    credentials: Credentials
    port: int = DEFAULT_PORT
    verbose: bool = True
    static_dir: str = DEFAULT_STATIC_DIR
    token_url: str = TOKEN_URL
    api_url: str = CURRENTLY_PLAYING_URL
    timeout: float = DEFAULT_TIMEOUT


def _env_port() -> int:
    raw = os.environ.get("PORT", "")
    if raw:
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring non-numeric PORT=%r", raw)
    return int(cfg("server", "port", default=DEFAULT_PORT))


def load_settings(use_dotenv: bool = True) -> Settings:
    """Build the immutable Settings from config file + environment.

    Missing credentials are logged but never stop startup — the routes
    report the failure when they are called.
    """
    if use_dotenv:
        load_dotenv()

    credentials = Credentials(
        client_id=os.environ.get("SPOTIFY_CLIENT_ID", ""),
        client_secret=os.environ.get("SPOTIFY_CLIENT_SECRET", ""),
        refresh_token=os.environ.get("SPOTIFY_REFRESH_TOKEN", ""),
    )
    settings = Settings(
        credentials,
        port=_env_port(),
        verbose=bool(cfg("server", "verbose", default=True)),
        static_dir=cfg("server", "static_dir") or DEFAULT_STATIC_DIR,
        token_url=cfg("spotify", "token_url", default=TOKEN_URL),
        api_url=cfg("spotify", "api_url", default=CURRENTLY_PLAYING_URL),
        timeout=float(cfg("spotify", "timeout", default=DEFAULT_TIMEOUT)),
    )

    logger.info("Environment check:")
    logger.info("PORT: %d", settings.port)
    if credentials.client_id:
        logger.info("CLIENT_ID: loaded (%s...)", credentials.client_id[:8])
    else:
        logger.info("CLIENT_ID: MISSING")
    logger.info("REFRESH_TOKEN: %s",
                "loaded" if credentials.refresh_token else "MISSING")
    for var, value in (("SPOTIFY_CLIENT_ID", credentials.client_id),
                       ("SPOTIFY_CLIENT_SECRET", credentials.client_secret),
                       ("SPOTIFY_REFRESH_TOKEN", credentials.refresh_token)):
        if not value:
            logger.warning("%s is not set — Spotify calls will fail", var)
    return settings
