"""
Spotify Web API calls used by the proxy.

Two hops, both on the caller's aiohttp ClientSession:

    token = await refresh_access_token(session, settings)
    data  = await get_currently_playing(session, settings, token)
    now_playing = parse_now_playing(data)   # None when nothing is playing

Every failure (network, timeout, non-2xx, malformed body) raises
SpotifyError.  A token endpoint that rejects the credentials themselves
raises InvalidCredentialsError instead.
"""

import asyncio
import base64
import json
import logging

import aiohttp
from aiohttp import ClientSession, ClientTimeout

from .lib.config import Credentials, Settings

log = logging.getLogger("nowplaying")

# OAuth error codes that mean the stored credentials are bad, not the network
_CREDENTIAL_ERRORS = ("invalid_grant", "invalid_client", "unauthorized_client")


class SpotifyError(Exception):
    """An upstream Spotify call failed."""

    def __init__(self, message, status=None, payload=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    @property
    def details(self):
        """Upstream error body when one was received, else the message."""
        return self.payload if self.payload not in (None, "") else self.message


class InvalidCredentialsError(SpotifyError):
    """The refresh token or client credentials were rejected or are missing."""


def basic_auth_header(client_id: str, client_secret: str) -> str:
    creds = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    return f"Basic {creds}"


async def _read_payload(resp):
    """Decode a response body as JSON, falling back to text."""
    raw = await resp.read()
    if not raw:
        return None
    # Upstream bodies are not guaranteed to be UTF-8
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


def _is_credential_error(status, payload) -> bool:
    if status not in (400, 401):
        return False
    if isinstance(payload, dict):
        return payload.get("error") in _CREDENTIAL_ERRORS
    return False


async def refresh_access_token(session: ClientSession, settings: Settings) -> str:
    """Exchange the stored refresh token for a fresh access token.

    No caching: every call hits the token endpoint.
    """
    creds: Credentials = settings.credentials
    if not creds.is_configured:
        raise InvalidCredentialsError("Spotify credentials are not configured")

    data = {
        "grant_type": "refresh_token",
        "refresh_token": creds.refresh_token,
    }
    headers = {
        "Authorization": basic_auth_header(creds.client_id, creds.client_secret),
        "Content-Type": "application/x-www-form-urlencoded",
    }
    try:
        async with session.post(settings.token_url, data=data, headers=headers,
                                timeout=ClientTimeout(total=settings.timeout)) as resp:
            payload = await _read_payload(resp)
            if not 200 <= resp.status < 300:
                log.warning("Spotify token -> %d: %s", resp.status, str(payload)[:200])
                if _is_credential_error(resp.status, payload):
                    raise InvalidCredentialsError(
                        "Spotify rejected the stored credentials",
                        status=resp.status, payload=payload)
                raise SpotifyError(f"Token request failed with status {resp.status}",
                                   status=resp.status, payload=payload)
    except asyncio.TimeoutError:
        raise SpotifyError(f"Token request timed out after {settings.timeout:g}s")
    except aiohttp.ClientError as e:
        raise SpotifyError(f"Token request failed: {e}")

    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise SpotifyError("Token response has no access_token", status=resp.status,
                           payload=payload)
    return payload["access_token"]


async def get_currently_playing(session: ClientSession, settings: Settings,
                                access_token: str):
    """Fetch the currently playing object. Returns None when nothing plays."""
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
    }
    try:
        async with session.get(settings.api_url, headers=headers,
                               timeout=ClientTimeout(total=settings.timeout)) as resp:
            log.info("Track response status: %d", resp.status)
            if resp.status == 204:
                return None
            payload = await _read_payload(resp)
            if not 200 <= resp.status < 300:
                log.warning("Spotify GET currently-playing -> %d: %s",
                            resp.status, str(payload)[:200])
                raise SpotifyError(f"Now-playing request failed with status {resp.status}",
                                   status=resp.status, payload=payload)
    except asyncio.TimeoutError:
        raise SpotifyError(f"Now-playing request timed out after {settings.timeout:g}s")
    except aiohttp.ClientError as e:
        raise SpotifyError(f"Now-playing request failed: {e}")

    if payload is not None and not isinstance(payload, dict):
        raise SpotifyError("Now-playing response is not a JSON object",
                           status=resp.status, payload=payload)
    return payload


def parse_now_playing(data) -> dict | None:
    """Reduce a currently-playing object to {track, artist}, or None."""
    if not data or not data.get("item"):
        return None
    item = data["item"]
    try:
        return {
            "track": item.get("name", ""),
            "artist": ", ".join(a["name"] for a in item.get("artists") or []),
        }
    except (AttributeError, KeyError, TypeError):
        raise SpotifyError("Malformed now-playing item", payload=data)
