"""Now-playing proxy: relays the Spotify currently playing track as JSON."""

__version__ = "1.0.0"
