"""Entry point: python -m nowplaying (or the nowplaying-proxy script)."""

import asyncio
import logging

from .lib.config import load_settings
from .service import TrackProxyService


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    service = TrackProxyService(load_settings())
    asyncio.run(service.run())


if __name__ == "__main__":
    main()
