"""
Entry point for running vidconv as a module: python -m vidconv
"""

import argparse

import uvicorn

from . import __version__
from .api import create_app
from .config import load_config, set_config
from .logging_setup import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="vidconv",
        description="Supervised ffmpeg conversion service",
    )
    parser.add_argument("-c", "--config", help="Path to vidconv.yaml")
    parser.add_argument("--host", help="Override server.host")
    parser.add_argument("--port", type=int, help="Override server.port")
    parser.add_argument("--log-level", help="Override logging.level")
    parser.add_argument("--version", action="version", version=f"vidconv {__version__}")
    args = parser.parse_args()

    config = load_config(args.config)
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.log_level:
        config.logging.level = args.log_level
    set_config(config)

    setup_logging(config.logging)

    app = create_app(config)
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
