"""
Logging configuration for vidconv
"""

import logging
import sys
from typing import List

from .config import LoggingConfig

FFMPEG_LOGGER = "vidconv.ffmpeg"


def setup_logging(config: LoggingConfig) -> None:
    """Configure the root logger from the logging config section.

    ffmpeg's own stderr chatter goes to the ``vidconv.ffmpeg`` logger and
    stays silent unless ``ffmpeg_output`` is enabled.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.file:
        handlers.append(logging.FileHandler(config.file, encoding="utf-8"))

    logging.basicConfig(level=level, format=config.format, handlers=handlers, force=True)

    ffmpeg_logger = logging.getLogger(FFMPEG_LOGGER)
    ffmpeg_logger.setLevel(logging.DEBUG if config.ffmpeg_output else logging.WARNING)

    # uvicorn's access log is noisy with websocket pings
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
