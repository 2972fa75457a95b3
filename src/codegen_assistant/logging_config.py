"""Loguru setup for the service.

Loguru is the only backend: stdlib loggers used by the web server and the
model/HTTP clients are forwarded into it, so tool execution, indexing and
request logs end up in one stream.  Chatty client libraries are capped at
WARNING unless the service itself logs at DEBUG.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

_FORWARDED = ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi", "pydantic_ai")
_CHATTY = ("openai", "httpx", "httpcore")

_TEXT_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <7}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Re-emit a stdlib record through loguru, attributed to its original caller."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(*, level: str = "INFO", json: bool = False) -> None:
    """Replace loguru's default sink and route stdlib logging into it.

    Safe to call more than once; each call resets the sinks.
    """
    level = level.upper()
    logger.remove()
    if json:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_TEXT_FORMAT, colorize=True)

    handler = InterceptHandler()
    for name in (*_FORWARDED, *_CHATTY):
        forwarded = logging.getLogger(name)
        forwarded.handlers = [handler]
        forwarded.propagate = False
        forwarded.setLevel(logging.NOTSET if level == "DEBUG" or name in _FORWARDED else logging.WARNING)

    logging.basicConfig(handlers=[handler], level=logging.NOTSET, force=True)
