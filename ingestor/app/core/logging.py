"""Loguru sink setup for the worker process.

Events are emitted as `logger.bind(service_name=..., event=..., **fields).info("")`,
so the useful payload lives in `extra`. With json=True each record is serialised
so log aggregators can filter on the bound fields.
"""
from __future__ import annotations

import sys

from loguru import logger

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[service_name]} | {extra[event]} | {message} {extra}"
)


def configure_logging(level: str = "INFO", *, json: bool = False) -> None:
    logger.remove()
    logger.configure(extra={"service_name": "-", "event": "-"})
    if json:
        logger.add(sys.stderr, level=level.upper(), serialize=True)
    else:
        logger.add(sys.stderr, level=level.upper(), format=_TEXT_FORMAT)
