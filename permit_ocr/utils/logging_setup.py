"""Loguru sink configuration for scripts and host applications."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from loguru import logger

from permit_ocr.utils.config import LoggingConfig

_NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "openai",
    "openai._base_client",
    "anthropic",
    "anthropic._base_client",
)

_TEXT_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<level>{message}</level> {extra}"
)


def setup_logging(config: LoggingConfig | None = None, *, verbose: bool = False) -> None:
    """Replace loguru's default sink with the configured stderr/file sinks."""
    config = config or LoggingConfig()
    level = "DEBUG" if verbose else config.level.upper()
    serialize = config.format == "json"

    logger.remove()
    if serialize:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_TEXT_FORMAT)

    if config.file:
        target = Path(config.file)
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(target),
            level=level,
            rotation=f"{config.max_size_mb} MB",
            retention=config.backup_count,
            serialize=serialize,
        )

    if not verbose:
        silence_http_logs()


def silence_http_logs() -> None:
    """Reduce noisy SDK/transport logs routed through stdlib logging."""
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)
