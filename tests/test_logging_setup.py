from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
from loguru import logger

from permit_ocr.utils.config import LoggingConfig
from permit_ocr.utils.logging_setup import setup_logging, silence_http_logs


@pytest.fixture(autouse=True)
def _restore_loguru():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_file_sink_receives_messages(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "permit_ocr.log"

    setup_logging(LoggingConfig(file=str(log_file), level="INFO"))
    logger.info("Extracting document dates", mime_type="image/png")
    logger.debug("hidden detail")
    logger.remove()

    contents = log_file.read_text(encoding="utf-8")
    assert "Extracting document dates" in contents
    assert "hidden detail" not in contents


def test_verbose_enables_debug(tmp_path: Path) -> None:
    log_file = tmp_path / "debug.log"

    setup_logging(LoggingConfig(file=str(log_file)), verbose=True)
    logger.debug("pattern matched")
    logger.remove()

    assert "pattern matched" in log_file.read_text(encoding="utf-8")


def test_json_format_serializes_records(tmp_path: Path) -> None:
    log_file = tmp_path / "json.log"

    setup_logging(LoggingConfig(file=str(log_file), format="json"))
    logger.info("LLM request failed", attempt=2)
    logger.remove()

    line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert '"attempt": 2' in line


def test_http_loggers_are_quieted() -> None:
    logging.getLogger("httpx").setLevel(logging.DEBUG)

    silence_http_logs()

    assert logging.getLogger("httpx").level == logging.ERROR
    assert logging.getLogger("openai").level == logging.ERROR
