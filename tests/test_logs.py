from __future__ import annotations

import logging
from pathlib import Path

import pytest

from ci_operator_lsp.logs import LOG_LEVELS, configure_logging, parse_log_level


@pytest.mark.parametrize("name", ["debug", "INFO", " Warning ", "error", "critical"])
def test_parse_log_level_accepts_known_names(name: str) -> None:
    assert parse_log_level(name) == LOG_LEVELS[name.strip().lower()]


def test_parse_log_level_rejects_unknown_names() -> None:
    with pytest.raises(ValueError, match="invalid log level"):
        parse_log_level("verbose")


def test_configure_logging_writes_to_file(tmp_path: Path, restore_root_logger) -> None:
    log_file = tmp_path / "nested" / "lsp.log"
    handler = configure_logging("debug", log_file)
    assert isinstance(handler, logging.FileHandler)
    assert restore_root_logger.level == logging.DEBUG
    assert restore_root_logger.handlers == [handler]

    logging.getLogger("ci_operator_lsp.test").debug("registry generation %d", 3)
    handler.flush()
    text = log_file.read_text(encoding="utf-8")
    assert "[DEBUG] ci_operator_lsp.test: registry generation 3" in text


def test_configure_logging_replaces_its_own_handler(tmp_path: Path, restore_root_logger) -> None:
    first = configure_logging("info", tmp_path / "first.log")
    second = configure_logging("warning")
    assert restore_root_logger.handlers == [second]
    assert isinstance(second, logging.StreamHandler)
    assert first.stream is None
    assert restore_root_logger.level == logging.WARNING
