"""
Tests für attendo.utils.logging – Structured Logging.

Testet:
  - Setup mit verschiedenen Konfigurationen
  - Logger-Erstellung
  - Context-Binding
  - File-Logging
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import structlog

from attendo.utils.logging import (
    LOG_FILE_NAME,
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
    unbind_context,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestLoggingSetup:
    def test_default_setup(self) -> None:
        """Logging initialisiert ohne Fehler."""
        setup_logging(level="INFO", console=True)
        log = get_logger("test")
        log.info("test_event", key="value")

    def test_json_mode(self) -> None:
        setup_logging(level="INFO", json_logs=True, console=True)
        log = get_logger("test.json")
        log.info("json_test", number=42)

    def test_unknown_level_falls_back_to_info(self) -> None:
        setup_logging(level="CHATTY", console=True)
        assert logging.getLogger().level == logging.INFO

    def test_apscheduler_is_quieted(self) -> None:
        setup_logging(level="DEBUG", console=True)
        assert logging.getLogger("apscheduler").level == logging.WARNING

    def test_file_logging(self, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        setup_logging(level="DEBUG", log_dir=log_dir, json_logs=True, console=False)
        log = get_logger("test.file")
        log.info("file_event", job="dailyReminder")
        for handler in logging.getLogger().handlers:
            handler.flush()

        log_file = log_dir / LOG_FILE_NAME
        assert log_file.exists()
        lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
        assert any(entry["event"] == "file_event" and entry["job"] == "dailyReminder" for entry in lines)


class TestContextBinding:
    def test_bind_and_unbind(self) -> None:
        bind_context(job="weeklyReport", trigger="schedule")
        assert structlog.contextvars.get_contextvars() == {
            "job": "weeklyReport",
            "trigger": "schedule",
        }

        unbind_context("job")
        assert structlog.contextvars.get_contextvars() == {"trigger": "schedule"}

    def test_clear(self) -> None:
        bind_context(job="endOfDay")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
