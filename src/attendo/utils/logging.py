"""
Attendo · Structured Logging Setup.

Zwei Renderer:
- Entwicklung: Farbige Konsole
- Produktion: JSON-Lines in Log-Dateien

Verwendung in jedem Modul:
    from attendo.utils.logging import get_logger
    log = get_logger(__name__)
    log.info("event_name", key="value")
"""

from __future__ import annotations

import inspect
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from pathlib import Path

LOG_FILE_NAME = "attendo.jsonl"


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Gibt einen structlog-Logger für das Modul zurück."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def setup_logging(
    *,
    level: str = "INFO",
    log_dir: Path | None = None,
    json_logs: bool = False,
    console: bool = True,
) -> None:
    """Initialisiert das Logging-System. Muss einmal beim Start aufgerufen werden.

    Args:
        level: Log-Level als String (DEBUG, INFO, WARNING, ERROR).
        log_dir: Verzeichnis für JSONL-Log-Dateien. None = keine Datei-Logs.
        json_logs: True = JSON-Output auch auf Konsole (für Produktion).
        console: True = Log-Ausgabe auf stderr.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler_list: list[logging.Handler] = []

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        handler_list.append(console_handler)

    # Datei-Log immer auf DEBUG, 5 MB pro Datei, 3 Backups
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        handler_list.append(file_handler)

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=handler_list,
        force=True,
    )

    # APScheduler loggt jeden Job-Lauf auf INFO
    for noisy in ("apscheduler", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    # Shared processors – werden in jeder Log-Nachricht durchlaufen
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False,
        )
    else:
        # Parameter wurde zwischen structlog-Versionen umbenannt:
        # <=25.4: pad_event, >=25.5: pad_event_to
        cr_params = inspect.signature(structlog.dev.ConsoleRenderer).parameters
        pad_kwarg = "pad_event_to" if "pad_event_to" in cr_params else "pad_event"
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            **{pad_kwarg: 40},
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


def bind_context(**kwargs: Any) -> None:
    """Bindet Kontext-Variablen an alle folgenden Log-Nachrichten."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Entfernt einzelne Kontext-Variablen wieder."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Löscht alle gebundenen Kontext-Variablen."""
    structlog.contextvars.clear_contextvars()
