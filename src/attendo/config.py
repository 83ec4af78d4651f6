"""
Attendo · Configuration system.

Loads configuration from:
  1. Defaults (defined here)
  2. ~/.attendo/config.yaml (overrides defaults)
  3. Environment variables ATTENDO_* (overrides everything)

Automatically creates the ~/.attendo/ directory structure on first start.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from attendo.cron.expression import is_valid_timezone
from attendo.cron.store import ScheduleStore, default_schedule
from attendo.models import DEFAULT_TIMEZONE

log = logging.getLogger(__name__)

# ============================================================================
# Konfigurationsmodelle
# ============================================================================


class SchedulerConfig(BaseModel):
    """Scheduler-Einstellungen."""

    # Zeitzone, falls die schedules.yaml keine (gültige) enthält
    timezone: str = DEFAULT_TIMEZONE
    schedule_file: str = "schedules.yaml"  # Relativ zu attendo_home
    # Verpasste Läufe (z.B. nach Suspend) werden so lange nachgeholt
    misfire_grace_seconds: int = Field(default=300, ge=1, le=86400)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if not is_valid_timezone(value):
            msg = f"Unknown timezone '{value}'"
            raise ValueError(msg)
        return value


class LoggingConfig(BaseModel):
    """Logging-Konfiguration."""

    level: str = "INFO"
    json_logs: bool = False
    console: bool = True


# ============================================================================
# Haupt-Konfiguration
# ============================================================================


class AttendoConfig(BaseModel):
    """Complete Attendo configuration.

    Loaded once at startup and then used throughout the entire system.
    """

    version: str = "0.3.0"

    attendo_home: Path = Field(default_factory=lambda: Path.home() / ".attendo")

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def config_file(self) -> Path:
        """Pfad zur Hauptkonfiguration."""
        return self.attendo_home / "config.yaml"

    @property
    def logs_dir(self) -> Path:
        """Verzeichnis für Log-Dateien."""
        return self.attendo_home / "logs"

    @property
    def schedule_config_file(self) -> Path:
        """Pfad zur Zeitplan-Konfiguration."""
        path = Path(self.scheduler.schedule_file)
        return path if path.is_absolute() else self.attendo_home / path

    def ensure_directories(self) -> list[str]:
        """Erstellt ~/.attendo/ Verzeichnisstruktur."""
        return ensure_directory_structure(self)


# ============================================================================
# Config-Laden
# ============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Tiefes Mergen von zwei Dicts. Override gewinnt bei Konflikten."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


_SECTIONS = ("scheduler", "logging")


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Wendet ATTENDO_* Umgebungsvariablen an.

    Konvention: ATTENDO_SECTION_KEY → data["section"]["key"]
    Beispiel: ATTENDO_SCHEDULER_TIMEZONE → data["scheduler"]["timezone"]
    Alles ohne bekannte Sektion landet auf oberster Ebene
    (ATTENDO_ATTENDO_HOME → data["attendo_home"]).
    """
    prefix = "ATTENDO_"
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        parts = key[len(prefix):].lower().split("_")
        if len(parts) >= 2 and parts[0] in _SECTIONS:
            overrides.setdefault(parts[0], {})["_".join(parts[1:])] = value
        else:
            overrides["_".join(parts)] = value
    return _deep_merge(data, overrides)


def load_config(config_path: Path | None = None) -> AttendoConfig:
    """Lädt die Konfiguration.

    Reihenfolge (spätere überschreiben frühere):
      1. Defaults (in den Pydantic-Modellen)
      2. config.yaml (wenn vorhanden)
      3. ATTENDO_* Umgebungsvariablen

    Args:
        config_path: Expliziter Pfad zur config.yaml. Wenn None: ~/.attendo/config.yaml

    Returns:
        Vollständig validierte AttendoConfig.
    """
    data: dict[str, Any] = {}

    if config_path is None:
        config_path = Path.home() / ".attendo" / "config.yaml"

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            if isinstance(file_data, dict):
                data = file_data
        except yaml.YAMLError as exc:
            log.warning("Fehlerhafte config.yaml wird ignoriert: %s", exc)

    data = _apply_env_overrides(data)

    return AttendoConfig(**data)


# ============================================================================
# Verzeichnisstruktur erstellen
# ============================================================================


_DEFAULT_CONFIG = """\
# Attendo · Hauptkonfiguration
# Generiert beim ersten Start. Anpassen nach Bedarf.

scheduler:
  timezone: "Asia/Dhaka"
  schedule_file: "schedules.yaml"
  misfire_grace_seconds: 300

logging:
  level: "INFO"
  json_logs: false
  console: true
"""


def ensure_directory_structure(config: AttendoConfig) -> list[str]:
    """Erstellt die ~/.attendo/ Verzeichnisstruktur.

    Idempotent -- kann beliebig oft aufgerufen werden.
    Erstellt nur was fehlt, überschreibt nie vorhandene Dateien.

    Returns:
        Liste der neu erstellten Pfade (für Logging).
    """
    created: list[str] = []

    for d in (config.attendo_home, config.logs_dir):
        if not d.exists():
            d.mkdir(parents=True, exist_ok=True)
            created.append(str(d))

    if not config.config_file.exists():
        config.config_file.write_text(_DEFAULT_CONFIG, encoding="utf-8")
        created.append(str(config.config_file))

    if not config.schedule_config_file.exists():
        schedule = default_schedule()
        schedule.timezone = config.scheduler.timezone
        ScheduleStore(config.schedule_config_file).save(schedule)
        created.append(str(config.schedule_config_file))

    return created
