"""Schedule-Konfiguration: Laden, Speichern, Defaults.

Lädt die Benachrichtigungs-Zeitpläne aus einer YAML-Datei und stellt sie
als typisiertes ``NotificationSchedule`` bereit. Format::

    timezone: Asia/Dhaka
    jobs:
      dailyReminder:
        enabled: true
        cron_expression: "0 13 * * 1-5"

Der ScheduleManager kennt nur das ``ScheduleConfigSource``-Protokoll;
``ScheduleStore`` ist die Datei-Implementierung für den Standalone-Betrieb.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml
from pydantic import ValidationError

from attendo.core.errors import ConfigurationFetchError
from attendo.models import (
    DEFAULT_TIMEZONE,
    JobConfig,
    JobConfigUpdate,
    JobName,
    NotificationSchedule,
    coerce_job_name,
)
from attendo.utils.logging import get_logger

log = get_logger(__name__)

# Fallback-Zeitpläne, falls die Konfiguration nicht gelesen werden kann
DEFAULT_JOB_CONFIGS: dict[JobName, JobConfig] = {
    JobName.DAILY_REMINDER: JobConfig(enabled=True, cron_expression="0 13 * * 1-5"),  # 13 Uhr werktags
    JobName.WEEKLY_REPORT: JobConfig(enabled=True, cron_expression="0 9 * * 1"),  # Montag 9 Uhr
    JobName.END_OF_DAY: JobConfig(enabled=True, cron_expression="0 18 * * 1-5"),  # 18 Uhr werktags
}


def default_schedule() -> NotificationSchedule:
    """Frische Kopie der Default-Zeitpläne."""
    return NotificationSchedule(
        timezone=DEFAULT_TIMEZONE,
        jobs={name: cfg.model_copy() for name, cfg in DEFAULT_JOB_CONFIGS.items()},
    )


DEFAULT_SCHEDULE = default_schedule()


@runtime_checkable
class ScheduleConfigSource(Protocol):
    """Externe, autoritative Quelle der Zeitplan-Einstellungen (pull-only)."""

    async def get_schedule_config(self) -> NotificationSchedule:
        """Liefert Zeitzone und Job-Konfigurationen."""
        ...


class StaticScheduleSource:
    """Config-Quelle mit festem Inhalt (Tests, eingebettete Hosts)."""

    def __init__(self, schedule: NotificationSchedule | None = None) -> None:
        self.schedule = schedule or default_schedule()

    async def get_schedule_config(self) -> NotificationSchedule:
        return self.schedule.model_copy(deep=True)


class ScheduleStore:
    """Lädt und verwaltet die Zeitpläne aus einer YAML-Datei.

    Attributes:
        path: Pfad zur schedules.yaml.
        schedule: Zuletzt geladener Zustand.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.schedule = default_schedule()

    async def get_schedule_config(self) -> NotificationSchedule:
        """Lädt die Datei in einem Worker-Thread."""
        return await asyncio.to_thread(self.load)

    def load(self) -> NotificationSchedule:
        """Lädt die Zeitpläne aus der YAML-Datei.

        Erstellt die Datei mit Defaults falls sie nicht existiert. Fehlende
        Jobs werden aus den Defaults ergänzt, unbekannte ignoriert.

        Returns:
            Die geladene Konfiguration.

        Raises:
            ConfigurationFetchError: Datei nicht lesbar, kein gültiges YAML
                oder ungültige Werte.
        """
        if not self.path.exists():
            log.info("schedule_file_missing_writing_defaults", path=str(self.path))
            self.save(default_schedule())

        try:
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (yaml.YAMLError, OSError) as exc:
            msg = f"Cannot read schedule file {self.path}: {exc}"
            raise ConfigurationFetchError(msg, details={"path": str(self.path)}) from exc

        if not isinstance(raw, dict):
            msg = f"Schedule file {self.path} must contain a mapping"
            raise ConfigurationFetchError(msg, details={"path": str(self.path)})

        raw_jobs = raw.get("jobs") or {}
        if not isinstance(raw_jobs, dict):
            msg = f"'jobs' in {self.path} must be a mapping"
            raise ConfigurationFetchError(msg, details={"path": str(self.path)})

        jobs = {name: cfg.model_copy() for name, cfg in DEFAULT_JOB_CONFIGS.items()}
        for name, definition in raw_jobs.items():
            try:
                job_name = JobName(name)
            except ValueError:
                log.warning("schedule_unknown_job_ignored", job=name)
                continue
            if not isinstance(definition, dict):
                log.warning("schedule_job_definition_invalid", job=name)
                continue
            try:
                jobs[job_name] = JobConfigUpdate.model_validate(definition).apply_to(jobs[job_name])
            except ValidationError as exc:
                msg = f"Invalid configuration for job '{name}' in {self.path}: {exc}"
                raise ConfigurationFetchError(msg, details={"job": name}) from exc

        try:
            self.schedule = NotificationSchedule(
                timezone=raw.get("timezone") or DEFAULT_TIMEZONE,
                jobs=jobs,
            )
        except ValidationError as exc:
            msg = f"Invalid schedule file {self.path}: {exc}"
            raise ConfigurationFetchError(msg, details={"path": str(self.path)}) from exc

        log.debug("schedule_file_loaded", path=str(self.path), jobs=len(jobs))
        return self.schedule

    def save(self, schedule: NotificationSchedule) -> None:
        """Schreibt die Zeitpläne in die YAML-Datei.

        Raises:
            ConfigurationFetchError: Wenn die Datei nicht geschrieben werden kann.
        """
        data: dict[str, Any] = {
            "timezone": schedule.timezone,
            "jobs": {
                name.value: {
                    "enabled": cfg.enabled,
                    "cron_expression": cfg.cron_expression,
                }
                for name, cfg in schedule.jobs.items()
            },
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False),
                encoding="utf-8",
            )
        except OSError as exc:
            msg = f"Cannot write schedule file {self.path}: {exc}"
            raise ConfigurationFetchError(msg, details={"path": str(self.path)}) from exc
        self.schedule = schedule

    def update(
        self,
        *,
        timezone: str | None = None,
        jobs: dict[str, dict[str, Any] | JobConfigUpdate] | None = None,
    ) -> NotificationSchedule:
        """Mergt ein Teil-Update in die gespeicherte Konfiguration.

        Args:
            timezone: Neue Zeitzone oder None.
            jobs: Teil-Updates pro Job (Name → Felder).

        Returns:
            Die neue, gespeicherte Konfiguration.

        Raises:
            ConfigurationFetchError: Wenn die Datei nicht gelesen werden kann.
            UnknownJobNameError: Bei unbekanntem Job-Namen.
            pydantic.ValidationError: Bei ungültigen Feldern.
        """
        current = self.load()
        merged = dict(current.jobs)
        for name, patch in (jobs or {}).items():
            job_name = coerce_job_name(name)
            update = patch if isinstance(patch, JobConfigUpdate) else JobConfigUpdate.model_validate(patch)
            merged[job_name] = update.apply_to(merged[job_name])

        updated = NotificationSchedule(timezone=timezone or current.timezone, jobs=merged)
        self.save(updated)
        log.info("schedule_file_updated", path=str(self.path))
        return updated
