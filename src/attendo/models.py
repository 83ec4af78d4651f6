"""
Attendo · Central data models.

All Pydantic models shared between the scheduler, the configuration
source and the administrative surface.

Design principles:
  - Immutable (frozen) where sensible (results, status snapshots)
  - Strict validation (no invalid state possible)
  - JSON-serializable (for logging, persistence, admin transport)
  - snake_case field names, camelCase aliases accepted on input
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from attendo.core.errors import UnknownJobNameError

DEFAULT_TIMEZONE = "Asia/Dhaka"

# ============================================================================
# Hilfsfunktionen
# ============================================================================


def _utc_now() -> datetime:
    """Aktuelle Zeit in UTC. Einheitlich im gesamten System."""
    return datetime.now(UTC)


# ============================================================================
# Enums
# ============================================================================


class JobName(StrEnum):
    """Die geschlossene Menge planbarer Benachrichtigungs-Jobs.

    Neue Jobs werden hier ergänzt und in der TaskRegistry verdrahtet.
    """

    DAILY_REMINDER = "dailyReminder"
    WEEKLY_REPORT = "weeklyReport"
    END_OF_DAY = "endOfDay"


def coerce_job_name(name: str | JobName) -> JobName:
    """Wandelt einen String in einen JobName um.

    Raises:
        UnknownJobNameError: Wenn der Name nicht registriert ist.
    """
    try:
        return JobName(name)
    except ValueError:
        valid = ", ".join(member.value for member in JobName)
        msg = f"Unknown job '{name}'. Valid jobs: {valid}"
        raise UnknownJobNameError(msg, details={"job": str(name)}) from None


class JobStatus(StrEnum):
    """Status eines Jobs im Status-Snapshot.

    ACTIVE:   Timer läuft
    DISABLED: Konfiguration vorhanden, aber deaktiviert
    STOPPED:  Scheduler läuft nicht
    UNKNOWN:  Scheduler läuft, aber kein konsistenter Eintrag (z.B. übersprungen)
    """

    ACTIVE = "active"
    DISABLED = "disabled"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


# ============================================================================
# Schedule-Konfiguration
# ============================================================================


class JobConfig(BaseModel):
    """Gewünschter Zeitplan eines einzelnen Jobs."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    cron_expression: str = Field(default="", alias="cronExpression")


class JobConfigUpdate(BaseModel):
    """Teil-Update für einen JobConfig. Nicht gesetzte Felder bleiben erhalten."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    enabled: bool | None = None
    cron_expression: str | None = Field(default=None, alias="cronExpression")

    def apply_to(self, current: JobConfig) -> JobConfig:
        """Mergt das Update in eine bestehende Konfiguration."""
        changes = self.model_dump(exclude_unset=True, exclude_none=True)
        if "cron_expression" in changes:
            changes["cron_expression"] = changes["cron_expression"].strip()
        return current.model_copy(update=changes)


class NotificationSchedule(BaseModel):
    """Vollständige Schedule-Konfiguration wie sie die Config-Quelle liefert."""

    timezone: str = DEFAULT_TIMEZONE
    jobs: dict[JobName, JobConfig] = Field(default_factory=dict)


# ============================================================================
# Admin-Ergebnisse & Status
# ============================================================================


class OperationResult(BaseModel, frozen=True):
    """Ergebnis einer administrativen Operation. Wird nie als Exception gemeldet."""

    success: bool
    message: str

    @classmethod
    def ok(cls, message: str) -> OperationResult:
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, message: str) -> OperationResult:
        return cls(success=False, message=message)


class JobStatusEntry(BaseModel, frozen=True):
    """Status-Zeile eines Jobs."""

    name: str
    status: JobStatus
    cron_expression: str | None = None
    enabled: bool = False
    next_run_estimate: datetime | None = None
    last_run_at: datetime | None = None
    last_error: str | None = None


class StatusSnapshot(BaseModel, frozen=True):
    """Momentaufnahme des Schedulers für Operatoren."""

    is_running: bool
    active_job_count: int
    timezone: str
    jobs: list[JobStatusEntry] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_utc_now)

    def job(self, name: str) -> JobStatusEntry | None:
        """Sucht die Status-Zeile eines Jobs."""
        for entry in self.jobs:
            if entry.name == name:
                return entry
        return None
