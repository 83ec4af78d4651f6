"""Admin-Aktionen: Einstellungen persistieren und Zeitpläne neu laden.

Transportneutrale Bausteine für eine externe HTTP- oder CLI-Schicht.
Jede Funktion validiert zuerst, schreibt dann in den ScheduleStore und
lädt danach den ScheduleManager neu. Fehler kommen als
``OperationResult`` zurück, nie als Exception.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from attendo.core.errors import AttendoError
from attendo.cron.expression import is_valid_cron_expression, is_valid_timezone
from attendo.models import JobConfigUpdate, OperationResult, coerce_job_name
from attendo.utils.logging import get_logger

if TYPE_CHECKING:
    from attendo.cron.manager import ScheduleManager
    from attendo.cron.store import ScheduleStore

log = get_logger(__name__)


async def apply_schedule_settings(
    manager: ScheduleManager,
    store: ScheduleStore,
    *,
    timezone: str | None = None,
    jobs: dict[str, dict[str, Any]] | None = None,
) -> OperationResult:
    """Speichert ein Teil-Update der Einstellungen und lädt neu.

    Args:
        manager: Laufender (oder gestoppter) ScheduleManager.
        store: Persistente Config-Quelle des Managers.
        timezone: Neue Zeitzone oder None.
        jobs: Teil-Updates pro Job-Name.

    Returns:
        Erfolg oder die erste Validierungs-/Speicher-Fehlermeldung.
    """
    if timezone is not None and not is_valid_timezone(timezone):
        return OperationResult.fail(f"Unknown timezone '{timezone}'")

    updates: dict[str, JobConfigUpdate] = {}
    for name, patch in (jobs or {}).items():
        try:
            job_name = coerce_job_name(name)
            update = JobConfigUpdate.model_validate(patch)
        except AttendoError as exc:
            return OperationResult.fail(str(exc))
        except ValidationError as exc:
            return OperationResult.fail(f"Invalid settings for '{name}': {exc.errors()[0].get('msg')}")
        if update.cron_expression and not is_valid_cron_expression(update.cron_expression):
            return OperationResult.fail(f"Invalid cron expression for {job_name}")
        updates[job_name.value] = update

    try:
        store.update(timezone=timezone, jobs=updates)
    except AttendoError as exc:
        log.error("schedule_settings_save_failed", error=str(exc))
        return OperationResult.fail(f"Failed to save schedule settings: {exc}")

    if timezone is not None:
        # Gespeicherte Zeitzone ersetzt eine frühere Laufzeit-Änderung
        manager.clear_timezone_override()
    if manager.running:
        await manager.reload_schedules()
    log.info("schedule_settings_applied", jobs=sorted(updates), timezone=timezone)
    return OperationResult.ok("Schedule settings updated and reloaded successfully")


async def toggle_schedule(
    manager: ScheduleManager,
    store: ScheduleStore,
    name: str,
    enabled: bool,
) -> OperationResult:
    """Aktiviert oder deaktiviert einen Job dauerhaft."""
    if not isinstance(enabled, bool):
        return OperationResult.fail("enabled must be a boolean value")
    result = await apply_schedule_settings(manager, store, jobs={name: {"enabled": enabled}})
    if not result.success:
        return result
    return OperationResult.ok(f"{name} {'enabled' if enabled else 'disabled'} successfully")
