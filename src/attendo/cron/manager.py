"""Schedule-Manager: Lebenszyklus und Registry der Benachrichtigungs-Jobs.

Der ScheduleManager ist die einzige Komponente mit veränderlichem
Zustand. Er holt die Zeitpläne von der Config-Quelle, validiert jeden
Cron-Ausdruck, lässt vom CronTimer pro aktivem Job genau einen Timer
anlegen und verwaltet ``{config, handle}`` pro Job-Name.

Invarianten:
  - Ein Handle existiert genau dann, wenn der Job aktiviert ist und der
    Manager läuft.
  - Höchstens ein lebendes Handle pro Job.
  - In der Registry stehen nur validierte Cron-Ausdrücke.
  - Eine Zeitzonen-Änderung erzeugt alle Handles neu.

Neukonfiguration ist immer "stop-the-world": ``reload_schedules()`` stoppt
alle Timer und startet sie neu. Zwischen den beiden Schritten ist kurz
kein Job aktiv -- für Benachrichtigungen akzeptabel.

Registry-Zugriffe laufen unter einem ``threading.RLock``. Der Lock wird
nie über ein ``await`` hinweg gehalten; Config-Abfragen und Notifier-
Aktionen laufen immer außerhalb.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from attendo.core.errors import (
    ConfigurationFetchError,
    InvalidCronExpressionError,
    TaskExecutionError,
    UnknownJobNameError,
)
from attendo.cron.expression import (
    estimate_next_run,
    is_valid_timezone,
    parse_cron_expression,
)
from attendo.cron.store import DEFAULT_SCHEDULE
from attendo.cron.timer import CronTimer, JobHandle
from attendo.models import (
    JobConfig,
    JobConfigUpdate,
    JobName,
    JobStatus,
    JobStatusEntry,
    NotificationSchedule,
    OperationResult,
    StatusSnapshot,
    coerce_job_name,
)
from attendo.utils.logging import bind_context, get_logger, unbind_context

if TYPE_CHECKING:
    from attendo.cron.expression import CronSchedule
    from attendo.cron.store import ScheduleConfigSource
    from attendo.cron.timer import TimerCallback
    from attendo.notifications.tasks import TaskRegistry

log = get_logger(__name__)


@dataclass
class _JobEntry:
    """Registry-Eintrag: gewünschte Konfiguration + lebender Timer."""

    config: JobConfig
    handle: JobHandle | None = None
    ticket: str | None = None  # identifiziert die Timer-Generation des Handles


@dataclass
class _RunRecord:
    """Letzter Lauf im aktuellen Prozess (keine Persistenz)."""

    last_run_at: datetime | None = None
    last_error: str | None = None


class ScheduleManager:
    """Orchestriert die wiederkehrenden Benachrichtigungs-Jobs.

    Wird einmal pro Prozess vom Host erzeugt und übergeben (kein Singleton).

    Attributes:
        running: Ob der Manager läuft.
        timezone: Zeitzone der aktuellen Scheduler-Generation.
    """

    def __init__(
        self,
        config_source: ScheduleConfigSource,
        tasks: TaskRegistry,
        *,
        timer: CronTimer | None = None,
        fallback: NotificationSchedule | None = None,
    ) -> None:
        """Initialisiert den ScheduleManager.

        Args:
            config_source: Autoritative Quelle der Zeitpläne (pull-only).
            tasks: Zuordnung Job-Name → Notifier-Aktion.
            timer: Timer-Engine. Default: ``CronTimer()`` auf APScheduler.
            fallback: Zeitpläne, die bei einem Fehler der Config-Quelle
                genutzt werden. Default: ``DEFAULT_SCHEDULE``.
        """
        self._source = config_source
        self._tasks = tasks
        self._timer = timer or CronTimer()
        self._fallback = (fallback or DEFAULT_SCHEDULE).model_copy(deep=True)
        self._lock = threading.RLock()
        self._jobs: dict[JobName, _JobEntry] = {}
        self._runs: dict[JobName, _RunRecord] = {}
        self._timezone_override: str | None = None
        self._staged: dict[JobName, JobConfigUpdate] = {}  # Updates bei gestopptem Manager
        self.running = False
        self.timezone = self._fallback.timezone

    # === Lebenszyklus ===

    async def start(self) -> None:
        """Lädt die Zeitpläne und legt für jeden aktiven Job einen Timer an."""
        if self.running:
            log.warning("schedule_manager_already_running")
            return

        log.info("schedule_manager_starting")
        schedule = await self._fetch_schedule()

        with self._lock:
            # Ein paralleles start() kann während des Fetches committed haben
            if self.running:
                log.warning("schedule_manager_already_running")
                return

            self.timezone = self._resolve_timezone(self._timezone_override or schedule.timezone)
            self._timer.start()
            staged, self._staged = self._staged, {}
            self._jobs.clear()
            for name in self._tasks.names:
                config = schedule.jobs.get(name)
                if config is not None and name in staged:
                    config = staged[name].apply_to(config)
                if config is None:
                    log.warning("schedule_job_not_configured", job=name.value)
                    continue
                self._register(name, config)
            self.running = True
            active = self._active_count()

        log.info(
            "schedule_manager_started",
            active_jobs=active,
            timezone=self.timezone,
        )

    async def stop(self) -> None:
        """Stoppt alle Timer und leert die Registry.

        Nach der Rückkehr feuert kein Timer mehr. Bereits laufende
        Notifier-Aktionen werden nicht abgebrochen.
        """
        with self._lock:
            if not self.running:
                log.info("schedule_manager_not_running")
                return

            stopped = 0
            for entry in self._jobs.values():
                if entry.handle is not None:
                    entry.handle.stop()
                    stopped += 1
            self._jobs.clear()
            self._timer.shutdown()
            self.running = False

        log.info("schedule_manager_stopped", stopped_jobs=stopped)

    async def reload_schedules(self) -> None:
        """Stop + Start mit der aktuellen Konfiguration."""
        log.info("schedule_manager_reloading")
        await self.stop()
        await self.start()

    # === Laufzeit-Änderungen ===

    def update_schedule(
        self,
        name: str | JobName,
        partial: JobConfigUpdate | dict[str, Any],
    ) -> OperationResult:
        """Ändert den Zeitplan eines Jobs zur Laufzeit.

        Deaktivierte Jobs oder leere Ausdrücke stoppen den Timer, die
        Konfiguration bleibt erhalten. Ein ungültiger Ausdruck lässt
        Handle und Konfiguration unverändert.
        Bei gestopptem Manager wird das Update vorgemerkt und beim
        nächsten ``start()`` einmalig angewendet.

        Args:
            name: Job-Name.
            partial: Teil-Update (``enabled`` und/oder ``cron_expression``;
                camelCase ``cronExpression`` wird ebenfalls akzeptiert).

        Returns:
            Erfolg oder Fehler mit Meldung. Wirft nie.
        """
        try:
            job_name = coerce_job_name(name)
        except UnknownJobNameError as exc:
            return OperationResult.fail(str(exc))
        if job_name not in self._tasks:
            return OperationResult.fail(f"Unknown job '{name}'")

        try:
            update = (
                partial
                if isinstance(partial, JobConfigUpdate)
                else JobConfigUpdate.model_validate(partial)
            )
        except ValidationError as exc:
            detail = exc.errors()[0].get("msg", "invalid value") if exc.errors() else str(exc)
            return OperationResult.fail(f"Invalid schedule update for '{job_name}': {detail}")

        with self._lock:
            entry = self._jobs.get(job_name)
            current = entry.config if entry is not None else self._fallback_config(job_name)
            merged = update.apply_to(current)

            schedule: CronSchedule | None = None
            if merged.cron_expression:
                try:
                    schedule = parse_cron_expression(merged.cron_expression)
                except InvalidCronExpressionError as exc:
                    log.warning(
                        "schedule_update_rejected",
                        job=job_name.value,
                        cron=merged.cron_expression,
                        error=str(exc),
                    )
                    return OperationResult.fail(f"Invalid cron expression for '{job_name}': {exc}")
                merged = merged.model_copy(update={"cron_expression": schedule.expression})

            if not self.running:
                # Wird beim nächsten start() über die Config-Quelle gelegt
                self._staged[job_name] = self._combine_staged(job_name, update, merged)
                self._jobs[job_name] = _JobEntry(config=merged)
                log.info("schedule_job_staged", job=job_name.value, cron=merged.cron_expression)
                return OperationResult.ok(
                    f"Schedule '{job_name}' updated; it applies once the scheduler is started"
                )

            old_handle = entry.handle if entry is not None else None

            if not merged.enabled or schedule is None:
                if old_handle is not None:
                    old_handle.stop()
                self._jobs[job_name] = _JobEntry(config=merged)
                log.info("schedule_job_deactivated", job=job_name.value, enabled=merged.enabled)
                return OperationResult.ok(f"Schedule '{job_name}' updated and deactivated")

            # Neuen Timer zuerst anlegen: schlägt das fehl, bleibt der alte stehen
            callback, ticket = self._make_callback(job_name)
            try:
                handle = self._timer.schedule(job_name.value, schedule, self.timezone, callback)
            except Exception as exc:
                log.exception("schedule_job_create_failed", job=job_name.value)
                return OperationResult.fail(f"Could not schedule '{job_name}': {exc}")
            if old_handle is not None:
                old_handle.stop()
            self._jobs[job_name] = _JobEntry(config=merged, handle=handle, ticket=ticket)

        log.info("schedule_job_updated", job=job_name.value, cron=schedule.expression)
        return OperationResult.ok(f"Schedule '{job_name}' updated: {schedule.expression}")

    async def update_timezone(self, timezone: str) -> OperationResult:
        """Setzt die Zeitzone aller Jobs und erzeugt die Timer neu.

        Die Zeitzone gilt auch für spätere Reloads, bis sie erneut
        geändert wird.
        """
        if not is_valid_timezone(timezone):
            return OperationResult.fail(f"Unknown timezone '{timezone}'")

        with self._lock:
            previous = self.timezone
            self._timezone_override = timezone
            was_running = self.running
            if not was_running:
                self.timezone = timezone

        # Bei laufendem Manager setzt erst start() die neue Zeitzone
        if was_running:
            await self.reload_schedules()
        log.info("schedule_timezone_changed", old=previous, new=timezone)
        return OperationResult.ok(f"Timezone set to '{timezone}'")

    def clear_timezone_override(self) -> None:
        """Verwirft die per ``update_timezone`` gesetzte Zeitzone.

        Danach gilt beim nächsten Start wieder die Zeitzone der
        Config-Quelle.
        """
        with self._lock:
            self._timezone_override = None

    async def trigger_job(self, name: str | JobName) -> OperationResult:
        """Führt einen Job sofort einmal aus (unabhängig vom Zeitplan).

        Returns:
            Erfolg oder Fehler mit Meldung. Wirft nie.
        """
        try:
            job_name = coerce_job_name(name)
            await self._invoke(job_name, trigger="manual")
        except UnknownJobNameError as exc:
            log.warning("trigger_unknown_job", job=str(name))
            return OperationResult.fail(str(exc))
        except TaskExecutionError as exc:
            return OperationResult.fail(str(exc))
        return OperationResult.ok(f"Job '{job_name}' triggered successfully")

    # === Abfragen ===

    def is_job_active(self, name: str | JobName) -> bool:
        """True wenn der Job gerade einen lebenden Timer hat."""
        try:
            job_name = coerce_job_name(name)
        except UnknownJobNameError:
            return False
        with self._lock:
            entry = self._jobs.get(job_name)
            return entry is not None and entry.handle is not None and entry.handle.active

    @property
    def active_job_count(self) -> int:
        with self._lock:
            return self._active_count()

    def job_config(self, name: str | JobName) -> JobConfig | None:
        """Aktuelle Konfiguration eines Jobs in der Registry (oder None)."""
        try:
            job_name = coerce_job_name(name)
        except UnknownJobNameError:
            return None
        with self._lock:
            entry = self._jobs.get(job_name)
            return None if entry is None else entry.config.model_copy()

    def get_next_run_times(self) -> dict[str, datetime | None]:
        """Exakte nächste Ausführungszeiten aller aktiven Jobs laut Timer."""
        with self._lock:
            handles = {
                name.value: entry.handle
                for name, entry in self._jobs.items()
                if entry.handle is not None
            }
        result: dict[str, datetime | None] = {}
        for name, handle in handles.items():
            try:
                result[name] = handle.next_fire_time
            except Exception:
                log.debug("next_run_time_fetch_skipped", job=name, exc_info=True)
                result[name] = None
        return result

    def get_status(self, now: datetime | None = None) -> StatusSnapshot:
        """Momentaufnahme für Operatoren. Wirft nie.

        ``next_run_estimate`` ist eine Vorschau aus Minute, Stunde und
        Wochentag (siehe ``estimate_next_run``), keine Garantie.
        """
        with self._lock:
            running = self.running
            timezone = self.timezone
            entries = {name: (entry.config, entry.handle) for name, entry in self._jobs.items()}
            runs = {name: (rec.last_run_at, rec.last_error) for name, rec in self._runs.items()}

        names = list(self._tasks.names)
        names.extend(name for name in entries if name not in names)

        jobs: list[JobStatusEntry] = []
        active = 0
        for name in names:
            job_entry = self._status_entry(name, entries.get(name), running, timezone, runs.get(name), now)
            if job_entry.status is JobStatus.ACTIVE:
                active += 1
            jobs.append(job_entry)

        return StatusSnapshot(
            is_running=running,
            active_job_count=active,
            timezone=timezone,
            jobs=jobs,
        )

    # === Interna ===

    async def _fetch_schedule(self) -> NotificationSchedule:
        """Holt die Zeitpläne; bei jedem Fehler greifen die Defaults."""
        try:
            return await self._source.get_schedule_config()
        except Exception as exc:
            error = (
                exc
                if isinstance(exc, ConfigurationFetchError)
                else ConfigurationFetchError(f"Schedule config fetch failed: {exc}")
            )
            log.error(
                "schedule_config_fetch_failed_using_defaults",
                error=str(error),
                error_code=error.error_code,
            )
            return self._fallback.model_copy(deep=True)

    def _combine_staged(
        self, name: JobName, update: JobConfigUpdate, merged: JobConfig
    ) -> JobConfigUpdate:
        """Fasst mehrere Updates eines gestoppten Managers zusammen."""
        fields: dict[str, Any] = {}
        previous = self._staged.get(name)
        if previous is not None:
            fields.update(previous.model_dump(exclude_unset=True, exclude_none=True))
        fields.update(update.model_dump(exclude_unset=True, exclude_none=True))
        if "cron_expression" in fields:
            fields["cron_expression"] = merged.cron_expression
        return JobConfigUpdate.model_validate(fields)

    def _resolve_timezone(self, timezone: str) -> str:
        if is_valid_timezone(timezone):
            return timezone
        fallback = self._fallback.timezone
        log.error("schedule_invalid_timezone", timezone=timezone, fallback=fallback)
        return fallback

    def _fallback_config(self, name: JobName) -> JobConfig:
        config = self._fallback.jobs.get(name)
        return config.model_copy() if config is not None else JobConfig(enabled=False)

    def _register(self, name: JobName, config: JobConfig) -> None:
        """Trägt einen Job beim Start ein. Fehler betreffen nur diesen Job."""
        cron = config.cron_expression.strip()
        schedule: CronSchedule | None = None
        if cron:
            try:
                schedule = parse_cron_expression(cron)
            except InvalidCronExpressionError as exc:
                log.error("schedule_invalid_cron_skipped", job=name.value, cron=cron, error=str(exc))
                return
        config = config.model_copy(update={"cron_expression": schedule.expression if schedule else ""})

        if not config.enabled or schedule is None:
            self._jobs[name] = _JobEntry(config=config)
            log.info("schedule_job_inactive", job=name.value, enabled=config.enabled)
            return

        callback, ticket = self._make_callback(name)
        try:
            handle = self._timer.schedule(name.value, schedule, self.timezone, callback)
        except Exception:
            log.exception("schedule_job_create_failed", job=name.value)
            return
        self._jobs[name] = _JobEntry(config=config, handle=handle, ticket=ticket)
        log.info("schedule_job_registered", job=name.value, cron=schedule.expression, timezone=self.timezone)

    def _make_callback(self, name: JobName) -> tuple[TimerCallback, str]:
        ticket = uuid.uuid4().hex

        async def _fire() -> None:
            await self._run_scheduled(name, ticket)

        return _fire, ticket

    async def _run_scheduled(self, name: JobName, ticket: str) -> None:
        """Fehlergrenze pro Lauf: nichts propagiert, der Job bleibt geplant."""
        with self._lock:
            entry = self._jobs.get(name)
            live = entry is not None and entry.handle is not None and entry.ticket == ticket
        if not live:
            log.debug("scheduled_run_ignored_stale_timer", job=name.value)
            return

        bind_context(job=name.value)
        try:
            await self._invoke(name, trigger="schedule")
        except TaskExecutionError as exc:
            log.error("scheduled_job_failed", error=str(exc))
        except Exception:
            log.exception("scheduled_job_crashed")
        finally:
            unbind_context("job")

    async def _invoke(self, name: JobName, *, trigger: str) -> None:
        """Führt die Notifier-Aktion eines Jobs einmal aus.

        Raises:
            UnknownJobNameError: Job nicht in der TaskRegistry.
            TaskExecutionError: Die Aktion ist fehlgeschlagen.
        """
        action = self._tasks.resolve(name)
        started_at = datetime.now(UTC)
        started = time.monotonic()
        log.info("job_started", job=name.value, trigger=trigger)
        try:
            await action()
        except Exception as exc:
            with self._lock:
                self._runs[name] = _RunRecord(started_at, f"{type(exc).__name__}: {exc}")
            log.exception("job_failed", job=name.value, trigger=trigger)
            msg = f"Job '{name}' failed: {exc}"
            raise TaskExecutionError(msg, details={"job": name.value, "trigger": trigger}) from exc

        with self._lock:
            self._runs[name] = _RunRecord(started_at, None)
        log.info(
            "job_finished",
            job=name.value,
            trigger=trigger,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    def _active_count(self) -> int:
        return sum(
            1 for entry in self._jobs.values() if entry.handle is not None and entry.handle.active
        )

    def _status_entry(
        self,
        name: JobName,
        entry: tuple[JobConfig, JobHandle | None] | None,
        running: bool,
        timezone: str,
        run: tuple[datetime | None, str | None] | None,
        now: datetime | None,
    ) -> JobStatusEntry:
        last_run_at, last_error = run or (None, None)
        try:
            if entry is None:
                return JobStatusEntry(
                    name=name.value,
                    status=JobStatus.UNKNOWN if running else JobStatus.STOPPED,
                    last_run_at=last_run_at,
                    last_error=last_error,
                )

            config, handle = entry
            next_run: datetime | None = None
            if running and handle is not None and handle.active:
                status = JobStatus.ACTIVE
                next_run = estimate_next_run(parse_cron_expression(config.cron_expression), timezone, now)
            elif not config.enabled or not config.cron_expression:
                status = JobStatus.DISABLED
            elif not running:
                status = JobStatus.STOPPED
            else:
                status = JobStatus.UNKNOWN

            return JobStatusEntry(
                name=name.value,
                status=status,
                cron_expression=config.cron_expression or None,
                enabled=config.enabled,
                next_run_estimate=next_run,
                last_run_at=last_run_at,
                last_error=last_error,
            )
        except Exception:
            log.debug("status_entry_inconsistent", job=name.value, exc_info=True)
            return JobStatusEntry(name=name.value, status=JobStatus.UNKNOWN)
