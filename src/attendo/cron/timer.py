"""Timer-Engine: APScheduler-Backend für wiederkehrende Cron-Jobs.

Eine ``CronTimer``-Instanz besitzt pro Scheduler-Generation genau einen
``AsyncIOScheduler``. ``start()`` erzeugt eine frische Generation,
``shutdown()`` verwirft sie komplett -- laufende Timer werden nie
in-place verändert, sondern gestoppt und neu angelegt.
"""

from __future__ import annotations

import contextlib
import uuid
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from attendo.utils.logging import get_logger

if TYPE_CHECKING:
    from datetime import datetime

    from attendo.cron.expression import CronSchedule

log = get_logger(__name__)

# Callback, den der Timer bei jedem Treffer aufruft
TimerCallback = Callable[[], Coroutine[Any, Any, Any]]


@dataclass
class JobHandle:
    """Stoppbare Referenz auf einen geplanten Timer.

    Gehört exklusiv dem ScheduleManager. ``stop()`` entfernt den Job
    synchron aus dem Scheduler; danach feuert er garantiert nicht mehr.
    """

    name: str
    job_id: str
    cron_expression: str
    timezone: str
    _scheduler: AsyncIOScheduler | None = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._scheduler is not None

    @property
    def next_fire_time(self) -> datetime | None:
        """Nächster exakter Feuerzeitpunkt laut APScheduler."""
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(self.job_id)
        if job is None:
            return None
        return job.next_run_time

    def stop(self) -> None:
        """Entfernt den Timer. Idempotent."""
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is None:
            return
        with contextlib.suppress(JobLookupError):
            scheduler.remove_job(self.job_id)
        log.debug("timer_stopped", job=self.name, job_id=self.job_id)


class CronTimer:
    """Erzeugt JobHandles auf einem AsyncIOScheduler.

    Attributes:
        misfire_grace_time: Sekunden, die ein verpasster Lauf noch
            nachgeholt werden darf.
    """

    def __init__(self, *, misfire_grace_time: int = 300) -> None:
        self.misfire_grace_time = misfire_grace_time
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        """Startet eine neue Scheduler-Generation.

        Muss innerhalb einer laufenden asyncio-Eventloop aufgerufen werden.
        """
        if self._scheduler is not None:
            return
        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.start()
        self._scheduler = scheduler
        log.debug("timer_generation_started")

    def shutdown(self) -> None:
        """Beendet die aktuelle Generation. Laufende Aktionen laufen weiter."""
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is None:
            return
        scheduler.remove_all_jobs()
        scheduler.shutdown(wait=False)
        log.debug("timer_generation_stopped")

    def schedule(
        self,
        name: str,
        schedule: CronSchedule,
        timezone: str,
        callback: TimerCallback,
    ) -> JobHandle:
        """Plant ``callback`` für jeden Treffer von ``schedule``.

        Args:
            name: Job-Name (für IDs und Logs).
            schedule: Validierter Cron-Ausdruck.
            timezone: IANA-Zeitzone, in der der Ausdruck ausgewertet wird.
            callback: Argumentloser async-Callback.

        Returns:
            Handle auf den neuen Timer.

        Raises:
            RuntimeError: Wenn keine Scheduler-Generation läuft.
        """
        if self._scheduler is None:
            msg = "CronTimer is not started"
            raise RuntimeError(msg)

        trigger = CronTrigger(**schedule.trigger_fields(), timezone=timezone)
        job_id = f"attendo-{name}-{uuid.uuid4().hex[:8]}"
        self._scheduler.add_job(
            callback,
            trigger=trigger,
            id=job_id,
            name=name,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_time,
        )
        return JobHandle(
            name=name,
            job_id=job_id,
            cron_expression=schedule.expression,
            timezone=timezone,
            _scheduler=self._scheduler,
        )
