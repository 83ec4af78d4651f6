"""Task-Registry: Job-Name → async Aktion des Notifiers.

Statische Zuordnung ohne eigenen Zustand. Der ScheduleManager löst
hierüber sowohl geplante Läufe als auch manuelle Trigger auf.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

from attendo.models import JobName, coerce_job_name

if TYPE_CHECKING:
    from attendo.notifications.notifier import Notifier

TaskAction = Callable[[], Coroutine[Any, Any, Any]]


class TaskRegistry:
    """Ordnet jedem JobName die passende Notifier-Aktion zu."""

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier
        self._actions: dict[JobName, TaskAction] = {
            JobName.DAILY_REMINDER: notifier.send_daily_reminders,
            JobName.WEEKLY_REPORT: notifier.send_weekly_summary,
            JobName.END_OF_DAY: notifier.send_end_of_day_report,
        }

    @property
    def names(self) -> tuple[JobName, ...]:
        """Registrierte Job-Namen in Deklarationsreihenfolge."""
        return tuple(self._actions)

    def __contains__(self, name: object) -> bool:
        try:
            return JobName(name) in self._actions  # type: ignore[arg-type]
        except ValueError:
            return False

    def resolve(self, name: str | JobName) -> TaskAction:
        """Gibt die Aktion für einen Job zurück.

        Raises:
            UnknownJobNameError: Bei unbekanntem Namen.
        """
        return self._actions[coerce_job_name(name)]
