"""Test-Doubles für Timer-Engine und Config-Quelle.

``FakeTimer`` ersetzt APScheduler durch eine simulierte Uhr: ``advance_to``
feuert jeden aktiven Handle, dessen Cron-Ausdruck in seiner Zeitzone auf
den Zeitpunkt passt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

from attendo.core.errors import ConfigurationFetchError
from attendo.notifications.notifier import Notifier

if TYPE_CHECKING:
    from datetime import datetime

    from attendo.cron.expression import CronSchedule
    from attendo.cron.timer import TimerCallback
    from attendo.models import NotificationSchedule


@dataclass
class FakeHandle:
    name: str
    job_id: str
    cron_expression: str
    timezone: str
    schedule: CronSchedule
    callback: TimerCallback
    active: bool = True
    stop_calls: int = 0

    @property
    def next_fire_time(self) -> datetime | None:
        return None

    def stop(self) -> None:
        self.stop_calls += 1
        self.active = False


@dataclass
class FakeTimer:
    running: bool = False
    generations: int = 0
    handles: list[FakeHandle] = field(default_factory=list)
    fail_on: set[str] = field(default_factory=set)

    def start(self) -> None:
        if not self.running:
            self.running = True
            self.generations += 1

    def shutdown(self) -> None:
        self.running = False

    def schedule(
        self,
        name: str,
        schedule: CronSchedule,
        timezone: str,
        callback: TimerCallback,
    ) -> FakeHandle:
        if not self.running:
            msg = "CronTimer is not started"
            raise RuntimeError(msg)
        if name in self.fail_on:
            msg = f"cannot schedule {name}"
            raise RuntimeError(msg)
        handle = FakeHandle(
            name=name,
            job_id=f"fake-{name}-{len(self.handles)}",
            cron_expression=schedule.expression,
            timezone=timezone,
            schedule=schedule,
            callback=callback,
        )
        self.handles.append(handle)
        return handle

    def live(self, name: str | None = None) -> list[FakeHandle]:
        return [h for h in self.handles if h.active and (name is None or h.name == name)]

    async def advance_to(self, moment: datetime) -> int:
        """Feuert alle passenden Handles. Gibt die Anzahl der Feuerungen zurück."""
        fired = 0
        for handle in list(self.handles):
            if not handle.active:
                continue
            local = moment.astimezone(ZoneInfo(handle.timezone))
            if handle.schedule.matches(local):
                await handle.callback()
                fired += 1
        return fired


class FailingSource:
    """Config-Quelle, die immer fehlschlägt."""

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or ConfigurationFetchError("database unavailable")
        self.calls = 0

    async def get_schedule_config(self) -> NotificationSchedule:
        self.calls += 1
        raise self.exc


def make_notifier() -> MagicMock:
    """Notifier-Mock mit drei AsyncMock-Aktionen."""
    notifier = MagicMock(spec=Notifier)
    notifier.send_daily_reminders = AsyncMock()
    notifier.send_weekly_summary = AsyncMock()
    notifier.send_end_of_day_report = AsyncMock()
    return notifier
