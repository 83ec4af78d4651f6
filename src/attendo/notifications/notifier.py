"""Notifier: Die Aktionen, die geplante Jobs ausführen.

Inhalt und Zustellung der Benachrichtigungen (E-Mail-Aufbau, SMTP)
liegen außerhalb des Schedulers. Er kennt nur das ``Notifier``-Protokoll:
drei argumentlose Coroutinen, deren Erfolg oder Fehlschlag das einzige
Signal ist.
"""

from __future__ import annotations

from collections import Counter
from typing import Protocol, runtime_checkable

from attendo.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class Notifier(Protocol):
    """Externer Kollaborator, der die Benachrichtigungen versendet."""

    async def send_daily_reminders(self) -> None:
        """Erinnert Mitarbeitende ohne Anwesenheitseintrag."""

    async def send_weekly_summary(self) -> None:
        """Versendet den Wochenbericht an die Admins."""

    async def send_end_of_day_report(self) -> None:
        """Versendet den Tagesabschlussbericht an die Admins."""


class LoggingNotifier:
    """Standard-Notifier für den Standalone-Betrieb.

    Versendet nichts, sondern protokolliert jede Aktion als strukturiertes
    Event. Nützlich um Zeitpläne zu prüfen, bevor ein echter Notifier
    angebunden ist.
    """

    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()

    async def _emit(self, action: str) -> None:
        self.calls[action] += 1
        log.info("notification_sent", action=action, count=self.calls[action])

    async def send_daily_reminders(self) -> None:
        await self._emit("daily_reminders")

    async def send_weekly_summary(self) -> None:
        await self._emit("weekly_summary")

    async def send_end_of_day_report(self) -> None:
        await self._emit("end_of_day_report")
