"""Host-Verdrahtung: baut den ScheduleManager aus der Konfiguration.

Der Host besitzt genau eine ScheduleManager-Instanz für die Lebensdauer
des Prozesses. ``run_service`` hält sie am Leben, bis SIGINT/SIGTERM
eintrifft; SIGHUP lädt die Zeitpläne neu.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from typing import TYPE_CHECKING

from attendo.cron.manager import ScheduleManager
from attendo.cron.store import ScheduleStore, default_schedule
from attendo.cron.timer import CronTimer
from attendo.notifications.notifier import LoggingNotifier
from attendo.notifications.tasks import TaskRegistry
from attendo.utils.logging import get_logger

if TYPE_CHECKING:
    from attendo.config import AttendoConfig
    from attendo.notifications.notifier import Notifier

log = get_logger(__name__)


def create_schedule_manager(
    config: AttendoConfig,
    notifier: Notifier | None = None,
) -> tuple[ScheduleManager, ScheduleStore]:
    """Erzeugt Store und Manager für die gegebene Konfiguration.

    Args:
        config: Geladene AttendoConfig.
        notifier: Notifier-Implementierung. Default: ``LoggingNotifier``.

    Returns:
        (manager, store) -- der Store ist zugleich die Config-Quelle.
    """
    store = ScheduleStore(config.schedule_config_file)
    fallback = default_schedule()
    fallback.timezone = config.scheduler.timezone
    manager = ScheduleManager(
        store,
        TaskRegistry(notifier or LoggingNotifier()),
        timer=CronTimer(misfire_grace_time=config.scheduler.misfire_grace_seconds),
        fallback=fallback,
    )
    return manager, store


async def run_service(
    config: AttendoConfig,
    notifier: Notifier | None = None,
    *,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Startet den Scheduler und blockiert bis zum Stop-Signal."""
    manager, _ = create_schedule_manager(config, notifier)
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    pending: set[asyncio.Task[None]] = set()

    def _request_reload() -> None:
        task = loop.create_task(manager.reload_schedules())
        pending.add(task)
        task.add_done_callback(pending.discard)

    installed: list[signal.Signals] = []
    handlers = {
        signal.SIGINT: stop_event.set,
        signal.SIGTERM: stop_event.set,
    }
    if hasattr(signal, "SIGHUP"):
        handlers[signal.SIGHUP] = _request_reload
    for sig, handler in handlers.items():
        # Windows und Nicht-Main-Threads kennen keine Loop-Signal-Handler
        with contextlib.suppress(NotImplementedError, OSError, ValueError):
            loop.add_signal_handler(sig, handler)
            installed.append(sig)

    await manager.start()
    status = manager.get_status()
    log.info(
        "attendo_ready",
        active_jobs=status.active_job_count,
        timezone=status.timezone,
        next_runs={k: v.isoformat() if v else None for k, v in manager.get_next_run_times().items()},
    )

    try:
        await stop_event.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await manager.stop()
        log.info("attendo_stopped")
