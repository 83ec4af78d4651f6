"""Tests für die Admin-Aktionen (persistieren + neu laden)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import yaml
from fakes import FakeTimer, make_notifier

from attendo.cron.admin import apply_schedule_settings, toggle_schedule
from attendo.cron.manager import ScheduleManager
from attendo.cron.store import ScheduleStore
from attendo.models import JobName, JobStatus
from attendo.notifications.tasks import TaskRegistry

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def store(tmp_path: Path) -> ScheduleStore:
    return ScheduleStore(tmp_path / "schedules.yaml")


@pytest.fixture()
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture()
def manager(store: ScheduleStore, timer: FakeTimer) -> ScheduleManager:
    return ScheduleManager(store, TaskRegistry(make_notifier()), timer=timer)  # type: ignore[arg-type]


def _saved(store: ScheduleStore) -> dict:
    return yaml.safe_load(store.path.read_text(encoding="utf-8"))


class TestApplyScheduleSettings:
    @pytest.mark.asyncio
    async def test_persists_and_reloads(self, manager: ScheduleManager, store: ScheduleStore) -> None:
        await manager.start()

        result = await apply_schedule_settings(
            manager, store, jobs={"weeklyReport": {"cronExpression": "0 10 * * 1"}}
        )

        assert result.success is True
        assert _saved(store)["jobs"]["weeklyReport"]["cron_expression"] == "0 10 * * 1"
        weekly = manager.get_status().job("weeklyReport")
        assert weekly is not None
        assert weekly.cron_expression == "0 10 * * 1"
        assert weekly.status is JobStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_timezone_change(
        self, manager: ScheduleManager, store: ScheduleStore, timer: FakeTimer
    ) -> None:
        await manager.start()

        result = await apply_schedule_settings(manager, store, timezone="America/New_York")

        assert result.success is True
        assert _saved(store)["timezone"] == "America/New_York"
        assert manager.timezone == "America/New_York"
        assert {h.timezone for h in timer.live()} == {"America/New_York"}

    @pytest.mark.asyncio
    async def test_saved_timezone_replaces_runtime_timezone(
        self, manager: ScheduleManager, store: ScheduleStore, timer: FakeTimer
    ) -> None:
        await manager.start()
        await manager.update_timezone("America/New_York")

        result = await apply_schedule_settings(manager, store, timezone="Europe/Berlin")

        assert result.success is True
        assert manager.timezone == "Europe/Berlin"
        assert {h.timezone for h in timer.live()} == {"Europe/Berlin"}

    @pytest.mark.asyncio
    async def test_job_update_keeps_runtime_timezone(
        self, manager: ScheduleManager, store: ScheduleStore
    ) -> None:
        await manager.start()
        await manager.update_timezone("America/New_York")

        await apply_schedule_settings(manager, store, jobs={"endOfDay": {"enabled": False}})

        assert manager.timezone == "America/New_York"

    @pytest.mark.asyncio
    async def test_unwritable_store(self, manager: ScheduleManager, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = ScheduleStore(blocker / "schedules.yaml")

        result = await apply_schedule_settings(manager, store, timezone="UTC")

        assert result.success is False
        assert result.message.startswith("Failed to save schedule settings")

    @pytest.mark.asyncio
    async def test_stopped_manager_is_not_started(
        self, manager: ScheduleManager, store: ScheduleStore
    ) -> None:
        result = await apply_schedule_settings(manager, store, jobs={"endOfDay": {"enabled": False}})

        assert result.success is True
        assert manager.running is False
        assert _saved(store)["jobs"]["endOfDay"]["enabled"] is False

    @pytest.mark.asyncio
    async def test_invalid_timezone(self, manager: ScheduleManager, store: ScheduleStore) -> None:
        result = await apply_schedule_settings(manager, store, timezone="Nowhere/Land")
        assert result.success is False
        assert "Unknown timezone" in result.message
        assert not store.path.exists()

    @pytest.mark.asyncio
    async def test_unknown_job(self, manager: ScheduleManager, store: ScheduleStore) -> None:
        result = await apply_schedule_settings(manager, store, jobs={"monthlyAudit": {"enabled": True}})
        assert result.success is False
        assert "Unknown job 'monthlyAudit'" in result.message

    @pytest.mark.asyncio
    async def test_invalid_cron_is_not_saved(self, manager: ScheduleManager, store: ScheduleStore) -> None:
        store.load()
        before = store.path.read_text(encoding="utf-8")

        result = await apply_schedule_settings(
            manager, store, jobs={"weeklyReport": {"cronExpression": "every monday"}}
        )

        assert result.success is False
        assert result.message == "Invalid cron expression for weeklyReport"
        assert store.path.read_text(encoding="utf-8") == before

    @pytest.mark.asyncio
    async def test_invalid_field(self, manager: ScheduleManager, store: ScheduleStore) -> None:
        result = await apply_schedule_settings(manager, store, jobs={"endOfDay": {"enabled": "sometimes"}})
        assert result.success is False
        assert result.message.startswith("Invalid settings for 'endOfDay'")

    @pytest.mark.asyncio
    async def test_unreadable_store(self, manager: ScheduleManager, store: ScheduleStore) -> None:
        store.path.write_text("jobs: [unclosed", encoding="utf-8")

        result = await apply_schedule_settings(manager, store, timezone="UTC")

        assert result.success is False
        assert result.message.startswith("Failed to save schedule settings")


class TestToggleSchedule:
    @pytest.mark.asyncio
    async def test_disable_and_enable(self, manager: ScheduleManager, store: ScheduleStore) -> None:
        await manager.start()

        result = await toggle_schedule(manager, store, "weeklyReport", False)

        assert result.success is True
        assert result.message == "weeklyReport disabled successfully"
        assert not manager.is_job_active(JobName.WEEKLY_REPORT)
        assert _saved(store)["jobs"]["weeklyReport"]["enabled"] is False

        result = await toggle_schedule(manager, store, "weeklyReport", True)

        assert result.message == "weeklyReport enabled successfully"
        assert manager.is_job_active(JobName.WEEKLY_REPORT)

    @pytest.mark.asyncio
    async def test_non_boolean_rejected(self, manager: ScheduleManager, store: ScheduleStore) -> None:
        result = await toggle_schedule(manager, store, "weeklyReport", "yes")  # type: ignore[arg-type]
        assert result.success is False
        assert "boolean" in result.message

    @pytest.mark.asyncio
    async def test_unknown_job(self, manager: ScheduleManager, store: ScheduleStore) -> None:
        result = await toggle_schedule(manager, store, "monthlyAudit", True)
        assert result.success is False
