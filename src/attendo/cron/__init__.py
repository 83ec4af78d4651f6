"""Attendo cron module -- wiederkehrende Benachrichtigungs-Jobs."""

from attendo.cron.expression import CronSchedule, is_valid_cron_expression, parse_cron_expression
from attendo.cron.manager import ScheduleManager
from attendo.cron.store import DEFAULT_SCHEDULE, ScheduleConfigSource, ScheduleStore
from attendo.cron.timer import CronTimer, JobHandle

__all__ = [
    "DEFAULT_SCHEDULE",
    "CronSchedule",
    "CronTimer",
    "JobHandle",
    "ScheduleConfigSource",
    "ScheduleManager",
    "ScheduleStore",
    "is_valid_cron_expression",
    "parse_cron_expression",
]
