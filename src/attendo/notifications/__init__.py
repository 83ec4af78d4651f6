"""Attendo notifications -- Notifier-Protokoll und Task-Registry."""

from attendo.notifications.notifier import LoggingNotifier, Notifier
from attendo.notifications.tasks import TaskAction, TaskRegistry

__all__ = ["LoggingNotifier", "Notifier", "TaskAction", "TaskRegistry"]
