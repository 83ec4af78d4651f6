"""Attendo · Unified Error Hierarchy.

Provides a structured exception hierarchy for the scheduler.
All custom exceptions inherit from AttendoError, which carries an error_code
and optional details dict for programmatic handling.

None of these errors is meant to escape the ScheduleManager: each one is
caught at the nearest boundary and turned into an OperationResult or a
log entry.

Usage::

    from attendo.core.errors import InvalidCronExpressionError

    raise InvalidCronExpressionError("Expected 5 fields", details={"expression": expr})
"""

from __future__ import annotations


class AttendoError(Exception):
    """Base exception for all Attendo errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "ATTENDO_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigurationFetchError(AttendoError):
    """Schedule configuration could not be fetched or parsed.

    Non-fatal: the manager falls back to the built-in default schedule.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIGURATION_FETCH_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class InvalidCronExpressionError(AttendoError, ValueError):
    """A cron expression failed validation.

    Rejects only the start/update operation of the affected job.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "INVALID_CRON_EXPRESSION",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class TaskExecutionError(AttendoError):
    """A notification action failed while running.

    Caught at the per-firing wrapper; the job stays scheduled.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "TASK_EXECUTION_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class UnknownJobNameError(AttendoError, KeyError):
    """The job name is not part of the registered job set."""

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_JOB_NAME",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)

    def __str__(self) -> str:
        # KeyError would otherwise wrap the message in quotes
        return str(self.args[0]) if self.args else ""
