"""Attendo core module."""

from attendo.core.errors import (  # noqa: F401
    AttendoError,
    ConfigurationFetchError,
    InvalidCronExpressionError,
    TaskExecutionError,
    UnknownJobNameError,
)
