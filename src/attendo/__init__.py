"""Attendo · Configuration-driven scheduler for attendance notifications."""

__version__ = "0.3.0"
