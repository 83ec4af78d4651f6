"""
Attendo · Notification Scheduler -- Entry Point.

Usage: attendo run
       attendo status
       attendo trigger dailyReminder
       attendo validate "0 13 * * 1-5"
       attendo set --job weeklyReport --cron "0 10 * * 1"
       attendo set --timezone America/New_York
       attendo --config /path/to/config.yaml --log-level DEBUG run
       python -m attendo
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from attendo import __version__
from attendo.models import JobName


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Kommandozeilen-Argumente parsen."""
    parser = argparse.ArgumentParser(
        prog="attendo",
        description="Attendo · Configuration-driven scheduler for attendance notifications",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Attendo v{__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Pfad zur config.yaml (Default: ~/.attendo/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log-Level überschreiben",
    )
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("run", help="Scheduler starten (Default)")
    commands.add_parser("status", help="Status-Snapshot als JSON ausgeben")

    trigger = commands.add_parser("trigger", help="Einen Job sofort ausführen")
    trigger.add_argument("job", help=f"Job-Name ({', '.join(n.value for n in JobName)})")

    validate = commands.add_parser("validate", help="Cron-Ausdruck prüfen")
    validate.add_argument("expression", help='z.B. "0 13 * * 1-5"')
    validate.add_argument("--timezone", default=None, help="Zeitzone für die Vorschau")

    settings = commands.add_parser("set", help="Zeitplan-Einstellungen speichern")
    settings.add_argument("--timezone", default=None, help="Neue Zeitzone für alle Jobs")
    settings.add_argument("--job", default=None, help="Job, der geändert wird")
    settings.add_argument("--cron", default=None, help="Neuer Cron-Ausdruck für --job")
    toggle = settings.add_mutually_exclusive_group()
    toggle.add_argument("--enable", dest="enabled", action="store_const", const=True, default=None)
    toggle.add_argument("--disable", dest="enabled", action="store_const", const=False)

    return parser.parse_args(argv)


def _print_json(data: Any) -> None:
    """Intentional CLI output -- print() statt Logger."""
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _status(config: Any) -> int:
    from attendo.service import create_schedule_manager

    manager, _ = create_schedule_manager(config)
    await manager.start()
    try:
        snapshot = manager.get_status()
        data = snapshot.model_dump(mode="json")
        data["next_run_times"] = {
            name: value.isoformat() if value else None
            for name, value in manager.get_next_run_times().items()
        }
    finally:
        await manager.stop()
    _print_json(data)
    return 0


async def _trigger(config: Any, job: str) -> int:
    from attendo.service import create_schedule_manager

    manager, _ = create_schedule_manager(config)
    result = await manager.trigger_job(job)
    _print_json(result.model_dump())
    return 0 if result.success else 1


def _validate(config: Any, expression: str, timezone: str | None) -> int:
    from attendo.core.errors import InvalidCronExpressionError
    from attendo.cron.expression import estimate_next_run, is_valid_timezone, parse_cron_expression

    tz = timezone or config.scheduler.timezone
    if not is_valid_timezone(tz):
        _print_json({"valid": False, "error": f"Unknown timezone '{tz}'"})
        return 1
    try:
        schedule = parse_cron_expression(expression)
    except InvalidCronExpressionError as exc:
        _print_json({"valid": False, "error": str(exc)})
        return 1
    next_run = estimate_next_run(schedule, tz)
    _print_json(
        {
            "valid": True,
            "expression": schedule.expression,
            "timezone": tz,
            "next_run_estimate": next_run.isoformat() if next_run else None,
        }
    )
    return 0


async def _set(config: Any, args: argparse.Namespace) -> int:
    from attendo.cron.admin import apply_schedule_settings
    from attendo.service import create_schedule_manager

    jobs: dict[str, dict[str, Any]] = {}
    if args.job is not None:
        patch: dict[str, Any] = {}
        if args.cron is not None:
            patch["cron_expression"] = args.cron
        if args.enabled is not None:
            patch["enabled"] = args.enabled
        jobs[args.job] = patch
    elif args.cron is not None or args.enabled is not None:
        _print_json({"success": False, "message": "--cron/--enable/--disable require --job"})
        return 2

    manager, store = create_schedule_manager(config)
    result = await apply_schedule_settings(manager, store, timezone=args.timezone, jobs=jobs)
    _print_json(result.model_dump())
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    """Haupteintrittspunkt für Attendo."""
    args = parse_args(argv)

    # 1. Konfiguration laden
    from attendo.config import ensure_directory_structure, load_config

    config = load_config(args.config)

    # 2. Verzeichnisstruktur sicherstellen
    created = ensure_directory_structure(config)

    # 3. Logging initialisieren
    from attendo.utils.logging import get_logger, setup_logging

    log_level = args.log_level or config.logging.level
    setup_logging(
        level=log_level,
        log_dir=config.logs_dir,
        json_logs=config.logging.json_logs,
        console=config.logging.console,
    )
    log = get_logger("attendo")

    for path in created:
        log.info("created_path", path=path)

    command = args.command or "run"
    if command == "validate":
        return _validate(config, args.expression, args.timezone)
    if command == "status":
        return asyncio.run(_status(config))
    if command == "trigger":
        return asyncio.run(_trigger(config, args.job))
    if command == "set":
        return asyncio.run(_set(config, args))

    from attendo.service import run_service

    log.info(
        "attendo_starting",
        version=__version__,
        home=str(config.attendo_home),
        schedule_file=str(config.schedule_config_file),
        log_level=log_level,
    )
    try:
        asyncio.run(run_service(config))
    except KeyboardInterrupt:
        log.info("attendo_shutdown_by_user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
