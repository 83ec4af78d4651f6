"""Cron-Ausdrücke: Parsen, Validieren, Matchen, Vorschau.

Unterstützt das klassische 5-Feld-Format
``minute hour day-of-month month day-of-week`` mit:

  - ``*`` Wildcard
  - Einzelwerten, Bereichen ``a-b`` und Listen ``a,b,c``
  - Schrittweiten ``*/15``, ``1-5/2``, ``10/5``
  - Namen für Monate (``JAN``..``DEC``) und Wochentage (``SUN``..``SAT``)

Wochentage folgen der Cron-Zählung (0 und 7 = Sonntag). APScheduler zählt
ab Montag = 0, deshalb übersetzt ``CronSchedule.trigger_fields`` die
Wochentage in Namen.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from attendo.core.errors import InvalidCronExpressionError

FIELD_NAMES: tuple[str, ...] = ("minute", "hour", "day", "month", "day_of_week")

_BOUNDS: dict[str, tuple[int, int]] = {
    "minute": (0, 59),
    "hour": (0, 23),
    "day": (1, 31),
    "month": (1, 12),
    "day_of_week": (0, 7),
}

_MONTH_NAMES = {
    name: number
    for number, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}

# Index = Cron-Wochentag (0 = Sonntag)
WEEKDAY_NAMES: tuple[str, ...] = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_WEEKDAY_NUMBERS = {name: number for number, name in enumerate(WEEKDAY_NAMES)}

_ITEM_RE = re.compile(r"^(?P<start>\*|[0-9a-z]+)(?:-(?P<end>[0-9a-z]+))?(?:/(?P<step>[0-9]+))?$")

# Wie weit die Vorschau in die Zukunft sucht (eine volle Woche + Puffer)
_ESTIMATE_HORIZON_DAYS = 8


def cron_weekday(day: date) -> int:
    """Wochentag in Cron-Zählung (0 = Sonntag, 6 = Samstag)."""
    return (day.weekday() + 1) % 7


@dataclass(frozen=True)
class CronSchedule:
    """Ein geparster, gültiger Cron-Ausdruck.

    Attributes:
        expression: Der Original-Ausdruck (normalisierte Leerzeichen).
        fields: Die fünf Roh-Felder.
        minutes/hours/days/months/weekdays: Expandierte Wertemengen.
            ``weekdays`` nutzt die Cron-Zählung 0..6 (7 wird zu 0).
    """

    expression: str
    fields: tuple[str, str, str, str, str]
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]

    @property
    def day_restricted(self) -> bool:
        return not self.fields[2].startswith("*")

    @property
    def weekday_restricted(self) -> bool:
        return not self.fields[4].startswith("*")

    def matches(self, moment: datetime) -> bool:
        """Prüft ob ``moment`` (lokale Zeit) auf den Ausdruck passt.

        Sekunden werden ignoriert. Sind Tag-des-Monats und Wochentag
        beide eingeschränkt, genügt wie bei cron einer der beiden.
        """
        if moment.minute not in self.minutes or moment.hour not in self.hours:
            return False
        if moment.month not in self.months:
            return False
        day_ok = moment.day in self.days
        weekday_ok = cron_weekday(moment.date()) in self.weekdays
        if self.day_restricted and self.weekday_restricted:
            return day_ok or weekday_ok
        return day_ok and weekday_ok

    def trigger_fields(self) -> dict[str, str]:
        """Keyword-Argumente für ``apscheduler.triggers.cron.CronTrigger``.

        Eingeschränkte Felder werden als explizite Listen übergeben, damit
        Namen, Schrittweiten und die Wochentags-Zählung unabhängig von
        APScheduler-Eigenheiten sind.
        """
        values = (self.minutes, self.hours, self.days, self.months)
        result: dict[str, str] = {}
        for name, raw, allowed in zip(FIELD_NAMES[:4], self.fields[:4], values, strict=True):
            result[name] = "*" if raw == "*" else ",".join(str(v) for v in sorted(allowed))
        if self.fields[4] == "*":
            result["day_of_week"] = "*"
        else:
            result["day_of_week"] = ",".join(WEEKDAY_NAMES[d] for d in sorted(self.weekdays))
        return result


def _parse_value(token: str, field: str, expression: str) -> int:
    low, high = _BOUNDS[field]
    if token.isdigit():
        value = int(token)
    elif field == "month" and token in _MONTH_NAMES:
        value = _MONTH_NAMES[token]
    elif field == "day_of_week" and token in _WEEKDAY_NUMBERS:
        value = _WEEKDAY_NUMBERS[token]
    else:
        msg = f"Invalid {field} value '{token}' in cron expression '{expression}'"
        raise InvalidCronExpressionError(msg, details={"expression": expression, "field": field})
    if not low <= value <= high:
        msg = f"{field} value {value} out of range {low}-{high} in cron expression '{expression}'"
        raise InvalidCronExpressionError(msg, details={"expression": expression, "field": field})
    return value


def _parse_field(raw: str, field: str, expression: str) -> frozenset[int]:
    low, high = _BOUNDS[field]
    if field == "day_of_week":
        high = 6  # 7 ist nur ein Alias für Sonntag
    values: set[int] = set()
    for item in raw.lower().split(","):
        match = _ITEM_RE.match(item)
        if match is None:
            msg = f"Invalid {field} field '{raw}' in cron expression '{expression}'"
            raise InvalidCronExpressionError(msg, details={"expression": expression, "field": field})
        start, end, step_raw = match.group("start", "end", "step")

        step = 1
        if step_raw is not None:
            step = int(step_raw)
            if step == 0:
                msg = f"Step must be positive in {field} field '{raw}' of '{expression}'"
                raise InvalidCronExpressionError(msg, details={"expression": expression, "field": field})

        if start == "*":
            if end is not None:
                msg = f"Invalid {field} field '{raw}' in cron expression '{expression}'"
                raise InvalidCronExpressionError(msg, details={"expression": expression, "field": field})
            first, last = low, high
        else:
            first = _parse_value(start, field, expression)
            if end is not None:
                last = _parse_value(end, field, expression)
                if first > last:
                    msg = f"Reversed range '{item}' in {field} field of '{expression}'"
                    raise InvalidCronExpressionError(
                        msg, details={"expression": expression, "field": field}
                    )
            elif step_raw is not None:
                last = _BOUNDS[field][1]
            else:
                last = first

        values.update(range(first, last + 1, step))

    if field == "day_of_week" and 7 in values:
        values.discard(7)
        values.add(0)
    return frozenset(values)


def parse_cron_expression(expression: str) -> CronSchedule:
    """Parst und validiert einen Cron-Ausdruck.

    Args:
        expression: Cron-Ausdruck (z.B. "0 13 * * 1-5")

    Returns:
        Der geparste CronSchedule.

    Raises:
        InvalidCronExpressionError: Bei ungültigem Ausdruck.
    """
    if not isinstance(expression, str):
        msg = f"Cron expression must be a string, got {type(expression).__name__}"
        raise InvalidCronExpressionError(msg)

    parts = expression.split()
    if len(parts) != 5:
        msg = f"Cron expression must have 5 fields, got {len(parts)}: '{expression}'"
        raise InvalidCronExpressionError(msg, details={"expression": expression})

    normalized = " ".join(parts)
    parsed = [_parse_field(raw, name, normalized) for raw, name in zip(parts, FIELD_NAMES, strict=True)]
    return CronSchedule(
        expression=normalized,
        fields=(parts[0], parts[1], parts[2], parts[3], parts[4]),
        minutes=parsed[0],
        hours=parsed[1],
        days=parsed[2],
        months=parsed[3],
        weekdays=parsed[4],
    )


def is_valid_cron_expression(expression: Any) -> bool:
    """True wenn der Ausdruck gültig ist. Wirft nie."""
    try:
        parse_cron_expression(expression)
    except InvalidCronExpressionError:
        return False
    return True


def estimate_next_run(
    schedule: CronSchedule,
    timezone: str | tzinfo,
    now: datetime | None = None,
) -> datetime | None:
    """Schätzt den nächsten Lauf für die Operator-Anzeige.

    Berücksichtigt nur Minute, Stunde und die Wochentags-Menge. Tag des
    Monats und Monat werden ignoriert -- das Ergebnis ist eine Vorschau,
    keine Garantie. Den exakten Zeitpunkt liefert der Timer
    (``JobHandle.next_fire_time``).

    Args:
        schedule: Geparster Cron-Ausdruck.
        timezone: IANA-Name oder tzinfo.
        now: Referenzzeitpunkt (Default: jetzt). Naive Werte gelten als UTC.

    Returns:
        Zeitzonen-bewusster Zeitpunkt strikt nach ``now`` oder None.
    """
    tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone
    reference = now or datetime.now(UTC)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=UTC)
    local_now = reference.astimezone(tz)

    times = sorted((hour, minute) for hour in schedule.hours for minute in schedule.minutes)
    for offset in range(_ESTIMATE_HORIZON_DAYS):
        day = local_now.date() + timedelta(days=offset)
        if cron_weekday(day) not in schedule.weekdays:
            continue
        for hour, minute in times:
            candidate = datetime.combine(day, time(hour, minute), tzinfo=tz)
            if candidate > local_now:
                return candidate
    return None


def is_valid_timezone(timezone: Any) -> bool:
    """True wenn ``timezone`` ein bekannter IANA-Name ist. Wirft nie."""
    if not isinstance(timezone, str) or not timezone.strip():
        return False
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True
