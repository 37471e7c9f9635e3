"""Time helpers: timezone resolution, hour arithmetic and Spanish date formatting."""

from datetime import date, datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

# Python's weekday(): Monday == 0
WEEKDAYS = ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"]
WEEKDAYS_SHORT = ["lun", "mar", "mié", "jue", "vie", "sáb", "dom"]
MONTHS = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]
MONTHS_SHORT = ["ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sept", "oct", "nov", "dic"]

MINUTES_IN_DAY = 1440
MINUTES_IN_MONTH = 43200
MINUTES_IN_YEAR = 525600


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """
    Return the display timezone for an IANA name.

    None means "use the system local zone" and is passed through unchanged.
    """
    if not name:
        return None
    return ZoneInfo(name)


def to_local(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Convert an aware datetime to the display timezone (system local when tz is None)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz) if tz is not None else dt.astimezone()


def local_today(now: datetime, tz: Optional[tzinfo] = None) -> date:
    return to_local(now, tz).date()


def hours_between(later: datetime, earlier: datetime) -> int:
    """Whole hours from earlier to later, truncated toward zero."""
    seconds = (later - earlier).total_seconds()
    return int(seconds / 3600)


def format_time(dt: datetime, tz: Optional[tzinfo] = None) -> str:
    """24h "HH:MM" in the display timezone."""
    return to_local(dt, tz).strftime("%H:%M")


def format_day_month(day: date) -> str:
    """e.g. "3 de marzo"."""
    return f"{day.day} de {MONTHS[day.month - 1]}"


def format_short_date(day: date) -> str:
    """e.g. "lun 3 de mar"."""
    return f"{WEEKDAYS_SHORT[day.weekday()]} {day.day} de {MONTHS_SHORT[day.month - 1]}"


def format_long_date(day: date) -> str:
    """e.g. "lunes 3 de marzo"."""
    return f"{WEEKDAYS[day.weekday()]} {format_day_month(day)}"


def _plural(count: int, one: str, many: str) -> str:
    return one if count == 1 else many.format(count=count)


def humanize_distance(later: datetime, earlier: datetime) -> str:
    """
    Spanish approximate distance between two instants ("alrededor de 3 horas").

    Thresholds follow the usual "time ago" buckets: minutes below 45, hours
    below a day, days below a month, months below a year.
    """
    minutes = round(abs((later - earlier).total_seconds()) / 60)

    if minutes < 1:
        return "menos de un minuto"
    if minutes < 45:
        return _plural(minutes, "1 minuto", "{count} minutos")
    if minutes < 90:
        return "alrededor de 1 hora"
    if minutes < MINUTES_IN_DAY:
        hours = round(minutes / 60)
        return _plural(hours, "alrededor de 1 hora", "alrededor de {count} horas")
    if minutes < 2520:
        return "1 día"
    if minutes < MINUTES_IN_MONTH:
        days = round(minutes / MINUTES_IN_DAY)
        return _plural(days, "1 día", "{count} días")
    if minutes < MINUTES_IN_MONTH * 2:
        months = round(minutes / MINUTES_IN_MONTH)
        return _plural(months, "alrededor de 1 mes", "alrededor de {count} meses")
    if minutes < MINUTES_IN_YEAR:
        months = round(minutes / MINUTES_IN_MONTH)
        return _plural(months, "1 mes", "{count} meses")
    years = round(minutes / MINUTES_IN_YEAR)
    return _plural(years, "alrededor de 1 año", "alrededor de {count} años")
