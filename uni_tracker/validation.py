"""Parsing and validation of user input for evaluations."""

from datetime import datetime, time, timedelta, tzinfo
from typing import Optional, Tuple, Union

from .time_utils import to_local, utc_now

GRADE_MIN = 1.0
GRADE_MAX = 7.0
WEIGHT_MIN = 0.0
WEIGHT_MAX = 100.0

DUE_DATE_FORMATS = ("%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M:%S", "%d-%m-%Y %H:%M")


class ValidationError(ValueError):
    """Invalid user input; the message is ready to show to the user."""


def validate_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("El título de la evaluación es obligatorio.")
    return cleaned


def validate_subject_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("El nombre del ramo es obligatorio.")
    return cleaned


def parse_due_date(
    value: Union[str, datetime, None],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """
    Parse and check a due date.

    Strings without an offset are read in the display timezone. A date alone
    means 23:59 that day.

    Raises:
        ValidationError: If missing, unparseable or in the past.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("La fecha de entrega es obligatoria.")

    if isinstance(value, datetime):
        due = value
    else:
        due = _parse_due_text(value.strip())

    if due.tzinfo is None:
        # astimezone() on a naive value picks the local offset in effect on that date
        due = due.replace(tzinfo=tz) if tz is not None else due.astimezone()

    now = now or utc_now()
    if due < now:
        raise ValidationError("La fecha de entrega no puede estar en el pasado.")
    return due


def _parse_due_text(text: str) -> datetime:
    try:
        day = datetime.strptime(text, "%Y-%m-%d").date()
        return datetime.combine(day, time(23, 59))
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in DUE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValidationError("La fecha ingresada no es válida.")


def parse_weight(value: Union[str, float, int, None]) -> Optional[float]:
    """
    Parse an optional weight percentage.

    Raises:
        ValidationError: If not a number or outside 0-100.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        weight = float(value)
    except (TypeError, ValueError):
        raise ValidationError("La ponderación debe ser un número válido.")
    if weight != weight:  # NaN
        raise ValidationError("La ponderación debe ser un número válido.")
    if weight < WEIGHT_MIN or weight > WEIGHT_MAX:
        raise ValidationError("La ponderación debe estar entre 0% y 100%.")
    return weight


def parse_grade(value: Union[str, float, int, None]) -> Optional[float]:
    """
    Parse a grade on the 1.0-7.0 scale. Empty input clears the grade.

    Raises:
        ValidationError: If not a number in range.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        grade = float(value)
    except (TypeError, ValueError):
        raise ValidationError("La nota debe estar entre 1.0 y 7.0")
    if grade != grade or grade < GRADE_MIN or grade > GRADE_MAX:
        raise ValidationError("La nota debe estar entre 1.0 y 7.0")
    return grade


def default_due_datetime(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    """A week from now at 23:59 local time, the default for new evaluations."""
    local = to_local(now or utc_now(), tz) + timedelta(days=7)
    return local.replace(hour=23, minute=59, second=0, microsecond=0)


def parse_month(value: str) -> Tuple[int, int]:
    """
    Parse "YYYY-MM" into (year, month).

    Raises:
        ValidationError: If the text is not a valid month.
    """
    try:
        parsed = datetime.strptime((value or "").strip(), "%Y-%m")
    except ValueError:
        raise ValidationError("El mes debe tener el formato AAAA-MM.")
    return parsed.year, parsed.month
