"""Dashboard, agenda and calendar views built from backend data."""

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, List, Optional

from .models import DashboardSummary, Evaluation, Subject
from .repositories import EvaluationRepository, SubjectRepository
from .time_utils import (
    WEEKDAYS,
    format_day_month,
    format_long_date,
    format_short_date,
    format_time,
    hours_between,
    humanize_distance,
    local_today,
    to_local,
    utc_now,
)

AGENDA_RANGES = (7, 14, 30, 60)
DASHBOARD_LIMIT = 20

BADGE_OVERDUE = "Vencida"
BADGE_TOMORROW = "¡Mañana!"
BADGE_SOON = "Pronto"


def due_badge(due: datetime, now: datetime) -> Optional[str]:
    """Short urgency label for a due date, or None when it is not close."""
    if due < now:
        return BADGE_OVERDUE
    hours_left = hours_between(due, now)
    if hours_left < 24:
        return BADGE_TOMORROW
    if hours_left < 72:
        return BADGE_SOON
    return None


def format_due_date(due: datetime, now: datetime, tz: Optional[tzinfo] = None, with_time: bool = False) -> str:
    """"Hoy, 14:00", "Mañana, 09:30" or "lun 3 de mar" (plus ", HH:MM" when with_time)."""
    day = to_local(due, tz).date()
    today = local_today(now, tz)
    if day == today:
        return f"Hoy, {format_time(due, tz)}"
    if day == today + timedelta(days=1):
        return f"Mañana, {format_time(due, tz)}"
    label = format_short_date(day)
    if with_time:
        label = f"{label}, {format_time(due, tz)}"
    return label


def format_time_left(due: datetime, now: datetime) -> str:
    if due < now:
        return "Plazo vencido"
    return f"Quedan {humanize_distance(due, now)}"


def day_label(day: date, today: date) -> str:
    """Agenda section heading for a day."""
    if day == today:
        return "Hoy"
    if day == today + timedelta(days=1):
        return "Mañana"
    days_from_now = (day - today).days
    if 2 <= days_from_now <= 6:
        return WEEKDAYS[day.weekday()]
    return format_long_date(day)


def day_sub_label(day: date, today: date) -> str:
    days_from_now = (day - today).days
    if days_from_now <= 6:
        return format_day_month(day)
    return f"en {days_from_now} días"


@dataclass
class AgendaDay:
    day: date
    label: str
    sub_label: str
    evaluations: List[Evaluation] = field(default_factory=list)


@dataclass
class Agenda:
    range_days: int
    days: List[AgendaDay]
    total_pending: int
    subjects: Dict[str, Subject] = field(default_factory=dict)

    @property
    def total_shown(self) -> int:
        return sum(len(d.evaluations) for d in self.days)


def group_by_day(evaluations: List[Evaluation], tz: Optional[tzinfo] = None) -> Dict[date, List[Evaluation]]:
    """Bucket evaluations by local calendar day of their due date, days in order."""
    groups: Dict[date, List[Evaluation]] = {}
    for evaluation in evaluations:
        if evaluation.due_date is None:
            continue
        key = to_local(evaluation.due_date, tz).date()
        groups.setdefault(key, []).append(evaluation)
    return dict(sorted(groups.items()))


def build_agenda(
    evaluations: List[Evaluation],
    now: datetime,
    range_days: int = 30,
    subject_filter: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> Agenda:
    today = local_today(now, tz)
    shown = evaluations
    if subject_filter and subject_filter != "all":
        shown = [e for e in evaluations if e.subject_id == subject_filter]
    days = [
        AgendaDay(day=day, label=day_label(day, today), sub_label=day_sub_label(day, today), evaluations=items)
        for day, items in group_by_day(shown, tz).items()
    ]
    return Agenda(range_days=range_days, days=days, total_pending=len(evaluations))


def month_grid(year: int, month: int) -> List[Optional[date]]:
    """Days of the month preceded by None padding so the first row starts on Monday."""
    first = date(year, month, 1)
    _, days_in_month = calendar.monthrange(year, month)
    padding = first.weekday()  # Monday == 0
    return [None] * padding + [date(year, month, d) for d in range(1, days_in_month + 1)]


@dataclass
class CalendarMonth:
    year: int
    month: int
    grid: List[Optional[date]]
    by_day: Dict[date, List[Evaluation]]
    subjects: Dict[str, Subject] = field(default_factory=dict)

    def weeks(self) -> List[List[Optional[date]]]:
        cells = list(self.grid)
        while len(cells) % 7:
            cells.append(None)
        return [cells[i:i + 7] for i in range(0, len(cells), 7)]


def month_bounds(year: int, month: int, tz: Optional[tzinfo] = None):
    """First and last instant of a month in the display timezone."""
    _, days_in_month = calendar.monthrange(year, month)
    start = datetime(year, month, 1)
    end = datetime(year, month, days_in_month, 23, 59, 59, 999999)
    if tz is None:
        return start.astimezone(), end.astimezone()
    return start.replace(tzinfo=tz), end.replace(tzinfo=tz)


class TrackerViews:
    """Assembles the read-only screens for one signed-in user."""

    def __init__(
        self,
        subjects: SubjectRepository,
        evaluations: EvaluationRepository,
        tz: Optional[tzinfo] = None,
        now=utc_now,
    ):
        self.subjects = subjects
        self.evaluations = evaluations
        self.tz = tz
        self.now = now

    def dashboard(self) -> DashboardSummary:
        lookup = self.subjects.lookup()
        upcoming = self.evaluations.pending(limit=DASHBOARD_LIMIT)
        total, completed = self.evaluations.completion_counts()
        return DashboardSummary(
            total=total,
            completed=completed,
            pending=total - completed,
            upcoming=upcoming,
            subjects=lookup,
        )

    def agenda(self, range_days: int = 30, subject_filter: Optional[str] = None) -> Agenda:
        if range_days not in AGENDA_RANGES:
            raise ValueError(f"range_days must be one of {AGENDA_RANGES}")
        now = self.now()
        lookup = self.subjects.lookup()
        pending = self.evaluations.pending_between(now, now + timedelta(days=range_days))
        agenda = build_agenda(pending, now, range_days, subject_filter, self.tz)
        agenda.subjects = lookup
        return agenda

    def calendar(self, year: int, month: int) -> CalendarMonth:
        start, end = month_bounds(year, month, self.tz)
        lookup = self.subjects.lookup()
        pending = self.evaluations.pending_between(start, end)
        return CalendarMonth(
            year=year,
            month=month,
            grid=month_grid(year, month),
            by_day=group_by_day(pending, self.tz),
            subjects=lookup,
        )
