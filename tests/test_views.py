from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import NOW
from uni_tracker.models import Evaluation
from uni_tracker.repositories import EvaluationRepository, SubjectRepository
from uni_tracker.views import (
    TrackerViews,
    build_agenda,
    day_label,
    day_sub_label,
    due_badge,
    format_due_date,
    format_time_left,
    month_grid,
)

UTC = timezone.utc


def evaluation(title, due, subject_id="s-1"):
    return Evaluation(id=title, title=title, subject_id=subject_id, due_date=due)


@pytest.mark.parametrize("delta,expected", [
    (timedelta(minutes=-1), "Vencida"),
    (timedelta(hours=5), "¡Mañana!"),
    (timedelta(hours=30), "Pronto"),
    (timedelta(hours=80), None),
])
def test_due_badge(delta, expected):
    assert due_badge(NOW + delta, NOW) == expected


def test_format_due_date():
    # NOW is Tuesday 10 March 2026, 13:00 UTC
    assert format_due_date(NOW + timedelta(hours=2), NOW, UTC) == "Hoy, 15:00"
    assert format_due_date(NOW + timedelta(days=1), NOW, UTC) == "Mañana, 13:00"
    assert format_due_date(NOW + timedelta(days=6), NOW, UTC) == "lun 16 de mar"
    assert format_due_date(NOW + timedelta(days=6), NOW, UTC, with_time=True) == "lun 16 de mar, 13:00"


def test_format_time_left():
    assert format_time_left(NOW - timedelta(hours=1), NOW) == "Plazo vencido"
    assert format_time_left(NOW + timedelta(hours=3), NOW) == "Quedan alrededor de 3 horas"
    assert format_time_left(NOW + timedelta(days=4), NOW) == "Quedan 4 días"


def test_day_labels():
    today = date(2026, 3, 10)

    assert day_label(today, today) == "Hoy"
    assert day_label(date(2026, 3, 11), today) == "Mañana"
    assert day_label(date(2026, 3, 13), today) == "viernes"
    assert day_label(date(2026, 3, 20), today) == "viernes 20 de marzo"
    assert day_sub_label(date(2026, 3, 13), today) == "13 de marzo"
    assert day_sub_label(date(2026, 3, 20), today) == "en 10 días"


def test_build_agenda_groups_and_filters():
    items = [
        evaluation("Quiz", NOW + timedelta(hours=1)),
        evaluation("Essay", NOW + timedelta(hours=3), subject_id="s-2"),
        evaluation("Lab", NOW + timedelta(days=2)),
    ]

    agenda = build_agenda(items, NOW, range_days=7, tz=UTC)
    assert [d.label for d in agenda.days] == ["Hoy", "jueves"]
    assert [e.title for e in agenda.days[0].evaluations] == ["Quiz", "Essay"]
    assert agenda.total_shown == 3

    filtered = build_agenda(items, NOW, range_days=7, subject_filter="s-2", tz=UTC)
    assert filtered.total_shown == 1
    assert filtered.total_pending == 3


def test_month_grid_starts_on_monday():
    # 1 March 2026 is a Sunday
    grid = month_grid(2026, 3)

    assert grid[:6] == [None] * 6
    assert grid[6] == date(2026, 3, 1)
    assert len(grid) == 6 + 31


@pytest.fixture
def views(fake_backend):
    client = fake_backend.client()
    return TrackerViews(
        SubjectRepository(client, "user-1"),
        EvaluationRepository(client, "user-1", tz=UTC),
        tz=UTC,
        now=lambda: NOW,
    )


def test_dashboard(fake_backend, views):
    subject = fake_backend.add_subject("Calculus")
    fake_backend.add_evaluation("Midterm", NOW + timedelta(days=1), subject_id=subject["id"])
    fake_backend.add_evaluation("Quiz", NOW - timedelta(days=1), completed=True)

    summary = views.dashboard()

    assert (summary.total, summary.completed, summary.pending) == (2, 1, 1)
    assert [e.title for e in summary.upcoming] == ["Midterm"]
    assert summary.subjects[subject["id"]].name == "Calculus"


def test_agenda_range_is_validated(views):
    with pytest.raises(ValueError):
        views.agenda(range_days=10)


def test_agenda_uses_range(fake_backend, views):
    fake_backend.add_evaluation("Soon", NOW + timedelta(days=5))
    fake_backend.add_evaluation("Later", NOW + timedelta(days=12))

    assert views.agenda(range_days=7).total_shown == 1
    assert views.agenda(range_days=14).total_shown == 2


def test_calendar_month(fake_backend, views):
    fake_backend.add_evaluation("March", datetime(2026, 3, 31, 22, 0, tzinfo=UTC))
    fake_backend.add_evaluation("April", datetime(2026, 4, 1, 9, 0, tzinfo=UTC))

    month = views.calendar(2026, 3)

    assert list(month.by_day) == [date(2026, 3, 31)]
    weeks = month.weeks()
    assert all(len(week) == 7 for week in weeks)
    assert weeks[0][6] == date(2026, 3, 1)
