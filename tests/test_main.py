from datetime import datetime, timedelta, timezone

import pytest

from conftest import RecordingPlatform, make_token
from uni_tracker.auth import AuthService
from uni_tracker.config import AppConfig, BackendConfig
from uni_tracker.main import AppContext, build_parser, cmd_notifications_dismiss, cmd_reminders_check, main
from uni_tracker.models import Session
from uni_tracker.state_store import InMemoryStateRepository


@pytest.fixture
def ctx(fake_backend):
    state = InMemoryStateRepository()
    state.set_permission("granted")
    now = datetime.now(timezone.utc)
    state.put_session(Session(
        access_token=make_token("user-1", "ana@example.com", now + timedelta(hours=1)),
        refresh_token="refresh-user-1",
        user_id="user-1",
        email="ana@example.com",
        expires_at=int((now + timedelta(hours=1)).timestamp()),
    ))
    client = fake_backend.client()
    return AppContext(
        config=AppConfig(db_path=":memory:", timezone="UTC",
                         backend=BackendConfig(url="https://example.supabase.co", anon_key="anon-key")),
        state=state,
        client=client,
        auth=AuthService(client, state),
        platform=RecordingPlatform(state),
        tz=timezone.utc,
    )


def test_parser_routes_subcommands():
    parser = build_parser()

    args = parser.parse_args(["evals", "add", "s-1", "Midterm", "--due", "2030-01-01", "--weight", "20"])
    assert parser.parse_args(["evals", "add", "s-1", "Quiz"]).due is None
    assert (args.subject_id, args.title, args.due, args.type, args.weight) == ("s-1", "Midterm", "2030-01-01", "prueba", "20")

    args = parser.parse_args(["agenda", "--days", "14"])
    assert args.days == 14

    with pytest.raises(SystemExit):
        parser.parse_args(["agenda", "--days", "10"])


def test_reminders_check_prints_and_notifies(ctx, fake_backend, capsys):
    subject = fake_backend.add_subject("Calculus")
    fake_backend.add_evaluation("Midterm", datetime.now(timezone.utc) + timedelta(hours=3),
                                subject_id=subject["id"])

    cmd_reminders_check(ctx, build_parser().parse_args(["reminders", "check"]))

    out = capsys.readouterr().out
    assert "1 entrega(s) en las próximas 24 horas" in out
    assert "Calculus — Entrega hoy a las" in out
    assert len(ctx.platform.delivered) == 1


def test_dismiss_prompt(ctx, capsys):
    cmd_notifications_dismiss(ctx, None)

    assert ctx.state.is_prompt_dismissed()


def test_missing_configuration_exits(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        main(["whoami"])
    assert excinfo.value.code == 1


def test_calendar_month_is_parsed_by_the_parser(capsys):
    parser = build_parser()

    assert parser.parse_args(["calendar", "--month", "2026-03"]).month == (2026, 3)
    with pytest.raises(SystemExit) as excinfo:
        parser.parse_args(["calendar", "--month", "2026/03"])
    assert excinfo.value.code == 2
    assert "AAAA-MM" in capsys.readouterr().err
